"""Watch sessions shared between consumers.

PodWatchSession  -- One ResourceCache + ResourceWatcher + EventBroadcaster for
                    a namespace filter.  This is the surface the transport
                    layer talks to: subscribe, unsubscribe, current_snapshot.
SessionRegistry  -- Hands out one live session per namespace filter so that
                    many consumers share a single list+watch against the API.
"""

from __future__ import annotations

import asyncio

from kubepulse.broadcast.broadcaster import EventBroadcaster, Subscription
from kubepulse.cache.resource_cache import ResourceCache
from kubepulse.collector.control_plane import ControlPlane
from kubepulse.collector.watcher import ResourceWatcher, WatcherState
from kubepulse.models.config import BroadcastConfig, WatchConfig
from kubepulse.models.events import SessionEnded
from kubepulse.models.pods import WorkloadRecord
from kubepulse.observability.logging import get_logger
from kubepulse.status.resolver import StatusResolution

_log = get_logger("session")


class PodWatchSession:
    """A live, in-memory projection of the pods matching one namespace filter."""

    def __init__(
        self,
        control_plane: ControlPlane,
        namespace: str = "",
        watch_config: WatchConfig | None = None,
        broadcast_config: BroadcastConfig | None = None,
    ) -> None:
        watch_config = watch_config or WatchConfig()
        broadcast_config = broadcast_config or BroadcastConfig()
        self.namespace = namespace
        self.cache = ResourceCache(namespace_filter=namespace)
        self.broadcaster = EventBroadcaster(capacity=broadcast_config.subscriber_queue_size)
        self.watcher = ResourceWatcher(
            control_plane=control_plane,
            cache=self.cache,
            broadcaster=self.broadcaster,
            namespace=namespace,
            sync_timeout=float(watch_config.sync_timeout_seconds),
        )

    @property
    def state(self) -> WatcherState:
        return self.watcher.state

    @property
    def ended(self) -> SessionEnded | None:
        return self.watcher.ended

    def start(self) -> None:
        self.watcher.start()

    async def stop(self) -> None:
        await self.watcher.stop()

    async def wait_until_synced(self, timeout: float | None = None) -> None:
        await self.watcher.wait_until_synced(timeout)

    def subscribe(self) -> Subscription:
        """Attach a consumer.  On a stopped session the subscription is already ended."""
        return self.broadcaster.subscribe()

    def unsubscribe(self, subscription: Subscription) -> None:
        self.broadcaster.unsubscribe(subscription)

    def subscribe_with_snapshot(self) -> tuple[Subscription, list[tuple[WorkloadRecord, StatusResolution]]]:
        """Attach a consumer and capture the snapshot it should start from.

        Both happen without yielding to the event loop, so every mutation is
        either in the snapshot or delivered through the subscription, never
        both.  Before sync the snapshot is empty and the initial adds arrive
        as events.
        """
        subscription = self.broadcaster.subscribe()
        snapshot = self.current_snapshot() if self.cache.is_synced() else []
        return subscription, snapshot

    def current_snapshot(self, namespace: str = "") -> list[tuple[WorkloadRecord, StatusResolution]]:
        """Cached pods with freshly resolved status, optionally narrowed to *namespace*."""
        return self.cache.snapshot_with_status(namespace)


class SessionRegistry:
    """One shared PodWatchSession per namespace filter.

    A session that has stopped (failed or stopped explicitly) is replaced on
    the next ``acquire``; sessions are never restarted in place.  Every
    ``acquire`` must be paired with a ``release``; sessions for namespaces
    other than the configured one are stopped when their last holder leaves.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        watch_config: WatchConfig | None = None,
        broadcast_config: BroadcastConfig | None = None,
    ) -> None:
        self.control_plane = control_plane
        self._watch_config = watch_config or WatchConfig()
        self._broadcast_config = broadcast_config or BroadcastConfig()
        self._sessions: dict[str, PodWatchSession] = {}
        # The configured namespace keeps its session for the life of the registry.
        self._pinned = {self._watch_config.namespace}
        self._leases: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def sessions(self) -> dict[str, PodWatchSession]:
        return dict(self._sessions)

    async def acquire(self, namespace: str = "") -> PodWatchSession:
        """Return the running session for *namespace*, starting one if needed."""
        async with self._lock:
            session = self._sessions.get(namespace)
            if session is not None and session.state != WatcherState.STOPPED:
                self._leases[namespace] = self._leases.get(namespace, 0) + 1
                return session
            if session is not None:
                _log.info(
                    "replacing_stopped_session",
                    namespace_filter=namespace or "*",
                    reason=session.ended.reason if session.ended else "",
                )
            session = PodWatchSession(
                self.control_plane,
                namespace=namespace,
                watch_config=self._watch_config,
                broadcast_config=self._broadcast_config,
            )
            self._sessions[namespace] = session
            self._leases[namespace] = 1
            session.start()
            _log.info("session_started", namespace_filter=namespace or "*")
            return session

    async def release(self, session: PodWatchSession) -> None:
        """Give back a session obtained from ``acquire``.

        When the last holder of a session outside the configured namespace
        releases it, the session is stopped and dropped.  Releasing a session
        that has already been replaced is a no-op.
        """
        namespace = session.namespace
        async with self._lock:
            if self._sessions.get(namespace) is not session:
                return
            remaining = max(self._leases.get(namespace, 0) - 1, 0)
            self._leases[namespace] = remaining
            if remaining or namespace in self._pinned:
                return
            del self._sessions[namespace]
            del self._leases[namespace]
        await session.stop()
        _log.info("session_released", namespace_filter=namespace or "*")

    async def stop_all(self) -> None:
        """Stop every session.  Safe to call more than once."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._leases.clear()
        await asyncio.gather(*(session.stop() for session in sessions), return_exceptions=True)
        if sessions:
            _log.info("sessions_stopped", count=len(sessions))

    async def stop(self) -> None:
        await self.stop_all()
