"""List-then-watch driver for one pod watch session.

State machine::

    INITIALIZING -> SYNCING -> SYNCED -> WATCHING -> STOPPED
                       |                                ^
                       +--------------------------------+  (connectivity / sync timeout / stop)

Add events produced by the initial list are held back until the control
plane confirms the list is synced, so a session that times out during sync
publishes nothing.  Errors are not retried here: the session ends and the
caller decides whether to start a new one.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable
from enum import StrEnum
from typing import Any

from kubepulse.broadcast.broadcaster import EventBroadcaster
from kubepulse.cache.resource_cache import ResourceCache
from kubepulse.collector.control_plane import (
    ControlPlane,
    NotificationKind,
    UnexpectedObject,
    WatchItem,
    WatchNotification,
)
from kubepulse.errors import (
    ConnectivityError,
    InvariantViolation,
    KubePulseError,
    SessionEndedError,
    StreamError,
    SyncTimeoutError,
)
from kubepulse.models.events import EndReason, PodEvent, SessionEnded
from kubepulse.observability.logging import get_logger
from kubepulse.observability.metrics import cache_pods, watch_sessions

_log = get_logger("collector.watcher")

_DEFAULT_SYNC_TIMEOUT = 30.0


class WatcherState(StrEnum):
    """Lifecycle of a ResourceWatcher."""

    INITIALIZING = "initializing"
    SYNCING = "syncing"
    SYNCED = "synced"
    WATCHING = "watching"
    STOPPED = "stopped"


class ResourceWatcher:
    """Feeds one ResourceCache from the control plane and publishes each mutation.

    Args:
        control_plane: Cluster API seam.
        cache:         Cache owned by this watcher's session.
        broadcaster:   Receives one PodEvent per cache mutation.
        namespace:     Namespace filter; empty for all namespaces.
        sync_timeout:  Seconds to wait for the initial list to be confirmed.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        cache: ResourceCache,
        broadcaster: EventBroadcaster,
        namespace: str = "",
        sync_timeout: float = _DEFAULT_SYNC_TIMEOUT,
    ) -> None:
        self._control_plane = control_plane
        self._cache = cache
        self._broadcaster = broadcaster
        self.namespace = namespace
        self._sync_timeout = sync_timeout

        self._state = WatcherState.INITIALIZING
        self._synced = asyncio.Event()
        self._stopped = asyncio.Event()
        self._stop_signal = asyncio.Event()
        self._stop_requested = False
        self._task: asyncio.Task[None] | None = None
        self.error: KubePulseError | None = None
        self.ended: SessionEnded | None = None

        watch_sessions.labels(state=self._state.value).inc()
        self._log = _log.bind(namespace_filter=namespace or "*")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> WatcherState:
        return self._state

    def start(self) -> asyncio.Task[None]:
        """Run the lifecycle as a background task.  Idempotent."""
        if self._task is None:
            self._task = asyncio.create_task(self._supervise(), name=f"pod-watcher:{self.namespace or '*'}")
        return self._task

    async def run(self) -> None:
        """Drive the full lifecycle in the current task.

        Returns after a requested stop.  Raises ConnectivityError,
        SyncTimeoutError, StreamError or InvariantViolation when the session
        fails; the watcher is STOPPED in every case.
        """
        if self._state != WatcherState.INITIALIZING:
            raise SessionEndedError(f"watcher already {self._state.value}")

        ended = SessionEnded(reason=EndReason.STOPPED)
        if self._stop_requested:
            self._finish(ended)
            return
        try:
            await self._sync()
            if not self._stop_requested:
                self._transition(WatcherState.WATCHING)
                await self._watch()
        except asyncio.CancelledError:
            if not self._stop_requested:
                ended = SessionEnded(reason=EndReason.STOPPED, detail="cancelled")
            raise
        except ConnectivityError as exc:
            ended = self._fail(exc, EndReason.CONNECTIVITY)
            raise
        except SyncTimeoutError as exc:
            ended = self._fail(exc, EndReason.SYNC_TIMEOUT)
            raise
        except InvariantViolation as exc:
            ended = self._fail(exc, EndReason.INVARIANT_VIOLATION)
            raise
        except StreamError as exc:
            ended = self._fail(exc, EndReason.STREAM_ERROR)
            raise
        finally:
            self._finish(ended)

    async def stop(self) -> None:
        """Request a stop and wait for the watcher to reach STOPPED."""
        if self._state == WatcherState.STOPPED:
            return
        self._stop_requested = True
        self._stop_signal.set()
        if self._state == WatcherState.INITIALIZING and self._task is None:
            self._finish(SessionEnded(reason=EndReason.STOPPED))
            return
        await self._stopped.wait()

    async def wait_until_synced(self, timeout: float | None = None) -> None:
        """Block until the cache is authoritative.

        Raises:
            The session's failure (ConnectivityError, SyncTimeoutError, ...)
            if it failed, SessionEndedError if it stopped before syncing, or
            TimeoutError if *timeout* elapses first.
        """
        if not self._synced.is_set() and not self._stopped.is_set():
            synced = asyncio.ensure_future(self._synced.wait())
            stopped = asyncio.ensure_future(self._stopped.wait())
            try:
                done, _ = await asyncio.wait({synced, stopped}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
            finally:
                synced.cancel()
                stopped.cancel()
            if not done:
                raise TimeoutError(f"watcher not synced within {timeout}s")
        if self._synced.is_set():
            return
        if self.error is not None:
            raise self.error
        raise SessionEndedError("watch session stopped before sync")

    async def wait_stopped(self) -> SessionEnded:
        await self._stopped.wait()
        if self.ended is None:
            raise SessionEndedError("watcher stopped without an end reason")
        return self.ended

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------

    async def _supervise(self) -> None:
        try:
            await self.run()
        except KubePulseError as exc:
            # Already recorded on self.error and surfaced via wait_until_synced.
            self._log.debug("watcher_task_ended_with_error", error_type=type(exc).__name__)

    async def _sync(self) -> None:
        self._transition(WatcherState.SYNCING)
        # The sync timeout bounds the whole phase, the initial list included.
        try:
            async with asyncio.timeout(self._sync_timeout):
                completed, records = await self._until_stopped(self._control_plane.list_all(self.namespace))
                if not completed:
                    return
                initial: list[PodEvent] = [self._cache.apply_add(record) for record in records]
                self._log.info("initial_list_applied", pods=len(initial))

                completed, synced = await self._until_stopped(
                    self._control_plane.wait_for_sync(self.namespace, self._sync_timeout)
                )
        except TimeoutError as exc:
            raise SyncTimeoutError(self._sync_timeout) from exc
        if not completed:
            return
        if not synced:
            raise SyncTimeoutError(self._sync_timeout)

        self._cache.mark_synced()
        self._transition(WatcherState.SYNCED)
        self._synced.set()
        for event in initial:
            self._broadcaster.publish(event)
        cache_pods.labels(namespace_filter=self.namespace or "*").set(len(self._cache))

    async def _watch(self) -> None:
        stream = self._control_plane.watch(self.namespace)
        iterator = aiter(stream)
        try:
            while True:
                completed, item = await self._until_stopped(_next_item(iterator))
                if not completed:
                    break
                if item is None:
                    raise StreamError("watch stream ended unexpectedly")
                self._apply(item)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _until_stopped(self, awaitable: Awaitable[Any]) -> tuple[bool, Any]:
        """Await *awaitable* unless a stop is requested first.

        Returns ``(True, result)`` on completion, ``(False, None)`` when the
        stop signal won; the pending work is cancelled in that case.
        """
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(self._stop_signal.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not work.done():
                work.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await work
        if work.cancelled():
            return False, None
        return True, work.result()

    def _apply(self, item: WatchItem) -> None:
        if isinstance(item, UnexpectedObject):
            self._log.critical("watch_delivered_non_pod", object_kind=item.object_kind, detail=item.detail)
            raise InvariantViolation(item.object_kind, item.detail)
        if not isinstance(item, WatchNotification):
            self._log.critical("watch_delivered_unknown_item", item_type=type(item).__name__)
            raise InvariantViolation(type(item).__name__)

        record = item.record
        if item.kind == NotificationKind.ADD:
            event = self._cache.apply_add(record)
        elif item.kind == NotificationKind.UPDATE:
            event = self._cache.apply_update(self._cache.get(record.namespace, record.name), record)
        else:
            event = self._cache.apply_delete(record)

        cache_pods.labels(namespace_filter=self.namespace or "*").set(len(self._cache))
        self._log.debug("pod_event", action=event.action.value, pod=record.key, status=event.status)
        self._broadcaster.publish(event)

    def _fail(self, exc: KubePulseError, reason: EndReason) -> SessionEnded:
        self.error = exc
        if reason == EndReason.INVARIANT_VIOLATION:
            self._log.critical("watch_session_aborted", reason=reason.value, error=str(exc))
        else:
            self._log.error("watch_session_failed", reason=reason.value, error=str(exc), state=self._state.value)
        return SessionEnded(reason=reason, detail=str(exc))

    def _finish(self, ended: SessionEnded) -> None:
        if self._state == WatcherState.STOPPED:
            return
        self.ended = ended
        self._cache.mark_stopped()
        self._broadcaster.close(ended)
        self._transition(WatcherState.STOPPED)
        self._stopped.set()

    def _transition(self, new_state: WatcherState) -> None:
        old_state = self._state
        self._state = new_state
        watch_sessions.labels(state=old_state.value).dec()
        watch_sessions.labels(state=new_state.value).inc()
        self._log.info("watcher_state_changed", old=old_state.value, new=new_state.value)


async def _next_item(iterator: AsyncIterator[WatchItem]) -> WatchItem | None:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return None
