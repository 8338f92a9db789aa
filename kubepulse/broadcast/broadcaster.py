"""Subscriber registry and fan-out.

EventBroadcaster  -- Registry of subscriptions; ``publish`` never blocks and
                     a failure in one subscription never affects the others.
Subscription      -- Per-consumer queue.  On overflow the oldest queued event
                     is evicted and counted; the watcher is never made to wait
                     for a slow consumer.
"""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from uuid import uuid4

from kubepulse.models.events import PodEvent, SessionEnded
from kubepulse.observability.logging import get_logger
from kubepulse.observability.metrics import events_dropped_total, events_published_total, subscribers

_log = get_logger("broadcast.broadcaster")

_DEFAULT_CAPACITY = 256


class Subscription:
    """Outbound event queue owned by one consumer.

    Consume with ``async for event in subscription`` or ``await receive()``.
    Iteration ends after the broadcaster closes the subscription; the reason
    is then available as ``ended``.  Events queued before the close are still
    delivered.
    """

    def __init__(self, capacity: int = _DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("Subscription capacity must be at least 1")
        self.subscription_id = str(uuid4())
        self.capacity = capacity
        self.dropped = 0
        self.delivered = 0
        self.ended: SessionEnded | None = None
        self._buffer: deque[PodEvent] = deque()
        self._lock = threading.Lock()
        self._wakeup = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self.ended is not None

    def offer(self, event: PodEvent) -> bool:
        """Queue *event*.  Returns False when an older event had to be evicted."""
        with self._lock:
            if self.ended is not None:
                return True
            evicted = False
            if len(self._buffer) >= self.capacity:
                self._buffer.popleft()
                self.dropped += 1
                evicted = True
            self._buffer.append(event)
        self._wakeup.set()
        return not evicted

    def close(self, ended: SessionEnded) -> None:
        """Mark the stream finished.  Only the first close is recorded."""
        with self._lock:
            if self.ended is not None:
                return
            self.ended = ended
        self._wakeup.set()

    def pending(self) -> list[PodEvent]:
        """Queued events not yet received, oldest first."""
        with self._lock:
            return list(self._buffer)

    def receive_nowait(self) -> PodEvent | None:
        with self._lock:
            if not self._buffer:
                return None
            self.delivered += 1
            return self._buffer.popleft()

    async def receive(self) -> PodEvent | None:
        """Wait for the next event.  Returns None once the stream has ended."""
        while True:
            event = self.receive_nowait()
            if event is not None:
                return event
            if self.ended is not None:
                return None
            self._wakeup.clear()
            # Re-check after clearing so an offer between the two is not missed.
            if self._buffer or self.ended is not None:
                continue
            await self._wakeup.wait()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> PodEvent:
        event = await self.receive()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBroadcaster:
    """Fan-out hub for one watch session.

    * ``publish`` hands the event to every subscription and returns at once.
    * ``subscribe``/``unsubscribe`` may be called concurrently with
      ``publish``; the registry is guarded by a lock and publish iterates
      over a copy.
    * ``close`` ends every subscription.  Subscribing afterwards returns an
      already-ended subscription carrying the same reason.
    """

    def __init__(self, capacity: int = _DEFAULT_CAPACITY) -> None:
        self._capacity = capacity
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = threading.Lock()
        self._ended: SessionEnded | None = None

    @property
    def ended(self) -> SessionEnded | None:
        return self._ended

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, capacity: int | None = None) -> Subscription:
        """Register and return a new subscription."""
        subscription = Subscription(capacity or self._capacity)
        with self._lock:
            ended = self._ended
            if ended is None:
                self._subscriptions[subscription.subscription_id] = subscription
        if ended is not None:
            subscription.close(ended)
            _log.debug("subscribe_after_close", subscription_id=subscription.subscription_id, reason=ended.reason)
            return subscription
        subscribers.inc()
        _log.debug("subscriber_added", subscription_id=subscription.subscription_id)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Detach *subscription*.  Detaching twice is a no-op."""
        with self._lock:
            removed = self._subscriptions.pop(subscription.subscription_id, None)
        if removed is None:
            return
        subscribers.dec()
        if removed.dropped:
            _log.info(
                "subscriber_removed_with_drops",
                subscription_id=removed.subscription_id,
                dropped=removed.dropped,
            )
        else:
            _log.debug("subscriber_removed", subscription_id=removed.subscription_id)

    def publish(self, event: PodEvent) -> None:
        """Deliver *event* to every current subscription."""
        with self._lock:
            if self._ended is not None:
                return
            targets = list(self._subscriptions.values())
        events_published_total.labels(action=event.action.value).inc()
        for subscription in targets:
            try:
                accepted = subscription.offer(event)
            except Exception as exc:  # noqa: BLE001
                _log.error(
                    "subscriber_delivery_failed",
                    subscription_id=subscription.subscription_id,
                    error=str(exc),
                )
                self.unsubscribe(subscription)
                continue
            if not accepted:
                events_dropped_total.inc()
                _log.debug(
                    "subscriber_events_dropped",
                    subscription_id=subscription.subscription_id,
                    dropped=subscription.dropped,
                )

    def close(self, ended: SessionEnded) -> None:
        """End every subscription with *ended* and refuse further publishes."""
        with self._lock:
            if self._ended is not None:
                return
            self._ended = ended
            targets = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in targets:
            subscription.close(ended)
        subscribers.dec(len(targets))
        _log.info("broadcaster_closed", reason=ended.reason, detail=ended.detail, subscribers=len(targets))
