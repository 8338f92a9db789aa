"""Event fan-out for KubePulse.

Exports:
    EventBroadcaster -- Delivers each PodEvent to every registered subscription.
    Subscription     -- Bounded, drop-oldest outbound queue for one consumer.
"""

from kubepulse.broadcast.broadcaster import EventBroadcaster, Subscription

__all__ = ["EventBroadcaster", "Subscription"]
