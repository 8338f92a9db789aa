"""Pod lifecycle events delivered to subscribers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from uuid import uuid4


class EventAction(StrEnum):
    """Cache mutation that produced an event."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class EndReason(StrEnum):
    """Why a watch session stopped delivering events."""

    STOPPED = "stopped"
    SYNC_TIMEOUT = "sync_timeout"
    CONNECTIVITY = "connectivity"
    STREAM_ERROR = "stream_error"
    INVARIANT_VIOLATION = "invariant_violation"


@dataclass(frozen=True)
class PodEvent:
    """One pod mutation, with the status label computed after the mutation.

    Produced by the resource cache, fanned out by the broadcaster.
    Immutable: no component may mutate a PodEvent after creation.
    """

    action: EventAction
    namespace: str
    name: str
    status: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    event_id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def identity(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    def to_wire(self, legacy_update_action: bool = False) -> dict[str, str]:
        """Serialise to the ``{action, name, namespace, status}`` client shape.

        With *legacy_update_action* an update is reported as ``add``, which is
        what older clients of the service expect.
        """
        action = self.action
        if legacy_update_action and action == EventAction.UPDATE:
            action = EventAction.ADD
        return {
            "action": action.value,
            "name": self.name,
            "namespace": self.namespace,
            "status": self.status,
        }


@dataclass(frozen=True)
class SessionEnded:
    """Terminal marker for a subscription: no more events will follow."""

    reason: EndReason
    detail: str = ""
    ended_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def failed(self) -> bool:
        return self.reason != EndReason.STOPPED
