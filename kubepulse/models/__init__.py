"""Core data structures for KubePulse."""

from kubepulse.models.config import KubePulseConfig
from kubepulse.models.events import EndReason, EventAction, PodEvent, SessionEnded
from kubepulse.models.pods import (
    ContainerState,
    ContainerStatus,
    PodCondition,
    RunningState,
    TerminatedState,
    WaitingState,
    WorkloadRecord,
)

__all__ = [
    "ContainerState",
    "ContainerStatus",
    "EndReason",
    "EventAction",
    "KubePulseConfig",
    "PodCondition",
    "PodEvent",
    "RunningState",
    "SessionEnded",
    "TerminatedState",
    "WaitingState",
    "WorkloadRecord",
]
