"""Pod state records, as tracked by the resource cache.

A WorkloadRecord is the immutable projection of a ``v1.Pod`` that the status
resolver needs.  Records are replaced wholesale on every update; nothing in
this module mutates an existing record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class WaitingState:
    """Container is not yet running (image pull, back-off, ...)."""

    reason: str = ""
    message: str = ""


@dataclass(frozen=True)
class RunningState:
    """Container is running."""

    started_at: str = ""


@dataclass(frozen=True)
class TerminatedState:
    """Container has exited."""

    exit_code: int = 0
    signal: int = 0
    reason: str = ""
    message: str = ""


ContainerState = WaitingState | RunningState | TerminatedState


@dataclass(frozen=True)
class ContainerStatus:
    """Observed state of a single (init or main) container."""

    name: str
    ready: bool = False
    restart_count: int = 0
    state: ContainerState | None = None

    @property
    def waiting(self) -> WaitingState | None:
        return self.state if isinstance(self.state, WaitingState) else None

    @property
    def running(self) -> RunningState | None:
        return self.state if isinstance(self.state, RunningState) else None

    @property
    def terminated(self) -> TerminatedState | None:
        return self.state if isinstance(self.state, TerminatedState) else None


@dataclass(frozen=True)
class PodCondition:
    """A single entry of ``status.conditions``."""

    type: str
    status: str


@dataclass(frozen=True)
class WorkloadRecord:
    """Last-known state of one pod.

    Identity is ``(namespace, name)``; two records with the same identity
    describe the same pod at different points in time.
    """

    name: str
    namespace: str
    phase: str = ""
    reason: str = ""
    init_container_statuses: tuple[ContainerStatus, ...] = ()
    container_statuses: tuple[ContainerStatus, ...] = ()
    conditions: tuple[PodCondition, ...] = ()
    deletion_timestamp: datetime | None = None
    init_container_count: int | None = None
    container_count: int | None = None
    resource_version: str = ""
    labels: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @property
    def identity(self) -> tuple[str, str]:
        return (self.namespace, self.name)

    @property
    def key(self) -> str:
        """``namespace/name`` string form of the identity."""
        return f"{self.namespace}/{self.name}"

    @property
    def total_init_containers(self) -> int:
        if self.init_container_count is not None:
            return self.init_container_count
        return len(self.init_container_statuses)

    @property
    def total_containers(self) -> int:
        if self.container_count is not None:
            return self.container_count
        return len(self.container_statuses)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> WorkloadRecord:
        """Build a record from the camelCase JSON form of a ``v1.Pod``."""
        metadata = raw.get("metadata") or {}
        spec = raw.get("spec") or {}
        status = raw.get("status") or {}

        init_specs = spec.get("initContainers")
        main_specs = spec.get("containers")

        return cls(
            name=str(metadata.get("name", "")),
            namespace=str(metadata.get("namespace", "")),
            phase=str(status.get("phase") or ""),
            reason=str(status.get("reason") or ""),
            init_container_statuses=tuple(
                _parse_container_status(cs) for cs in status.get("initContainerStatuses") or []
            ),
            container_statuses=tuple(_parse_container_status(cs) for cs in status.get("containerStatuses") or []),
            conditions=tuple(
                PodCondition(type=str(c.get("type", "")), status=str(c.get("status", "")))
                for c in status.get("conditions") or []
            ),
            deletion_timestamp=_parse_timestamp(metadata.get("deletionTimestamp")),
            init_container_count=len(init_specs) if isinstance(init_specs, list) else None,
            container_count=len(main_specs) if isinstance(main_specs, list) else None,
            resource_version=str(metadata.get("resourceVersion", "")),
            labels=dict(metadata.get("labels") or {}),
        )


def _parse_container_status(raw: dict[str, Any]) -> ContainerStatus:
    return ContainerStatus(
        name=str(raw.get("name", "")),
        ready=bool(raw.get("ready", False)),
        restart_count=int(raw.get("restartCount") or 0),
        state=_parse_state(raw.get("state") or {}),
    )


def _parse_state(raw: dict[str, Any]) -> ContainerState | None:
    # The API sets at most one of the three keys; precedence matches kubectl.
    if raw.get("waiting") is not None:
        waiting = raw["waiting"]
        return WaitingState(reason=str(waiting.get("reason") or ""), message=str(waiting.get("message") or ""))
    if raw.get("running") is not None:
        return RunningState(started_at=str(raw["running"].get("startedAt") or ""))
    if raw.get("terminated") is not None:
        terminated = raw["terminated"]
        return TerminatedState(
            exit_code=int(terminated.get("exitCode") or 0),
            signal=int(terminated.get("signal") or 0),
            reason=str(terminated.get("reason") or ""),
            message=str(terminated.get("message") or ""),
        )
    return None


def _parse_timestamp(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)
