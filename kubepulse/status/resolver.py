"""Status label resolution for pods.

Follows the precedence rules of the kubectl pod printer:

1. phase, or the pod-level reason when one is set
2. the first init container that has not exited 0
3. main containers, walked in reverse so the lowest-index terminal
   container has the last word
4. ``Completed`` with a ready running container becomes Running/NotReady
5. a deletion timestamp always yields ``Terminating``
"""

from __future__ import annotations

from dataclasses import dataclass

from kubepulse.models.pods import WorkloadRecord

_POD_INITIALIZING = "PodInitializing"
_COMPLETED = "Completed"
_TERMINATING = "Terminating"


@dataclass(frozen=True)
class StatusResolution:
    """Derived columns for one pod.  Never stored; recomputed per record."""

    status: str
    initializing: bool = False
    restarts: int = 0
    ready_containers: int = 0
    total_containers: int = 0

    @property
    def ready(self) -> str:
        """``READY`` column, e.g. ``1/2``."""
        return f"{self.ready_containers}/{self.total_containers}"


def resolve_status(record: WorkloadRecord) -> str:
    """Return the status label for *record*."""
    return resolve_pod(record).status


def resolve_pod(record: WorkloadRecord) -> StatusResolution:
    """Return the status label and the companion table columns for *record*."""
    reason = record.reason or record.phase
    restarts = 0
    ready_containers = 0
    initializing = False

    for index, container in enumerate(record.init_container_statuses):
        restarts += container.restart_count
        terminated = container.terminated
        waiting = container.waiting
        if terminated is not None and terminated.exit_code == 0:
            continue
        if terminated is not None:
            if terminated.reason:
                reason = f"Init:{terminated.reason}"
            elif terminated.signal != 0:
                reason = f"Init:Signal:{terminated.signal}"
            else:
                reason = f"Init:ExitCode:{terminated.exit_code}"
        elif waiting is not None and waiting.reason and waiting.reason != _POD_INITIALIZING:
            reason = f"Init:{waiting.reason}"
        else:
            reason = f"Init:{index}/{record.total_init_containers}"
        initializing = True
        break

    if not initializing:
        restarts = 0
        has_running = False
        for container in reversed(record.container_statuses):
            restarts += container.restart_count
            terminated = container.terminated
            waiting = container.waiting
            if waiting is not None and waiting.reason:
                reason = waiting.reason
            elif terminated is not None and terminated.reason:
                reason = terminated.reason
            elif terminated is not None:
                if terminated.signal != 0:
                    reason = f"Signal:{terminated.signal}"
                else:
                    reason = f"ExitCode:{terminated.exit_code}"
            elif container.ready and container.running is not None:
                has_running = True
                ready_containers += 1

        if reason == _COMPLETED and has_running:
            reason = "Running" if _has_ready_condition(record) else "NotReady"

    if record.deletion_timestamp is not None:
        reason = _TERMINATING

    return StatusResolution(
        status=reason,
        initializing=initializing,
        restarts=restarts,
        ready_containers=ready_containers,
        total_containers=record.total_containers,
    )


def _has_ready_condition(record: WorkloadRecord) -> bool:
    return any(c.type == "Ready" and c.status == "True" for c in record.conditions)
