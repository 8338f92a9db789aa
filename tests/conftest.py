"""Shared fixtures for KubePulse tests.

FakeControlPlane stands in for the cluster API so the watcher, the session
registry and the HTTP layer can be exercised without a real cluster.  Watch
items are fed through ``push``; pushing an exception makes the stream raise
it and pushing ``None`` ends the stream.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest

from kubepulse.collector.control_plane import ControlPlane, NotificationKind, WatchItem, WatchNotification
from kubepulse.errors import NotFoundError
from kubepulse.models.pods import (
    ContainerStatus,
    PodCondition,
    RunningState,
    TerminatedState,
    WaitingState,
    WorkloadRecord,
)

# ---------------------------------------------------------------------------
# Pod factories
# ---------------------------------------------------------------------------


def running_pod(name: str, namespace: str = "default", restarts: int = 0) -> WorkloadRecord:
    """A pod with one ready, running container."""
    return WorkloadRecord(
        name=name,
        namespace=namespace,
        phase="Running",
        container_statuses=(ContainerStatus(name="app", ready=True, restart_count=restarts, state=RunningState()),),
        conditions=(PodCondition(type="Ready", status="True"),),
    )


def waiting_pod(name: str, reason: str, namespace: str = "default", restarts: int = 0) -> WorkloadRecord:
    """A pod whose only container is waiting with *reason*."""
    return WorkloadRecord(
        name=name,
        namespace=namespace,
        phase="Pending" if reason == "ContainerCreating" else "Running",
        container_statuses=(
            ContainerStatus(name="app", restart_count=restarts, state=WaitingState(reason=reason)),
        ),
    )


def completed_pod(name: str, namespace: str = "default") -> WorkloadRecord:
    return WorkloadRecord(
        name=name,
        namespace=namespace,
        phase="Succeeded",
        container_statuses=(
            ContainerStatus(name="job", state=TerminatedState(exit_code=0, reason="Completed")),
        ),
    )


def deleting_pod(record: WorkloadRecord) -> WorkloadRecord:
    """Copy of *record* with a deletion timestamp set."""
    return WorkloadRecord(
        name=record.name,
        namespace=record.namespace,
        phase=record.phase,
        reason=record.reason,
        init_container_statuses=record.init_container_statuses,
        container_statuses=record.container_statuses,
        conditions=record.conditions,
        deletion_timestamp=datetime(2026, 3, 1, 9, 30, tzinfo=UTC),
    )


def notification(kind: NotificationKind, record: WorkloadRecord) -> WatchNotification:
    return WatchNotification(kind=kind, record=record)


# ---------------------------------------------------------------------------
# Fake control plane
# ---------------------------------------------------------------------------


class FakeControlPlane(ControlPlane):
    """In-memory ControlPlane.

    Args:
        pods:       Pods returned by ``list_all`` (filtered by namespace).
        synced:     When False, ``wait_for_sync`` sleeps for the full timeout
                    and reports failure.
        list_error: Raised by ``list_all`` instead of returning pods.
        list_delay: Seconds ``list_all`` stalls before answering.
        namespaces: Returned by ``list_namespaces``.
    """

    def __init__(
        self,
        pods: list[WorkloadRecord] | None = None,
        synced: bool = True,
        list_error: Exception | None = None,
        list_delay: float = 0.0,
        namespaces: list[str] | None = None,
    ) -> None:
        self.pods = list(pods or [])
        self.synced = synced
        self.list_error = list_error
        self.list_delay = list_delay
        self.namespaces = namespaces or ["default", "kube-system"]
        self.list_calls: list[str] = []
        self.watch_opened: list[str] = []
        self.watch_closed: list[str] = []
        self.deleted: list[tuple[str, str]] = []
        self.closed = False
        self._streams: dict[str, asyncio.Queue[WatchItem | Exception | None]] = {}

    def _stream(self, namespace: str) -> asyncio.Queue[WatchItem | Exception | None]:
        if namespace not in self._streams:
            self._streams[namespace] = asyncio.Queue()
        return self._streams[namespace]

    def push(self, item: WatchItem | Exception | None, namespace: str = "") -> None:
        """Queue a watch item for the session watching *namespace*."""
        self._stream(namespace).put_nowait(item)

    async def list_all(self, namespace: str = "") -> list[WorkloadRecord]:
        self.list_calls.append(namespace)
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error is not None:
            raise self.list_error
        return [pod for pod in self.pods if not namespace or pod.namespace == namespace]

    async def wait_for_sync(self, namespace: str, timeout: float) -> bool:
        if self.synced:
            return True
        await asyncio.sleep(timeout)
        return False

    async def watch(self, namespace: str = "") -> AsyncIterator[WatchItem]:
        self.watch_opened.append(namespace)
        queue = self._stream(namespace)
        try:
            while True:
                item = await queue.get()
                if item is None:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.watch_closed.append(namespace)

    async def list_namespaces(self) -> list[str]:
        return sorted(self.namespaces)

    async def delete_pod(self, namespace: str, name: str) -> None:
        if not any(pod.identity == (namespace, name) for pod in self.pods):
            raise NotFoundError(f"pod {namespace}/{name} not found")
        self.deleted.append((namespace, name))

    async def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def pods() -> list[WorkloadRecord]:
    return [
        running_pod("web-0"),
        waiting_pod("worker-0", "CrashLoopBackOff", restarts=4),
        running_pod("coredns-1", namespace="kube-system"),
    ]


@pytest.fixture()
def control_plane(pods: list[WorkloadRecord]) -> FakeControlPlane:
    return FakeControlPlane(pods=pods)
