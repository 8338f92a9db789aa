"""Control-plane seam for the pod watcher.

ControlPlane            -- ABC the watcher depends on: list, watch, wait-for-sync.
KubernetesControlPlane  -- Implementation over kubernetes-asyncio's CoreV1Api.

The watch stream is typed: every item is either a WatchNotification carrying
a WorkloadRecord, or an UnexpectedObject when the API returned something
that is not a pod.  The watcher checks for the latter explicitly.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import aiohttp
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubepulse.errors import ConnectivityError, NotFoundError, StreamError
from kubepulse.models.pods import WorkloadRecord
from kubepulse.observability.logging import get_logger

_log = get_logger("collector.control_plane")

_WATCH_TYPES = {
    "ADDED": "add",
    "MODIFIED": "update",
    "DELETED": "delete",
}


class NotificationKind(StrEnum):
    """Kind of change reported by the watch stream."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class WatchNotification:
    """A pod change from the watch stream."""

    kind: NotificationKind
    record: WorkloadRecord


@dataclass(frozen=True)
class UnexpectedObject:
    """A watch item that is not a pod.  Receiving one breaks the watch contract."""

    object_kind: str
    detail: str = ""


WatchItem = WatchNotification | UnexpectedObject


class ControlPlane(ABC):
    """Capabilities the watcher needs from the cluster API."""

    @abstractmethod
    async def list_all(self, namespace: str = "") -> list[WorkloadRecord]:
        """Return every pod in *namespace* (all namespaces when empty).

        Raises:
            ConnectivityError: the API could not be reached.
        """

    @abstractmethod
    def watch(self, namespace: str = "") -> AsyncIterator[WatchItem]:
        """Stream pod changes after the last ``list_all`` until closed.

        Raises StreamError from iteration when the stream fails.
        """

    @abstractmethod
    async def wait_for_sync(self, namespace: str, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the initial list of *namespace* to be confirmed."""

    async def list_namespaces(self) -> list[str]:
        raise NotImplementedError

    async def delete_pod(self, namespace: str, name: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:  # noqa: B027
        """Release connections.  Default: nothing to release."""


class KubernetesControlPlane(ControlPlane):
    """ControlPlane backed by a kubernetes-asyncio CoreV1Api.

    The resourceVersion returned by the last list is used to start the watch,
    and the watch is re-opened from the last seen version whenever the server
    ends a watch window.  A 410 Gone (version expired) ends the stream with
    StreamError; recovering from it means starting a new session.
    """

    def __init__(
        self,
        api: Any | None = None,
        watch_timeout_seconds: int = 300,
    ) -> None:
        self._api = api or k8s_client.CoreV1Api()
        self._watch_timeout = watch_timeout_seconds
        self._resource_versions: dict[str, str] = {}
        self._listed: dict[str, asyncio.Event] = {}

    async def list_all(self, namespace: str = "") -> list[WorkloadRecord]:
        try:
            if namespace:
                pod_list = await self._api.list_namespaced_pod(namespace)
            else:
                pod_list = await self._api.list_pod_for_all_namespaces()
        except ApiException as exc:
            raise ConnectivityError(f"pod list failed: {exc.status} {exc.reason}") from exc
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise ConnectivityError(f"pod list failed: {exc}") from exc

        metadata = getattr(pod_list, "metadata", None)
        self._resource_versions[namespace] = str(getattr(metadata, "resource_version", "") or "")
        self._listed.setdefault(namespace, asyncio.Event()).set()

        records = [WorkloadRecord.from_raw(self._to_raw(pod)) for pod in pod_list.items or []]
        _log.debug(
            "pods_listed",
            namespace=namespace or "*",
            count=len(records),
            resource_version=self._resource_versions[namespace],
        )
        return records

    async def wait_for_sync(self, namespace: str, timeout: float) -> bool:
        listed = self._listed.setdefault(namespace, asyncio.Event())
        try:
            await asyncio.wait_for(listed.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def watch(self, namespace: str = "") -> AsyncIterator[WatchItem]:
        if namespace:
            list_fn = self._api.list_namespaced_pod
            args: tuple[str, ...] = (namespace,)
        else:
            list_fn = self._api.list_pod_for_all_namespaces
            args = ()

        while True:
            resource_version = self._resource_versions.get(namespace, "")
            _log.debug("watch_window_opened", namespace=namespace or "*", resource_version=resource_version)
            try:
                async with k8s_watch.Watch() as stream_watch:
                    async for event in stream_watch.stream(
                        list_fn,
                        *args,
                        resource_version=resource_version,
                        timeout_seconds=self._watch_timeout,
                        allow_watch_bookmarks=True,
                    ):
                        item = self._translate(namespace, event)
                        if item is not None:
                            yield item
            except ApiException as exc:
                if exc.status == 410:
                    raise StreamError(f"watch resourceVersion {resource_version} expired") from exc
                raise StreamError(f"watch failed: {exc.status} {exc.reason}") from exc
            except (aiohttp.ClientError, OSError) as exc:
                raise StreamError(f"watch connection lost: {exc}") from exc

    async def list_namespaces(self) -> list[str]:
        try:
            ns_list = await self._api.list_namespace()
        except ApiException as exc:
            raise ConnectivityError(f"namespace list failed: {exc.status} {exc.reason}") from exc
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise ConnectivityError(f"namespace list failed: {exc}") from exc
        return sorted(str(ns.metadata.name) for ns in ns_list.items or [])

    async def delete_pod(self, namespace: str, name: str) -> None:
        try:
            await self._api.delete_namespaced_pod(name, namespace)
        except ApiException as exc:
            if exc.status == 404:
                raise NotFoundError(f"pod {namespace}/{name} not found") from exc
            raise ConnectivityError(f"pod delete failed: {exc.status} {exc.reason}") from exc
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise ConnectivityError(f"pod delete failed: {exc}") from exc
        _log.info("pod_deleted", namespace=namespace, name=name)

    async def close(self) -> None:
        await self._api.api_client.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _translate(self, namespace: str, event: dict[str, Any]) -> WatchItem | None:
        event_type = str(event.get("type", ""))
        raw = event.get("raw_object")
        if not isinstance(raw, dict):
            raw = self._to_raw(event.get("object"))

        if event_type == "ERROR":
            code = raw.get("code") if isinstance(raw, dict) else None
            message = raw.get("message", "") if isinstance(raw, dict) else str(raw)
            if code == 410:
                raise ApiException(status=410, reason=message)
            raise StreamError(f"watch error event: {message}")

        metadata = raw.get("metadata") or {}
        version = metadata.get("resourceVersion")
        if version:
            self._resource_versions[namespace] = str(version)

        if event_type == "BOOKMARK":
            return None

        object_kind = str(raw.get("kind") or "Pod")
        if object_kind != "Pod":
            return UnexpectedObject(object_kind=object_kind, detail=f"watch event type {event_type}")

        action = _WATCH_TYPES.get(event_type)
        if action is None:
            return UnexpectedObject(object_kind=object_kind, detail=f"unknown watch event type {event_type!r}")
        return WatchNotification(kind=NotificationKind(action), record=WorkloadRecord.from_raw(raw))

    def _to_raw(self, obj: Any) -> dict[str, Any]:
        if isinstance(obj, dict):
            return obj
        raw = self._api.api_client.sanitize_for_serialization(obj)
        return raw if isinstance(raw, dict) else {}
