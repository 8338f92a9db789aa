"""Tests for KubernetesControlPlane over a mocked CoreV1Api."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from kubernetes_asyncio.client.exceptions import ApiException

from kubepulse.collector import control_plane as control_plane_module
from kubepulse.collector.control_plane import (
    KubernetesControlPlane,
    NotificationKind,
    UnexpectedObject,
    WatchNotification,
)
from kubepulse.errors import ConnectivityError, NotFoundError, StreamError


def _raw(name: str, version: str = "100", namespace: str = "default", kind: str = "Pod") -> dict[str, Any]:
    return {
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": version},
        "status": {"phase": "Running"},
    }


def _pod_list(*names: str, version: str = "100") -> SimpleNamespace:
    return SimpleNamespace(
        metadata=SimpleNamespace(resource_version=version),
        items=[_raw(name) for name in names],
    )


@pytest.fixture()
def api() -> MagicMock:
    mock = MagicMock()
    mock.list_pod_for_all_namespaces = AsyncMock(return_value=_pod_list("web-0", "web-1"))
    mock.list_namespaced_pod = AsyncMock(return_value=_pod_list("web-0"))
    mock.list_namespace = AsyncMock(
        return_value=SimpleNamespace(
            items=[SimpleNamespace(metadata=SimpleNamespace(name=n)) for n in ("shop", "default")]
        )
    )
    mock.delete_namespaced_pod = AsyncMock(return_value=None)
    mock.api_client.close = AsyncMock(return_value=None)
    return mock


class _FakeWatch:
    """Replays one scripted window per ``stream`` call."""

    def __init__(self, windows: list[list[Any]], calls: list[dict[str, Any]]) -> None:
        self._windows = windows
        self._calls = calls

    async def __aenter__(self) -> _FakeWatch:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    async def _replay(self, window: list[Any]) -> Any:
        for item in window:
            if isinstance(item, Exception):
                raise item
            yield item

    def stream(self, list_fn: Any, *args: Any, **kwargs: Any) -> Any:
        self._calls.append({"args": args, **kwargs})
        return self._replay(self._windows.pop(0))


class TestListAll:
    async def test_lists_all_namespaces(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        records = await plane.list_all()
        assert [r.name for r in records] == ["web-0", "web-1"]
        api.list_pod_for_all_namespaces.assert_awaited_once()

    async def test_lists_one_namespace(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        records = await plane.list_all("shop")
        assert len(records) == 1
        api.list_namespaced_pod.assert_awaited_once_with("shop")

    async def test_api_error_is_connectivity_error(self, api: MagicMock) -> None:
        api.list_pod_for_all_namespaces.side_effect = ApiException(status=503, reason="Service Unavailable")
        with pytest.raises(ConnectivityError, match="503"):
            await KubernetesControlPlane(api=api).list_all()

    async def test_connection_error_is_connectivity_error(self, api: MagicMock) -> None:
        api.list_pod_for_all_namespaces.side_effect = aiohttp.ClientConnectionError("refused")
        with pytest.raises(ConnectivityError):
            await KubernetesControlPlane(api=api).list_all()


class TestWaitForSync:
    async def test_synced_after_list(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        await plane.list_all()
        assert await plane.wait_for_sync("", 0.1) is True

    async def test_not_synced_without_list(self, api: MagicMock) -> None:
        assert await KubernetesControlPlane(api=api).wait_for_sync("", 0.01) is False

    async def test_namespaces_synced_independently(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        await plane.list_all()
        assert await plane.wait_for_sync("shop", 0.01) is False

        await plane.list_all("shop")
        assert await plane.wait_for_sync("shop", 0.1) is True
        assert await plane.wait_for_sync("billing", 0.01) is False


class TestTranslate:
    def test_added_event(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        item = plane._translate("", {"type": "ADDED", "raw_object": _raw("web-0", version="120")})
        assert isinstance(item, WatchNotification)
        assert item.kind == NotificationKind.ADD
        assert item.record.identity == ("default", "web-0")
        assert plane._resource_versions[""] == "120"

    def test_modified_and_deleted(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        modified = plane._translate("", {"type": "MODIFIED", "raw_object": _raw("web-0")})
        deleted = plane._translate("", {"type": "DELETED", "raw_object": _raw("web-0")})
        assert modified.kind == NotificationKind.UPDATE
        assert deleted.kind == NotificationKind.DELETE

    def test_bookmark_only_advances_version(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        bookmark = {"type": "BOOKMARK", "raw_object": {"kind": "Pod", "metadata": {"resourceVersion": "200"}}}
        assert plane._translate("", bookmark) is None
        assert plane._resource_versions[""] == "200"

    def test_non_pod_object(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        item = plane._translate("", {"type": "ADDED", "raw_object": _raw("node-1", kind="Node")})
        assert isinstance(item, UnexpectedObject)
        assert item.object_kind == "Node"

    def test_unknown_event_type(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        assert isinstance(plane._translate("", {"type": "PATCHED", "raw_object": _raw("web-0")}), UnexpectedObject)

    def test_error_event(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        with pytest.raises(StreamError, match="too old"):
            plane._translate("", {"type": "ERROR", "raw_object": {"code": 500, "message": "too old"}})

    def test_gone_error_event_raises_api_exception(self, api: MagicMock) -> None:
        plane = KubernetesControlPlane(api=api)
        with pytest.raises(ApiException) as exc_info:
            plane._translate("", {"type": "ERROR", "raw_object": {"code": 410, "message": "gone"}})
        assert exc_info.value.status == 410


class TestWatch:
    async def test_reopens_window_from_last_version_then_fails_on_gone(
        self, api: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls: list[dict[str, Any]] = []
        windows = [
            [{"type": "ADDED", "raw_object": _raw("web-2", version="150")}],
            [ApiException(status=410, reason="Gone")],
        ]
        monkeypatch.setattr(control_plane_module.k8s_watch, "Watch", lambda: _FakeWatch(windows, calls))

        plane = KubernetesControlPlane(api=api, watch_timeout_seconds=60)
        await plane.list_all()
        received = []
        with pytest.raises(StreamError, match="expired"):
            async for item in plane.watch():
                received.append(item)

        assert [item.record.name for item in received] == ["web-2"]
        assert calls[0]["resource_version"] == "100"
        assert calls[0]["timeout_seconds"] == 60
        assert calls[1]["resource_version"] == "150"

    async def test_connection_loss_is_stream_error(self, api: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        windows: list[list[Any]] = [[aiohttp.ServerDisconnectedError()]]
        monkeypatch.setattr(control_plane_module.k8s_watch, "Watch", lambda: _FakeWatch(windows, []))
        plane = KubernetesControlPlane(api=api)
        with pytest.raises(StreamError, match="connection lost"):
            async for _ in plane.watch("shop"):
                pass


class TestNamespacesAndDelete:
    async def test_namespaces_sorted(self, api: MagicMock) -> None:
        assert await KubernetesControlPlane(api=api).list_namespaces() == ["default", "shop"]

    async def test_delete(self, api: MagicMock) -> None:
        await KubernetesControlPlane(api=api).delete_pod("shop", "web-0")
        api.delete_namespaced_pod.assert_awaited_once_with("web-0", "shop")

    async def test_delete_missing_pod(self, api: MagicMock) -> None:
        api.delete_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")
        with pytest.raises(NotFoundError):
            await KubernetesControlPlane(api=api).delete_pod("shop", "ghost")

    async def test_delete_forbidden(self, api: MagicMock) -> None:
        api.delete_namespaced_pod.side_effect = ApiException(status=403, reason="Forbidden")
        with pytest.raises(ConnectivityError, match="403"):
            await KubernetesControlPlane(api=api).delete_pod("shop", "web-0")

    async def test_close_releases_client(self, api: MagicMock) -> None:
        await KubernetesControlPlane(api=api).close()
        api.api_client.close.assert_awaited_once()
