"""HTTP and WebSocket routes.

Route handlers only translate between HTTP and the session layer; all pod
state comes from the shared PodWatchSession for the requested scope.
"""

from __future__ import annotations

import asyncio
import contextlib

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from kubepulse.api.schemas import (
    DeleteResponse,
    HealthResponse,
    NamespaceListResponse,
    PodListResponse,
    PodSummary,
)
from kubepulse.broadcast.broadcaster import Subscription
from kubepulse.models.config import KubePulseConfig
from kubepulse.models.events import EndReason, EventAction
from kubepulse.models.pods import WorkloadRecord
from kubepulse.observability.logging import get_logger
from kubepulse.session import PodWatchSession, SessionRegistry
from kubepulse.status.resolver import StatusResolution

_log = get_logger("api.routes")

router = APIRouter()

# WebSocket close codes (RFC 6455)
_WS_GOING_AWAY = 1001
_WS_INTERNAL_ERROR = 1011


async def _session_for(registry: SessionRegistry, config: KubePulseConfig, namespace: str) -> PodWatchSession:
    """Pick the session that covers *namespace*.

    The configured scope is reused whenever it covers the request, so
    per-namespace requests against an all-namespaces deployment share the
    single cluster-wide watch.
    """
    scope = config.watch.namespace
    if not scope or scope == namespace:
        return await registry.acquire(scope)
    return await registry.acquire(namespace)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    from kubepulse import __version__

    registry: SessionRegistry = request.app.state.registry
    sessions = {ns or "*": session.state.value for ns, session in registry.sessions().items()}
    return HealthResponse(version=__version__, sessions=sessions)


@router.get("/namespaces", response_model=NamespaceListResponse)
async def list_namespaces(request: Request) -> NamespaceListResponse:
    registry: SessionRegistry = request.app.state.registry
    namespaces = await registry.control_plane.list_namespaces()
    return NamespaceListResponse(count=len(namespaces), namespaces=namespaces)


@router.get("/pods", response_model=PodListResponse)
async def list_all_pods(request: Request) -> PodListResponse:
    return await _list_pods(request, "")


@router.get("/pods/{ns}", response_model=PodListResponse)
async def list_namespace_pods(request: Request, ns: str) -> PodListResponse:
    return await _list_pods(request, ns)


async def _list_pods(request: Request, namespace: str) -> PodListResponse:
    registry: SessionRegistry = request.app.state.registry
    config: KubePulseConfig = request.app.state.config
    session = await _session_for(registry, config, namespace)
    try:
        await session.wait_until_synced(timeout=float(config.watch.sync_timeout_seconds))
        snapshot = session.current_snapshot(namespace)
    finally:
        await registry.release(session)
    pods = [PodSummary.from_resolution(record, resolution) for record, resolution in snapshot]
    _log.debug("pods_listed", namespace=namespace or "*", count=len(pods))
    return PodListResponse(namespace=namespace, count=len(pods), pods=pods)


@router.delete("/pods/{ns}/{name}", response_model=DeleteResponse)
async def delete_pod(request: Request, ns: str, name: str) -> DeleteResponse:
    registry: SessionRegistry = request.app.state.registry
    await registry.control_plane.delete_pod(ns, name)
    return DeleteResponse(namespace=ns, name=name)


@router.get("/deletePod/{ns}/{pname}", response_model=DeleteResponse, include_in_schema=False)
async def delete_pod_legacy(request: Request, ns: str, pname: str) -> DeleteResponse:
    return await delete_pod(request, ns, pname)


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.websocket("/ws/pods")
async def stream_pods(websocket: WebSocket, ns: str = "") -> None:
    """Send the current pods as ``add`` messages, then every later change.

    When the session ends the socket is closed with 1001 (stopped) or 1011
    (failed) and the end reason as the close reason.
    """
    registry: SessionRegistry = websocket.app.state.registry
    config: KubePulseConfig = websocket.app.state.config
    legacy = config.api.legacy_update_action

    await websocket.accept()
    session = await _session_for(registry, config, ns)
    subscription, snapshot = session.subscribe_with_snapshot()
    log = _log.bind(namespace=ns or "*", subscription_id=subscription.subscription_id)
    log.info("websocket_opened")

    receiver = asyncio.create_task(_drain_client(websocket), name="ws-receiver")
    sender = asyncio.create_task(_pump(websocket, subscription, snapshot, ns, legacy), name="ws-sender")
    try:
        done, _ = await asyncio.wait({receiver, sender}, return_when=asyncio.FIRST_COMPLETED)
        if sender in done and sender.exception() is None:
            await _close_ended(websocket, subscription)
    finally:
        for task in (receiver, sender):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
                await task
        session.unsubscribe(subscription)
        await registry.release(session)
        log.info("websocket_closed", dropped=subscription.dropped, delivered=subscription.delivered)


async def _pump(
    websocket: WebSocket,
    subscription: Subscription,
    snapshot: list[tuple[WorkloadRecord, StatusResolution]],
    namespace: str,
    legacy: bool,
) -> None:
    for record, resolution in snapshot:
        if namespace and record.namespace != namespace:
            continue
        await websocket.send_json(
            {
                "action": EventAction.ADD.value,
                "name": record.name,
                "namespace": record.namespace,
                "status": resolution.status,
            }
        )
    async for event in subscription:
        if namespace and event.namespace != namespace:
            continue
        await websocket.send_json(event.to_wire(legacy_update_action=legacy))


async def _drain_client(websocket: WebSocket) -> None:
    # Inbound messages are ignored; this only notices the client going away.
    with contextlib.suppress(WebSocketDisconnect):
        while True:
            await websocket.receive_text()


async def _close_ended(websocket: WebSocket, subscription: Subscription) -> None:
    ended = subscription.ended
    if ended is None or ended.reason == EndReason.STOPPED:
        code, reason = _WS_GOING_AWAY, EndReason.STOPPED.value
    else:
        code, reason = _WS_INTERNAL_ERROR, ended.reason.value
    with contextlib.suppress(RuntimeError, WebSocketDisconnect):
        await websocket.close(code=code, reason=reason)
