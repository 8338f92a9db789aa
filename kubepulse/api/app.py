"""FastAPI application factory for KubePulse.

Usage::

    from kubepulse.api.app import create_app

    app = create_app(registry=registry, config=config)

The factory is used both by the production bootstrap (``kubepulse.app``)
and by tests, which pass a registry built over a fake control plane.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kubepulse.api.routes import router
from kubepulse.api.schemas import ErrorResponse
from kubepulse.errors import (
    ConnectivityError,
    InvariantViolation,
    KubePulseError,
    NotFoundError,
    SessionEndedError,
    StreamError,
    SyncTimeoutError,
)
from kubepulse.models.config import KubePulseConfig
from kubepulse.session import SessionRegistry

_log = structlog.get_logger(component="api.app")

# (status, code) per error type; first match in MRO order wins.
_ERROR_MAP: dict[type[KubePulseError], tuple[int, str]] = {
    NotFoundError: (404, "NOT_FOUND"),
    ConnectivityError: (502, "CONTROL_PLANE_UNREACHABLE"),
    SyncTimeoutError: (503, "CACHE_NOT_SYNCED"),
    StreamError: (503, "WATCH_STREAM_FAILED"),
    InvariantViolation: (503, "WATCH_SESSION_ABORTED"),
    SessionEndedError: (503, "WATCH_SESSION_ENDED"),
}


def create_app(
    registry: SessionRegistry,
    config: KubePulseConfig | None = None,
) -> FastAPI:
    """Create and configure the KubePulse FastAPI application.

    Args:
        registry: SessionRegistry shared by every route.
        config:   KubePulseConfig.  Defaults are used when omitted.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from kubepulse import __version__

    config = config or KubePulseConfig()

    app = FastAPI(
        title="KubePulse",
        summary="Live pod status for Kubernetes",
        version=__version__,
        description=(
            "KubePulse lists pods with the same status label kubectl shows and "
            "streams pod add/update/delete events over WebSocket."
        ),
    )

    app.state.registry = registry
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    # -----------------------------------------------------------------------
    # Exception handlers
    # -----------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(TimeoutError)
    async def timeout_exception_handler(
        _request: Request,
        exc: TimeoutError,
    ) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content=ErrorResponse(error="CACHE_NOT_SYNCED", detail=str(exc)).model_dump(),
        )

    @app.exception_handler(KubePulseError)
    async def kubepulse_exception_handler(
        request: Request,
        exc: KubePulseError,
    ) -> JSONResponse:
        status_code, code = _error_status(exc)
        _log.warning(
            "request_failed",
            path=str(request.url.path),
            method=request.method,
            error=code,
            detail=str(exc),
        )
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=code, detail=str(exc)).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app


def _error_status(exc: KubePulseError) -> tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in _ERROR_MAP:
            return _ERROR_MAP[cls]  # type: ignore[index]
    return 500, "INTERNAL_ERROR"
