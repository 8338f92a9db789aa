"""Structured logging for KubePulse.

Every component logs through ``get_logger(component)``; events are
snake_case strings with key/value context.  Output goes to stderr as JSON
lines, or as coloured console lines when ``fmt="console"``.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Third-party loggers that are chatty at INFO.
_QUIET_LOGGERS = ("aiohttp.access", "kubernetes_asyncio", "uvicorn.access")


def _add_service(_logger: object, _method: str, event_dict: dict[str, object]) -> dict[str, object]:
    event_dict.setdefault("service", "kubepulse")
    return event_dict


def setup_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog and route stdlib logging (uvicorn, aiohttp) to stderr."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: structlog.types.Processor
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_service,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(stream=sys.stderr, level=log_level, format="%(name)s %(levelname)s %(message)s", force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
