"""REST / WebSocket API layer for KubePulse.

Exposes:
    create_app -- FastAPI application factory.
"""

from kubepulse.api.app import create_app

__all__ = ["create_app"]
