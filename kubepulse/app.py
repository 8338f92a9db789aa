"""Process bootstrap for KubePulse.

Startup order: config -> logging -> cluster client -> session registry -> HTTP server.
Shutdown runs the same list backwards; a component that fails to stop is
logged and the rest still stop.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubepulse.config import load_config
from kubepulse.models.config import KubePulseConfig
from kubepulse.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog
    import uvicorn

    from kubepulse.collector.control_plane import ControlPlane
    from kubepulse.session import SessionRegistry

_STOP_TIMEOUT_SECONDS = 15


class StartupError(Exception):
    """A component could not be started; the process should exit non-zero."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"{component} failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubePulseApp:
    """Owns the control plane, the session registry and the uvicorn server.

    ``stop()`` is safe before ``start()`` and safe to call twice.
    """

    def __init__(self, config: KubePulseConfig | None = None) -> None:
        self.config = config
        self.control_plane: ControlPlane | None = None
        self.registry: SessionRegistry | None = None
        self._server: uvicorn.Server | None = None
        self._started: list[tuple[str, Any]] = []
        self._done = asyncio.Event()
        self._log: structlog.stdlib.BoundLogger = get_logger("app")

    @property
    def running(self) -> bool:
        return bool(self._started) and not self._done.is_set()

    async def start(self) -> None:
        """Bring every component up in order.

        Raises:
            StartupError: naming the component that failed.
        """
        if self.config is None:
            self.config = load_config()
        setup_logging(self.config.log.level, self.config.log.format)

        from kubepulse import __version__

        self._log.info(
            "kubepulse_starting",
            version=__version__,
            local_mode=self.config.kube.local_mode,
            namespace_filter=self.config.watch.namespace or "*",
        )
        await self._step("control_plane", self._connect)
        await self._step("registry", self._open_registry)
        await self._step("http", self._serve)
        self._log.info("kubepulse_started", host=self.config.api.host, port=self.config.api.port)

    async def _step(self, name: str, starter: Any) -> None:
        try:
            component = await starter()
        except Exception as exc:
            raise StartupError(name, exc) from exc
        self._started.append((name, component))

    async def _connect(self) -> ControlPlane:
        assert self.config is not None
        # kubernetes-asyncio is only needed once a cluster is actually contacted.
        from kubepulse.collector.control_plane import KubernetesControlPlane
        from kubepulse.collector.credentials import load_credentials

        source = await load_credentials(self.config.kube)
        self.control_plane = KubernetesControlPlane(watch_timeout_seconds=self.config.watch.watch_timeout_seconds)
        self._log.debug("control_plane_ready", credentials=source)
        return self.control_plane

    async def _open_registry(self) -> SessionRegistry:
        assert self.config is not None
        assert self.control_plane is not None
        from kubepulse.session import SessionRegistry

        self.registry = SessionRegistry(
            self.control_plane,
            watch_config=self.config.watch,
            broadcast_config=self.config.broadcast,
        )
        # Watch the configured scope from the start so the first request finds a warm cache.
        await self.registry.acquire(self.config.watch.namespace)
        return self.registry

    async def _serve(self) -> asyncio.Task[None]:
        assert self.config is not None
        assert self.registry is not None
        import uvicorn

        from kubepulse.api import create_app

        self._server = uvicorn.Server(
            uvicorn.Config(
                app=create_app(registry=self.registry, config=self.config),
                host=self.config.api.host,
                port=self.config.api.port,
                log_config=None,
                access_log=False,
            )
        )
        task = asyncio.create_task(self._server.serve(), name="http-server")
        task.add_done_callback(lambda _task: self._done.set())
        return task

    async def wait(self) -> None:
        """Block until ``stop()`` runs or the HTTP server exits on its own."""
        await self._done.wait()

    async def stop(self) -> None:
        """Stop started components in reverse order."""
        if not self._started:
            self._done.set()
            return
        self._log.info("kubepulse_stopping")
        while self._started:
            name, component = self._started.pop()
            await self._stop_one(name, component)
        self._done.set()
        self._log.info("kubepulse_stopped")

    async def _stop_one(self, name: str, component: Any) -> None:
        try:
            if isinstance(component, asyncio.Task):
                if self._server is not None:
                    self._server.should_exit = True
                await asyncio.wait_for(component, timeout=_STOP_TIMEOUT_SECONDS)
            elif hasattr(component, "stop"):
                await asyncio.wait_for(component.stop(), timeout=_STOP_TIMEOUT_SECONDS)
            else:
                await asyncio.wait_for(component.close(), timeout=_STOP_TIMEOUT_SECONDS)
        except TimeoutError:
            self._log.warning("component_stop_timed_out", component=name, timeout=_STOP_TIMEOUT_SECONDS)
        except Exception as exc:
            self._log.error("component_stop_failed", component=name, error=str(exc))


async def main(config: KubePulseConfig | None = None) -> None:
    """Run KubePulse until SIGTERM/SIGINT, then shut down cleanly."""
    app = KubePulseApp(config)
    loop = asyncio.get_running_loop()
    stopping: list[asyncio.Task[None]] = []

    def _on_signal() -> None:
        if not stopping:
            stopping.append(asyncio.create_task(app.stop(), name="shutdown"))

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal)

    try:
        await app.start()
        await app.wait()
    except StartupError as exc:
        get_logger("app").critical("kubepulse_startup_failed", component=exc.component, error=str(exc.cause))
        raise SystemExit(1) from exc
    finally:
        if stopping:
            await stopping[0]
        await app.stop()
