"""
Local Asset Server
==================

Serves a bundled project over HTTP so the browser can load it. Bundles on
disk are served by an embedded uvicorn server running a FastAPI static
files app; serve URLs are used as they are.
"""

from typing import Any, Optional
import asyncio
import socket
from contextlib import nullcontext
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from src.config.logging import get_logger
from src.core.orchestration.cancellation import CancellationToken

logger = get_logger(__name__)

STARTUP_POLL_INTERVAL = 0.01


class ServerError(Exception):
    """Exception raised when the local server cannot be started."""

    pass


def create_static_app(root: Path) -> FastAPI:
    """FastAPI app serving ``root``, with ``index.html`` for directories."""
    app = FastAPI(
        title="Still Render Asset Server",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.mount("/", StaticFiles(directory=str(root), html=True), name="bundle")
    return app


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the host."""

    def install_signal_handlers(self) -> None:
        pass

    def capture_signals(self):  # type: ignore[override]
        return nullcontext()


class PassthroughServerHandle:
    """Handle for a project that is already served elsewhere."""

    def __init__(self, url: str):
        self.url = url

    async def close(self, immediate: bool = False) -> None:
        return None


class UvicornServerHandle:
    """A running embedded server."""

    def __init__(self, url: str, server: uvicorn.Server, task: "asyncio.Task[Any]", sock: socket.socket):
        self.url = url
        self._server = server
        self._task = task
        self._socket = sock
        self.closed = False
        self.logger: Any = logger.bind(component="asset_server", url=url)

    async def close(self, immediate: bool = False) -> None:
        """Stop serving; an immediate close drops open connections."""
        if self.closed:
            return
        self.closed = True
        self._server.should_exit = True
        if immediate:
            self._server.force_exit = True
        try:
            await self._task
        finally:
            self._socket.close()
        self.logger.info("Server stopped")


class StaticAssetServer:
    """Starts a local static server for a bundle directory."""

    def __init__(self, host: str = "127.0.0.1"):
        self.host = host
        self.logger: Any = logger.bind(component="asset_server")

    async def prepare(
        self,
        servable_location: str,
        concurrency: int,
        port: Optional[int],
        token: CancellationToken,
    ):
        """
        Make ``servable_location`` reachable over HTTP.

        Args:
            servable_location: Bundle directory or serve URL
            concurrency: Number of browser tabs that will load the project
            port: Fixed port, or None to pick a free one
            token: Cancellation token checked while the server starts

        Returns:
            A handle exposing ``url`` and ``close``
        """
        if servable_location.startswith(("http://", "https://")):
            return PassthroughServerHandle(servable_location)

        root = Path(servable_location)
        if not root.is_dir():
            raise ServerError(f"Cannot serve {servable_location}: not a directory")

        token.checkpoint("serve")
        sock = self._bind(port)
        bound_port = sock.getsockname()[1]
        config = uvicorn.Config(
            create_static_app(root),
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            limit_concurrency=max(concurrency, 1) * 16,
        )
        server = _EmbeddedServer(config)
        task = asyncio.ensure_future(server.serve(sockets=[sock]))
        handle = UvicornServerHandle(f"http://{self.host}:{bound_port}", server, task, sock)

        try:
            while not server.started:
                token.checkpoint("serve")
                if task.done():
                    error = None if task.cancelled() else task.exception()
                    sock.close()
                    raise ServerError(f"Server exited during startup: {error}")
                await asyncio.sleep(STARTUP_POLL_INTERVAL)
        except BaseException:
            if not task.done():
                await handle.close(immediate=True)
            raise

        self.logger.info("Server started", url=handle.url, root=str(root))
        return handle

    def _bind(self, port: Optional[int]) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, port or 0))
        except OSError as e:
            sock.close()
            raise ServerError(f"Could not bind {self.host}:{port}: {e}") from e
        return sock
