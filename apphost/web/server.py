# =============================================================================
# apphost/web/server.py - Web Server
# =============================================================================
# Builds the FastAPI application of a hosted app and runs it on an embedded
# uvicorn server owned by the Application:
#
#   web = create_web_app(app)                  # middleware, docs, handlers
#   bridge = register_realtime_bridge(web)      # /ws
#   web.include_router(...)                     # module routers
#   mount_static(web, app.dir_path / "public")  # last, catches the rest
#   server = WebServer(web, host, port, io=bridge)
#   await server.start()
#   ...
#   await server.close()
# =============================================================================

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from pathlib import Path
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.staticfiles import StaticFiles

from apphost.exceptions import ServerStartError, register_exception_handlers
from apphost.web.routers import health
from apphost.web.websocket.bridge import RealtimeBridge

if TYPE_CHECKING:
    from apphost.core.application import Application

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-API-Key"


# =============================================================================
# FastAPI Application
# =============================================================================

def create_web_app(app: Application) -> FastAPI:
    """
    Create the FastAPI application for a hosted app.

    The host Application is available to routes as request.app.state.host.
    """
    web = FastAPI(
        title=f"{app.metadata.name} API",
        description=app.metadata.description,
        version=app.metadata.version,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    web.state.host = app

    # CORS middleware - reflects any origin
    web.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(web)

    web.include_router(health.router, tags=["Health"])

    @web.get("/", tags=["Root"], summary="About the application")
    async def root():
        return {
            "name": app.metadata.name,
            "version": app.metadata.version,
            "description": app.metadata.description,
        }

    def openapi():
        # Cached after the first build; routers are all included by then
        if web.openapi_schema:
            return web.openapi_schema
        schema = get_openapi(
            title=web.title,
            version=web.version,
            description=web.description,
            routes=web.routes,
        )
        schema.setdefault("components", {})["securitySchemes"] = {
            "APIKeyInHeader": {"type": "apiKey", "in": "header", "name": API_KEY_HEADER},
        }
        web.openapi_schema = schema
        return schema

    web.openapi = openapi
    return web


def mount_static(web: FastAPI, directory: Path) -> bool:
    """
    Serve files from `directory` at the root path.

    Must run after every router is included; the mount matches any path.

    Returns:
        False if the directory does not exist
    """
    if not directory.is_dir():
        return False
    web.mount("/", StaticFiles(directory=directory), name="public")
    return True


# =============================================================================
# Embedded Server
# =============================================================================

class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the Application."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class WebServer:
    """
    uvicorn server running as a task on the current event loop.

    Example:
        server = WebServer(web, "127.0.0.1", 0, io=bridge)
        await server.start()
        print(server.port)  # the port picked by the OS
        await server.close()
    """

    def __init__(self, web: FastAPI, host: str, port: int, io: RealtimeBridge):
        self.web = web
        self.host = host
        self.requested_port = port
        self.io = io
        self._socket: socket.socket | None = None
        self._server: _EmbeddedServer | None = None
        self._task: asyncio.Task | None = None

    @property
    def port(self) -> int:
        """The bound port (differs from the requested one for port 0)."""
        if self._socket is None:
            return self.requested_port
        return self._socket.getsockname()[1]

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.requested_port))
        except OSError as e:
            sock.close()
            raise ServerStartError(self.host, self.requested_port, str(e)) from e
        sock.set_inheritable(True)
        return sock

    async def start(self) -> None:
        """
        Bind and start serving.

        Raises:
            ServerStartError: If the socket cannot be bound or the server
                stops during startup
        """
        self._socket = self._bind()
        config = uvicorn.Config(
            self.web,
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        self._server = _EmbeddedServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

        while not self._server.started:
            if self._task.done():
                error = self._task.exception()
                self._socket.close()
                raise ServerStartError(self.host, self.port, str(error or "server exited during startup"))
            await asyncio.sleep(0.01)

        logger.info(f"Web server listening on {self.host}:{self.port}")

    async def close(self) -> None:
        """Stop accepting requests and wait for the server task to finish."""
        if self._server is None:
            return
        self._server.should_exit = True
        await self._task
        self._socket.close()
        self._socket = None
        self._server = None
        self._task = None
