# =============================================================================
# apphost/core/application.py - Application Lifecycle
# =============================================================================
# The Application assembles a hosted app from its directory and runs it:
#
#   init():    config -> logging -> database -> init_dependencies()
#              -> models -> services -> signal handlers -> patches
#              -> mode (web | cron | internal)
#   destroy(): scheduler -> realtime sockets -> web server -> realtime layer
#              -> database -> destroy_dependencies()
#
# Status flow: created -> launching -> active -> stopped -> launching ...
#
# Usage:
#   app = Application("/srv/shop", {"mode": "cron"})
#   await app.init()
#   ...
#   await app.destroy()
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import signal
from enum import Enum
from pathlib import Path
from typing import Any

from apphost.config import Configuration
from apphost.core.modules import (
    ModuleEntry,
    ModuleRegistry,
    load_models,
    load_routers,
    load_schedulers,
    load_services,
)
from apphost.core.patches import MigrationCoordinator
from apphost.lib.log import ScopedLogger, configure_logging, scoped_logger
from apphost.lib.mongo_client import MongoConnection
from apphost.lib.utils import read_project_metadata
from apphost.web.server import WebServer, create_web_app, mount_static
from apphost.web.websocket.bridge import register_realtime_bridge
from apphost.workers.scheduler import create_scheduler, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


class AppStatus(str, Enum):
    """
    Lifecycle states of an Application.

    init() is accepted in CREATED and STOPPED only; destroy() is a no-op in
    those two states.
    """
    CREATED = "created"
    LAUNCHING = "launching"
    ACTIVE = "active"
    STOPPED = "stopped"


class AppMode(str, Enum):
    """What the application runs after bootstrap."""
    INTERNAL = "internal"
    CRON = "cron"
    WEB = "web"


class Application:
    """
    Host for one application directory.

    Subclasses can override init_dependencies() / destroy_dependencies() to
    open and close extra resources; they run after the database is connected
    and before it is closed, respectively.
    """

    def __init__(
        self,
        dir_path: Path | str,
        runtime_config: dict[str, Any] | None = None,
        *,
        registry: ModuleRegistry | None = None,
        handle_signals: bool = True,
    ):
        self.dir_path = Path(dir_path).resolve()
        self.metadata = read_project_metadata(self.dir_path)
        self.name = self.metadata.name

        self.config = Configuration(
            self.dir_path / "config",
            app_name=self.name,
            **(runtime_config or {}),
        )

        self.status = AppStatus.CREATED
        self.logger: logging.Logger = logging.getLogger(self.name)
        self.app_logger: ScopedLogger = scoped_logger(self.logger, "app")

        self.mongo: Any = None
        self.mongo_connection: MongoConnection | None = None
        self.web = None
        self.server: WebServer | None = None
        self.cron = None

        self.models: dict[str, Any] = {}
        self.services: dict[str, Any] = {}
        self.module_structure: dict[str, ModuleEntry] = {}

        self._registry = registry
        self._handle_signals = handle_signals
        self._signals_installed = False
        self._shutdown_task: asyncio.Task | None = None
        self._shutdown_done = asyncio.Event()
        self.exit_code: int | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> None:
        """
        Bootstrap the application and start its mode.

        Raises:
            ConfigurationError, DiscoveryError, ModuleLoadError,
            DatabaseConnectionError, ServerStartError: The bootstrap is
                aborted and not retried; call destroy() to release whatever
                was opened before the error.
        """
        if self.status not in (AppStatus.CREATED, AppStatus.STOPPED):
            self.app_logger.error(f"init() called while the application is {self.status.value}, ignoring")
            return

        self.status = AppStatus.LAUNCHING
        self._shutdown_task = None
        self._shutdown_done.clear()
        self.exit_code = None

        await self.config.init()
        self._init_logger()
        if self.config.mongo:
            await self._init_mongo()
        await self.init_dependencies()

        registry = self._registry or ModuleRegistry.discover(self.dir_path / "api")
        self.module_structure = dict(registry.modules)

        await load_models(self, registry)
        await load_services(self, registry)

        self._install_signal_handlers()

        if not await MigrationCoordinator(self, registry.patches).run():
            # A patch failed and the application has been destroyed
            return

        mode = AppMode(self.config.mode)
        if mode == AppMode.CRON:
            await self._run_scheduled_tasks(registry)
        elif mode == AppMode.WEB:
            await self._run_web_server(registry)

        self.status = AppStatus.ACTIVE
        self.app_logger.always(
            f"Application {self.name} started in {mode.value} mode ({self.config.environment} environment)"
        )

    async def destroy(self) -> None:
        """Release everything init() opened. Safe to call more than once."""
        if self.status in (AppStatus.CREATED, AppStatus.STOPPED):
            return

        if self.cron is not None:
            stop_scheduler(self.cron)
            self.cron = None

        if self.server is not None:
            # Open sockets keep the server from closing, so drop them first
            await self.server.io.disconnect_all()
            await self.server.close()
            await self.server.io.close()
            self.server = None
        self.web = None

        if self.mongo_connection is not None:
            await self.mongo_connection.close()
            self.mongo_connection = None
            self.mongo = None

        await self.destroy_dependencies()

        self.status = AppStatus.STOPPED
        self.app_logger.always("Application stopped")

    async def init_dependencies(self) -> None:
        """Hook for subclasses: open extra resources during init()."""

    async def destroy_dependencies(self) -> None:
        """Hook for subclasses: close what init_dependencies() opened."""

    # -------------------------------------------------------------------------
    # Bootstrap Steps
    # -------------------------------------------------------------------------

    def _init_logger(self) -> None:
        self.logger = configure_logging(self.name, self.config.log.level)
        self.app_logger = scoped_logger(self.logger, "app")

    async def _init_mongo(self) -> None:
        self.mongo_connection = MongoConnection(self.config.mongo)
        self.mongo = await self.mongo_connection.connect()
        self.app_logger.always(f"Database connected at {self.mongo_connection.safe_url}")

    def _install_signal_handlers(self) -> None:
        """Shut down gracefully on SIGINT / SIGTERM. Installed once per instance."""
        if not self._handle_signals or self._signals_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Event loops without signal support (Windows)
                logger.debug(f"Falling back to signal.signal for {sig.name}")
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self._on_signal, signum))
        self._signals_installed = True

    def _on_signal(self, signum: int) -> None:
        if self._shutdown_task is not None:
            return
        self.app_logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self._shutdown_task = asyncio.ensure_future(self._shutdown())

    async def _shutdown(self) -> None:
        try:
            await self.destroy()
            self.exit_code = 0
        except Exception:
            self.app_logger.exception("Shutdown failed")
            self.exit_code = 1
        finally:
            self._shutdown_done.set()

    async def wait_for_shutdown(self) -> int:
        """
        Wait until a SIGINT / SIGTERM shutdown has finished.

        Returns:
            Process exit code: 0 after a clean shutdown, 1 if destroy() failed
        """
        await self._shutdown_done.wait()
        return self.exit_code

    # -------------------------------------------------------------------------
    # Modes
    # -------------------------------------------------------------------------

    async def _run_web_server(self, registry: ModuleRegistry) -> None:
        self.web = create_web_app(self)
        bridge = register_realtime_bridge(self.web, self.logger)

        try:
            await load_routers(self, registry, self.web.include_router)
            mount_static(self.web, self.dir_path / "public")
        except Exception:
            # destroy() only reaches the bridge through self.server
            await bridge.close()
            raise

        self.server = WebServer(self.web, self.config.host, self.config.port, io=bridge)
        await self.server.start()
        self.app_logger.always(f"Web server started on {self.config.host}:{self.server.port}")

    async def _run_scheduled_tasks(self, registry: ModuleRegistry) -> None:
        self.cron = create_scheduler()
        await load_schedulers(self, registry)
        start_scheduler(self.cron)
        self.app_logger.always("Scheduled tasks started")
