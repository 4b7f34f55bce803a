# =============================================================================
# apphost - Application Host
# =============================================================================
# Boots an application from its directory: layered configuration, MongoDB,
# models, services and data patches, then runs it as a web server, a task
# scheduler or a one-shot internal job.
#
# Usage:
#   from apphost import Application
#
#   app = Application("/srv/shop", {"mode": "web", "port": 8080})
#   await app.init()
#
#   # Or from the shell
#   apphost /srv/shop --mode cron
# =============================================================================

from apphost.config import AppSettings, Configuration
from apphost.core import Application, AppMode, AppStatus, ModuleRegistry
from apphost.core.models import MongoModel
from apphost.exceptions import APIError, AppHostError
from apphost.web.websocket import join_room, leave_room

__version__ = "1.0.0"

__all__ = [
    "APIError",
    "AppHostError",
    "AppMode",
    "AppSettings",
    "AppStatus",
    "Application",
    "Configuration",
    "ModuleRegistry",
    "MongoModel",
    "join_room",
    "leave_room",
]
