# =============================================================================
# apphost/core/ - Application Runtime
# =============================================================================
# This package contains the runtime that hosts an application directory:
# - application.py: Application lifecycle (init / destroy) and mode dispatch
# - modules.py: ModuleRegistry, api/ discovery and the artifact loaders
# - patches.py: MigrationCoordinator for versioned one-time data patches
# - models/: MongoModel base class and the Patch record schema
#
# Code in this package does not build HTTP routes itself; the web layer is
# started from application.py only in web mode.
# =============================================================================

from .application import Application, AppMode, AppStatus
from .modules import ModuleEntry, ModuleRegistry, PatchScript
from .patches import MigrationCoordinator

__all__ = [
    "Application",
    "AppMode",
    "AppStatus",
    "ModuleEntry",
    "ModuleRegistry",
    "PatchScript",
    "MigrationCoordinator",
]
