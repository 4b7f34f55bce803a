# =============================================================================
# apphost/lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - log.py: Logging setup, the ALWAYS level and scoped loggers
# - mongo_client.py: MongoDB connection URL and async client wrapper
# - utils.py: Project metadata, deep_merge, ObjectId normalization
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from apphost.lib.log import ALWAYS, ScopedLogger, configure_logging, scoped_logger
from apphost.lib.mongo_client import MongoConnection, build_mongo_url
from apphost.lib.utils import (
    ProjectMetadata,
    deep_merge,
    normalize_object_id,
    read_project_metadata,
    try_object_id,
)

__all__ = [
    # Logging
    "ALWAYS",
    "ScopedLogger",
    "configure_logging",
    "scoped_logger",
    # MongoDB
    "MongoConnection",
    "build_mongo_url",
    # Utils
    "ProjectMetadata",
    "deep_merge",
    "normalize_object_id",
    "read_project_metadata",
    "try_object_id",
]
