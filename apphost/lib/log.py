# =============================================================================
# apphost/lib/log.py - Logger Setup
# =============================================================================
# Configures stdlib logging for a hosted application and provides scoped
# loggers for the parts of the host that need extra context (app, patches,
# web sockets).
#
# Usage:
#   logger = configure_logging("shop", "info")
#   app_logger = scoped_logger(logger, "app")
#   app_logger.always("Application started")
#
#   patch_logger = scoped_logger(logger, "patch", script=3)
#   patch_logger.info("Migrated 10 documents")
#   # ... - shop - INFO - [patch script=3] Migrated 10 documents
# =============================================================================

import logging
from typing import Any

# Lifecycle milestones are logged at this level so they show up regardless
# of the configured level.
ALWAYS = 100
logging.addLevelName(ALWAYS, "ALWAYS")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Level names accepted in the `log.level` setting
LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
}


class ScopedLogger(logging.LoggerAdapter):
    """
    Logger adapter that prefixes every message with its scope.

    The scope and context are also attached to the record as `extra`, so
    structured handlers can pick them up.
    """

    def __init__(self, logger: logging.Logger, scope: str, **context: Any):
        super().__init__(logger, {"scope": scope, **context})
        parts = [scope] + [f"{key}={value}" for key, value in context.items()]
        self._prefix = f"[{' '.join(parts)}]"

    def process(self, msg, kwargs):
        kwargs.setdefault("extra", {}).update(self.extra)
        return f"{self._prefix} {msg}", kwargs

    def always(self, msg, *args, **kwargs) -> None:
        """Log a message that is emitted at any configured level."""
        self.log(ALWAYS, msg, *args, **kwargs)


def configure_logging(name: str, level: str = "info") -> logging.Logger:
    """
    Set up logging for an application.

    Args:
        name: Logger name (the application name)
        level: One of the names in LEVELS

    Returns:
        The application's root logger
    """
    numeric_level = LEVELS[level.lower()]

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT)

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)
    return logger


def scoped_logger(logger: logging.Logger, scope: str, **context: Any) -> ScopedLogger:
    """Create a child logger tagged with a scope and optional context."""
    return ScopedLogger(logger, scope, **context)
