# =============================================================================
# apphost/exceptions.py - Error Taxonomy and HTTP Exception Handlers
# =============================================================================
# Centralized error types for the application host.
#
# Bootstrap errors (configuration, discovery, database, server) inherit from
# AppHostError and abort Application.init(). APIError is the error type route
# handlers raise; the handlers at the bottom turn it into a JSON response.
# =============================================================================

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppHostError(Exception):
    """
    Base exception for the application host.

    Carries an error code, a human-readable message and, where possible, a
    suggestion on how to fix the problem.
    """

    def __init__(
        self,
        message: str,
        code: str = "APPHOST_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a serializable dict."""
        result = {
            "detail": self.message,
            "code": self.code,
        }
        if self.suggestion:
            result["suggestion"] = self.suggestion
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# Bootstrap Exceptions
# =============================================================================

class ConfigurationError(AppHostError):
    """Missing or malformed settings. Raised before any resource is opened."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "CONFIGURATION_ERROR")
        super().__init__(message, **kwargs)


class DiscoveryError(AppHostError):
    """Raised when the application directory tree cannot be enumerated."""

    def __init__(self, path: str, error: str):
        super().__init__(
            message=f"Failed to scan {path}: {error}",
            code="DISCOVERY_ERROR",
            suggestion="Check that the api/ directory follows the models/modules/patches layout",
            details={"path": path, "error": error},
        )


class ModuleLoadError(AppHostError):
    """Raised when an artifact file fails to import or lacks its export."""

    def __init__(self, path: str, error: str):
        super().__init__(
            message=f"Failed to load {path}: {error}",
            code="MODULE_LOAD_ERROR",
            details={"path": path, "error": error},
        )


class DatabaseConnectionError(AppHostError):
    """Raised when the database connection cannot be established."""

    def __init__(self, url: str, error: str):
        super().__init__(
            message=f"Failed to connect to {url}: {error}",
            code="DATABASE_CONNECTION_ERROR",
            suggestion="Check the mongo section of the configuration and that the server is reachable",
            details={"url": url, "error": error},
        )


class ServerStartError(AppHostError):
    """Raised when the web server cannot bind or start."""

    def __init__(self, host: str, port: int, error: str):
        super().__init__(
            message=f"Failed to start web server on {host}:{port}: {error}",
            code="SERVER_START_ERROR",
            suggestion="Check that the port is free or set a different port in the configuration",
            details={"host": host, "port": port, "error": error},
        )


# =============================================================================
# API Exceptions
# =============================================================================

class APIError(Exception):
    """
    Error raised by route handlers.

    Example:
        raise APIError("PRODUCT_NOT_FOUND", {"id": product_id}, status_code=404)
    """

    def __init__(self, code: str, detail: Any = None, status_code: int = 400):
        super().__init__(code)
        self.code = code
        self.detail = detail
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "detail": self.detail,
        }


# =============================================================================
# Exception Handlers
# =============================================================================

async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Convert APIError to JSON response."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected exceptions and hide their details from the client."""
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "An unexpected error occurred",
            "code": "INTERNAL_ERROR",
        },
    )


def register_exception_handlers(web: FastAPI) -> None:
    """Attach the API exception handlers to a FastAPI application."""
    web.add_exception_handler(APIError, api_error_handler)
    web.add_exception_handler(Exception, unexpected_error_handler)
