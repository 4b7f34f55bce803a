# =============================================================================
# apphost/web/routers/health.py - Health Check Endpoints
# =============================================================================
# Provides health check endpoints for monitoring and load balancers.
# =============================================================================

from datetime import datetime, timezone

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: str
    environment: str
    version: str
    mode: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""
    status: str
    database: str
    timestamp: str


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns the lifecycle status of the application.
    """
    app = request.app.state.host
    return HealthResponse(
        status=app.status.value,
        timestamp=datetime.now(timezone.utc).isoformat(),
        environment=app.config.environment,
        version=app.metadata.version,
        mode=app.config.mode,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request):
    """
    Readiness check endpoint.

    Checks database connectivity when a database is configured.
    """
    app = request.app.state.host

    if app.mongo_connection is None:
        database = "not_configured"
    elif await app.mongo_connection.ping():
        database = "ok"
    else:
        database = "unavailable"

    return ReadinessResponse(
        status="ready" if database != "unavailable" else "not_ready",
        database=database,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )
