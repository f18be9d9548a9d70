"""Health check endpoints for SchemeMitra API v1.

Liveness reports that the process is up; readiness additionally checks
that the workflow core and its stores are wired.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str
    version: str
    uptime_seconds: float


class ReadinessResponse(BaseModel):
    status: str
    checks: dict[str, str]


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe.  Does *not* check the stores."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse | ORJSONResponse:
    """Readiness probe: 503 until the workflow core is available."""
    checks: dict[str, str] = {}
    workflow = getattr(request.app.state, "workflow", None)
    if workflow is None:
        checks["workflow"] = "unavailable"
    else:
        try:
            await workflow.list_public_schemes()
            checks["workflow"] = "ok"
        except Exception:
            logger.warning("health.workflow_check_failed", exc_info=True)
            checks["workflow"] = "error"

    if all(value == "ok" for value in checks.values()):
        return ReadinessResponse(status="ready", checks=checks)
    return ORJSONResponse(
        status_code=503,
        content=ReadinessResponse(status="not_ready", checks=checks).model_dump(),
    )
