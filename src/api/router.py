"""Main API router.

Aggregates the v1 route modules under the ``/api/v1`` prefix so the FastAPI
application only needs to include a single router.  Business endpoints
live with the external controllers that call :class:`SchemeWorkflow`.
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import health

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health.router)
