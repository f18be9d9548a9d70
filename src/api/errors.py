"""Maps the core error taxonomy onto HTTP responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse

from src.errors import SchemeMitraError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


async def schememitra_error_handler(request: Request, exc: SchemeMitraError) -> ORJSONResponse:
    """Render ``exc`` as its :class:`~src.errors.ErrorResponse` body."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "api.request_failed",
        path=request.url.path,
        method=request.method,
        code=exc.code,
        status=exc.http_status,
    )
    return ORJSONResponse(status_code=exc.http_status, content=exc.to_response().model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchemeMitraError, schememitra_error_handler)  # type: ignore[arg-type]
