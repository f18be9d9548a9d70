"""SchemeMitra FastAPI application entry point.

Builds the FastAPI app, configures logging, registers the error handlers
and includes the routers.  The lifespan wires the :class:`SchemeWorkflow`
core onto ``app.state`` where external controllers pick it up.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.errors import register_exception_handlers
from src.api.router import api_router
from src.services.workflow import SchemeWorkflow

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

APP_VERSION = "0.3.0"


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[settings.log_level.upper()],
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(workflow: SchemeWorkflow | None = None) -> FastAPI:
    """Build the app.  Without ``workflow`` an in-memory one is created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        app.state.start_time = time.time()
        app.state.workflow = workflow if workflow is not None else SchemeWorkflow.in_memory()
        logger.info(
            "app.startup",
            env=settings.env,
            store="injected" if workflow is not None else "in_memory",
        )
        yield
        logger.info("app.shutdown_complete")

    app = FastAPI(
        title="SchemeMitra API",
        description="Government scheme eligibility matching and approval workflows.",
        version=APP_VERSION,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/api", response_class=ORJSONResponse)
    async def api_info() -> dict:
        """API information endpoint."""
        return {
            "name": "SchemeMitra API",
            "version": APP_VERSION,
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    return app


app = create_app()
