"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, and lifespan events.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresUnitOfWork, run_migrations
from src.api.dependencies import get_dispatcher
from src.api.v1 import router as v1_router
from src.config.settings import get_settings
from src.config.wiring import build_registration_service
from src.domain.exceptions import Unavailable
from src.jobs.sweep import sweep_periodically

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "registration",
        "description": "Applicant onboarding - request access, verify email, complete registration",
    },
    {
        "name": "admin",
        "description": "Administrator review of registration requests",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool on startup
    - Runs migrations on startup
    - Starts the periodic expiry sweep (when enabled)
    - Stops the sweep and closes the pool on shutdown
    """
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing and a per-statement bound
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        timeout=settings.pool_timeout_seconds,
        kwargs={"options": f"-c statement_timeout={settings.statement_timeout_ms}"},
        open=True,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    # Store pool in app state for dependency injection
    app.state.pool = pool

    sweep_task = None
    if settings.sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            sweep_periodically(
                lambda: build_registration_service(
                    settings,
                    lambda: PostgresUnitOfWork(pool, timeout_seconds=settings.pool_timeout_seconds),
                    get_dispatcher(),
                ),
                settings.sweep_interval_seconds,
            )
        )
        logger.info("Expiry sweep scheduled every %ds", settings.sweep_interval_seconds)

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task
    get_dispatcher().close()
    get_dispatcher.cache_clear()
    pool.close()
    logger.info("Database connection pool closed")


app = FastAPI(
    title="onboarding",
    description="Staff Onboarding API - registration requests, email verification and administrator approval",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(Unavailable)
async def unavailable_handler(request: Request, exc: Unavailable) -> JSONResponse:
    """Transient store failures: the transition may not have happened; retry."""
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"},
        headers={"Retry-After": "5"},
    )


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
