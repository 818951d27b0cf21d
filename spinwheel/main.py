"""
Main FastAPI application entry point.
Configures logging, exception handlers, middleware, and routers.
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from spinwheel.api.dependencies import get_catalog_repository, get_reward_dispatcher
from spinwheel.api.routers import admin_router, catalog_router, health_router, spins_router
from spinwheel.config import get_settings
from spinwheel.config.logging import configure_logging
from spinwheel.core.exceptions import AppException
from spinwheel.core.telemetry import setup_telemetry


# =============================================================================
# Lifespan (Startup/Shutdown)
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger = logging.getLogger(__name__)
    settings = get_settings()

    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(
        f"Pity threshold: {settings.PITY_THRESHOLD} (x{settings.PITY_MULTIPLIER})"
    )

    # Fail fast on a broken catalog instead of on the first spin
    catalog_repo = get_catalog_repository()
    logger.info(f"Wheel tiers: {catalog_repo.tiers()}")

    # Pending grants are swept in the background, no admin call needed
    app.state.grant_retry_task = None
    if settings.GRANT_RETRY_INTERVAL_SEC > 0:
        app.state.grant_retry_task = asyncio.create_task(
            get_reward_dispatcher().run_retry_loop(settings.GRANT_RETRY_INTERVAL_SEC)
        )

    yield

    # Shutdown
    logger.info("Shutting down application")
    retry_task = app.state.grant_retry_task
    if retry_task is not None:
        retry_task.cancel()
        with suppress(asyncio.CancelledError):
            await retry_task


# =============================================================================
# Exception Handlers
# =============================================================================


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """Handle custom application exceptions."""
    if exc.status_code >= 500:
        logging.getLogger(__name__).error(f"{exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected exceptions - return generic error."""
    logger = logging.getLogger(__name__)
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


# =============================================================================
# Application Factory
# =============================================================================


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Configure structured logging
    configure_logging(debug=settings.DEBUG)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="""
        Spin Wheel Reward Engine

        Server-side reward wheel for the tournament economy.

        ## Features
        - Weighted random selection per tier
        - Pity timer boosting rare rewards after a dry streak
        - Adaptive suppression of recently won categories
        - Atomic spin commits with optimistic concurrency
        - Post-commit reward dispatch with pending-grant recovery
        - Observability: JSON logs, Prometheus, OpenTelemetry
        """,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Register exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(spins_router)
    app.include_router(admin_router)
    app.include_router(catalog_router)

    # Setup Telemetry (Metrics & Tracing)
    setup_telemetry(app)

    return app


# Create application instance
app = create_app()


# =============================================================================
# Development Entry Point
# =============================================================================


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "spinwheel.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
