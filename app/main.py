"""
FastAPI application: webhook, manual sync and health endpoints, plus the
polling scheduler started in the lifespan when polling is enabled.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import settings
from app.dependencies import ServiceContainer, build_container
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.jobs.reconciliation_job import start_reconciliation_scheduler
from app.middleware.request_context import RequestContextMiddleware
from app.routes import health, sync, webhook

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""
    services: ServiceContainer = app.state.services
    config = services.settings

    logger.info(
        "Application starting",
        environment=config.environment,
        mode=config.operating_mode(),
        matching_mode=config.MATCHING_MODE,
    )

    if services.redis_client is not None:
        logger.info("Initializing Redis connection")
        try:
            await services.redis_client.initialize()
        except Exception as e:
            logger.error("Failed to initialize services", error=str(e))
            await services.close()
            raise

    scheduler_task = None
    if config.POLLING_ENABLED:
        scheduler_task = asyncio.create_task(
            start_reconciliation_scheduler(services.reconciliation_job)
        )
    else:
        logger.info("Polling is disabled via configuration")

    yield

    logger.info("Application shutting down")

    if scheduler_task is not None:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
        logger.info("Polling scheduler stopped")

    await services.close()
    logger.info("All services closed")


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    application = FastAPI(
        title="Tracker HubSpot Sync",
        description="Reconciles TrackerRMS jobs, placements and candidates into HubSpot",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.services = services or build_container(settings)

    application.add_middleware(RequestContextMiddleware)

    # Include routers
    application.include_router(health.router)
    application.include_router(webhook.router)
    application.include_router(sync.router)

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
