"""FastAPI application factory and configuration."""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from app.api.v1 import api_router
from app.core.config import get_settings
from app.core.logging import setup_logging
from app.core.middleware import setup_middleware
from app.db.base import init_db
from app.services.cleanup_service import CleanupService
from app.services.job_service import TranslationJobService, build_job_service

# Setup logging
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Application startup: Initializing services")

    try:
        logger.info("Creating database schema")
        await init_db()
    except Exception as e:
        logger.error("Database initialization failed: %s", e)
        raise

    job_service: TranslationJobService = app.state.job_service
    cleanup_service: CleanupService = app.state.cleanup_service

    # Content store and workers
    await job_service.start()

    # Start cleanup service for expired jobs and stale files
    try:
        await cleanup_service.start()
    except Exception as e:
        logger.error("Failed to start cleanup service: %s", e)
        # Don't raise - allow app to start even if cleanup fails

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Application shutdown: Cleaning up resources")

    try:
        await cleanup_service.stop()
    except Exception as e:
        logger.error("Error stopping cleanup service: %s", e)

    try:
        await job_service.stop()
    except Exception as e:
        logger.error("Error stopping job service: %s", e)

    logger.info("Application shutdown complete")


def create_app(
    job_service: TranslationJobService | None = None,
    cleanup_service: CleanupService | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        job_service: Service used by the endpoints (production wiring if not provided)
        cleanup_service: Background cleanup (built from the job service's pipeline if not provided)
    """
    settings = get_settings()
    if job_service is None:
        job_service = build_job_service(settings)
    if cleanup_service is None:
        cleanup_service = CleanupService(job_service.pipeline, settings)

    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.job_service = job_service
    app.state.cleanup_service = cleanup_service

    # Setup middleware (CORS, compression, trusted hosts)
    setup_middleware(app)

    # Include API routes with versioning
    app.include_router(api_router, prefix="/api/v1")

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app", host=settings.host, port=settings.port, proxy_headers=True, reload=False
    )
