"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .core.config import settings
from .core.database import async_session_factory, close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_NAME,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import metrics_router, tour_import_router
from .services.media_import import HttpMediaFetcher
from .services.sync_orchestrator import build_sync_orchestrator
from .workers.manager import WorkerManager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the sync orchestrator and media fetcher on ``app.state`` and runs
    the scheduled sync worker for the lifetime of the application.
    """
    # Startup
    logger.info("Starting catalog sync service")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Primary sync environment: {settings.is_primary_sync_environment}")

    try:
        # Setup observability
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        # Initialize database
        await init_db()
        logger.info("Database initialized successfully")

        app.state.sync_orchestrator = build_sync_orchestrator(engine, async_session_factory)
        app.state.media_fetcher = HttpMediaFetcher()
        app.state.worker_manager = WorkerManager(app.state.sync_orchestrator)

        # Start background workers
        await app.state.worker_manager.start_all()
        logger.info("Background workers started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down catalog sync service")

    try:
        await app.state.worker_manager.stop_all()
        logger.info("Background workers stopped")

        await app.state.sync_orchestrator.close()
        await app.state.media_fetcher.close()

        # Close database connections
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        use_lifespan: Whether to wire collaborators and workers on startup;
            tests set ``app.state`` themselves instead

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Tour Catalog Sync API",
        description="Synchronizes tour operator catalogs into the tour store with soft-delete reconciliation",
        version=VERSION,
        debug=settings.debug,
        lifespan=lifespan if use_lifespan else None,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        return {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": VERSION,
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the database answers",
        response_model=dict,
    )
    async def readiness_check():
        """Readiness check that runs a trivial query against the database."""
        try:
            async with async_session_factory() as db:
                await db.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning("Readiness check failed", extra={"error": str(e)})
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "not_ready", "service": SERVICE_NAME, "checks": {"database": "error"}},
            )
        return {"status": "ready", "service": SERVICE_NAME, "checks": {"database": "ok"}}

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "environment": settings.environment,
            "sync": {
                "primary_environment": settings.sync_primary_environment,
                "brands": settings.sync_brands,
                "default_currency": settings.sync_default_currency,
                "scheduled": settings.enable_scheduled_tour_sync,
                "schedule": f"{settings.tour_sync_cron_hour:02d}:{settings.tour_sync_cron_minute:02d} "
                            f"{settings.tour_sync_timezone}",
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "metrics": "/metrics",
                "sync": "/tour-import/sync",
                "docs": "/docs" if settings.debug else None,
            },
        }

    # Register API routers
    app.include_router(tour_import_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "catalog_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
