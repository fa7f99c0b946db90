"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.database import async_session_factory, close_db, engine as db_engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    request_validation_handler,
    problem_details_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    SERVICE_VERSION,
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .repositories import InMemoryDatabase, SqlAlchemyUnitOfWork
from .routers import booking_router, health_router, metrics_router, room_router
from .schemas.health import HealthStatus, ReadinessResponse
from .services import LoggingAuditSink, ReservationEngine
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


def build_engine() -> ReservationEngine:
    """Create the reservation engine for the configured persistence backend."""
    if settings.persistence_backend == "memory":
        uow_factory = InMemoryDatabase().unit_of_work
    else:
        def uow_factory() -> SqlAlchemyUnitOfWork:
            return SqlAlchemyUnitOfWork(async_session_factory)

    return ReservationEngine.from_settings(settings, uow_factory, LoggingAuditSink())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the engine, hydrates its interval store and runs the background
    workers for the lifetime of the application.
    """
    # Startup
    logger.info("Starting FastAPI application")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Persistence backend: {settings.persistence_backend}")

    try:
        # Setup observability
        setup_tracing()
        setup_metrics()

        if settings.persistence_backend == "sqlalchemy":
            instrument_sqlalchemy(db_engine)
            if settings.debug:
                await init_db()
                logger.info("Database schema ensured")

        engine = build_engine()
        started = await engine.start()
        if not started.ok:
            raise RuntimeError(f"Could not load reservations: {started.detail}")
        app.state.engine = engine

        workers = WorkerManager(engine, settings)
        await workers.start_all()
        app.state.workers = workers
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down FastAPI application")

    try:
        await app.state.workers.stop_all()
        logger.info("Background workers stopped")

        if settings.persistence_backend == "sqlalchemy":
            await close_db()
            logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}", exc_info=True)

    logger.info("Application shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        use_lifespan: Attach the startup/shutdown lifespan; tests that put
            their own engine on ``app.state`` turn this off.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Innkeeper Reservation API",
        description="RPC-over-HTTP API for hotel room allocation without double booking",
        version=SERVICE_VERSION,
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
        expose_headers=["X-Request-ID", "Retry-After", "traceparent", "tracestate"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
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
        """Liveness probe."""
        return {
            "status": "healthy",
            "service": "innkeeper-api",
            "version": SERVICE_VERSION,
            "environment": settings.environment,
        }

    @app.get(
        "/ready",
        tags=["Health"],
        summary="Readiness Check",
        description="Check that the engine is loaded and persistence answers",
        response_model=ReadinessResponse,
    )
    async def readiness_check(request: Request):
        """
        Readiness probe.

        Lists rooms through the engine so a persistence outage reports
        ``not_ready`` with a 503.
        """
        engine = getattr(request.app.state, "engine", None)
        ready = engine is not None and (await engine.list_rooms()).ok
        body = ReadinessResponse(
            status=HealthStatus.READY if ready else HealthStatus.NOT_READY,
            timestamp=datetime.now(timezone.utc),
            version=SERVICE_VERSION,
            persistence=settings.persistence_backend,
            claims=len(engine.store) if engine is not None else 0,
        )
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content=body.model_dump(mode="json"),
        )

    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        """Service information endpoint."""
        return {
            "service": "innkeeper-api",
            "version": SERVICE_VERSION,
            "description": "Room allocation engine for hotel reservations",
            "environment": settings.environment,
            "persistence": settings.persistence_backend,
            "features": {
                "authentication": True,
                "idempotency": True,
                "tracing": True,
                "problem_details": True,
                "audit_log": True,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "info": "/info",
                "metrics": "/metrics",
                "docs": "/docs" if settings.debug else None,
            },
        }

    # Register API routers
    app.include_router(health_router)
    app.include_router(room_router)
    app.include_router(booking_router)
    app.include_router(metrics_router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "innkeeper.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
