"""
Housing Subsidy Workflow Engine - Main FastAPI Application

This is the entry point for the FastAPI application.
It configures middleware, routes, and lifecycle handlers.
"""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .scheduler.dev_scheduler import start_scheduler, stop_scheduler
from .services.factory import ServiceContainer, build_container
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

APP_NAME = "Housing Subsidy Workflow Engine"
APP_VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler

    Startup:
        - Builds the workflow registry and services (a malformed workflow
          definition raises ConfigurationError and aborts startup)
        - Creates MongoDB indexes
        - Starts the outbox dispatch scheduler

    Shutdown:
        - Stops scheduler
        - Closes database connections
    """
    logger.info(f"Starting {APP_NAME}...")

    if getattr(app.state, "container", None) is None:
        app.state.container = build_container(settings)

    uses_mongo = app.state.container.backend == "mongo"
    if uses_mongo:
        try:
            create_indexes()
        except Exception as e:
            logger.error(f"Failed to create indexes: {e}")

    if settings.scheduler_enabled:
        try:
            start_scheduler(app.state.container.outbox, app.state.container.notification_service)
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    stop_scheduler()
    if uses_mongo:
        close_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure the FastAPI application

    Args:
        container: Prebuilt components; when omitted they are built from
            settings during startup

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title=APP_NAME,
        description="State machine for housing subsidy applications: intake, control, reviews and approval",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )
    application.state.container = container

    _configure_middleware(application)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware"""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes"""
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    def health():
        """Application health including store connectivity"""
        container = app.state.container
        if container is None:
            store_health = {"status": "starting"}
        elif container.backend == "memory":
            store_health = {"status": "healthy", "backend": "memory"}
        else:
            store_health = health_check()
        return {
            "status": "healthy" if store_health.get("status") == "healthy" else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "store": store_health
        }

    @app.get("/", tags=["Health"])
    def root():
        """Root endpoint with API information"""
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "docs": "/api/docs" if settings.debug else None
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
