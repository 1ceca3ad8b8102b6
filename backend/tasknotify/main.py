"""
Task Chat Notifier - Main FastAPI Application

Entry point: configures middleware, routes and the lifespan that wires the
service container, the scheduler and the change-stream event source.
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import Settings, settings as default_settings
from .container import ServiceContainer
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_client, get_database, create_indexes, health_check
from .repositories.async_mongo import create_async_client, get_async_database
from .utils.logger import setup_logging, get_logger

# Setup logging first
setup_logging()
logger = get_logger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Application Lifecycle
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Connects to MongoDB (sync + motor) and creates indexes
        - Builds the service container
        - Starts the scheduler and the event source (when enabled)

    Shutdown:
        - Stops the event source and scheduler
        - Closes HTTP and database clients

    A container already present on app.state (tests) is used as is.
    """
    settings: Settings = app.state.settings

    if getattr(app.state, "container", None) is not None:
        yield
        return

    logger.info("Starting Task Chat Notifier...")

    client = create_client(settings)
    db = get_database(client, settings)
    try:
        create_indexes(db)
    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")

    async_client = create_async_client(settings)
    http_client = httpx.AsyncClient()
    container = ServiceContainer(
        settings, db, http_client, async_db=get_async_database(async_client, settings)
    )
    app.state.container = container

    if settings.scheduler_enabled:
        container.scheduler.start()
    if settings.event_source_enabled and container.event_source is not None:
        await container.event_source.start()

    if not settings.chat_webhook_token:
        logger.warning("CHAT_WEBHOOK_TOKEN is not set; user notifications will not be delivered")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    if container.event_source is not None:
        await container.event_source.stop()
    container.scheduler.stop()
    await http_client.aclose()
    async_client.close()
    client.close()
    app.state.container = None
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or default_settings
    application = FastAPI(
        title="Task Chat Notifier",
        description="Delivers task and project notifications to a chat platform",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug and not settings.is_production else None,
        redoc_url="/api/redoc" if settings.debug and not settings.is_production else None,
        openapi_url="/api/openapi.json" if settings.debug and not settings.is_production else None,
    )
    application.state.settings = settings
    application.state.container = None

    _configure_middleware(application, settings)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure application middleware."""
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
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    # Health check endpoint (no auth required)
    @app.get("/health", tags=["Health"])
    async def health(request: Request):
        """Application health including database connectivity"""
        container: Optional[ServiceContainer] = request.app.state.container
        if container is None:
            return {"status": "starting", "version": VERSION}

        mongo_health = health_check(container.db)
        event_source = container.event_source
        return {
            "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
            "version": VERSION,
            "environment": container.settings.environment,
            "mongo": mongo_health,
            "scheduler": container.scheduler.is_running,
            "event_source": event_source.is_running if event_source is not None else False,
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
