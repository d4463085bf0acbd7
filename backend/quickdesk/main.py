"""
QuickDesk - FastAPI Application

Wires settings, logging, middleware, error handlers and the /api routers
together, and runs the notification worker alongside the API when enabled.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .repositories.mongo_client import create_indexes, close_connection, health_check
from .repositories.notification_repo import NotificationRepository
from .scheduler.notification_worker import start_worker, stop_worker, is_worker_running
from .utils.logger import setup_logging, get_logger

setup_logging()
logger = get_logger(__name__)

APP_NAME = "QuickDesk"
APP_VERSION = "1.0.0"
API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: indexes, then the outbox worker (unless disabled).
    Shutdown: worker first, so no job runs against a closed client.
    """
    logger.info(f"Starting {APP_NAME} {APP_VERSION} ({settings.environment})")

    try:
        create_indexes()
    except Exception as e:
        # The API still serves; /health reports the database as unhealthy
        logger.error(f"Failed to create indexes: {e}")

    if settings.notification_worker_enabled:
        try:
            start_worker()
        except Exception as e:
            logger.error(f"Failed to start notification worker: {e}")
    else:
        logger.info("Notification worker disabled; outbox entries will wait")

    yield

    stop_worker()
    close_connection()
    logger.info(f"{APP_NAME} stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title=APP_NAME,
        description="Helpdesk ticketing: endusers raise tickets, agents resolve them, admins manage the desk",
        version=APP_VERSION,
        lifespan=lifespan,
        docs_url=f"{API_PREFIX}/docs" if settings.debug else None,
        redoc_url=f"{API_PREFIX}/redoc" if settings.debug else None,
        openapi_url=f"{API_PREFIX}/openapi.json" if settings.debug else None,
    )

    _add_middleware(application)
    register_error_handlers(application)
    application.include_router(api_router, prefix=API_PREFIX)
    _add_service_routes(application)

    return application


def _add_middleware(app: FastAPI) -> None:
    # Browsers reject credentialed requests to a wildcard origin
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id", "Content-Disposition"],
    )
    app.add_middleware(CorrelationIdMiddleware)


def _add_service_routes(app: FastAPI) -> None:
    """Unauthenticated endpoints outside /api"""

    @app.get("/health", tags=["Health"])
    async def health() -> Dict[str, Any]:
        """Liveness plus a MongoDB ping, the worker state and the outbox backlog"""
        mongo = health_check()
        healthy = mongo["status"] == "healthy"
        return {
            "success": True,
            "status": "healthy" if healthy else "degraded",
            "version": APP_VERSION,
            "environment": settings.environment,
            "mongo": mongo,
            "notification_worker": {
                "enabled": settings.notification_worker_enabled,
                "running": is_worker_running(),
            },
            "outbox": NotificationRepository().count_by_status() if healthy else {},
        }

    @app.get("/", tags=["Health"])
    async def root() -> Dict[str, Any]:
        return {
            "name": APP_NAME,
            "version": APP_VERSION,
            "api": API_PREFIX,
            "docs": f"{API_PREFIX}/docs" if settings.debug else None,
        }


app = create_app()
