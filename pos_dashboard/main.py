"""
FastAPI Application

Main entry point for the POS Dashboard API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import make_asgi_app
import structlog

from pos_dashboard.config import get_settings
from pos_dashboard.config.logging import configure_logging
from pos_dashboard.database.connection import (
    init_database,
    close_database,
    get_session_factory,
)
from pos_dashboard.serving.dashboard import DashboardRegistry
from pos_dashboard.serving.settings_store import (
    SettingsStore,
    init_redis,
    close_redis,
)
from pos_dashboard.serving.api.middleware import RequestLoggingMiddleware
from pos_dashboard.serving.api.routes import health_router, dashboard_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting POS Dashboard API")
    app.state.dashboards = None

    try:
        await init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.warning(f"Database init failed: {e}")

    settings_store = None
    try:
        redis = await init_redis()
        settings_store = SettingsStore(redis)
        logger.info("Redis initialized")
    except Exception as e:
        # Thresholds fall back to the configured default
        logger.warning(f"Redis init failed: {e}")

    try:
        app.state.dashboards = DashboardRegistry(get_session_factory(), settings_store)
    except RuntimeError as e:
        logger.error("Dashboard service unavailable", error=str(e))

    yield

    logger.info("Shutting down...")
    if app.state.dashboards is not None:
        await app.state.dashboards.close()
    await close_database()
    await close_redis()


def create_app() -> FastAPI:
    """Build the FastAPI application"""
    settings = get_settings()

    app = FastAPI(
        title="POS Dashboard API",
        description="Sales, profit and inventory metrics for the POS dashboard",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(dashboard_router, prefix="/api/v1/dashboard", tags=["Dashboard"])

    # Prometheus scrape endpoint
    app.mount("/metrics", make_asgi_app())

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "POS Dashboard API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
