"""
Piper Dispatch Tracking - FastAPI Backend

Main application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from piper_tracking.core.config import settings
from piper_tracking.db.postgres import async_session_maker, close_db, init_db
from piper_tracking.middleware.error_handler import setup_error_handlers
from piper_tracking.middleware.rate_limit import setup_rate_limiting
from piper_tracking.services.analytics_service import AnalyticsService
from piper_tracking.services.campaign_service import CampaignService
from piper_tracking.services.event_recorder import EventRecorder
from piper_tracking.services.tracking_codec import TrackingCodec

# Import routers
from piper_tracking.api.v1 import analytics_api, campaigns, health, tracking

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)
    logger.info("PostgreSQL: %s:%s", settings.postgres_host, settings.postgres_port)
    logger.info("Tracking URLs: %s", settings.tracking_url_prefix)

    # Validate production settings
    try:
        settings.validate_production_settings()
        logger.info("Production settings validated successfully")
    except ValueError as e:
        if settings.environment == "production":
            logger.error("CRITICAL: %s", e)
            raise  # Stop startup in production with invalid config
        else:
            logger.warning("Production settings validation: %s", e)

    # Initialize PostgreSQL
    try:
        await init_db()
        logger.info("PostgreSQL connected and tables created")
    except Exception as e:
        logger.error("PostgreSQL initialization failed: %s", e)
        logger.error("Tracking events will be dropped until the database is reachable")

    yield

    # Shutdown
    await close_db()
    logger.info("PostgreSQL disconnected")
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI app with its services, middleware and routers."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="""
        Piper Dispatch Tracking API

        Email delivery tracking for Piper newsletters.

        ## Features

        - **Tracking**: Open pixels, click redirects, unsubscribes and spam complaints
        - **Campaigns**: Draft, schedule and cancel campaigns; manage recipients
        - **Analytics**: Per-campaign engagement summaries

        ## Authentication

        Campaign and analytics routes expect a bearer JWT:
        `Authorization: Bearer <token>`
        """,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # App-scoped services
    app.state.tracking_codec = TrackingCodec(
        settings.tracking_signing_key,
        url_prefix=settings.tracking_url_prefix,
    )
    app.state.event_recorder = EventRecorder(async_session_maker)
    app.state.campaign_service = CampaignService(
        recipient_batch_size=settings.recipient_batch_size,
    )
    app.state.analytics_service = AnalyticsService()

    # CORS middleware
    # In production, only allow requests from the frontend domain
    allowed_origins = [settings.frontend_url]
    if settings.environment == "development":
        allowed_origins.extend([
            "http://localhost:3000",
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
    )

    # Rate limiting and error rendering
    setup_rate_limiting(app)
    setup_error_handlers(app)

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """API root - returns basic info."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Include routers
    app.include_router(health.router)  # Health check at /health (no /api/v1 prefix)
    app.include_router(health.metrics_router)
    app.include_router(tracking.router, prefix=settings.api_v1_prefix)
    app.include_router(campaigns.router, prefix=settings.api_v1_prefix)
    app.include_router(analytics_api.router, prefix=settings.api_v1_prefix)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "piper_tracking.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
