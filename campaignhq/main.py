"""
CampaignHQ API - FastAPI application entry point.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from . import __version__
from .config import Settings, get_settings
from .core import CampaignCore
from .errors import CoreError
from .limiter import limiter
from .logging_config import api_logger
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .responses import core_exception_handler
from .routes import (
    analytics_router,
    campaigns_router,
    content_router,
    schedule_router,
    settings_router,
)
from .worker.sweeper import SweepDriver


def create_app(settings: Optional[Settings] = None, core: Optional[CampaignCore] = None) -> FastAPI:
    """Build the API around ``core`` (or one configured from ``settings``)."""
    settings = settings or get_settings()
    core = core or CampaignCore.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle - startup and shutdown"""
        # Startup
        if settings.seed_demo_data and not core.list_campaigns():
            from .seed import seed_demo

            summary = seed_demo(core)
            api_logger.info("Seeded demo data", **summary)

        if settings.auto_sweep:
            driver = SweepDriver(core.scheduler, interval=settings.sweep_interval_seconds)
            driver.start_background()
            app.state.sweeper = driver

        yield  # App is running

        # Shutdown
        driver = getattr(app.state, "sweeper", None)
        if driver is not None and driver.running:
            driver.stop()
            api_logger.info("Stopped sweep driver on shutdown")

    app = FastAPI(
        title=settings.app_name,
        description="Backend API for the CampaignHQ dashboard",
        version=__version__,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.core = core
    app.state.sweeper = None

    # Add rate limiter to app state
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(CoreError, core_exception_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # Request logging middleware (only in debug mode)
    if settings.debug:
        app.add_middleware(RequestLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Accept",
            "Origin",
            "X-Requested-With",
        ],
        max_age=3600,  # Cache preflight requests for 1 hour
    )

    # Routes
    app.include_router(campaigns_router)
    app.include_router(content_router)
    app.include_router(schedule_router)
    app.include_router(analytics_router)
    app.include_router(settings_router)

    @app.get("/api/health")
    def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": __version__,
            "gateway": type(core.gateway).__name__,
            "analytics_reconciled": core.check_reconciliation(),
        }

    @app.get("/")
    def root():
        return {
            "message": settings.app_name,
            "docs": "/api/docs" if settings.debug else "Disabled in production",
        }

    return app


app = create_app()
