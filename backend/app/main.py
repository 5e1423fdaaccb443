"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 5000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import Settings, get_settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.error_tracking import init_error_tracking
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.rate_limit import FixedWindowRateLimiter

# ── Delivery & location ──
from backend.app.alerts.channels import build_channels
from backend.app.alerts.dispatcher import ChannelDispatcher
from backend.app.location import (
    GeolocationProvider,
    LocationTimeline,
    LocationTimelineTracker,
    build_geolocation_provider,
)

# ── API routers ──
from backend.app.api.v1.sos import router as sos_router

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    geolocation_provider: Optional[GeolocationProvider] = None,
) -> FastAPI:
    """
    Build the application.

    ``http_client`` and ``geolocation_provider`` replace the ones built
    from settings; an injected client is left open on shutdown.
    """
    settings = settings or get_settings()

    # ── Application lifespan (startup / shutdown) ──

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        init_error_tracking(settings)

        client = http_client or httpx.AsyncClient(timeout=settings.CHANNEL_TIMEOUT_SECONDS)
        channels = build_channels(settings, client)
        app.state.dispatcher = ChannelDispatcher(
            channels, timeout_seconds=settings.CHANNEL_TIMEOUT_SECONDS,
        )
        if not app.state.dispatcher.channels:
            logger.error("No notification channel is configured; SOS requests will fail")

        app.state.rate_limiter = FixedWindowRateLimiter(
            settings.RATE_LIMIT_QUOTA, settings.RATE_LIMIT_WINDOW_SECONDS,
        )

        provider = geolocation_provider or build_geolocation_provider(settings, client)
        tracker = None
        if provider is not None:
            tracker = LocationTimelineTracker(
                provider,
                LocationTimeline(settings.LOCATION_RETENTION_SECONDS),
                interval_seconds=settings.LOCATION_SAMPLE_INTERVAL_SECONDS,
                acquire_timeout_seconds=settings.LOCATION_ACQUIRE_TIMEOUT_SECONDS,
            )
            await tracker.start()
        app.state.tracker = tracker

        try:
            yield
        finally:
            if tracker is not None:
                await tracker.stop()
            if http_client is None:
                await client.aclose()
            logger.info("Shutting down %s", settings.APP_NAME)

    # ── Create application ──

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Emergency SOS alert delivery. Validates an alert, applies "
            "per-client rate limiting, and delivers it through the first "
            "configured channel that accepts it (email API, SMTP, SMS, "
            "push), optionally with the sender's recent location timeline."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ── Middleware stack (order matters — outermost first) ──

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(sos_router)

    # ── Root & health endpoints ──

    async def _report():
        return await run_health_check(
            settings,
            dispatcher=getattr(app.state, "dispatcher", None),
            tracker=getattr(app.state, "tracker", None),
            rate_limiter=getattr(app.state, "rate_limiter", None),
        )

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "endpoints": ["POST /api/send-sos-email"],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe — channels, tracker, rate limiter."""
        report = await _report()
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """Kubernetes readiness probe — can we deliver an alert?"""
        report = await _report()
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


# ── Initialise logging ──
setup_logging()

app = create_app()
