"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8080

Or from the project root:
    python -m backend.app.main

The lifespan builds the sender registry and scheduler, starts the timing
loop on startup and stops it on shutdown (pending notifications are kept
in memory only and are lost when the process exits).
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.errors import register_error_handlers
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.logging_config import get_logger, setup_logging
from backend.app.core.middleware import RequestLoggingMiddleware

# ── Domain ──
from backend.app.notifications.registry import SenderRegistry, build_default_registry
from backend.app.notifications.scheduler import NotificationScheduler

# ── API routers ──
from backend.app.api.v1.notifications import router as notification_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def create_app(
    registry: Optional[SenderRegistry] = None,
    scheduler: Optional[NotificationScheduler] = None,
) -> FastAPI:
    """
    Build the application.

    Tests pass their own registry (stub senders) and/or scheduler; by
    default both are built from settings.
    """
    if registry is None:
        registry = build_default_registry(settings)
    if scheduler is None:
        scheduler = NotificationScheduler(
            registry,
            granularity_seconds=settings.SCHEDULER_GRANULARITY_SECONDS,
            max_workers=settings.SCHEDULER_MAX_WORKERS,
            history_size=settings.SCHEDULER_HISTORY_SIZE,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown events."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        scheduler.start()
        yield
        logger.info("Shutting down %s", settings.APP_NAME)
        stopped = await run_in_threadpool(
            scheduler.stop, timeout=settings.SCHEDULER_STOP_TIMEOUT_SECONDS,
        )
        if not stopped:
            logger.warning("Some dispatches were still running at shutdown")
        if scheduler.pending_count:
            logger.warning(
                "%d scheduled notifications were not delivered before shutdown",
                scheduler.pending_count,
            )

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Multi-channel notification delivery (Slack, email, SMS) with "
            "immediate sends and precise time-triggered scheduling."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.scheduler = scheduler

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
    app.include_router(notification_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "channels": [c.value for c in registry.channels],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe — scheduler and channels."""
        report = await run_health_check(scheduler, registry)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(scheduler, registry)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backend.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD and settings.is_development,
    )
