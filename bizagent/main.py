"""
Biz-Agent booking calendar.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from bizagent.config import get_settings
from bizagent.api.router import api_router
from bizagent.utils.redis_client import close_redis
from bizagent.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("bizagent")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Biz-Agent calendar starting up (env=%s)", settings.app_env)

    if not settings.google_calendar_configured:
        logger.warning(
            "Google Calendar not configured - bookings go to the in-memory calendar "
            "and are lost on restart."
        )

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    worker_tasks: list[asyncio.Task] = []
    if settings.slot_maintenance_enabled:
        from bizagent.workers.slot_maintenance import run_slot_maintenance
        worker_tasks.append(asyncio.create_task(run_slot_maintenance()))
        logger.info("Slot maintenance worker started")
    else:
        logger.info("Slot maintenance worker disabled (SLOT_MAINTENANCE_ENABLED=false)")

    yield

    # Graceful shutdown - give workers time to finish current work
    logger.info("Biz-Agent calendar shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        done, pending = await asyncio.wait(worker_tasks, timeout=10.0)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    await close_redis()
    logger.info("Biz-Agent calendar shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level, json_output=settings.log_json)

    application = FastAPI(
        title="Biz-Agent Calendar",
        description="Consultation slot booking synced with Google Calendar",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            settings.app_base_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID", "Accept", "Origin"],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
