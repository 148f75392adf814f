# fitrelay/main.py
"""
FastAPI application for the workout leaderboard with Redis and relay lifecycle management.
"""

import time
import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request

from fitrelay.config import settings
from fitrelay.features.workout_leaderboard.api.router import router as leaderboard_router
from fitrelay.infrastructure.observability.logging import get_logger, setup_logging
from fitrelay.routes import health
from fitrelay.services.nostr.relay_client import relay_pool
from fitrelay.services.redis_client import fast_redis

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        relays=len(settings.NOSTR_RELAYS),
    )

    # Redis only backs the shared view cache; the API still serves from memory without it
    try:
        logger.info("Initializing Redis connection")
        await fast_redis.initialize()
    except RuntimeError as e:
        logger.warning("Redis unavailable at startup, continuing without shared cache", error=str(e))

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        logger.info("Closing relay connections")
        await relay_pool.close()
    except OSError as e:
        logger.error("Error closing relay connections", error=str(e))
        shutdown_errors.append(f"Relays: {e}")

    logger.info("Closing Redis connection")
    await fast_redis.close()

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Workout Leaderboard",
    description="Leaderboards and charity rankings aggregated from Nostr workout events",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(leaderboard_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing and a request id for tracing."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id)

    start_time = time.time()
    try:
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        structlog.contextvars.unbind_contextvars("request_id")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
