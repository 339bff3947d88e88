"""
FastAPI application for the automation engine.

The API process owns the database pool and any batch jobs started through
it. The trigger scheduler runs in the worker process (app/jobs/worker.py).
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.db.pool import db_pool
from app.features.automation.api.router import router as automation_router
from app.features.automation.services import shutdown_automation_service
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL, json_output=settings.environment != "development")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the pool on startup; stop batch jobs before closing it on shutdown."""

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        **settings.get_engine_config(),
    )

    try:
        await db_pool.initialize()
    except Exception as e:
        logger.error("Failed to initialize database pool", error=str(e))
        raise

    yield

    logger.info("Application shutting down")

    # Batch jobs write their progress on cancellation, so the pool must still be open
    try:
        await shutdown_automation_service()
    except Exception as e:
        logger.error("Error stopping batch jobs", error=str(e), error_type=type(e).__name__)

    try:
        await db_pool.close()
        logger.info("Database pool closed")
    except Exception as e:
        logger.error("Error closing database pool", error=str(e))


app = FastAPI(
    title="Aura Automation Engine",
    description="Adaptive alarms, context-aware execution and batch messaging",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(automation_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing; health checks are logged at debug."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log = logger.debug if request.url.path in ("/healthz", "/readyz") else logger.info
    log(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
