"""
LeadSync API: lead pipeline sync, offline write queue and notifications
over a Google Sheets record store.
"""

import asyncio
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from leadsync.config import settings
from leadsync.container import build_container, start_container, stop_container
from leadsync.infrastructure.observability.logging import get_logger, setup_logging
from leadsync.jobs.sync_job import (
    start_notification_scheduler,
    start_queue_flush_scheduler,
    start_sync_scheduler,
)
from leadsync.routes import auth, health, leads, lifecycle, notifications

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service container, hydrate the session and start the schedulers."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    # A container set before startup (tests) is used as-is
    container = getattr(app.state, "container", None) or build_container(settings)
    app.state.container = container
    startup_tasks = []
    schedulers: list[asyncio.Task] = []

    try:
        logger.info("Starting service container")
        await start_container(container)
        startup_tasks.append("container")

        if container.config.RUN_SCHEDULERS:
            for name, job in (
                ("sync", start_sync_scheduler),
                ("queue_flush", start_queue_flush_scheduler),
                ("digest_flush", start_notification_scheduler),
            ):
                schedulers.append(asyncio.create_task(job(container), name=name))
            startup_tasks.append("schedulers")

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)
        if "container" in startup_tasks:
            try:
                await stop_container(container)
            except Exception as cleanup_error:
                logger.error("Error cleaning up service container", error=str(cleanup_error))
        raise

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    for task in schedulers:
        task.cancel()
    if schedulers:
        results = await asyncio.gather(*schedulers, return_exceptions=True)
        for task, result in zip(schedulers, results):
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                shutdown_errors.append(f"{task.get_name()}: {result}")

    try:
        logger.info("Stopping service container")
        await stop_container(container)
    except Exception as e:
        logger.error("Error stopping service container", error=str(e))
        shutdown_errors.append(f"Container: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="LeadSync",
    description="Lead pipeline sync and notifications over a shared spreadsheet",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(lifecycle.router)
app.include_router(leads.router)
app.include_router(notifications.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
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
