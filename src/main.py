"""caretrack - recurring care task executions and budget ledger."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core import scheduler_tracker
from src.core.config import constants
from src.core.db_client import close_connection, init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.scheduler import DailyExecutionScheduler
from src.core.time_utils import SystemClock


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so startup logs are captured
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    daily_scheduler = DailyExecutionScheduler(clock=SystemClock(), tracker=scheduler_tracker.job_tracker)
    daily_scheduler.start()
    app.state.daily_scheduler = daily_scheduler
    yield
    # Shutdown
    daily_scheduler.stop()
    await close_connection()


app = FastAPI(
    title="caretrack",
    description="Recurring care task executions and budget ledger",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with the daily backfill job status."""
    tracker = scheduler_tracker.job_tracker
    job_status = await tracker.get_job_status(constants.DAILY_GENERATION_JOB)
    dlq = tracker.get_dead_letter_queue()

    has_failures = job_status["consecutive_failures"] > 0 or job_status["last_failed_tasks"] > 0

    overall_status = "degraded" if has_failures else "healthy"
    if len(dlq) > 0:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": {constants.DAILY_GENERATION_JOB: job_status},
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
