#!/usr/bin/env python3
"""Admin script to run the daily execution backfill on demand.

Usage:
    uv run python scripts/run_daily_generation.py
    uv run python scripts/run_daily_generation.py --task <care_task_id>
"""

import argparse
import asyncio
import logging
import sys

from src.core import db_client
from src.core.db_client import close_connection, init_db
from src.core.scheduler import DailyExecutionScheduler
from src.core.time_utils import SystemClock
from src.services.care_task_service import TASKS


logger = logging.getLogger(__name__)


async def run_all(scheduler: DailyExecutionScheduler) -> None:
    """Backfill every active recurring task."""
    summary = await scheduler.run_once()
    logger.info(
        "Scanned %d tasks: %d executions created, %d skipped, %d failed",
        summary.tasks_scanned,
        summary.executions_created,
        summary.tasks_skipped,
        summary.tasks_failed,
    )


async def run_single(scheduler: DailyExecutionScheduler, task_id: str) -> None:
    """Backfill one care task.

    Args:
        scheduler: Scheduler providing the clock and backfill window
        task_id: ID of the care task to backfill
    """
    try:
        record = await db_client.get_record(collection=TASKS, record_id=task_id)
    except db_client.RecordNotFoundError:
        logger.error("Care task %s not found", task_id)
        sys.exit(1)

    if not record.get("is_active"):
        logger.error("Care task %s is inactive", task_id)
        sys.exit(1)

    created = await scheduler.generate_for_task(record, today=scheduler.clock.today())
    if created is None:
        logger.info("Care task %s was skipped (one-off, invalid start date or future year)", task_id)
        return
    logger.info("Created %d executions for care task %s", len(created), task_id)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(description="Run the daily execution backfill on demand")
    parser.add_argument(
        "--task",
        type=str,
        default=None,
        metavar="CARE_TASK_ID",
        help="Backfill only this care task (default: every active recurring task)",
    )
    return parser


async def run(task_id: str | None) -> None:
    """Open the store, backfill and close it again."""
    await init_db()
    scheduler = DailyExecutionScheduler(clock=SystemClock())
    try:
        if task_id:
            await run_single(scheduler, task_id)
        else:
            await run_all(scheduler)
    finally:
        await close_connection()


def main() -> None:
    """Main entry point."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    args = build_parser().parse_args()
    asyncio.run(run(args.task))


if __name__ == "__main__":
    main()
