"""Daily scheduler that keeps every active recurring task backfilled for the current year."""

import asyncio
import logging
from datetime import date

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core import db_client
from src.core.config import constants, settings
from src.core.scheduler_tracker import JobTracker, retry_job_with_backoff
from src.core.time_utils import Clock, SystemClock, end_of_year, min_date, start_of_year
from src.core.validation import to_date
from src.domain.care_task import CareTask
from src.models.service_models import GenerationRunSummary
from src.services import recurrence_service
from src.services.care_task_service import TASKS
from src.services.recurrence_service import GenerationWindow


logger = logging.getLogger(__name__)


class DailyExecutionScheduler:
    """Owns the daily backfill job.

    Built once by the application's composition root with its clock and job
    tracker. The first pass runs as soon as the scheduler starts, then once a
    day at the configured time in the configured timezone.
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        tracker: JobTracker | None = None,
        task_timeout_seconds: float | None = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.tracker = tracker or JobTracker()
        self.task_timeout_seconds = task_timeout_seconds or settings.scheduler_task_timeout_seconds
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def started(self) -> bool:
        return self._scheduler is not None

    def start(self) -> bool:
        """Register the daily job and start the scheduler.

        Returns:
            False if the scheduler is disabled in this process or already started
        """
        if self.started:
            logger.debug("Daily execution scheduler already started")
            return False

        if not settings.task_scheduler_enabled:
            logger.info("Daily execution scheduler disabled", extra={"environment": settings.environment})
            return False

        scheduler = AsyncIOScheduler(timezone=settings.timezone)
        scheduler.add_job(
            self._run_tracked,
            trigger=CronTrigger(
                hour=settings.scheduler_run_hour,
                minute=settings.scheduler_run_minute,
                timezone=settings.timezone,
            ),
            id=constants.DAILY_GENERATION_JOB,
            name="Backfill Care Task Executions",
            replace_existing=True,
            next_run_time=self.clock.now(),
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "Scheduled daily execution backfill: daily at %02d:%02d (%s)",
            settings.scheduler_run_hour,
            settings.scheduler_run_minute,
            settings.timezone,
        )
        return True

    def stop(self) -> None:
        """Stop the scheduler without waiting for a running pass."""
        if self._scheduler is None:
            return
        logger.info("Stopping daily execution scheduler")
        self._scheduler.shutdown(wait=False)
        self._scheduler = None

    async def _run_tracked(self) -> None:
        await retry_job_with_backoff(self.run_once, constants.DAILY_GENERATION_JOB, tracker=self.tracker)

    async def run_once(self) -> GenerationRunSummary:
        """Backfill every active task serially; a failing task never stops the scan."""
        today = self.clock.today()
        await self.tracker.record_job_start(constants.DAILY_GENERATION_JOB)

        records = await db_client.list_all_records(collection=TASKS, filter_query='is_active = "true"')

        created = skipped = failed = 0
        for record in records:
            task_id = record.get("id")
            try:
                async with asyncio.timeout(self.task_timeout_seconds):
                    generated = await self.generate_for_task(record, today=today)
            except Exception:
                failed += 1
                logger.exception("Backfill failed for care task", extra={"care_task_id": task_id})
                continue

            if generated is None:
                skipped += 1
            else:
                created += len(generated)

        summary = GenerationRunSummary(
            tasks_scanned=len(records),
            tasks_skipped=skipped,
            tasks_failed=failed,
            executions_created=created,
        )
        await self.tracker.record_job_success(
            constants.DAILY_GENERATION_JOB, generated=created, failed_tasks=failed
        )
        logger.info("Daily execution backfill finished", extra=summary.model_dump())
        return summary

    async def generate_for_task(self, record: dict, *, today: date) -> list[str] | None:
        """Backfill one task's current-year window.

        Returns:
            IDs of the created executions, or None if the task was skipped
        """
        if int(record.get("recurrence_interval_days") or 0) == 0:
            return None

        start = to_date(record.get("start_date"))
        if start is None:
            logger.warning("Skipping care task with invalid start_date", extra={"care_task_id": record.get("id")})
            return None
        if start.year > today.year:
            return None

        task = CareTask(**record)
        window_end = min_date(end_of_year(today), task.end_date)
        window = GenerationWindow(min_scheduled_date=start_of_year(today), max_scheduled_date=window_end)
        if window_end is None or window_end < window.min_scheduled_date:
            return []

        return await recurrence_service.backfill_executions(
            owner_id=task.owner_id,
            task=task,
            window=window,
            clock=self.clock,
        )
