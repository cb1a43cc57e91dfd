"""Recurrence engine: steps a care task's schedule forward one execution at a time."""

import logging
from datetime import date
from typing import Any

from pydantic import BaseModel

from src.core import db_client
from src.core.config import constants
from src.core.errors import OwnershipError
from src.core.logging import span
from src.core.time_utils import Clock, SystemClock, add_days
from src.domain.care_task import CareTask, TaskType
from src.domain.execution import ExecutionStatus


logger = logging.getLogger(__name__)

EXECUTIONS = "task_executions"


class GenerationWindow(BaseModel):
    """Bounds for generated scheduled dates (both inclusive)."""

    min_scheduled_date: date | None = None
    max_scheduled_date: date | None = None


def _beyond(candidate: date, end_date: date | None, max_date: date | None) -> bool:
    if end_date is not None and candidate > end_date:
        return True
    return max_date is not None and candidate > max_date


def compute_next_scheduled_date(
    *,
    start_date: date,
    interval_days: int,
    end_date: date | None = None,
    last_scheduled_date: date | None = None,
    window: GenerationWindow | None = None,
) -> date | None:
    """Next date in the series start_date, start_date + k, ... or None when none is due.

    The candidate follows the latest persisted execution; with a minimum window
    bound it is stepped forward until it reaches that bound.
    """
    candidate = start_date if last_scheduled_date is None else add_days(last_scheduled_date, interval_days)

    if interval_days == 0:
        return None

    max_date = window.max_scheduled_date if window else None

    if window and window.min_scheduled_date is not None:
        while candidate < window.min_scheduled_date:
            candidate = add_days(candidate, interval_days)
            if _beyond(candidate, end_date, max_date):
                return None

    if _beyond(candidate, end_date, max_date):
        return None

    return candidate


def build_execution_data(
    *,
    task: CareTask,
    scheduled_date: date,
    now: str,
    status: ExecutionStatus = ExecutionStatus.TODO,
) -> dict[str, Any]:
    """Record for a new execution with quantities copied from the task."""
    default_unit = constants.DEFAULT_PURCHASE_QUANTITY_UNIT if task.task_type == TaskType.PURCHASE else None
    return {
        "owner_id": task.owner_id,
        "care_task_id": task.id,
        "status": status,
        "scheduled_date": scheduled_date.isoformat(),
        "execution_date": None,
        "actual_cost": None,
        "quantity": 1,
        "quantity_purchased": task.quantity_per_purchase or 1,
        "quantity_unit": task.quantity_unit or default_unit,
        "evidence_url": None,
        "notes": "",
        "executed_by": None,
        "covered_by_execution_ref": None,
        "refund": None,
        "created_at": now,
        "updated_at": now,
    }


def task_executions_filter(task_id: str) -> str:
    return f'care_task_id = "{db_client.sanitize_param(task_id)}"'


async def generate_next_execution(
    *,
    owner_id: str,
    task: CareTask,
    window: GenerationWindow | None = None,
    clock: Clock | None = None,
) -> str | None:
    """Persist the task's next execution and return its id, or None if none is due.

    The latest-execution read and the insert run in one store transaction so
    two generators for the same task never create the same scheduled date.
    """
    if task.owner_id != owner_id:
        raise OwnershipError(f"Care task {task.id} does not belong to owner {owner_id}")

    if task.is_one_off or not task.is_active:
        return None

    clock = clock or SystemClock()

    async def _step(txn: db_client.Transaction) -> str | None:
        last = await txn.get_first_record(
            collection=EXECUTIONS,
            filter_query=task_executions_filter(task.id),
            sort="-scheduled_date",
        )
        last_date = date.fromisoformat(last["scheduled_date"]) if last and last.get("scheduled_date") else None

        candidate = compute_next_scheduled_date(
            start_date=task.start_date,
            interval_days=task.recurrence_interval_days,
            end_date=task.end_date,
            last_scheduled_date=last_date,
            window=window,
        )
        if candidate is None:
            return None

        record = await txn.create_record(
            collection=EXECUTIONS,
            data=build_execution_data(task=task, scheduled_date=candidate, now=clock.now().isoformat()),
        )
        return record["id"]

    with span("recurrence_service.generate_next_execution", care_task_id=task.id):
        execution_id = await db_client.run_in_transaction(_step)

    if execution_id:
        logger.debug("Generated execution", extra={"care_task_id": task.id, "execution_id": execution_id})
    return execution_id


async def backfill_executions(
    *,
    owner_id: str,
    task: CareTask,
    window: GenerationWindow,
    clock: Clock | None = None,
) -> list[str]:
    """Generate executions until none is due inside the window.

    Raises:
        ValueError: If neither the window nor the task bounds the series
    """
    if window.max_scheduled_date is None and task.end_date is None:
        msg = "Backfill needs an upper bound (window max or task end_date)"
        raise ValueError(msg)

    created: list[str] = []
    while True:
        execution_id = await generate_next_execution(owner_id=owner_id, task=task, window=window, clock=clock)
        if execution_id is None:
            break
        created.append(execution_id)

    if created:
        logger.info(
            "Backfilled executions",
            extra={"care_task_id": task.id, "owner_id": owner_id, "count": len(created)},
        )
    return created
