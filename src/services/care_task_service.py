"""Care task service for task CRUD, activation and execution generation."""

import logging
from datetime import date
from typing import Any

from src.core import db_client
from src.core.errors import ConflictError, NotFoundError, OwnershipError, ValidationError, store_errors
from src.core.logging import log_with_user_context, span
from src.core.time_utils import Clock, SystemClock, end_of_year, min_date
from src.core.validation import optional_date, parse_optional_integer, parse_optional_number, require_date
from src.domain.care_task import CareTask, TaskType
from src.models.service_models import TaskCreationResult
from src.services import recurrence_service
from src.services.recurrence_service import GenerationWindow


logger = logging.getLogger(__name__)

TASKS = "care_tasks"
CATEGORIES = "categories"

UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "description",
        "start_date",
        "end_date",
        "recurrence_interval_days",
        "task_type",
        "category_id",
        "yearly_budget",
        "estimated_unit_cost",
        "quantity_per_purchase",
        "quantity_unit",
    }
)

IS_ACTIVE_FILTERS = ("true", "false", "all")


async def load_owned_task(*, owner_id: str, task_id: str, store: Any = None) -> dict[str, Any]:
    """Fetch a care task record and check it belongs to owner_id.

    Args:
        owner_id: Caller's user ID
        task_id: Care task ID
        store: db_client module or an open db_client.Transaction

    Raises:
        NotFoundError: If the task does not exist
        OwnershipError: If the task belongs to another owner
    """
    store = store or db_client
    try:
        record = await store.get_record(collection=TASKS, record_id=task_id)
    except db_client.RecordNotFoundError:
        raise NotFoundError(f"Care task not found: {task_id}") from None

    if record.get("owner_id") != owner_id:
        raise OwnershipError(f"Care task {task_id} belongs to another owner")
    return record


async def ensure_category_exists(*, owner_id: str, category_id: str) -> dict[str, Any]:
    """Check the category exists for the owner.

    Raises:
        NotFoundError: If no such category exists for the owner
    """
    try:
        category = await db_client.get_record(collection=CATEGORIES, record_id=category_id)
    except db_client.RecordNotFoundError:
        raise NotFoundError(f"Category not found: {category_id}") from None

    if category.get("owner_id") != owner_id:
        raise NotFoundError(f"Category not found: {category_id}")
    return category


def _parse_task_type(value: object) -> TaskType:
    try:
        return TaskType(str(value))
    except ValueError:
        raise ValidationError("task_type must be either PURCHASE or GENERAL") from None


def _parse_interval(value: object) -> int:
    interval = parse_optional_integer(value, "recurrence_interval_days", min_value=0)
    if interval is None:
        raise ValidationError("recurrence_interval_days is required")
    return interval


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


async def create_task(
    *,
    owner_id: str,
    name: str,
    task_type: str,
    start_date: object,
    recurrence_interval_days: object,
    category_id: str,
    description: str | None = None,
    end_date: object = None,
    estimated_unit_cost: object = None,
    yearly_budget: object = None,
    quantity_per_purchase: object = None,
    quantity_unit: str | None = None,
    clock: Clock | None = None,
) -> TaskCreationResult:
    """Create a care task and synthesize its initial executions.

    A one-off task receives exactly one execution on its start date. A recurring
    task whose start year is not in the future is backfilled from its start date
    through min(end_date, December 31 of the current year).

    Raises:
        ValidationError: If a field is missing or malformed
        NotFoundError: If the category does not exist for the owner
    """
    clock = clock or SystemClock()

    with span("care_task_service.create_task"), store_errors():
        if not name or not name.strip():
            raise ValidationError("name is required")
        if not category_id:
            raise ValidationError("category_id is required")

        parsed_type = _parse_task_type(task_type)
        interval = _parse_interval(recurrence_interval_days)
        parsed_start = require_date(start_date, "start_date")
        parsed_end = optional_date(end_date, "end_date")
        if parsed_end and parsed_end < parsed_start:
            raise ValidationError("end_date cannot be earlier than start_date")

        unit_cost = parse_optional_number(estimated_unit_cost, "estimated_unit_cost", min_value=0)
        per_purchase = parse_optional_integer(quantity_per_purchase, "quantity_per_purchase", min_value=1)
        budget = parse_optional_number(yearly_budget, "yearly_budget", min_value=0)

        await ensure_category_exists(owner_id=owner_id, category_id=category_id)

        now = clock.now().isoformat()
        record = await db_client.create_record(
            collection=TASKS,
            data={
                "owner_id": owner_id,
                "name": name.strip(),
                "description": description or "",
                "task_type": parsed_type,
                "category_id": category_id,
                "recurrence_interval_days": interval,
                "start_date": parsed_start.isoformat(),
                "end_date": _iso(parsed_end),
                "estimated_unit_cost": unit_cost,
                "quantity_per_purchase": per_purchase,
                "quantity_unit": quantity_unit or None,
                "yearly_budget": budget,
                "is_active": True,
                "deactivated_at": None,
                "created_at": now,
                "updated_at": now,
            },
        )
        task = CareTask(**record)

        execution_ids: list[str] = []
        if task.is_one_off:
            execution = await db_client.create_record(
                collection=recurrence_service.EXECUTIONS,
                data=recurrence_service.build_execution_data(task=task, scheduled_date=task.start_date, now=now),
            )
            execution_ids.append(execution["id"])
        else:
            today = clock.today()
            if task.start_date.year <= today.year:
                range_end = min_date(task.end_date, end_of_year(today))
                if range_end is not None and task.start_date <= range_end:
                    execution_ids = await recurrence_service.backfill_executions(
                        owner_id=owner_id,
                        task=task,
                        window=GenerationWindow(min_scheduled_date=task.start_date, max_scheduled_date=range_end),
                        clock=clock,
                    )

        log_with_user_context(
            logger,
            "info",
            "Created care task",
            owner_id=owner_id,
            care_task_id=task.id,
            executions=len(execution_ids),
        )
        return TaskCreationResult(task=task, execution_ids=execution_ids)


async def get_task(*, owner_id: str, task_id: str) -> CareTask:
    with span("care_task_service.get_task"), store_errors():
        return CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id))


async def list_tasks(
    *,
    owner_id: str,
    task_type: str | None = None,
    category_id: str | None = None,
    is_active: str = "true",
    start_date_from: object = None,
    start_date_to: object = None,
    limit: int = 50,
    offset: int = 0,
) -> list[CareTask]:
    """List an owner's care tasks, newest first.

    Args:
        owner_id: Caller's user ID
        task_type: Only tasks of this type
        category_id: Only tasks in this category
        is_active: "true", "false" or "all"
        start_date_from: Only tasks starting on or after this date
        start_date_to: Only tasks starting on or before this date
        limit: Maximum number of tasks returned
        offset: Number of matching tasks skipped
    """
    with span("care_task_service.list_tasks"), store_errors():
        filters = [f'owner_id = "{db_client.sanitize_param(owner_id)}"']

        if task_type:
            filters.append(f'task_type = "{_parse_task_type(task_type)}"')
        if category_id:
            filters.append(f'category_id = "{db_client.sanitize_param(category_id)}"')

        if is_active not in IS_ACTIVE_FILTERS:
            raise ValidationError("is_active must be one of: true, false, all")
        if is_active != "all":
            filters.append(f'is_active = "{is_active}"')

        if start_date_from is not None:
            filters.append(f'start_date >= "{require_date(start_date_from, "start_date_from").isoformat()}"')
        if start_date_to is not None:
            filters.append(f'start_date <= "{require_date(start_date_to, "start_date_to").isoformat()}"')

        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must be non-negative")

        records = await db_client.list_all_records(
            collection=TASKS,
            filter_query=" && ".join(filters),
            sort="-created_at",
        )
        page = records[offset : offset + limit] if limit else records[offset:]

        logger.debug("Listed care tasks", extra={"owner_id": owner_id, "count": len(page)})
        return [CareTask(**record) for record in page]


async def update_task(
    *,
    owner_id: str,
    task_id: str,
    changes: dict[str, Any],
    clock: Clock | None = None,
) -> CareTask:
    """Apply a partial update to a care task.

    Each present field is validated on its own; None clears optional numbers.

    Raises:
        ValidationError: If a field is unknown or malformed
        NotFoundError: If the task or the new category does not exist
        OwnershipError: If the task belongs to another owner
    """
    clock = clock or SystemClock()

    with span("care_task_service.update_task"), store_errors():
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown care task fields: {', '.join(sorted(unknown))}")

        existing = CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id))
        update: dict[str, Any] = {}

        if "name" in changes:
            name = changes["name"]
            if not name or not str(name).strip():
                raise ValidationError("name cannot be empty")
            update["name"] = str(name).strip()

        if "description" in changes:
            update["description"] = changes["description"] or ""

        new_start = require_date(changes["start_date"], "start_date") if "start_date" in changes else None
        new_end = optional_date(changes["end_date"], "end_date") if "end_date" in changes else None
        effective_start = new_start or existing.start_date
        effective_end = new_end if "end_date" in changes else existing.end_date
        if effective_end is not None and effective_end < effective_start:
            raise ValidationError("end_date cannot be earlier than start_date")
        if new_start is not None:
            update["start_date"] = new_start.isoformat()
        if "end_date" in changes:
            update["end_date"] = _iso(new_end)

        if "recurrence_interval_days" in changes:
            update["recurrence_interval_days"] = _parse_interval(changes["recurrence_interval_days"])

        if "task_type" in changes:
            update["task_type"] = _parse_task_type(changes["task_type"])

        if "category_id" in changes:
            category_id = changes["category_id"]
            if category_id is not None:
                await ensure_category_exists(owner_id=owner_id, category_id=category_id)
            update["category_id"] = category_id

        if "estimated_unit_cost" in changes:
            update["estimated_unit_cost"] = parse_optional_number(
                changes["estimated_unit_cost"], "estimated_unit_cost", min_value=0
            )
        if "quantity_per_purchase" in changes:
            update["quantity_per_purchase"] = parse_optional_integer(
                changes["quantity_per_purchase"], "quantity_per_purchase", min_value=1
            )
        if "yearly_budget" in changes:
            update["yearly_budget"] = parse_optional_number(changes["yearly_budget"], "yearly_budget", min_value=0)

        if "quantity_unit" in changes:
            update["quantity_unit"] = changes["quantity_unit"] or None

        update["updated_at"] = clock.now().isoformat()
        record = await db_client.update_record(collection=TASKS, record_id=task_id, data=update)

        log_with_user_context(
            logger, "info", "Updated care task", owner_id=owner_id, care_task_id=task_id, fields=sorted(changes)
        )
        return CareTask(**record)


async def deactivate_task(*, owner_id: str, task_id: str, clock: Clock | None = None) -> CareTask:
    """Soft-delete a care task; it stops receiving new executions."""
    clock = clock or SystemClock()

    with span("care_task_service.deactivate_task"), store_errors():
        await load_owned_task(owner_id=owner_id, task_id=task_id)
        now = clock.now().isoformat()
        record = await db_client.update_record(
            collection=TASKS,
            record_id=task_id,
            data={"is_active": False, "deactivated_at": now, "updated_at": now},
        )
        log_with_user_context(logger, "info", "Deactivated care task", owner_id=owner_id, care_task_id=task_id)
        return CareTask(**record)


async def reactivate_task(*, owner_id: str, task_id: str, clock: Clock | None = None) -> CareTask:
    """Restore a deactivated care task."""
    clock = clock or SystemClock()

    with span("care_task_service.reactivate_task"), store_errors():
        await load_owned_task(owner_id=owner_id, task_id=task_id)
        record = await db_client.update_record(
            collection=TASKS,
            record_id=task_id,
            data={"is_active": True, "deactivated_at": None, "updated_at": clock.now().isoformat()},
        )
        log_with_user_context(logger, "info", "Reactivated care task", owner_id=owner_id, care_task_id=task_id)
        return CareTask(**record)


async def generate_next_for_task(*, owner_id: str, task_id: str, clock: Clock | None = None) -> str | None:
    """Generate the single next execution of an owned task.

    Returns:
        The new execution ID, or None for one-off tasks and finished series

    Raises:
        ConflictError: If the task is inactive
    """
    with span("care_task_service.generate_next_for_task"), store_errors():
        task = CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id))
        if not task.is_active:
            raise ConflictError("Cannot generate executions for an inactive task")
        if task.is_one_off:
            return None

        return await recurrence_service.generate_next_execution(owner_id=owner_id, task=task, clock=clock)


async def generate_remaining_executions(
    *,
    owner_id: str,
    task_id: str,
    clock: Clock | None = None,
) -> list[str]:
    """Generate every missing execution up to min(end_date, December 31 of the current year).

    Raises:
        ConflictError: If the task is inactive
    """
    clock = clock or SystemClock()

    with span("care_task_service.generate_remaining_executions"), store_errors():
        task = CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id))
        if not task.is_active:
            raise ConflictError("Cannot generate executions for an inactive task")
        if task.is_one_off:
            return []

        max_date = min_date(task.end_date, end_of_year(clock.today()))
        created = await recurrence_service.backfill_executions(
            owner_id=owner_id,
            task=task,
            window=GenerationWindow(max_scheduled_date=max_date),
            clock=clock,
        )

        log_with_user_context(
            logger,
            "info",
            "Generated remaining executions",
            owner_id=owner_id,
            care_task_id=task_id,
            count=len(created),
            up_to=max_date.isoformat() if max_date else None,
        )
        return created
