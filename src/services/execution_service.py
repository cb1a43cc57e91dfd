"""Execution service: manual creation, completion with covering, cancellation and refunds."""

import logging
from datetime import date
from typing import Any

from src.core import db_client
from src.core.config import constants
from src.core.errors import ConflictError, NotFoundError, OwnershipError, ValidationError, store_errors
from src.core.logging import log_with_user_context, span
from src.core.time_utils import Clock, SystemClock
from src.core.validation import (
    exceeds,
    optional_date,
    parse_optional_integer,
    parse_optional_number,
    require_date,
    require_number,
    round_money,
)
from src.domain.care_task import CareTask
from src.domain.execution import REFUND_STATUSES, ExecutionStatus, TaskExecution, derive_status
from src.models.service_models import CompletionResult
from src.services import execution_state_machine, recurrence_service
from src.services.care_task_service import load_owned_task


logger = logging.getLogger(__name__)

EXECUTIONS = recurrence_service.EXECUTIONS

EDITABLE_FIELDS = frozenset(
    {
        "status",
        "notes",
        "evidence_url",
        "quantity_purchased",
        "quantity_unit",
        "quantity",
        "scheduled_date",
        "execution_date",
        "actual_cost",
        "refund",
    }
)
REFUND_FIELDS = frozenset({"refund_amount", "refund_reason", "refund_evidence_url", "refund_date"})


async def _load_owned_execution(
    *,
    owner_id: str,
    task_id: str,
    execution_id: str,
    store: Any = None,
) -> tuple[CareTask, TaskExecution]:
    """Load a task and one of its executions, checking ownership of both."""
    store = store or db_client
    task = CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id, store=store))

    try:
        record = await store.get_record(collection=EXECUTIONS, record_id=execution_id)
    except db_client.RecordNotFoundError:
        raise NotFoundError(f"Task execution not found: {execution_id}") from None

    if record.get("care_task_id") != task_id:
        raise NotFoundError(f"Task execution not found: {execution_id}")
    if record.get("owner_id") != owner_id:
        raise OwnershipError(f"Task execution {execution_id} belongs to another owner")

    return task, TaskExecution(**record)


def _unit_cost(task: CareTask, cost: float | None, quantity: int) -> float | None:
    """Purchase costs are stored per unit; general costs as entered."""
    if cost is None:
        return None
    if task.is_purchase:
        return round_money(cost / max(quantity, 1))
    return cost


def _covered_filter(execution_id: str) -> str:
    return f'covered_by_execution_ref = "{db_client.sanitize_param(execution_id)}"'


async def _propagate_unit_cost(
    txn: db_client.Transaction,
    *,
    execution_id: str,
    unit_cost: float | None,
    now: str,
) -> int:
    """Copy a covering execution's per-unit cost onto the executions it covers."""
    covered = await txn.list_all_records(collection=EXECUTIONS, filter_query=_covered_filter(execution_id))
    for record in covered:
        await txn.update_record(
            collection=EXECUTIONS,
            record_id=record["id"],
            data={"actual_cost": unit_cost, "updated_at": now},
        )
    return len(covered)


async def _complete_in_txn(
    txn: db_client.Transaction,
    *,
    owner_id: str,
    task: CareTask,
    execution: TaskExecution,
    actual_cost: float | None,
    quantity: int | None,
    notes: str | None,
    evidence_url: str | None,
    execution_date: date | None,
    extra: dict[str, Any],
    now: str,
    today: date,
) -> CompletionResult:
    """Mark an execution DONE and cover later TODO executions for multi-unit purchases.

    The candidate query and every write share the caller's transaction.
    """
    execution_state_machine.ensure_transition(execution.status, ExecutionStatus.DONE)

    desired_quantity = quantity or execution.quantity or 1

    candidates: list[dict[str, Any]] = []
    if task.is_purchase and desired_quantity > 1:
        candidates = await txn.list_records(
            collection=EXECUTIONS,
            filter_query=(
                f'care_task_id = "{db_client.sanitize_param(task.id)}"'
                f' && status = "{ExecutionStatus.TODO}"'
                f' && scheduled_date >= "{execution.scheduled_date.isoformat()}"'
                f' && id != "{db_client.sanitize_param(execution.id)}"'
            ),
            sort="scheduled_date",
            per_page=desired_quantity - 1,
        )

    applied_quantity = min(desired_quantity, 1 + len(candidates))

    if actual_cost is not None:
        unit_cost = _unit_cost(task, actual_cost, applied_quantity)
    else:
        unit_cost = execution.actual_cost

    executed_on = (execution_date or today).isoformat()
    shared_evidence = evidence_url if evidence_url is not None else execution.evidence_url

    update: dict[str, Any] = {
        **extra,
        "status": ExecutionStatus.DONE,
        "execution_date": executed_on,
        "executed_by": owner_id,
        "quantity": applied_quantity,
        "actual_cost": unit_cost,
        "updated_at": now,
    }
    if notes is not None:
        update["notes"] = notes
    if evidence_url is not None:
        update["evidence_url"] = evidence_url

    record = await txn.update_record(collection=EXECUTIONS, record_id=execution.id, data=update)

    covered_ids: list[str] = []
    for candidate in candidates:
        await txn.update_record(
            collection=EXECUTIONS,
            record_id=candidate["id"],
            data={
                "status": ExecutionStatus.COVERED,
                "quantity": 1,
                "covered_by_execution_ref": execution.id,
                "execution_date": executed_on,
                "evidence_url": shared_evidence,
                "executed_by": owner_id,
                "actual_cost": unit_cost,
                "notes": f"covered by the purchase on {executed_on}",
                "updated_at": now,
            },
        )
        covered_ids.append(candidate["id"])

    return CompletionResult(
        execution=TaskExecution(**record),
        applied_quantity=applied_quantity,
        covered_execution_ids=covered_ids,
    )


def _amended_refund_update(
    *,
    task: CareTask,
    execution: TaskExecution,
    refund_changes: dict[str, Any],
    cost_provided: bool,
    actual_cost: float | None,
    now: str,
) -> dict[str, Any]:
    """Build the update for a refund amendment and re-derive the status."""
    if execution.refund is None:
        raise ConflictError("No refund has been recorded for this execution")

    unknown = set(refund_changes) - REFUND_FIELDS
    if unknown:
        raise ValidationError(f"Unknown refund fields: {', '.join(sorted(unknown))}")

    refund = execution.refund.model_dump(mode="json")

    if "refund_amount" in refund_changes:
        amount = parse_optional_number(refund_changes["refund_amount"], "refund.refund_amount", min_value=0)
        if amount is None or amount <= 0:
            raise ValidationError("refund_amount must be greater than 0 when updating a refund")
        refund["refund_amount"] = amount
    if "refund_reason" in refund_changes:
        refund["refund_reason"] = refund_changes["refund_reason"] or ""
    if "refund_evidence_url" in refund_changes:
        refund["refund_evidence_url"] = refund_changes["refund_evidence_url"] or None
    if "refund_date" in refund_changes:
        refund["refund_date"] = require_date(refund_changes["refund_date"], "refund.refund_date").isoformat()
    refund["updated_at"] = now

    update: dict[str, Any] = {}
    cost = execution.actual_cost
    if cost_provided:
        cost = _unit_cost(task, actual_cost, execution.quantity)
        update["actual_cost"] = cost

    if cost is None or cost <= 0:
        raise ConflictError("A positive actual_cost is required while a refund is recorded")
    if exceeds(refund["refund_amount"], cost):
        raise ConflictError("Refund amount cannot exceed actual cost")

    update["refund"] = refund
    update["status"] = derive_status(cost, refund)
    update["updated_at"] = now
    return update


async def create_manual_execution(
    *,
    owner_id: str,
    task_id: str,
    status: str = ExecutionStatus.TODO,
    scheduled_date: object = None,
    execution_date: object = None,
    quantity_purchased: object = 1,
    quantity_unit: str | None = None,
    actual_cost: object = None,
    notes: str | None = None,
    clock: Clock | None = None,
) -> TaskExecution:
    """Record an execution outside the generated schedule.

    Raises:
        ValidationError: If status is not TODO or DONE, or a field is malformed
        NotFoundError: If the task does not exist
    """
    clock = clock or SystemClock()

    with span("execution_service.create_manual_execution"), store_errors():
        if status not in constants.EXECUTION_CREATION_ALLOWED_STATUSES:
            allowed = ", ".join(constants.EXECUTION_CREATION_ALLOWED_STATUSES)
            raise ValidationError(f"status must be one of: {allowed}")

        today = clock.today()
        parsed_scheduled = require_date(scheduled_date or today, "scheduled_date")
        if execution_date is not None:
            parsed_execution_date = optional_date(execution_date, "execution_date")
        elif status == ExecutionStatus.DONE:
            parsed_execution_date = today
        else:
            parsed_execution_date = None

        parsed_quantity = parse_optional_integer(quantity_purchased, "quantity_purchased", min_value=1)
        parsed_cost = parse_optional_number(actual_cost, "actual_cost", min_value=0)

        task = CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id))

        now = clock.now().isoformat()
        data = recurrence_service.build_execution_data(
            task=task,
            scheduled_date=parsed_scheduled,
            now=now,
            status=ExecutionStatus(status),
        )
        data.update(
            {
                "quantity_purchased": parsed_quantity,
                "actual_cost": parsed_cost,
                "execution_date": parsed_execution_date.isoformat() if parsed_execution_date else None,
                "executed_by": owner_id if parsed_execution_date else None,
                "notes": notes or "",
            }
        )
        if quantity_unit:
            data["quantity_unit"] = quantity_unit

        record = await db_client.create_record(collection=EXECUTIONS, data=data)

        log_with_user_context(
            logger,
            "info",
            "Created manual execution",
            owner_id=owner_id,
            care_task_id=task_id,
            execution_id=record["id"],
            status=status,
        )
        return TaskExecution(**record)


async def complete_execution(
    *,
    owner_id: str,
    task_id: str,
    execution_id: str,
    actual_cost: object = None,
    quantity: object = None,
    notes: str | None = None,
    evidence_url: str | None = None,
    execution_date: object = None,
    clock: Clock | None = None,
) -> CompletionResult:
    """Complete a TODO execution, covering later TODO executions for multi-unit purchases.

    For a purchase of quantity n, up to n - 1 later TODO executions of the same
    task become COVERED and every involved execution carries the per-unit cost.

    Raises:
        ConflictError: If the execution is not TODO
        ValidationError: If an input is malformed
    """
    clock = clock or SystemClock()

    parsed_cost = parse_optional_number(actual_cost, "actual_cost", min_value=0)
    parsed_quantity = parse_optional_integer(quantity, "quantity", min_value=1)
    parsed_date = optional_date(execution_date, "execution_date")

    async def _complete(txn: db_client.Transaction) -> CompletionResult:
        task, execution = await _load_owned_execution(
            owner_id=owner_id, task_id=task_id, execution_id=execution_id, store=txn
        )
        return await _complete_in_txn(
            txn,
            owner_id=owner_id,
            task=task,
            execution=execution,
            actual_cost=parsed_cost,
            quantity=parsed_quantity,
            notes=notes,
            evidence_url=evidence_url,
            execution_date=parsed_date,
            extra={},
            now=clock.now().isoformat(),
            today=clock.today(),
        )

    with span("execution_service.complete_execution", execution_id=execution_id), store_errors():
        result = await db_client.run_in_transaction(_complete)

    log_with_user_context(
        logger,
        "info",
        "Completed execution",
        owner_id=owner_id,
        execution_id=execution_id,
        applied_quantity=result.applied_quantity,
        covered=len(result.covered_execution_ids),
    )
    return result


async def cancel_execution(
    *,
    owner_id: str,
    task_id: str,
    execution_id: str,
    clock: Clock | None = None,
) -> TaskExecution:
    """Cancel a TODO execution. Cancelled executions are kept but never change again."""
    clock = clock or SystemClock()

    async def _cancel(txn: db_client.Transaction) -> dict[str, Any]:
        _, execution = await _load_owned_execution(
            owner_id=owner_id, task_id=task_id, execution_id=execution_id, store=txn
        )
        execution_state_machine.ensure_transition(execution.status, ExecutionStatus.CANCELLED)
        return await txn.update_record(
            collection=EXECUTIONS,
            record_id=execution_id,
            data={"status": ExecutionStatus.CANCELLED, "updated_at": clock.now().isoformat()},
        )

    with span("execution_service.cancel_execution", execution_id=execution_id), store_errors():
        record = await db_client.run_in_transaction(_cancel)

    log_with_user_context(logger, "info", "Cancelled execution", owner_id=owner_id, execution_id=execution_id)
    return TaskExecution(**record)


async def refund_execution(
    *,
    owner_id: str,
    task_id: str,
    execution_id: str,
    refund_amount: object,
    refund_reason: str | None = None,
    refund_evidence_url: str | None = None,
    refund_date: object = None,
    clock: Clock | None = None,
) -> TaskExecution:
    """Attach a refund to a completed purchase execution.

    The status becomes REFUNDED when the refund equals the actual cost (within
    MONEY_EPSILON) and PARTIALLY_REFUNDED otherwise.

    Raises:
        ConflictError: If the task is not a purchase, the execution is not DONE,
            already has a refund, has no positive cost, or the amount exceeds the cost
        ValidationError: If the amount is not a positive number
    """
    clock = clock or SystemClock()

    amount = require_number(refund_amount, "refund_amount", min_value=0)
    if amount <= 0:
        raise ValidationError("refund_amount must be greater than 0")
    parsed_date = optional_date(refund_date, "refund_date")

    async def _refund(txn: db_client.Transaction) -> dict[str, Any]:
        task, execution = await _load_owned_execution(
            owner_id=owner_id, task_id=task_id, execution_id=execution_id, store=txn
        )
        if not task.is_purchase:
            raise ConflictError("Refunds are only supported for purchase tasks")
        if execution.refund is not None:
            raise ConflictError("A refund has already been recorded for this execution")
        if execution.status != ExecutionStatus.DONE:
            raise ConflictError(f"Only completed executions can be refunded (status is {execution.status})")

        cost = execution.actual_cost
        if cost is None or cost <= 0:
            raise ConflictError("Cannot process a refund without a positive actual_cost")
        if exceeds(amount, cost):
            raise ConflictError("Refund amount cannot exceed actual cost")

        now = clock.now().isoformat()
        refund = {
            "refund_amount": amount,
            "refund_reason": refund_reason or "",
            "refund_evidence_url": refund_evidence_url or None,
            "refund_date": (parsed_date or clock.today()).isoformat(),
            "refunded_by": owner_id,
            "created_at": now,
            "updated_at": now,
        }
        return await txn.update_record(
            collection=EXECUTIONS,
            record_id=execution_id,
            data={"refund": refund, "status": derive_status(cost, refund), "updated_at": now},
        )

    with span("execution_service.refund_execution", execution_id=execution_id), store_errors():
        record = await db_client.run_in_transaction(_refund)

    execution = TaskExecution(**record)
    log_with_user_context(
        logger,
        "info",
        "Recorded refund",
        owner_id=owner_id,
        execution_id=execution_id,
        refund_amount=amount,
        status=execution.status,
    )
    return execution


async def amend_refund(
    *,
    owner_id: str,
    task_id: str,
    execution_id: str,
    changes: dict[str, Any],
    clock: Clock | None = None,
) -> TaskExecution:
    """Edit an existing refund (amount, reason, evidence, date) and/or the actual cost.

    Raises:
        ConflictError: If there is no refund, or the refund would exceed the cost
    """
    clock = clock or SystemClock()

    unknown = set(changes) - REFUND_FIELDS - {"actual_cost"}
    if unknown:
        raise ValidationError(f"Unknown refund fields: {', '.join(sorted(unknown))}")

    cost_provided = "actual_cost" in changes
    parsed_cost = parse_optional_number(changes.get("actual_cost"), "actual_cost", min_value=0)
    refund_changes = {key: value for key, value in changes.items() if key in REFUND_FIELDS}

    async def _amend(txn: db_client.Transaction) -> dict[str, Any]:
        task, execution = await _load_owned_execution(
            owner_id=owner_id, task_id=task_id, execution_id=execution_id, store=txn
        )
        now = clock.now().isoformat()
        update = _amended_refund_update(
            task=task,
            execution=execution,
            refund_changes=refund_changes,
            cost_provided=cost_provided,
            actual_cost=parsed_cost,
            now=now,
        )
        record = await txn.update_record(collection=EXECUTIONS, record_id=execution_id, data=update)
        if cost_provided:
            await _propagate_unit_cost(txn, execution_id=execution_id, unit_cost=update["actual_cost"], now=now)
        return record

    with span("execution_service.amend_refund", execution_id=execution_id), store_errors():
        record = await db_client.run_in_transaction(_amend)

    execution = TaskExecution(**record)
    log_with_user_context(
        logger, "info", "Amended refund", owner_id=owner_id, execution_id=execution_id, status=execution.status
    )
    return execution


async def update_execution(
    *,
    owner_id: str,
    task_id: str,
    execution_id: str,
    changes: dict[str, Any],
    clock: Clock | None = None,
) -> TaskExecution:
    """Apply a partial edit to an execution.

    A status change to DONE runs completion (with covering) and to CANCELLED runs
    cancellation. Refund fields, or actual_cost on a refunded execution, go through
    refund amendment. Everything runs in one store transaction.

    Raises:
        ValidationError: If a field is unknown or malformed
        ConflictError: If the edit breaks a lifecycle rule
    """
    clock = clock or SystemClock()

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown execution fields: {', '.join(sorted(unknown))}")

    target_status: ExecutionStatus | None = None
    if "status" in changes:
        try:
            target_status = ExecutionStatus(changes["status"])
        except ValueError:
            raise ValidationError(f"Invalid status: {changes['status']}") from None

    refund_changes: dict[str, Any] | None = None
    if "refund" in changes:
        if not isinstance(changes["refund"], dict):
            raise ValidationError("refund must be an object")
        refund_changes = changes["refund"]

    plain: dict[str, Any] = {}
    if "notes" in changes:
        plain["notes"] = changes["notes"] or ""
    if "evidence_url" in changes:
        plain["evidence_url"] = changes["evidence_url"] or None
    if "quantity_purchased" in changes:
        plain["quantity_purchased"] = parse_optional_integer(
            changes["quantity_purchased"], "quantity_purchased", min_value=1
        )
    if "quantity_unit" in changes:
        plain["quantity_unit"] = changes["quantity_unit"] or None

    new_scheduled = require_date(changes["scheduled_date"], "scheduled_date") if "scheduled_date" in changes else None
    date_provided = "execution_date" in changes
    new_execution_date = optional_date(changes.get("execution_date"), "execution_date")

    new_quantity: int | None = None
    if "quantity" in changes:
        new_quantity = parse_optional_integer(changes["quantity"], "quantity", min_value=1)
        if new_quantity is None:
            raise ValidationError("quantity must be at least 1")

    cost_provided = "actual_cost" in changes
    parsed_cost = parse_optional_number(changes.get("actual_cost"), "actual_cost", min_value=0)

    async def _apply(txn: db_client.Transaction) -> dict[str, Any]:
        task, execution = await _load_owned_execution(
            owner_id=owner_id, task_id=task_id, execution_id=execution_id, store=txn
        )
        now = clock.now().isoformat()
        status_change = target_status is not None and target_status != execution.status
        ordinary_edit = bool(plain) or new_scheduled is not None or date_provided or new_quantity is not None

        if refund_changes is not None and execution.refund is None:
            raise ConflictError("No refund has been recorded for this execution")

        if execution.refund is not None:
            if status_change:
                raise ConflictError("Status cannot be changed after a refund has been recorded")
            if ordinary_edit:
                raise ConflictError("Refunded executions only accept refund amendments")
            if refund_changes is None and not cost_provided:
                return await txn.get_record(collection=EXECUTIONS, record_id=execution_id)
            update = _amended_refund_update(
                task=task,
                execution=execution,
                refund_changes=refund_changes or {},
                cost_provided=cost_provided,
                actual_cost=parsed_cost,
                now=now,
            )
            record = await txn.update_record(collection=EXECUTIONS, record_id=execution_id, data=update)
            if cost_provided:
                await _propagate_unit_cost(txn, execution_id=execution_id, unit_cost=update["actual_cost"], now=now)
            return record

        if status_change and target_status in REFUND_STATUSES:
            raise ConflictError("Use the refund operation to mark executions as refunded")

        if status_change and target_status == ExecutionStatus.DONE:
            extra = {k: v for k, v in plain.items() if k not in ("notes", "evidence_url")}
            if new_scheduled is not None:
                extra["scheduled_date"] = new_scheduled.isoformat()
                execution = execution.model_copy(update={"scheduled_date": new_scheduled})
            result = await _complete_in_txn(
                txn,
                owner_id=owner_id,
                task=task,
                execution=execution,
                actual_cost=parsed_cost if cost_provided else None,
                quantity=new_quantity,
                notes=plain.get("notes"),
                evidence_url=plain.get("evidence_url"),
                execution_date=new_execution_date,
                extra=extra,
                now=now,
                today=clock.today(),
            )
            if cost_provided and parsed_cost is None:
                # An explicit null clears the cost on the execution and everything it covered
                await txn.update_record(collection=EXECUTIONS, record_id=execution_id, data={"actual_cost": None})
                await _propagate_unit_cost(txn, execution_id=execution_id, unit_cost=None, now=now)
            return await txn.get_record(collection=EXECUTIONS, record_id=execution_id)

        if status_change:
            execution_state_machine.ensure_transition(execution.status, target_status)

        current = target_status if status_change else execution.status
        if not status_change and execution_state_machine.is_terminal(execution.status):
            if ordinary_edit or cost_provided:
                raise ConflictError(f"{execution.status} executions cannot be edited")
            return await txn.get_record(collection=EXECUTIONS, record_id=execution_id)

        update: dict[str, Any] = {**plain, "updated_at": now}
        if status_change:
            update["status"] = target_status

        if new_quantity is not None:
            if execution.status != ExecutionStatus.TODO:
                raise ConflictError("quantity can only change while the execution is TODO")
            update["quantity"] = new_quantity

        if new_scheduled is not None and new_scheduled != execution.scheduled_date:
            if execution.status == ExecutionStatus.COVERED:
                raise ConflictError("scheduled_date cannot change on a covered execution")
            covering = await txn.get_first_record(collection=EXECUTIONS, filter_query=_covered_filter(execution_id))
            if covering is not None:
                raise ConflictError("scheduled_date cannot change on an execution that covers others")
            update["scheduled_date"] = new_scheduled.isoformat()

        if date_provided:
            update["execution_date"] = new_execution_date.isoformat() if new_execution_date else None
            update["executed_by"] = owner_id if new_execution_date else None

        if cost_provided:
            unit_cost = _unit_cost(task, parsed_cost, new_quantity or execution.quantity)
            update["actual_cost"] = unit_cost
            if current == ExecutionStatus.DONE and task.is_purchase:
                await _propagate_unit_cost(txn, execution_id=execution_id, unit_cost=unit_cost, now=now)

        return await txn.update_record(collection=EXECUTIONS, record_id=execution_id, data=update)

    with span("execution_service.update_execution", execution_id=execution_id), store_errors():
        record = await db_client.run_in_transaction(_apply)

    log_with_user_context(
        logger, "info", "Updated execution", owner_id=owner_id, execution_id=execution_id, fields=sorted(changes)
    )
    return TaskExecution(**record)


async def get_execution(*, owner_id: str, task_id: str, execution_id: str) -> TaskExecution:
    with span("execution_service.get_execution"), store_errors():
        _, execution = await _load_owned_execution(owner_id=owner_id, task_id=task_id, execution_id=execution_id)
        return execution


async def list_executions(
    *,
    owner_id: str,
    task_id: str,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[TaskExecution]:
    """List a task's executions, latest scheduled date first."""
    with span("execution_service.list_executions"), store_errors():
        await load_owned_task(owner_id=owner_id, task_id=task_id)

        filters = [f'care_task_id = "{db_client.sanitize_param(task_id)}"']
        if status:
            try:
                filters.append(f'status = "{ExecutionStatus(status)}"')
            except ValueError:
                raise ValidationError(f"Invalid status: {status}") from None

        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must be non-negative")

        records = await db_client.list_all_records(
            collection=EXECUTIONS,
            filter_query=" && ".join(filters),
            sort="-scheduled_date",
        )
        page = records[offset : offset + limit] if limit else records[offset:]
        return [TaskExecution(**record) for record in page]


async def list_owner_executions(
    *,
    owner_id: str,
    status: str | None = None,
    care_task_id: str | None = None,
    executed_by: str | None = None,
    date_from: object = None,
    date_to: object = None,
    limit: int = 50,
    offset: int = 0,
) -> list[TaskExecution]:
    """List the owner's executions across every task, latest scheduled date first.

    date_from and date_to bound scheduled_date inclusively.

    Raises:
        ValidationError: If status or a date is malformed, or date_from is after date_to
        NotFoundError: If care_task_id names an unknown task
        OwnershipError: If care_task_id names another owner's task
    """
    with span("execution_service.list_owner_executions"), store_errors():
        filters = [f'owner_id = "{db_client.sanitize_param(owner_id)}"']
        if status:
            try:
                filters.append(f'status = "{ExecutionStatus(status)}"')
            except ValueError:
                raise ValidationError(f"Invalid status: {status}") from None

        parsed_from = optional_date(date_from, "date_from")
        parsed_to = optional_date(date_to, "date_to")
        if parsed_from and parsed_to and parsed_from > parsed_to:
            raise ValidationError("date_from cannot be after date_to")
        if parsed_from:
            filters.append(f'scheduled_date >= "{parsed_from.isoformat()}"')
        if parsed_to:
            filters.append(f'scheduled_date <= "{parsed_to.isoformat()}"')

        if limit < 0 or offset < 0:
            raise ValidationError("limit and offset must be non-negative")

        if care_task_id:
            await load_owned_task(owner_id=owner_id, task_id=care_task_id)
            filters.append(recurrence_service.task_executions_filter(care_task_id))
        if executed_by:
            filters.append(f'executed_by = "{db_client.sanitize_param(executed_by)}"')

        records = await db_client.list_all_records(
            collection=EXECUTIONS,
            filter_query=" && ".join(filters),
            sort="-scheduled_date",
        )
        page = records[offset : offset + limit] if limit else records[offset:]
        logger.debug("Listed owner executions", extra={"owner_id": owner_id, "count": len(page)})
        return [TaskExecution(**record) for record in page]


async def list_covered_executions(*, owner_id: str, task_id: str, execution_id: str) -> list[TaskExecution]:
    """List the executions covered by a completed execution, earliest first."""
    with span("execution_service.list_covered_executions", execution_id=execution_id), store_errors():
        await _load_owned_execution(owner_id=owner_id, task_id=task_id, execution_id=execution_id)
        records = await db_client.list_all_records(
            collection=EXECUTIONS,
            filter_query=_covered_filter(execution_id),
            sort="scheduled_date",
        )
        return [TaskExecution(**record) for record in records]
