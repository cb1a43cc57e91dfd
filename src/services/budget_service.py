"""Budget ledger: net spend, transfers between tasks and budget summaries."""

import logging
from typing import Any

from src.core import db_client
from src.core.errors import InsufficientBudgetError, ValidationError, store_errors
from src.core.logging import log_with_user_context, span
from src.core.time_utils import Clock, SystemClock
from src.core.validation import exceeds, require_number
from src.domain.budget import BudgetTransfer, SourceSnapshot
from src.domain.care_task import CareTask
from src.domain.execution import TaskExecution
from src.models.service_models import BudgetSummary, TransferResult
from src.services.care_task_service import TASKS, load_owned_task
from src.services.recurrence_service import EXECUTIONS, task_executions_filter


logger = logging.getLogger(__name__)

TRANSFERS = "budget_transfers"


def _as_execution(execution: TaskExecution | dict[str, Any]) -> TaskExecution:
    return execution if isinstance(execution, TaskExecution) else TaskExecution(**execution)


def _refund_amount(execution: TaskExecution) -> float:
    return execution.refund.refund_amount if execution.refund else 0.0


def calculate_net_spend(executions: list[TaskExecution] | list[dict[str, Any]]) -> float:
    """Sum of max(actual_cost - refund_amount, 0) over the executions."""
    total = 0.0
    for item in executions:
        execution = _as_execution(item)
        net = (execution.actual_cost or 0.0) - _refund_amount(execution)
        total += max(net, 0.0)
    return total


def calculate_refunded_total(executions: list[TaskExecution] | list[dict[str, Any]]) -> float:
    return sum(_refund_amount(_as_execution(item)) for item in executions)


async def transfer_budget(
    *,
    owner_id: str,
    from_task_id: str,
    to_task_id: str,
    amount: object,
    note: str | None = None,
    clock: Clock | None = None,
) -> TransferResult:
    """Move yearly budget from one task to another, with an audit record.

    Both budget updates and the audit record commit in one store transaction;
    a rejected transfer leaves every record untouched.

    Raises:
        ValidationError: If the task IDs are missing or equal, or amount is not positive
        NotFoundError: If either task does not exist
        OwnershipError: If either task belongs to another owner
        InsufficientBudgetError: If amount exceeds the source's available budget
    """
    clock = clock or SystemClock()

    if not from_task_id or not to_task_id:
        raise ValidationError("from_task_id and to_task_id are required")
    if from_task_id == to_task_id:
        raise ValidationError("from_task_id and to_task_id must be different")

    transfer_amount = require_number(amount, "amount", min_value=0)
    if transfer_amount <= 0:
        raise ValidationError("amount must be greater than 0")

    async def _transfer(txn: db_client.Transaction) -> TransferResult:
        source = CareTask(**await load_owned_task(owner_id=owner_id, task_id=from_task_id, store=txn))
        destination = CareTask(**await load_owned_task(owner_id=owner_id, task_id=to_task_id, store=txn))

        executions = await txn.list_all_records(collection=EXECUTIONS, filter_query=task_executions_filter(source.id))
        net_spend = calculate_net_spend(executions)

        source_budget = source.yearly_budget or 0.0
        available = source_budget - net_spend
        if exceeds(transfer_amount, available):
            msg = f"Insufficient available budget to transfer: available {available:.2f}, requested {transfer_amount:.2f}"
            raise InsufficientBudgetError(msg)

        now = clock.now()
        timestamp = now.isoformat()

        source_record = await txn.update_record(
            collection=TASKS,
            record_id=source.id,
            data={"yearly_budget": source_budget - transfer_amount, "updated_at": timestamp},
        )
        destination_record = await txn.update_record(
            collection=TASKS,
            record_id=destination.id,
            data={"yearly_budget": (destination.yearly_budget or 0.0) + transfer_amount, "updated_at": timestamp},
        )

        snapshot = SourceSnapshot(
            yearly_budget=source_budget,
            net_spend=net_spend,
            available_before=max(available, 0.0),
        )
        transfer_record = await txn.create_record(
            collection=TRANSFERS,
            data={
                "owner_id": owner_id,
                "year": now.year,
                "amount": transfer_amount,
                "from_care_task_id": source.id,
                "to_care_task_id": destination.id,
                "note": note,
                "performed_by": owner_id,
                "source_snapshot": snapshot.model_dump(),
                "created_at": timestamp,
            },
        )

        return TransferResult(
            transfer=BudgetTransfer(**transfer_record),
            from_task=CareTask(**source_record),
            to_task=CareTask(**destination_record),
        )

    with span("budget_service.transfer_budget"), store_errors():
        result = await db_client.run_in_transaction(_transfer)

    log_with_user_context(
        logger,
        "info",
        "Budget transferred",
        owner_id=owner_id,
        from_task_id=from_task_id,
        to_task_id=to_task_id,
        amount=transfer_amount,
        transfer_id=result.transfer.id,
    )
    return result


async def list_budget_transfers(*, owner_id: str, task_id: str | None = None) -> list[BudgetTransfer]:
    """List an owner's transfers, newest first, optionally those touching one task."""
    with span("budget_service.list_budget_transfers"), store_errors():
        filters = [f'owner_id = "{db_client.sanitize_param(owner_id)}"']
        if task_id:
            await load_owned_task(owner_id=owner_id, task_id=task_id)
            safe_id = db_client.sanitize_param(task_id)
            filters.append(f'(from_care_task_id = "{safe_id}" || to_care_task_id = "{safe_id}")')

        records = await db_client.list_all_records(
            collection=TRANSFERS,
            filter_query=" && ".join(filters),
            sort="-created_at",
        )
        return [BudgetTransfer(**record) for record in records]


async def get_budget_summary(*, owner_id: str, task_id: str) -> BudgetSummary:
    """Budget, net spend, refunds and remaining allocation of one task."""
    with span("budget_service.get_budget_summary"), store_errors():
        task = CareTask(**await load_owned_task(owner_id=owner_id, task_id=task_id))
        records = await db_client.list_all_records(collection=EXECUTIONS, filter_query=task_executions_filter(task.id))
        executions = [TaskExecution(**record) for record in records]

        budget = task.yearly_budget or 0.0
        net_spend = calculate_net_spend(executions)
        return BudgetSummary(
            care_task_id=task.id,
            yearly_budget=budget,
            net_spend=net_spend,
            refunded_total=calculate_refunded_total(executions),
            available=budget - net_spend,
        )
