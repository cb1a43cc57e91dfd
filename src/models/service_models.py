"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from pydantic import BaseModel

from src.domain.budget import BudgetTransfer
from src.domain.care_task import CareTask
from src.domain.execution import TaskExecution


class TaskCreationResult(BaseModel):
    """Newly created care task and the executions generated for it."""

    task: CareTask
    execution_ids: list[str]


class CompletionResult(BaseModel):
    """Completed execution and the executions it covered."""

    execution: TaskExecution
    applied_quantity: int
    covered_execution_ids: list[str]


class TransferResult(BaseModel):
    """Outcome of a budget transfer."""

    transfer: BudgetTransfer
    from_task: CareTask
    to_task: CareTask


class BudgetSummary(BaseModel):
    """Budget position of a single care task."""

    care_task_id: str
    yearly_budget: float
    net_spend: float
    refunded_total: float
    available: float


class GenerationRunSummary(BaseModel):
    """Totals for one pass of the daily execution scheduler."""

    tasks_scanned: int
    tasks_skipped: int
    tasks_failed: int
    executions_created: int
