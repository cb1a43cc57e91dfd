"""Domain models and DTOs."""

from src.domain.budget import BudgetTransfer, SourceSnapshot
from src.domain.care_task import CareTask, TaskType
from src.domain.execution import ExecutionStatus, Refund, TaskExecution, derive_status


__all__ = [
    "BudgetTransfer",
    "CareTask",
    "ExecutionStatus",
    "Refund",
    "SourceSnapshot",
    "TaskExecution",
    "TaskType",
    "derive_status",
]
