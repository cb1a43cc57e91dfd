from src.services import (
    budget_service,
    care_task_service,
    execution_service,
    recurrence_service,
)


__all__ = [
    "budget_service",
    "care_task_service",
    "execution_service",
    "recurrence_service",
]
