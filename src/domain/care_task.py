"""Care task domain models and enums."""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class TaskType(StrEnum):
    """What kind of work a care task represents."""

    PURCHASE = "PURCHASE"  # Buying supplies; carries costs, budget and refunds
    GENERAL = "GENERAL"  # Any other recurring care


class CareTask(BaseModel):
    """Care task data transfer object (recurring or one-off schedule definition)."""

    id: str = Field(..., description="Unique care task ID from database")
    owner_id: str = Field(..., description="Owner user ID")
    name: str = Field(..., description="Task name")
    description: str | None = Field(default=None, description="Detailed task description")
    task_type: TaskType = Field(..., description="PURCHASE or GENERAL")
    category_id: str | None = Field(default=None, description="Budget category ID")
    recurrence_interval_days: int = Field(default=0, ge=0, description="Days between executions (0 = one-off)")
    start_date: date = Field(..., description="First scheduled day")
    end_date: date | None = Field(default=None, description="Last day an execution may be scheduled")
    estimated_unit_cost: float | None = Field(default=None, ge=0, description="Expected cost per unit")
    quantity_per_purchase: int | None = Field(default=None, ge=1, description="Units bought per purchase")
    quantity_unit: str | None = Field(default=None, description="Unit label (e.g. 'box')")
    yearly_budget: float | None = Field(default=None, description="Budget allocated for the year")
    is_active: bool = Field(default=True, description="False once the task is deactivated")
    deactivated_at: str | None = Field(default=None, description="Deactivation timestamp (ISO format)")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
    updated_at: str = Field(..., description="Last update timestamp (ISO format)")

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be empty")
        return v

    @property
    def is_one_off(self) -> bool:
        return self.recurrence_interval_days == 0

    @property
    def is_purchase(self) -> bool:
        return self.task_type == TaskType.PURCHASE
