"""Task execution domain models, refund record and status derivation."""

import json
from datetime import date
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.core.validation import amounts_equal


class ExecutionStatus(StrEnum):
    """Execution lifecycle state."""

    TODO = "TODO"
    DONE = "DONE"
    COVERED = "COVERED"  # Fulfilled by another execution's multi-unit purchase
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


REFUND_STATUSES = frozenset({ExecutionStatus.REFUNDED, ExecutionStatus.PARTIALLY_REFUNDED})


class Refund(BaseModel):
    """Refund embedded in a completed purchase execution."""

    refund_amount: float = Field(..., gt=0, description="Amount returned")
    refund_reason: str | None = Field(default=None, description="Why the purchase was refunded")
    refund_evidence_url: str | None = Field(default=None, description="Receipt or proof of refund")
    refund_date: date = Field(..., description="Day the refund happened")
    refunded_by: str = Field(..., description="User ID who recorded the refund")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
    updated_at: str = Field(..., description="Last update timestamp (ISO format)")


class TaskExecution(BaseModel):
    """Task execution data transfer object (one dated occurrence of a care task)."""

    id: str = Field(..., description="Unique execution ID from database")
    owner_id: str = Field(..., description="Owner user ID")
    care_task_id: str = Field(..., description="ID of the care task this execution belongs to")
    status: ExecutionStatus = Field(default=ExecutionStatus.TODO, description="Current lifecycle state")
    scheduled_date: date = Field(..., description="Day the execution is due")
    execution_date: date | None = Field(default=None, description="Day the execution was completed")
    actual_cost: float | None = Field(default=None, ge=0, description="Cost (per unit once covering applied)")
    quantity: int = Field(default=1, ge=1, description="Units this record represents")
    quantity_purchased: int | None = Field(default=None, description="Units bought")
    quantity_unit: str | None = Field(default=None, description="Unit label")
    evidence_url: str | None = Field(default=None, description="Receipt or photo URL")
    notes: str | None = Field(default=None, description="Free-form notes")
    executed_by: str | None = Field(default=None, description="User ID who completed the execution")
    covered_by_execution_ref: str | None = Field(default=None, description="ID of the covering execution")
    refund: Refund | None = Field(default=None, description="Refund record, if any")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")
    updated_at: str = Field(..., description="Last update timestamp (ISO format)")

    @field_validator("refund", mode="before")
    @classmethod
    def parse_refund_json(cls, v: Any) -> Any:
        """Refunds are stored as JSON text."""
        if isinstance(v, str):
            return json.loads(v) if v else None
        return v

    @field_validator("quantity", mode="before")
    @classmethod
    def default_quantity(cls, v: Any) -> Any:
        return 1 if v is None else v


def derive_status(actual_cost: float | None, refund: Refund | dict[str, Any] | None) -> ExecutionStatus:
    """Status of a completed execution given its cost and refund.

    Without a refund the execution is DONE; a refund equal to the cost (within
    MONEY_EPSILON) makes it REFUNDED, any smaller refund PARTIALLY_REFUNDED.
    """
    if refund is None:
        return ExecutionStatus.DONE
    amount = refund.refund_amount if isinstance(refund, Refund) else refund["refund_amount"]
    if actual_cost is not None and amounts_equal(amount, actual_cost):
        return ExecutionStatus.REFUNDED
    return ExecutionStatus.PARTIALLY_REFUNDED
