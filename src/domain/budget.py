"""Budget ledger domain models."""

import json
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SourceSnapshot(BaseModel):
    """Source task's budget position just before a transfer."""

    yearly_budget: float = Field(..., description="Source budget before the transfer")
    net_spend: float = Field(..., description="Source net spend to date")
    available_before: float = Field(..., description="Budget available before the transfer (floored at 0)")


class BudgetTransfer(BaseModel):
    """Immutable audit record of a budget reallocation between two tasks."""

    id: str = Field(..., description="Unique transfer ID from database")
    owner_id: str = Field(..., description="Owner user ID")
    year: int = Field(..., description="Budget year the transfer applies to")
    amount: float = Field(..., gt=0, description="Amount moved")
    from_care_task_id: str = Field(..., description="Source care task ID")
    to_care_task_id: str = Field(..., description="Destination care task ID")
    note: str | None = Field(default=None, description="Optional reason for the transfer")
    performed_by: str = Field(..., description="User ID who performed the transfer")
    source_snapshot: SourceSnapshot = Field(..., description="Source budget position before the transfer")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")

    @field_validator("source_snapshot", mode="before")
    @classmethod
    def parse_snapshot_json(cls, v: Any) -> Any:
        """Snapshots are stored as JSON text."""
        if isinstance(v, str):
            return json.loads(v)
        return v
