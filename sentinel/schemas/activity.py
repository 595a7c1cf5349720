"""
Activity ledger schemas.

This module defines the outcome of a check cycle and the read models for the
activity history of a sentinel.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ActivityStatus(str, Enum):
    """Final status of a check cycle."""
    SUCCESS = "success"
    FAILED = "failed"


class CheckOutcome(BaseModel):
    """Result of one check cycle, as written to the activity ledger."""
    model_config = ConfigDict(frozen=True)

    status: ActivityStatus
    payment_method: str
    price: Decimal | None = None
    cost: Decimal = Decimal("0")
    settlement_time_ms: int | None = None
    transaction_reference: str | None = None
    triggered: bool = False
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ActivityStatus.SUCCESS


class ActivityInfo(BaseModel):
    """Schema for activity responses."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sentinel_id: UUID
    user_id: str
    price: Decimal | None = None
    cost: Decimal
    settlement_time_ms: int | None = None
    payment_method: str
    transaction_reference: str | None = None
    triggered: bool
    status: ActivityStatus
    error_message: str | None = None
    created_at: datetime


class ActivityListResponse(BaseModel):
    """Schema for paginated activity responses."""
    activities: list[ActivityInfo]
    total: int
    offset: int
    limit: int


class ActivityStats(BaseModel):
    """Aggregate statistics over a sentinel's activity."""
    total_checks: int = Field(0, description="Number of recorded check cycles")
    total_spent: Decimal = Field(Decimal("0"), description="Sum of fees charged")
    alerts_triggered: int = Field(0, description="Number of cycles that triggered")
    success_rate: float = Field(0.0, description="Successful cycles as a percentage")
    average_cost: Decimal = Field(Decimal("0"), description="Mean fee per recorded cycle")
    last_check: datetime | None = Field(None, description="Time of the most recent cycle")
