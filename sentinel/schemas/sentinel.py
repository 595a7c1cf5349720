"""
Sentinel configuration schemas.

This module defines the Pydantic schemas for creating, updating and reading
sentinels, and the immutable configuration the scheduler runs with.
"""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sentinel.core.networks import NetworkName, TokenKind, get_network_profile

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


class Condition(str, Enum):
    """Which side of the threshold triggers an alert."""
    ABOVE = "above"
    BELOW = "below"


def _validate_address(value: str) -> str:
    if not ADDRESS_PATTERN.match(value):
        raise ValueError("wallet_address must be a 0x-prefixed 20-byte hex address")
    return value


def _validate_payment_method(payment_method: TokenKind | None, network: NetworkName) -> None:
    if payment_method is None:
        return
    profile = get_network_profile(network)
    if not profile.supports(payment_method):
        raise ValueError(
            f"{payment_method.value.upper()} is not available on {profile.display_name}"
        )


class SentinelCreate(BaseModel):
    """Schema for creating a sentinel."""
    user_id: str = Field(..., min_length=1, max_length=64, description="Owner of the sentinel")
    wallet_address: str = Field(..., description="Sentinel wallet that pays for price checks")
    threshold: Decimal = Field(..., gt=0, description="Price threshold")
    condition: Condition = Field(..., description="Trigger when the price is above or below the threshold")
    payment_method: TokenKind | None = Field(None, description="Preferred stablecoin; unset uses the default")
    network: NetworkName = Field(NetworkName.TESTNET, description="Network the wallet lives on")
    notification_target: str | None = Field(None, description="Webhook URL for alert notifications")

    @field_validator("wallet_address")
    @classmethod
    def validate_wallet_address(cls, v: str) -> str:
        return _validate_address(v)

    @model_validator(mode="after")
    def validate_payment_method(self) -> "SentinelCreate":
        _validate_payment_method(self.payment_method, self.network)
        return self


class SentinelUpdate(BaseModel):
    """
    Schema for updating a sentinel.

    Wallet and network are fixed at creation, so they are not accepted here.
    """
    model_config = ConfigDict(extra="forbid")

    threshold: Decimal | None = Field(None, gt=0)
    condition: Condition | None = None
    payment_method: TokenKind | None = None
    notification_target: str | None = None

    @field_validator("threshold", "condition")
    @classmethod
    def reject_null(cls, v: Any) -> Any:
        # Omit the field to keep it; only the payment method and target can be cleared
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    def to_patch(self) -> dict[str, Any]:
        """Get the fields that were explicitly set, as storage values."""
        patch = self.model_dump(exclude_unset=True)
        for key, value in patch.items():
            if isinstance(value, Enum):
                patch[key] = value.value
        return patch


class SentinelConfig(BaseModel):
    """Snapshot of a sentinel's configuration used for one monitoring loop."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    user_id: str
    wallet_address: str
    threshold: Decimal
    condition: Condition
    payment_method: TokenKind | None = None
    network: NetworkName = NetworkName.TESTNET
    notification_target: str | None = None
    is_active: bool = False

    @model_validator(mode="after")
    def validate_payment_method(self) -> "SentinelConfig":
        _validate_payment_method(self.payment_method, self.network)
        return self


class SentinelInfo(SentinelConfig):
    """Schema for sentinel responses."""
    created_at: datetime
    updated_at: datetime | None = None


class SentinelListResponse(BaseModel):
    """Schema for sentinel list responses."""
    sentinels: list[SentinelInfo]
    total: int


class MonitoringStatus(BaseModel):
    """Schema for the scheduler status endpoint."""
    mode: str = Field(..., description="'multi' or 'single'")
    active_loops: int = Field(..., description="Number of running sentinel loops")
    sentinels: dict[str, str] = Field(default_factory=dict, description="Loop state per sentinel id")
