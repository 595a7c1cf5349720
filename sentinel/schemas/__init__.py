"""
Pydantic schemas package.

This package contains the request, response and protocol message schemas.
"""

from sentinel.schemas.activity import ActivityInfo, ActivityStats, ActivityStatus, CheckOutcome
from sentinel.schemas.protocol import PaymentChallenge, PriceCheckRequest, SettledCheck
from sentinel.schemas.sentinel import (
    Condition,
    SentinelConfig,
    SentinelCreate,
    SentinelInfo,
    SentinelUpdate,
)

__all__ = [
    "ActivityInfo",
    "ActivityStats",
    "ActivityStatus",
    "CheckOutcome",
    "Condition",
    "PaymentChallenge",
    "PriceCheckRequest",
    "SentinelConfig",
    "SentinelCreate",
    "SentinelInfo",
    "SentinelUpdate",
    "SettledCheck",
]
