"""
Sentinel and activity models.

This module defines the SQLAlchemy models for sentinels and the append-only
activity ledger of their price checks.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from sentinel.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Sentinel(Base):
    """A wallet-holding monitor that pays for periodic price checks."""

    __tablename__ = "sentinels"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=lambda: uuid4())
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    threshold: Mapped[Decimal] = mapped_column(Numeric(24, 8), nullable=False)
    condition: Mapped[str] = mapped_column(String(10), nullable=False)  # above, below
    payment_method: Mapped[str | None] = mapped_column(String(10))  # unset means the configured default
    network: Mapped[str] = mapped_column(String(10), nullable=False, default="testnet")
    notification_target: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Sentinel(id={self.id}, condition='{self.condition}', threshold={self.threshold}, active={self.is_active})>"


class Activity(Base):
    """Outcome of one completed check cycle. Never updated once written."""

    __tablename__ = "activities"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=lambda: uuid4())
    sentinel_id: Mapped[UUID] = mapped_column(
        ForeignKey("sentinels.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(24, 8))
    cost: Mapped[Decimal] = mapped_column(Numeric(24, 6), nullable=False, default=Decimal("0"))
    settlement_time_ms: Mapped[int | None] = mapped_column(Integer)
    payment_method: Mapped[str] = mapped_column(String(10), nullable=False)
    transaction_reference: Mapped[str | None] = mapped_column(String(66))
    triggered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False)  # success, failed
    error_message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, sentinel_id={self.sentinel_id}, status='{self.status}')>"
