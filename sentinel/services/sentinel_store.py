"""
Persistence for sentinels and their activity ledger.

Every operation opens its own session from the session factory, so monitoring
loops never share a session. Database errors surface as PersistenceFailed.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sentinel.core.database import async_session_maker
from sentinel.core.errors import InvalidPaymentMethod, PersistenceFailed
from sentinel.core.networks import get_network_profile
from sentinel.models.sentinels import Activity, Sentinel
from sentinel.schemas.activity import ActivityInfo, ActivityStats, ActivityStatus, CheckOutcome
from sentinel.schemas.sentinel import SentinelCreate, SentinelInfo

logger = logging.getLogger(__name__)

IMMUTABLE_FIELDS = frozenset({"id", "user_id", "wallet_address", "network", "created_at"})
MUTABLE_FIELDS = frozenset({"threshold", "condition", "payment_method", "notification_target", "is_active"})
REQUIRED_FIELDS = frozenset({"threshold", "condition", "is_active"})


def _value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class SentinelStore:
    """Store for sentinels and activity records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self.session_factory = session_factory or async_session_maker

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Database error during {operation}: {e}")
            raise PersistenceFailed(f"Failed to {operation}", detail=str(e)) from e

    async def create_sentinel(self, data: SentinelCreate) -> SentinelInfo:
        """Create a sentinel. New sentinels start paused."""
        async with self._session("create sentinel") as session:
            sentinel = Sentinel(
                user_id=data.user_id,
                wallet_address=data.wallet_address,
                threshold=data.threshold,
                condition=data.condition.value,
                payment_method=_value(data.payment_method),
                network=data.network.value,
                notification_target=data.notification_target,
                is_active=False,
            )
            session.add(sentinel)
            await session.commit()
            await session.refresh(sentinel)
            logger.info(f"Created sentinel {sentinel.id} for user {data.user_id}")
            return SentinelInfo.model_validate(sentinel)

    async def get_sentinel(self, sentinel_id: UUID) -> SentinelInfo | None:
        async with self._session("load sentinel") as session:
            sentinel = await session.get(Sentinel, sentinel_id)
            return SentinelInfo.model_validate(sentinel) if sentinel else None

    async def list_sentinels(
        self,
        user_id: str | None = None,
        is_active: bool | None = None,
        network: str | None = None,
    ) -> list[SentinelInfo]:
        """List sentinels matching a filter, oldest first."""
        query = select(Sentinel).order_by(Sentinel.created_at)
        if user_id is not None:
            query = query.where(Sentinel.user_id == user_id)
        if is_active is not None:
            query = query.where(Sentinel.is_active == is_active)
        if network is not None:
            query = query.where(Sentinel.network == _value(network))

        async with self._session("list sentinels") as session:
            result = await session.execute(query)
            return [SentinelInfo.model_validate(row) for row in result.scalars().all()]

    async def update_sentinel(self, sentinel_id: UUID, patch: dict[str, Any]) -> SentinelInfo | None:
        """
        Apply a partial update.

        Raises:
            ValueError: If the patch touches a field fixed at creation or clears a required field
            InvalidPaymentMethod: If the payment method is not available on the sentinel's network
        """
        immutable = IMMUTABLE_FIELDS.intersection(patch)
        if immutable:
            raise ValueError(f"Cannot change {', '.join(sorted(immutable))} after creation")
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown sentinel fields: {', '.join(sorted(unknown))}")
        cleared = sorted(key for key in REQUIRED_FIELDS.intersection(patch) if patch[key] is None)
        if cleared:
            raise ValueError(f"Cannot clear {', '.join(cleared)}")

        async with self._session("update sentinel") as session:
            sentinel = await session.get(Sentinel, sentinel_id)
            if sentinel is None:
                return None

            payment_method = _value(patch.get("payment_method"))
            if payment_method and not get_network_profile(sentinel.network).supports(payment_method):
                raise InvalidPaymentMethod(
                    f"{payment_method.upper()} is not available on {sentinel.network}"
                )

            for key, value in patch.items():
                setattr(sentinel, key, _value(value))
            await session.commit()
            await session.refresh(sentinel)
            return SentinelInfo.model_validate(sentinel)

    async def delete_sentinel(self, sentinel_id: UUID) -> bool:
        """Delete a sentinel together with its activity records."""
        async with self._session("delete sentinel") as session:
            sentinel = await session.get(Sentinel, sentinel_id)
            if sentinel is None:
                return False
            # SQLite does not enforce the foreign key cascade by default
            await session.execute(delete(Activity).where(Activity.sentinel_id == sentinel_id))
            await session.delete(sentinel)
            await session.commit()
            logger.info(f"Deleted sentinel {sentinel_id}")
            return True

    async def deactivate_sentinels(
        self,
        user_id: str,
        network: str,
        exclude_id: UUID | None = None,
    ) -> list[UUID]:
        """
        Mark a user's active sentinels on a network as paused.

        Returns:
            Ids of the sentinels that were deactivated
        """
        query = select(Sentinel.id).where(
            Sentinel.user_id == user_id,
            Sentinel.network == _value(network),
            Sentinel.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.where(Sentinel.id != exclude_id)

        async with self._session("deactivate sentinels") as session:
            ids = list((await session.execute(query)).scalars().all())
            if ids:
                await session.execute(
                    update(Sentinel).where(Sentinel.id.in_(ids)).values(is_active=False)
                )
                await session.commit()
            return ids

    async def create_activity(self, sentinel_id: UUID, user_id: str, outcome: CheckOutcome) -> UUID:
        """Append an activity record."""
        async with self._session("record activity") as session:
            activity = Activity(
                sentinel_id=sentinel_id,
                user_id=user_id,
                price=outcome.price,
                cost=outcome.cost,
                settlement_time_ms=outcome.settlement_time_ms,
                payment_method=outcome.payment_method,
                transaction_reference=outcome.transaction_reference,
                triggered=outcome.triggered,
                status=outcome.status.value,
                error_message=outcome.error_message,
            )
            session.add(activity)
            await session.commit()
            return activity.id

    async def list_activities(
        self,
        sentinel_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ActivityInfo], int]:
        """
        List a sentinel's activity, newest first.

        Returns:
            The requested page and the total number of records
        """
        query = (
            select(Activity)
            .where(Activity.sentinel_id == sentinel_id)
            .order_by(Activity.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        count_query = select(func.count()).select_from(Activity).where(Activity.sentinel_id == sentinel_id)

        async with self._session("list activities") as session:
            rows = (await session.execute(query)).scalars().all()
            total = (await session.execute(count_query)).scalar_one()
            return [ActivityInfo.model_validate(row) for row in rows], total

    async def get_activity_stats(self, sentinel_id: UUID) -> ActivityStats:
        """Aggregate a sentinel's activity."""
        query = select(
            func.count(Activity.id),
            func.sum(Activity.cost),
            func.sum(case((Activity.triggered.is_(True), 1), else_=0)),
            func.sum(case((Activity.status == ActivityStatus.SUCCESS.value, 1), else_=0)),
            func.max(Activity.created_at),
        ).where(Activity.sentinel_id == sentinel_id)

        async with self._session("load activity stats") as session:
            total, spent, triggered, succeeded, last_check = (await session.execute(query)).one()

        total = total or 0
        if total == 0:
            return ActivityStats()

        spent = Decimal(str(spent or 0))
        return ActivityStats(
            total_checks=total,
            total_spent=spent,
            alerts_triggered=int(triggered or 0),
            success_rate=round(int(succeeded or 0) / total * 100, 2),
            average_cost=spent / total,
            last_check=last_check,
        )
