"""
Usage Repository

Counter store for subscription_usage. One row per (user_id, metric_name).
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4

from sqlalchemy import delete, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlmodel import select

from app.domain.usage_periods import UsageWindow
from app.infrastructure.db.models.usage import SubscriptionUsageModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)


class UsageRepository(BaseRepository):
    """Repository for per-user usage counters."""

    table = "subscription_usage"

    async def get_current_value(
        self,
        user_id: str,
        metric_name: str,
        period_start: Optional[datetime] = None,
    ) -> int:
        """
        Current counter value, or 0 when no row matches.

        Args:
            user_id: User ID
            metric_name: Counter name
            period_start: Only count a row recorded on or after this instant
        """
        async with self._session("read usage") as session:
            statement = select(SubscriptionUsageModel.current_value).where(
                SubscriptionUsageModel.user_id == as_uuid(user_id),
                SubscriptionUsageModel.metric_name == metric_name,
            )
            if period_start is not None:
                statement = statement.where(
                    SubscriptionUsageModel.period_start >= period_start
                )

            result = await session.execute(statement)
            value = result.scalar_one_or_none()
            return value or 0

    async def upsert_value(
        self,
        user_id: str,
        metric_name: str,
        value: int,
        window: UsageWindow,
    ) -> None:
        """
        Insert the counter row or overwrite it on (user_id, metric_name).

        The stored value is replaced with ``value``, not added to it.
        """
        async with self._session("upsert usage") as session:
            now = datetime.now(timezone.utc)
            stmt = pg_insert(SubscriptionUsageModel).values(
                id=uuid4(),
                user_id=as_uuid(user_id),
                metric_name=metric_name,
                current_value=value,
                period_start=window.start,
                period_end=window.end,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "metric_name"],
                set_={
                    "current_value": stmt.excluded.current_value,
                    "period_start": stmt.excluded.period_start,
                    "period_end": stmt.excluded.period_end,
                    "updated_at": now,
                },
            )
            await session.execute(stmt)

    async def set_value(self, user_id: str, metric_name: str, value: int) -> None:
        """Overwrite current_value of an existing row; no-op when absent."""
        async with self._session("update usage") as session:
            await session.execute(
                update(SubscriptionUsageModel)
                .where(
                    SubscriptionUsageModel.user_id == as_uuid(user_id),
                    SubscriptionUsageModel.metric_name == metric_name,
                )
                .values(current_value=value, updated_at=datetime.now(timezone.utc))
            )

    async def delete_since(
        self,
        user_id: str,
        metric_names: Iterable[str],
        period_start: datetime,
    ) -> int:
        """
        Delete counters for the given metrics recorded on or after period_start.

        Returns:
            Number of rows removed
        """
        names = list(metric_names)
        async with self._session("delete usage") as session:
            result = await session.execute(
                delete(SubscriptionUsageModel).where(
                    SubscriptionUsageModel.user_id == as_uuid(user_id),
                    SubscriptionUsageModel.metric_name.in_(names),
                    SubscriptionUsageModel.period_start >= period_start,
                )
            )
            deleted = result.rowcount or 0

        logger.info(f"Deleted {deleted} usage counters ({', '.join(names)}) for user {user_id}")
        return deleted
