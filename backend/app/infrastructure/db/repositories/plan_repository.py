"""
Plan Repository

Read access to the subscription plan catalogue, plus the upsert used by
the seeding script.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlmodel import select

from app.domain.subscription import PlanLimits, SubscriptionPlan
from app.infrastructure.db.models.plan import SubscriptionPlanModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid


logger = logging.getLogger(__name__)


class PlanRepository(BaseRepository):
    """Repository for subscription_plans."""

    table = "subscription_plans"

    async def get_active_plans(self) -> List[SubscriptionPlan]:
        """Active plans, cheapest first."""
        async with self._session("list plans") as session:
            statement = (
                select(SubscriptionPlanModel)
                .where(SubscriptionPlanModel.is_active == True)  # noqa: E712
                .order_by(SubscriptionPlanModel.price_monthly.asc())
            )
            result = await session.execute(statement)
            return [self._to_domain(model) for model in result.scalars().all()]

    async def get_by_id(self, plan_id: Union[str, UUID]) -> Optional[SubscriptionPlan]:
        """Plan by primary key; None for unknown or malformed ids."""
        try:
            key = as_uuid(plan_id)
        except ValueError:
            return None

        async with self._session("get plan") as session:
            model = await session.get(SubscriptionPlanModel, key)
            return self._to_domain(model) if model else None

    async def get_by_name(self, name: str) -> Optional[SubscriptionPlan]:
        async with self._session("get plan by name") as session:
            statement = select(SubscriptionPlanModel).where(
                SubscriptionPlanModel.name == name
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def upsert(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        """
        Create or update a plan by name.

        Args:
            plan: Plan definition; id is ignored for existing rows

        Returns:
            The stored plan
        """
        async with self._session("upsert plan") as session:
            now = datetime.now(timezone.utc)
            values = {
                "name": plan.name,
                "description": plan.description,
                "price_monthly": plan.price_monthly,
                "price_yearly": plan.price_yearly,
                "features": plan.features,
                "limits": plan.limits.to_raw(),
                "stripe_price_id_monthly": plan.stripe_price_id_monthly,
                "stripe_price_id_yearly": plan.stripe_price_id_yearly,
                "is_active": plan.is_active,
                "updated_at": now,
            }

            stmt = pg_insert(SubscriptionPlanModel).values(
                id=as_uuid(plan.id), created_at=now, **values
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["name"],
                set_={key: stmt.excluded[key] for key in values},
            )
            await session.execute(stmt)

        logger.info(f"Upserted plan '{plan.name}'")
        stored = await self.get_by_name(plan.name)
        return stored

    @staticmethod
    def _to_domain(model: SubscriptionPlanModel) -> SubscriptionPlan:
        """Convert database model to domain entity."""
        return SubscriptionPlan(
            id=str(model.id),
            name=model.name,
            description=model.description,
            price_monthly=float(model.price_monthly or 0),
            price_yearly=float(model.price_yearly) if model.price_yearly is not None else None,
            features=list(model.features or []),
            limits=PlanLimits.model_validate(model.limits or {}),
            stripe_price_id_monthly=model.stripe_price_id_monthly,
            stripe_price_id_yearly=model.stripe_price_id_yearly,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )
