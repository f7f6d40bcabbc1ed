"""
Subscription Repository

Data access layer for subscription persistence.
Follows Repository pattern for Clean Architecture.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlmodel import select

from app.domain.subscription import (
    Subscription,
    SubscriptionStatus,
)
from app.infrastructure.db.models.plan import SubscriptionPlanModel
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.repositories.base_repository import BaseRepository, as_uuid
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.exceptions import NotFoundError


logger = logging.getLogger(__name__)


class SubscriptionRepository(BaseRepository):
    """
    Repository for subscription data access.

    Every lookup joins the plan so callers get the full picture in one
    round trip.
    """

    table = "subscriptions"

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        """
        Get subscription (with plan) by user ID.

        Args:
            user_id: Supabase auth user ID

        Returns:
            Subscription domain model or None
        """
        return await self._get_one(
            SubscriptionModel.user_id == as_uuid(user_id),
            operation="get subscription by user",
        )

    async def get_by_stripe_subscription_id(
        self,
        stripe_subscription_id: str,
    ) -> Optional[Subscription]:
        """Get subscription (with plan) by Stripe subscription ID."""
        return await self._get_one(
            SubscriptionModel.stripe_subscription_id == stripe_subscription_id,
            operation="get subscription by stripe id",
        )

    async def _get_one(self, condition, operation: str) -> Optional[Subscription]:
        async with self._session(operation) as session:
            statement = (
                select(SubscriptionModel, SubscriptionPlanModel)
                .join(
                    SubscriptionPlanModel,
                    SubscriptionPlanModel.id == SubscriptionModel.plan_id,
                    isouter=True,
                )
                .where(condition)
            )
            result = await session.execute(statement)
            row = result.first()

            if row is None:
                return None

            model, plan_model = row
            return self._to_domain(model, plan_model)

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create(self, subscription: Subscription) -> Subscription:
        """
        Create a new subscription.

        Args:
            subscription: Subscription domain model

        Returns:
            Created subscription with ID and plan
        """
        async with self._session("create subscription") as session:
            model = self._to_model(subscription)
            model.id = uuid4()

            session.add(model)

        logger.info(f"Created subscription {model.id} for user {subscription.user_id}")
        return await self.get_by_user_id(subscription.user_id)

    async def update(self, subscription: Subscription) -> Subscription:
        """
        Update an existing subscription, matched by user_id.

        Args:
            subscription: Subscription with updated values

        Returns:
            Updated subscription

        Raises:
            NotFoundError: no row for the user
        """
        async with self._session("update subscription") as session:
            statement = select(SubscriptionModel).where(
                SubscriptionModel.user_id == as_uuid(subscription.user_id)
            )
            result = await session.execute(statement)
            model = result.scalar_one_or_none()

            if not model:
                raise NotFoundError(
                    f"Subscription not found for user {subscription.user_id}",
                    operation="update subscription",
                    table=self.table,
                )

            model.plan_id = as_uuid(subscription.plan_id)
            model.status = subscription.status.value
            model.stripe_customer_id = subscription.stripe_customer_id
            model.stripe_subscription_id = subscription.stripe_subscription_id
            model.current_period_start = subscription.current_period_start
            model.current_period_end = subscription.current_period_end
            model.cancel_at_period_end = subscription.cancel_at_period_end
            model.canceled_at = subscription.canceled_at
            model.updated_at = datetime.now(timezone.utc)

        logger.info(f"Updated subscription for user {subscription.user_id}")
        return await self.get_by_user_id(subscription.user_id)

    async def get_or_create_free(
        self,
        user_id: str,
        plans: PlanRepository,
        free_plan_name: str,
    ) -> Subscription:
        """
        Get existing subscription or provision one on the free plan.

        Args:
            user_id: User ID
            plans: Plan repository used to resolve the free plan
            free_plan_name: Name of the free plan row

        Returns:
            Subscription (existing or new free tier)

        Raises:
            NotFoundError: free plan has not been seeded
        """
        existing = await self.get_by_user_id(user_id)
        if existing:
            return existing

        free_plan = await plans.get_by_name(free_plan_name)
        if not free_plan:
            raise NotFoundError(
                f"Plan '{free_plan_name}' not found",
                operation="provision subscription",
                table=PlanRepository.table,
            )

        return await self.create(
            Subscription(
                user_id=user_id,
                plan_id=free_plan.id,
                status=SubscriptionStatus.ACTIVE,
            )
        )

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(
        self,
        model: SubscriptionModel,
        plan_model: Optional[SubscriptionPlanModel] = None,
    ) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=str(model.id),
            user_id=str(model.user_id),
            plan_id=str(model.plan_id),
            status=SubscriptionStatus(model.status),
            stripe_customer_id=model.stripe_customer_id,
            stripe_subscription_id=model.stripe_subscription_id,
            current_period_start=model.current_period_start,
            current_period_end=model.current_period_end,
            cancel_at_period_end=model.cancel_at_period_end or False,
            canceled_at=model.canceled_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
            plan=PlanRepository._to_domain(plan_model) if plan_model else None,
        )

    def _to_model(self, domain: Subscription) -> SubscriptionModel:
        """Convert domain entity to database model."""
        return SubscriptionModel(
            id=as_uuid(domain.id) if domain.id else None,
            user_id=as_uuid(domain.user_id),
            plan_id=as_uuid(domain.plan_id),
            status=domain.status.value,
            stripe_customer_id=domain.stripe_customer_id,
            stripe_subscription_id=domain.stripe_subscription_id,
            current_period_start=domain.current_period_start,
            current_period_end=domain.current_period_end,
            cancel_at_period_end=domain.cancel_at_period_end,
            canceled_at=domain.canceled_at,
        )
