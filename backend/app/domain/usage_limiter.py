"""
Usage Limiter

Decides whether a user is within their plan's quota before a gated action
runs, and records consumption after it succeeds.

Reads that fail degrade to "no data" (deny, or zero usage); writes that fail
are logged and dropped so the triggering action is never blocked by
bookkeeping. Check and increment are separate calls, so concurrent requests
can overshoot a limit slightly.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol, Union

from app.domain.subscription import (
    LIMIT_METRICS,
    MONTHLY_AI_METRICS,
    LimitCheckResult,
    LimitKey,
    Subscription,
    SubscriptionWithUsage,
    Unlimited,
    UsageMetric,
    UsageSummary,
)
from app.domain.usage_periods import (
    UsageWindow,
    period_start_for_limit,
    start_of_day,
    start_of_month,
    utc_now,
    window_for_metric,
)
from app.infrastructure.exceptions import DatabaseError


logger = logging.getLogger(__name__)


class SubscriptionReader(Protocol):
    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]: ...


class UsageStore(Protocol):
    async def get_current_value(
        self, user_id: str, metric_name: str, period_start: Optional[datetime] = None
    ) -> int: ...

    async def upsert_value(
        self, user_id: str, metric_name: str, value: int, window: UsageWindow
    ) -> None: ...

    async def set_value(self, user_id: str, metric_name: str, value: int) -> None: ...

    async def delete_since(
        self, user_id: str, metric_names: Iterable[str], period_start: datetime
    ) -> int: ...


def _metric_name(metric: Union[UsageMetric, str]) -> str:
    return metric.value if isinstance(metric, UsageMetric) else metric


class UsageLimiter:
    """
    Plan quota enforcement and usage metering.

    Args:
        subscriptions: Source of the user's subscription joined with its plan
        usage: Counter store
        clock: Returns the current UTC time; period boundaries derive from it
    """

    def __init__(
        self,
        subscriptions: SubscriptionReader,
        usage: UsageStore,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._subscriptions = subscriptions
        self._usage = usage
        self._clock = clock

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_subscription(self, user_id: str) -> Optional[Subscription]:
        """User's subscription with plan, or None when missing or unreadable."""
        try:
            return await self._subscriptions.get_by_user_id(user_id)
        except DatabaseError as e:
            logger.error(f"Error fetching subscription for user {user_id}: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error fetching subscription for user {user_id}: {e}")
            return None

    async def get_usage_count(
        self,
        user_id: str,
        metric: Union[UsageMetric, str],
        period_start: Optional[datetime] = None,
    ) -> int:
        """Current counter value; 0 when absent or unreadable."""
        metric_name = _metric_name(metric)
        try:
            return await self._usage.get_current_value(user_id, metric_name, period_start)
        except DatabaseError as e:
            logger.error(f"Error reading usage {metric_name} for user {user_id}: {e}")
            return 0
        except Exception as e:
            logger.error(f"Unexpected error reading usage {metric_name} for user {user_id}: {e}")
            return 0

    async def check_limit(self, user_id: str, limit_key: LimitKey) -> LimitCheckResult:
        """
        Check whether the user may perform one more action of this kind.

        Args:
            user_id: Acting user
            limit_key: Plan limit governing the action

        Returns:
            LimitCheckResult; allowed is False when there is no subscription,
            or when the counter has reached the limit
        """
        subscription = await self.get_subscription(user_id)

        if not subscription or not subscription.plan:
            return LimitCheckResult(
                allowed=False, current=0, limit=0, reason="No active subscription"
            )

        limit = subscription.plan.limits.get(limit_key)

        if isinstance(limit, Unlimited):
            return LimitCheckResult(allowed=True, current=0, limit=limit.raw)

        metric = LIMIT_METRICS.get(limit_key)
        if metric is None:
            # Property limits (history window, file size) are enforced elsewhere
            return LimitCheckResult(allowed=True, current=0, limit=limit.raw)

        period_start = period_start_for_limit(limit_key, self._clock())
        current = await self.get_usage_count(user_id, metric, period_start)
        allowed = limit.allows(current)

        return LimitCheckResult(
            allowed=allowed,
            current=current,
            limit=limit.raw,
            reason=None if allowed else (
                f"You've reached your {limit_key.value} limit of {limit.raw}. "
                "Upgrade to Pro for unlimited access."
            ),
        )

    async def get_user_subscription_with_usage(
        self,
        user_id: str,
    ) -> Optional[SubscriptionWithUsage]:
        """
        Subscription, plan and current usage counters in one view.

        Returns:
            SubscriptionWithUsage, or None when the user has no subscription
        """
        subscription = await self.get_subscription(user_id)
        if not subscription:
            return None

        now = self._clock()
        month_start = start_of_month(now)
        day_start = start_of_day(now)

        (
            tasks,
            workspaces,
            friends,
            nudges_today,
            jarvis_conversations,
            jarvis_tokens,
        ) = await asyncio.gather(
            self.get_usage_count(user_id, UsageMetric.TASKS_CREATED),
            self.get_usage_count(user_id, UsageMetric.WORKSPACES_CREATED),
            self.get_usage_count(user_id, UsageMetric.FRIENDS_COUNT),
            self.get_usage_count(user_id, UsageMetric.NUDGES_SENT, day_start),
            self.get_usage_count(user_id, UsageMetric.JARVIS_CONVERSATIONS, month_start),
            self.get_usage_count(user_id, UsageMetric.JARVIS_TOKENS, month_start),
        )

        return SubscriptionWithUsage(
            **subscription.model_dump(exclude={"plan"}),
            plan=subscription.plan,
            usage=UsageSummary(
                tasks=tasks,
                workspaces=workspaces,
                friends=friends,
                nudges_today=nudges_today,
                jarvis_conversations_this_month=jarvis_conversations,
                jarvis_tokens_this_month=jarvis_tokens,
            ),
        )

    # =========================================================================
    # Writes (best effort)
    # =========================================================================

    async def increment_usage(
        self,
        user_id: str,
        metric: Union[UsageMetric, str],
        amount: int = 1,
    ) -> None:
        """
        Record usage after a gated action succeeded.

        The counter row for (user, metric) is upserted with current_value set
        to ``amount``; an existing value is replaced, not added to.
        """
        metric_name = _metric_name(metric)
        window = window_for_metric(metric_name, self._clock())

        try:
            await self._usage.upsert_value(user_id, metric_name, amount, window)
        except DatabaseError as e:
            logger.error(f"Error incrementing usage {metric_name} for user {user_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error incrementing usage {metric_name} for user {user_id}: {e}")

    async def decrement_usage(
        self,
        user_id: str,
        metric: Union[UsageMetric, str],
        amount: int = 1,
    ) -> None:
        """Release quota after a resource is deleted. Never goes below zero."""
        metric_name = _metric_name(metric)
        current = await self.get_usage_count(user_id, metric_name)
        new_value = max(0, current - amount)

        try:
            await self._usage.set_value(user_id, metric_name, new_value)
        except DatabaseError as e:
            logger.error(f"Error decrementing usage {metric_name} for user {user_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error decrementing usage {metric_name} for user {user_id}: {e}")

    async def reset_monthly_ai_usage(self, user_id: str) -> int:
        """
        Drop this month's Jarvis counters, e.g. after a renewal payment.

        Returns:
            Number of counters removed (0 on failure)
        """
        month_start = start_of_month(self._clock())
        try:
            return await self._usage.delete_since(
                user_id,
                [metric.value for metric in MONTHLY_AI_METRICS],
                month_start,
            )
        except DatabaseError as e:
            logger.error(f"Error resetting monthly AI usage for user {user_id}: {e}")
            return 0
        except Exception as e:
            logger.error(f"Unexpected error resetting monthly AI usage for user {user_id}: {e}")
            return 0
