"""
Dependency Injection Providers for TaskiSpace Billing

Provides FastAPI dependencies for repositories.
Repositories manage their own sessions, so providers only construct them;
tests replace these through app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends

from app.infrastructure.db.repositories import (
    PlanRepository,
    SubscriptionRepository,
    UsageRepository,
)


def get_plan_repository() -> PlanRepository:
    """
    Dependency provider for PlanRepository.

    Usage:
        @router.get("/subscription/plans")
        async def list_plans(plans: PlanRepoDep):
            ...
    """
    return PlanRepository()


def get_subscription_repository() -> SubscriptionRepository:
    """Dependency provider for SubscriptionRepository."""
    return SubscriptionRepository()


def get_usage_repository() -> UsageRepository:
    """Dependency provider for UsageRepository."""
    return UsageRepository()


# Type aliases for repository dependencies
PlanRepoDep = Annotated[PlanRepository, Depends(get_plan_repository)]
SubscriptionRepoDep = Annotated[
    SubscriptionRepository,
    Depends(get_subscription_repository)
]
UsageRepoDep = Annotated[UsageRepository, Depends(get_usage_repository)]
