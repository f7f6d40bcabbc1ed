"""
Repository Layer for TaskiSpace Billing

Exports all repository classes for dependency injection.
"""

from app.infrastructure.db.repositories.base_repository import (
    BaseRepository,
    SessionFactory,
)
from app.infrastructure.db.repositories.plan_repository import PlanRepository
from app.infrastructure.db.repositories.subscription_repository import (
    SubscriptionRepository,
)
from app.infrastructure.db.repositories.usage_repository import UsageRepository


__all__ = [
    # Base
    "BaseRepository",
    "SessionFactory",
    # Repositories
    "PlanRepository",
    "SubscriptionRepository",
    "UsageRepository",
]
