"""
SQLModel ORM Models for TaskiSpace Billing

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from app.infrastructure.db.models.base import (
    TimestampMixin,
    UUIDMixin,
)
from app.infrastructure.db.models.plan import SubscriptionPlanModel
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.usage import SubscriptionUsageModel


__all__ = [
    # Base
    "TimestampMixin",
    "UUIDMixin",
    # Billing
    "SubscriptionPlanModel",
    "SubscriptionModel",
    "SubscriptionUsageModel",
]
