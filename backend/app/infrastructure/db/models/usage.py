"""
Subscription Usage Database Model

One counter row per (user, metric). period_start/period_end describe the
window the current value was recorded under.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionUsageModel(UUIDMixin, TimestampMixin, table=True):
    """Maps to the 'subscription_usage' table."""

    __tablename__ = "subscription_usage"
    __table_args__ = (
        # Upsert conflict target
        UniqueConstraint("user_id", "metric_name", name="uq_subscription_usage_user_metric"),
    )

    user_id: UUID = Field(index=True, nullable=False)
    metric_name: str = Field(max_length=50, nullable=False)
    current_value: int = Field(default=0, nullable=False)

    period_start: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    period_end: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
