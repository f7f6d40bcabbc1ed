"""
Subscription Database Model

SQLModel table for the one-subscription-per-user row.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionModel(UUIDMixin, TimestampMixin, table=True):
    """
    Subscription table for storing user subscription data.

    Maps to the 'subscriptions' table in PostgreSQL.
    """

    __tablename__ = "subscriptions"

    user_id: UUID = Field(unique=True, index=True, nullable=False)
    plan_id: UUID = Field(foreign_key="subscription_plans.id", index=True, nullable=False)

    status: str = Field(default="active", max_length=20)

    # Stripe IDs
    stripe_customer_id: Optional[str] = Field(default=None, unique=True, index=True)
    stripe_subscription_id: Optional[str] = Field(default=None, unique=True, index=True)

    # Billing period dates
    current_period_start: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    current_period_end: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    cancel_at_period_end: bool = Field(default=False)
    canceled_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
