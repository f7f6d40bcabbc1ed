"""
Subscription Plan Database Model

Plan catalogue seeded by scripts/seed_plans.py.
"""

from typing import Optional

from sqlalchemy import Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class SubscriptionPlanModel(UUIDMixin, TimestampMixin, table=True):
    """
    Maps to the 'subscription_plans' table.

    limits is a JSONB object of limit key -> integer, where -1 means unlimited.
    """

    __tablename__ = "subscription_plans"

    name: str = Field(max_length=50, unique=True, index=True)
    description: Optional[str] = Field(default=None)

    # Pricing (USD)
    price_monthly: float = Field(default=0, sa_type=Numeric(10, 2))
    price_yearly: Optional[float] = Field(default=None, sa_type=Numeric(10, 2))

    features: list[str] = Field(default_factory=list, sa_type=JSONB)
    limits: dict = Field(default_factory=dict, sa_type=JSONB)

    # Stripe price IDs
    stripe_price_id_monthly: Optional[str] = Field(default=None)
    stripe_price_id_yearly: Optional[str] = Field(default=None)

    is_active: bool = Field(default=True, index=True)
