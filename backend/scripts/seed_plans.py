#!/usr/bin/env python3
"""
Seed script to create or refresh the free and pro subscription plans.

Stripe price IDs for the pro plan come from STRIPE_PRO_PRICE_ID_MONTHLY and
STRIPE_PRO_PRICE_ID_YEARLY. Re-running updates existing rows by name.

Run: python scripts/seed_plans.py
"""

import asyncio
import sys
from pathlib import Path
from uuid import uuid4

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config.settings import get_settings
from app.domain.subscription import (
    FREE_FEATURES,
    FREE_TIER_LIMITS,
    PRO_FEATURES,
    PRO_TIER_LIMITS,
    SubscriptionPlan,
)
from app.infrastructure.db.database import close_db
from app.infrastructure.db.repositories import PlanRepository


def build_plans() -> list[SubscriptionPlan]:
    """Plan rows as they should exist after seeding."""
    settings = get_settings()

    return [
        SubscriptionPlan(
            id=str(uuid4()),
            name=settings.free_plan_name,
            description="Everything you need to get organized",
            price_monthly=0,
            price_yearly=0,
            features=FREE_FEATURES,
            limits=FREE_TIER_LIMITS,
        ),
        SubscriptionPlan(
            id=str(uuid4()),
            name=settings.pro_plan_name,
            description="Unlimited productivity with Jarvis AI",
            price_monthly=5,
            price_yearly=50,
            features=PRO_FEATURES,
            limits=PRO_TIER_LIMITS,
            stripe_price_id_monthly=settings.stripe_pro_price_id_monthly,
            stripe_price_id_yearly=settings.stripe_pro_price_id_yearly,
        ),
    ]


async def seed_plans():
    """Upsert every plan by name."""
    repo = PlanRepository()

    try:
        for plan in build_plans():
            stored = await repo.upsert(plan)
            price_ids = stored.stripe_price_id_monthly or "no Stripe price"
            print(f"✓ {stored.name}: ${stored.price_monthly:.2f}/month ({price_ids})")
    finally:
        await close_db()

    print("\n✅ Subscription plans seeded")


if __name__ == "__main__":
    print("💳 Seeding Subscription Plans...")
    print("=" * 50)
    asyncio.run(seed_plans())
