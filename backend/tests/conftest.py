"""
Test configuration and fixtures for TaskiSpace Billing.

Provides shared fixtures for unit and integration tests: in-memory
repository doubles, a fixed clock, signed auth headers and an app whose
repository dependencies point at the doubles.
"""

import os

# Settings are read at import time by app.main; give them test values first.
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("APP_URL", "https://app.taskispace.test")

import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple
from unittest.mock import MagicMock, patch
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from app.domain.subscription import (
    FREE_TIER_LIMITS,
    PRO_TIER_LIMITS,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)
from app.domain.usage_limiter import UsageLimiter
from app.domain.usage_periods import UsageWindow
from app.infrastructure.exceptions import DatabaseError, NotFoundError


FIXED_NOW = datetime(2026, 3, 15, 12, 30, tzinfo=timezone.utc)


# =============================================================================
# In-memory repositories
# =============================================================================

class InMemoryUsageStore:
    """
    Counter store with the same semantics as UsageRepository.

    Set ``fail_reads`` / ``fail_writes`` to simulate driver errors.
    """

    def __init__(self):
        self.rows: Dict[Tuple[str, str], dict] = {}
        self.reads: List[Tuple[str, str, Optional[datetime]]] = []
        self.fail_reads = False
        self.fail_writes = False

    def seed(self, user_id: str, metric_name: str, value: int, period_start: datetime):
        self.rows[(user_id, metric_name)] = {
            "current_value": value,
            "period_start": period_start,
            "period_end": None,
        }

    def value(self, user_id: str, metric_name: str) -> Optional[int]:
        row = self.rows.get((user_id, metric_name))
        return row["current_value"] if row else None

    def _fail(self, operation: str):
        raise DatabaseError(
            f"simulated failure: {operation}",
            operation=operation,
            table="subscription_usage",
        )

    async def get_current_value(self, user_id, metric_name, period_start=None) -> int:
        self.reads.append((user_id, metric_name, period_start))
        if self.fail_reads:
            self._fail("read usage")

        row = self.rows.get((user_id, metric_name))
        if row is None:
            return 0
        if period_start is not None and row["period_start"] < period_start:
            return 0
        return row["current_value"]

    async def upsert_value(self, user_id, metric_name, value: int, window: UsageWindow):
        if self.fail_writes:
            self._fail("upsert usage")
        self.rows[(user_id, metric_name)] = {
            "current_value": value,
            "period_start": window.start,
            "period_end": window.end,
        }

    async def set_value(self, user_id, metric_name, value: int):
        if self.fail_writes:
            self._fail("update usage")
        row = self.rows.get((user_id, metric_name))
        if row is not None:
            row["current_value"] = value

    async def delete_since(self, user_id, metric_names: Iterable[str], period_start) -> int:
        if self.fail_writes:
            self._fail("delete usage")
        names = set(metric_names)
        doomed = [
            key for key, row in self.rows.items()
            if key[0] == user_id and key[1] in names and row["period_start"] >= period_start
        ]
        for key in doomed:
            del self.rows[key]
        return len(doomed)


class InMemoryPlanRepository:
    """Plan catalogue double."""

    table = "subscription_plans"

    def __init__(self, plans: Iterable[SubscriptionPlan]):
        self.plans = {plan.id: plan for plan in plans}

    async def get_active_plans(self) -> List[SubscriptionPlan]:
        active = [plan for plan in self.plans.values() if plan.is_active]
        return sorted(active, key=lambda plan: plan.price_monthly)

    async def get_by_id(self, plan_id) -> Optional[SubscriptionPlan]:
        return self.plans.get(str(plan_id))

    async def get_by_name(self, name: str) -> Optional[SubscriptionPlan]:
        return next((plan for plan in self.plans.values() if plan.name == name), None)


class InMemorySubscriptionRepository:
    """Subscription double; lookups join the plan like the real repository."""

    def __init__(self, plans: InMemoryPlanRepository):
        self._plans = plans
        self.rows: Dict[str, Subscription] = {}
        self.fail_reads = False

    def _with_plan(self, subscription: Subscription) -> Subscription:
        plan = self._plans.plans.get(subscription.plan_id)
        return subscription.model_copy(update={"plan": plan})

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        if self.fail_reads:
            raise DatabaseError("simulated failure", operation="get", table="subscriptions")
        row = self.rows.get(user_id)
        return self._with_plan(row) if row else None

    async def get_by_stripe_subscription_id(self, stripe_subscription_id: str):
        for row in self.rows.values():
            if row.stripe_subscription_id == stripe_subscription_id:
                return self._with_plan(row)
        return None

    async def create(self, subscription: Subscription) -> Subscription:
        stored = subscription.model_copy(update={"id": str(uuid4()), "plan": None})
        self.rows[subscription.user_id] = stored
        return self._with_plan(stored)

    async def update(self, subscription: Subscription) -> Subscription:
        if subscription.user_id not in self.rows:
            raise NotFoundError(
                f"Subscription not found for user {subscription.user_id}",
                operation="update subscription",
                table="subscriptions",
            )
        stored = subscription.model_copy(update={"plan": None})
        self.rows[subscription.user_id] = stored
        return self._with_plan(stored)

    async def get_or_create_free(self, user_id, plans, free_plan_name) -> Subscription:
        existing = await self.get_by_user_id(user_id)
        if existing:
            return existing
        free_plan = await plans.get_by_name(free_plan_name)
        return await self.create(
            Subscription(user_id=user_id, plan_id=free_plan.id, status=SubscriptionStatus.ACTIVE)
        )


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture
def mock_user_id() -> str:
    return "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


@pytest.fixture
def free_plan() -> SubscriptionPlan:
    return SubscriptionPlan(
        id=str(uuid4()),
        name="free",
        price_monthly=0,
        limits=FREE_TIER_LIMITS,
    )


@pytest.fixture
def pro_plan() -> SubscriptionPlan:
    return SubscriptionPlan(
        id=str(uuid4()),
        name="pro",
        price_monthly=5,
        price_yearly=50,
        limits=PRO_TIER_LIMITS,
        stripe_price_id_monthly="price_pro_monthly",
    )


@pytest.fixture
def plan_repo(free_plan, pro_plan) -> InMemoryPlanRepository:
    return InMemoryPlanRepository([pro_plan, free_plan])


@pytest.fixture
def subscription_repo(plan_repo) -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository(plan_repo)


@pytest.fixture
def usage_store() -> InMemoryUsageStore:
    return InMemoryUsageStore()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def limiter(subscription_repo, usage_store, clock) -> UsageLimiter:
    return UsageLimiter(subscriptions=subscription_repo, usage=usage_store, clock=clock)


@pytest.fixture
def subscribe(subscription_repo):
    """Put a user on a plan: ``subscribe(user_id, plan, **fields)``."""

    def _subscribe(user_id: str, plan: SubscriptionPlan, **fields) -> Subscription:
        subscription = Subscription(user_id=user_id, plan_id=plan.id, **fields)
        subscription_repo.rows[user_id] = subscription
        return subscription

    return _subscribe


# =============================================================================
# Auth Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _skip_jwks():
    """Tokens in tests are HS256; never reach out to the JWKS endpoint."""
    with patch(
        "app.api.dependencies._decode_with_jwks",
        side_effect=jwt.InvalidTokenError("JWKS disabled in tests"),
    ):
        yield


@pytest.fixture
def make_token():
    """Sign an HS256 Supabase-style access token."""
    from app.config.settings import get_settings

    def _make_token(sub: str, email: Optional[str] = "user@example.com", expires_in: int = 3600):
        settings = get_settings()
        payload = {
            "sub": sub,
            "aud": "authenticated",
            "iss": f"{settings.supabase_url}/auth/v1",
            "exp": int(time.time()) + expires_in,
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token, mock_user_id) -> dict:
    return {"Authorization": f"Bearer {make_token(mock_user_id)}"}


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def mock_stripe_service():
    """StripeService double; configure return values per test."""
    return MagicMock()


@pytest.fixture
def app(plan_repo, subscription_repo, usage_store, clock, mock_stripe_service):
    """FastAPI application wired to the in-memory doubles."""
    from app.main import app
    from app.api.dependencies import get_usage_limiter
    from app.infrastructure.db.dependencies import (
        get_plan_repository,
        get_subscription_repository,
        get_usage_repository,
    )
    from app.infrastructure.payments.stripe_service import get_stripe_service

    app.dependency_overrides[get_plan_repository] = lambda: plan_repo
    app.dependency_overrides[get_subscription_repository] = lambda: subscription_repo
    app.dependency_overrides[get_usage_repository] = lambda: usage_store
    app.dependency_overrides[get_usage_limiter] = lambda: UsageLimiter(
        subscriptions=subscription_repo, usage=usage_store, clock=clock
    )
    app.dependency_overrides[get_stripe_service] = lambda: mock_stripe_service

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)
