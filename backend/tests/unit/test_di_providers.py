"""
Unit tests for Dependency Injection providers.

Validates that:
- get_stripe_service returns a cached instance via @lru_cache
- Services and repositories take their collaborators at construction
- The limiter provider wires the injected repositories
"""

import inspect
from unittest.mock import MagicMock

import pytest


class TestDIProviders:
    """Tests for provider functions."""

    def test_stripe_service_no_singleton_pattern(self):
        """StripeService should NOT have a __new__ singleton override."""
        from app.infrastructure.payments.stripe_service import StripeService

        assert StripeService.__new__ is object.__new__

    def test_stripe_di_provider_is_cached(self):
        """get_stripe_service should return same instance."""
        from app.infrastructure.payments.stripe_service import get_stripe_service

        get_stripe_service.cache_clear()

        svc1 = get_stripe_service()
        svc2 = get_stripe_service()

        assert svc1 is svc2

        get_stripe_service.cache_clear()

    def test_repository_providers_return_fresh_instances(self):
        from app.infrastructure.db.dependencies import (
            get_plan_repository,
            get_subscription_repository,
            get_usage_repository,
        )
        from app.infrastructure.db.repositories import (
            PlanRepository,
            SubscriptionRepository,
            UsageRepository,
        )

        assert isinstance(get_plan_repository(), PlanRepository)
        assert isinstance(get_subscription_repository(), SubscriptionRepository)
        assert isinstance(get_usage_repository(), UsageRepository)

    def test_usage_limiter_provider_wires_repositories(self):
        from app.api.dependencies import get_usage_limiter

        subscriptions = MagicMock()
        usage = MagicMock()

        limiter = get_usage_limiter(subscriptions=subscriptions, usage=usage)

        assert limiter._subscriptions is subscriptions
        assert limiter._usage is usage


class TestDIOverrides:
    """Tests validating the constructor seams used by tests."""

    @pytest.mark.parametrize(
        "repository",
        ["PlanRepository", "SubscriptionRepository", "UsageRepository"],
    )
    def test_repositories_accept_session_factory(self, repository):
        """Repositories should accept a session_factory arg."""
        from app.infrastructure.db import repositories

        sig = inspect.signature(getattr(repositories, repository).__init__)
        params = [name for name in sig.parameters if name != "self"]
        assert params == ["session_factory"], f"Expected session_factory, got: {params}"

    def test_stripe_service_takes_credentials(self):
        from app.infrastructure.payments.stripe_service import StripeService

        sig = inspect.signature(StripeService.__init__)
        params = [name for name in sig.parameters if name != "self"]
        assert params == ["api_key", "webhook_secret"]

    def test_database_manager_takes_settings(self):
        from app.infrastructure.db.database import DatabaseManager

        assert DatabaseManager.__new__ is object.__new__
        manager = DatabaseManager(settings=MagicMock())
        # Engine is created lazily
        assert manager._engine is None
