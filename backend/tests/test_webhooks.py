"""
Integration Tests for Webhooks (Stripe)

Verifies:
- Signature verification failure (400)
- Successful event processing for each handled event type
- Idempotency (prevent double processing)
"""

from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, patch

from app.domain.subscription import SubscriptionStatus
from app.domain.usage_periods import EPOCH
from app.infrastructure.payments.stripe_service import StripeServiceError


USER = "00000000-0000-0000-0000-000000000001"
MARCH_1 = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def event_log():
    """Patch the DB-backed idempotency helpers."""
    with patch("app.api.routes.webhooks.is_event_processed", new_callable=AsyncMock) as mock_is_proc, \
         patch("app.api.routes.webhooks.mark_event_processed", new_callable=AsyncMock) as mock_mark_proc:
        mock_is_proc.return_value = False
        yield mock_is_proc, mock_mark_proc


@pytest.fixture
def send_event(client, mock_stripe_service):
    """Post an event as if Stripe had signed it."""

    def _send(event_type: str, data: dict, event_id: str = "evt_test"):
        event = {"id": event_id, "type": event_type, "data": {"object": data}}
        mock_stripe_service.verify_webhook_signature.return_value = event
        return client.post(
            "/api/stripe/webhook",
            json=event,
            headers={"stripe-signature": "valid_sig"},
        )

    return _send


class TestWebhookVerification:

    def test_webhook_missing_signature(self, client):
        """Webhook without signature header should fail 400."""
        response = client.post("/api/stripe/webhook", json={"id": "evt_123"})
        assert response.status_code == 400
        assert "Missing Stripe signature" in response.json()["detail"]

    def test_webhook_invalid_signature(self, client, mock_stripe_service):
        """Webhook with invalid signature should fail 400."""
        mock_stripe_service.verify_webhook_signature.side_effect = StripeServiceError("Bad sig")

        response = client.post(
            "/api/stripe/webhook",
            json={"id": "evt_123"},
            headers={"stripe-signature": "invalid_sig"}
        )
        assert response.status_code == 400
        assert "Invalid signature" in response.json()["detail"]

    def test_webhook_idempotency(self, send_event, event_log, subscription_repo):
        """Duplicate event should return 'already_processed' and skip logic."""
        mock_is_proc, mock_mark_proc = event_log
        mock_is_proc.return_value = True

        response = send_event(
            "checkout.session.completed",
            {"metadata": {"user_id": USER, "plan_id": "plan"}},
            event_id="evt_duplicate",
        )

        assert response.status_code == 200
        assert response.json() == {"status": "already_processed"}
        assert subscription_repo.rows == {}
        mock_mark_proc.assert_not_called()

    def test_unhandled_event_is_acknowledged(self, send_event, event_log):
        _, mock_mark_proc = event_log

        response = send_event("customer.created", {"id": "cus_1"}, event_id="evt_other")

        assert response.json() == {"status": "success"}
        mock_mark_proc.assert_called_with("evt_other", "customer.created")


class TestCheckoutCompleted:

    def test_creates_subscription(self, send_event, event_log, subscription_repo, pro_plan):
        _, mock_mark_proc = event_log

        response = send_event(
            "checkout.session.completed",
            {
                "id": "cs_123",
                "customer": "cus_test",
                "subscription": "sub_test",
                "metadata": {"user_id": USER, "plan_id": pro_plan.id},
            },
            event_id="evt_checkout_ok",
        )

        assert response.status_code == 200
        assert response.json() == {"status": "success"}

        stored = subscription_repo.rows[USER]
        assert stored.plan_id == pro_plan.id
        assert stored.stripe_customer_id == "cus_test"
        assert stored.stripe_subscription_id == "sub_test"
        assert stored.status == SubscriptionStatus.ACTIVE

        mock_mark_proc.assert_called_with("evt_checkout_ok", "checkout.session.completed")

    def test_upgrades_existing_subscription(
        self, send_event, event_log, subscription_repo, subscribe, free_plan, pro_plan
    ):
        subscribe(USER, free_plan, stripe_customer_id="cus_test", status=SubscriptionStatus.PAST_DUE)

        send_event(
            "checkout.session.completed",
            {
                "customer": "cus_test",
                "subscription": "sub_new",
                "metadata": {"user_id": USER, "plan_id": pro_plan.id},
            },
        )

        stored = subscription_repo.rows[USER]
        assert stored.plan_id == pro_plan.id
        assert stored.stripe_subscription_id == "sub_new"
        assert stored.stripe_customer_id == "cus_test"
        assert stored.status == SubscriptionStatus.ACTIVE

    def test_missing_metadata_is_ignored(self, send_event, event_log, subscription_repo):
        response = send_event("checkout.session.completed", {"metadata": {"user_id": USER}})

        assert response.json() == {"status": "success"}
        assert subscription_repo.rows == {}


class TestSubscriptionLifecycle:

    def test_subscription_updated_syncs_fields(
        self, send_event, event_log, subscription_repo, subscribe, pro_plan
    ):
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")

        send_event(
            "customer.subscription.updated",
            {
                "id": "sub_test",
                "status": "past_due",
                "current_period_start": 1772323200,  # 2026-03-01
                "current_period_end": 1775001600,  # 2026-04-01
                "cancel_at_period_end": True,
                "canceled_at": None,
            },
        )

        stored = subscription_repo.rows[USER]
        assert stored.status == SubscriptionStatus.PAST_DUE
        assert stored.current_period_start == MARCH_1
        assert stored.current_period_end == datetime(2026, 4, 1, tzinfo=timezone.utc)
        assert stored.cancel_at_period_end is True
        assert stored.canceled_at is None

    def test_subscription_period_read_from_items(
        self, send_event, event_log, subscription_repo, subscribe, pro_plan
    ):
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")

        send_event(
            "customer.subscription.created",
            {
                "id": "sub_test",
                "status": "active",
                "items": {"data": [{"current_period_start": 1772323200, "current_period_end": 1775001600}]},
            },
        )

        assert subscription_repo.rows[USER].current_period_start == MARCH_1

    def test_subscription_deleted_moves_to_free(
        self, send_event, event_log, subscription_repo, subscribe, pro_plan, free_plan
    ):
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")

        send_event("customer.subscription.deleted", {"id": "sub_test"})

        stored = subscription_repo.rows[USER]
        assert stored.plan_id == free_plan.id
        assert stored.status == SubscriptionStatus.CANCELED
        assert stored.canceled_at is not None

    def test_unknown_subscription_is_ignored(self, send_event, event_log, subscription_repo):
        response = send_event("customer.subscription.deleted", {"id": "sub_unknown"})

        assert response.json() == {"status": "success"}
        assert subscription_repo.rows == {}


class TestInvoices:

    def test_payment_succeeded_resets_jarvis_usage(
        self, send_event, event_log, subscribe, pro_plan, usage_store
    ):
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")
        usage_store.seed(USER, "jarvis_conversations", 40, MARCH_1)
        usage_store.seed(USER, "jarvis_tokens", 80000, MARCH_1)
        usage_store.seed(USER, "tasks_created", 300, EPOCH)

        send_event("invoice.payment_succeeded", {"subscription": "sub_test"})

        assert usage_store.value(USER, "jarvis_conversations") is None
        assert usage_store.value(USER, "jarvis_tokens") is None
        assert usage_store.value(USER, "tasks_created") == 300

    def test_payment_succeeded_newer_invoice_shape(
        self, send_event, event_log, subscribe, pro_plan, usage_store
    ):
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")
        usage_store.seed(USER, "jarvis_tokens", 80000, MARCH_1)

        send_event(
            "invoice.payment_succeeded",
            {"parent": {"subscription_details": {"subscription": "sub_test"}}},
        )

        assert usage_store.value(USER, "jarvis_tokens") is None

    def test_payment_failed_sets_past_due(
        self, send_event, event_log, subscription_repo, subscribe, pro_plan
    ):
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")

        send_event("invoice.payment_failed", {"subscription": "sub_test"})

        assert subscription_repo.rows[USER].status == SubscriptionStatus.PAST_DUE

    def test_handler_error_is_not_marked_processed(
        self, send_event, event_log, subscription_repo, subscribe, pro_plan
    ):
        """A failing handler answers 500 so Stripe redelivers, and leaves the event unmarked."""
        _, mock_mark_proc = event_log
        subscribe(USER, pro_plan, stripe_subscription_id="sub_test")

        with patch.object(subscription_repo, "update", side_effect=RuntimeError("db down")):
            response = send_event("invoice.payment_failed", {"subscription": "sub_test"})

        assert response.status_code == 500
        assert response.json()["detail"] == "Webhook handler failed"
        mock_mark_proc.assert_not_called()

    def test_checkout_lookup_error_is_retryable(self, send_event, event_log, subscription_repo, pro_plan):
        _, mock_mark_proc = event_log

        with patch.object(
            subscription_repo, "get_by_user_id", AsyncMock(side_effect=RuntimeError("db down"))
        ):
            response = send_event(
                "checkout.session.completed",
                {
                    "customer": "cus_test",
                    "subscription": "sub_test",
                    "metadata": {"user_id": USER, "plan_id": pro_plan.id},
                },
                event_id="evt_checkout_retry",
            )

        assert response.status_code == 500
        assert subscription_repo.rows == {}
        mock_mark_proc.assert_not_called()
