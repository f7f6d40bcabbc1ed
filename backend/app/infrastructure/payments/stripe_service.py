"""
Stripe Payment Service

Infrastructure service for Stripe payment processing.
Handles customers, hosted checkout, billing portal, subscription lookup and
webhook verification.
"""

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping, Optional, Tuple

import stripe
from stripe import StripeError

from app.config.settings import get_settings


logger = logging.getLogger(__name__)


class StripeServiceError(Exception):
    """Base exception for Stripe service errors."""
    pass


class StripeService:
    """
    Thin wrapper over the Stripe SDK.

    The API key is passed per request rather than set on the stripe module,
    so several instances (e.g. in tests) do not interfere.
    """

    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str]):
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise StripeServiceError("Stripe is not configured (STRIPE_SECRET_KEY missing)")
        return self._api_key

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(self, user_id: str, email: str) -> stripe.Customer:
        """
        Create a new Stripe customer.

        Args:
            user_id: Internal user ID (stored in metadata)
            email: Customer email for receipts

        Returns:
            stripe.Customer object
        """
        try:
            customer = stripe.Customer.create(
                api_key=self._require_api_key(),
                email=email,
                metadata={"user_id": user_id},
            )
            logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
            return customer

        except StripeError as e:
            logger.error(f"Failed to create Stripe customer: {e}")
            raise StripeServiceError(f"Failed to create customer: {e.user_message or e}")

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
    ) -> stripe.checkout.Session:
        """
        Create a subscription-mode Checkout Session.

        user_id and plan_id are stored in metadata; the
        checkout.session.completed webhook reads them back.

        Returns:
            stripe.checkout.Session with checkout URL
        """
        try:
            session = stripe.checkout.Session.create(
                api_key=self._require_api_key(),
                customer=customer_id,
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"user_id": user_id, "plan_id": plan_id},
            )

            logger.info(
                f"Created checkout session {session.id} for user {user_id}, plan={plan_id}"
            )
            return session

        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise StripeServiceError(f"Failed to create checkout: {e.user_message or e}")

    # =========================================================================
    # Customer Portal
    # =========================================================================

    async def create_portal_session(
        self,
        customer_id: str,
        return_url: str,
    ) -> stripe.billing_portal.Session:
        """Create a Billing Portal session for self-service management."""
        try:
            session = stripe.billing_portal.Session.create(
                api_key=self._require_api_key(),
                customer=customer_id,
                return_url=return_url,
            )

            logger.info(f"Created portal session for customer {customer_id}")
            return session

        except StripeError as e:
            logger.error(f"Failed to create portal session: {e}")
            raise StripeServiceError(f"Failed to create portal: {e.user_message or e}")

    # =========================================================================
    # Subscription Queries
    # =========================================================================

    async def get_active_subscription(self, customer_id: str) -> Optional[dict]:
        """
        Most recent active Stripe subscription for a customer.

        Returns:
            Subscription fields as a dict, or None when the customer has none
        """
        try:
            subscriptions = stripe.Subscription.list(
                api_key=self._require_api_key(),
                customer=customer_id,
                status="active",
                limit=1,
            )
        except StripeError as e:
            logger.error(f"Failed to list subscriptions for {customer_id}: {e}")
            raise StripeServiceError(f"Failed to list subscriptions: {e.user_message or e}")

        return subscriptions.data[0].to_dict() if subscriptions.data else None

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> dict:
        """
        Verify webhook signature and decode the event.

        Returns:
            The event as plain JSON data

        Raises:
            StripeServiceError if payload or signature is invalid
        """
        if not self._webhook_secret:
            raise StripeServiceError("STRIPE_WEBHOOK_SECRET is not configured")

        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self._webhook_secret,
            )
            return json.loads(payload)
        except ValueError as e:
            raise StripeServiceError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise StripeServiceError(f"Invalid signature: {e}")


# =============================================================================
# Payload Helpers
# =============================================================================

def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Stripe unix timestamp to aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def subscription_period(
    subscription: Mapping[str, Any],
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Current billing period of a Stripe subscription.

    Newer API versions report the period on the subscription items instead
    of the subscription itself.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")

    if start is None or end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")

    return from_timestamp(start), from_timestamp(end)


def invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    """Stripe subscription id an invoice was billed for, if any."""
    subscription_id = invoice.get("subscription")
    if subscription_id:
        return subscription_id

    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


@lru_cache
def get_stripe_service() -> StripeService:
    """Cached StripeService built from settings."""
    settings = get_settings()
    return StripeService(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )
