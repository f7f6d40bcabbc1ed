"""
Stripe Webhook Handler

Handles Stripe webhook events for subscription lifecycle management.
Implements idempotent event processing backed by the database (survives restarts).

Handled Events:
- checkout.session.completed: Attach the purchased plan to the user
- customer.subscription.created / updated: Sync status and billing period
- customer.subscription.deleted: Move the user back to the free plan
- invoice.payment_succeeded: Reset monthly Jarvis usage
- invoice.payment_failed: Mark subscription past_due
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, HTTPException, status
from sqlalchemy import text

from app.config.settings import get_settings
from app.domain.subscription import Subscription, SubscriptionStatus
from app.domain.usage_limiter import UsageLimiter
from app.infrastructure.db.database import get_session_context
from app.infrastructure.db.repositories import PlanRepository, SubscriptionRepository
from app.infrastructure.payments.stripe_service import (
    StripeService,
    StripeServiceError,
    from_timestamp,
    get_stripe_service,
    invoice_subscription_id,
    subscription_period,
)
from app.api.dependencies import PlanRepoDep, SubscriptionRepoDep, UsageLimiterDep


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Idempotency: DB-backed processed event tracking
# =============================================================================

async def is_event_processed(event_id: str) -> bool:
    """Check if a webhook event has already been processed (DB query)."""
    async with get_session_context() as session:
        result = await session.execute(
            text("SELECT 1 FROM processed_webhook_events WHERE event_id = :eid"),
            {"eid": event_id},
        )
        return result.scalar_one_or_none() is not None


async def mark_event_processed(event_id: str, event_type: str) -> None:
    """Record a processed webhook event in the database."""
    async with get_session_context() as session:
        await session.execute(
            text(
                "INSERT INTO processed_webhook_events (event_id, event_type) "
                "VALUES (:eid, :etype) ON CONFLICT (event_id) DO NOTHING"
            ),
            {"eid": event_id, "etype": event_type},
        )


# =============================================================================
# Webhook Endpoint
# =============================================================================

@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    plans: PlanRepoDep,
    subscriptions: SubscriptionRepoDep,
    limiter: UsageLimiterDep,
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Handle Stripe webhook events.

    Verifies signature and processes subscription lifecycle events.
    Returns 200 OK to acknowledge receipt (Stripe will retry on failure).
    """
    # Get raw payload and signature
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature"
        )

    # Verify signature
    try:
        event = stripe_service.verify_webhook_signature(payload, signature)
    except StripeServiceError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature"
        )

    event_id = event.get("id")
    event_type = event.get("type")

    # Idempotency check
    if await is_event_processed(event_id):
        logger.info(f"Event {event_id} already processed, skipping")
        return {"status": "already_processed"}

    logger.info(f"Processing webhook event: {event_type} ({event_id})")

    try:
        data = event["data"]["object"]

        # Route to appropriate handler
        if event_type == "checkout.session.completed":
            await handle_checkout_completed(data, subscriptions)

        elif event_type in ("customer.subscription.created", "customer.subscription.updated"):
            await handle_subscription_updated(data, subscriptions)

        elif event_type == "customer.subscription.deleted":
            await handle_subscription_deleted(data, subscriptions, plans)

        elif event_type == "invoice.payment_succeeded":
            await handle_invoice_payment_succeeded(data, subscriptions, limiter)

        elif event_type == "invoice.payment_failed":
            await handle_invoice_payment_failed(data, subscriptions)

        else:
            logger.debug(f"Unhandled event type: {event_type}")

        # Mark as processed (DB-backed)
        await mark_event_processed(event_id, event_type)

        return {"status": "success"}

    except Exception as e:
        logger.error(f"Error processing webhook {event_type}: {e}")
        # Event stays unmarked; a 5xx makes Stripe redeliver it
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook handler failed",
        )


# =============================================================================
# Event Handlers
# =============================================================================

async def handle_checkout_completed(session: dict, subscriptions: SubscriptionRepository):
    """
    Handle successful checkout session completion.

    Creates the subscription row or points the existing one at the purchased plan.
    """
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    plan_id = metadata.get("plan_id")

    if not user_id or not plan_id:
        logger.error("Checkout completed without user_id or plan_id in metadata")
        return

    customer_id = session.get("customer")
    stripe_subscription_id = session.get("subscription")

    existing = await subscriptions.get_by_user_id(user_id)

    if not existing:
        await subscriptions.create(
            Subscription(
                user_id=user_id,
                plan_id=plan_id,
                status=SubscriptionStatus.ACTIVE,
                stripe_customer_id=customer_id,
                stripe_subscription_id=stripe_subscription_id,
            )
        )
        logger.info(f"Created subscription on plan {plan_id} for user {user_id}")
        return

    await subscriptions.update(
        existing.model_copy(
            update={
                "plan_id": plan_id,
                "stripe_subscription_id": stripe_subscription_id,
                "status": SubscriptionStatus.ACTIVE,
            }
        )
    )
    logger.info(f"Activated plan {plan_id} for user {user_id}")


async def handle_subscription_updated(
    subscription_data: dict,
    subscriptions: SubscriptionRepository,
):
    """
    Handle subscription creation/updates from Stripe.

    Syncs status, billing period and cancellation fields.
    """
    stripe_subscription_id = subscription_data.get("id")
    subscription = await subscriptions.get_by_stripe_subscription_id(stripe_subscription_id)

    if not subscription:
        logger.warning(f"Subscription not found for Stripe subscription {stripe_subscription_id}")
        return

    try:
        new_status = SubscriptionStatus(subscription_data.get("status"))
    except ValueError:
        logger.warning(f"Unknown Stripe status {subscription_data.get('status')!r}, keeping current")
        new_status = subscription.status

    period_start, period_end = subscription_period(subscription_data)

    await subscriptions.update(
        subscription.model_copy(
            update={
                "status": new_status,
                "current_period_start": period_start,
                "current_period_end": period_end,
                "cancel_at_period_end": bool(subscription_data.get("cancel_at_period_end")),
                "canceled_at": from_timestamp(subscription_data.get("canceled_at")),
            }
        )
    )
    logger.info(f"Synced Stripe subscription {stripe_subscription_id} ({new_status.value})")


async def handle_subscription_deleted(
    subscription_data: dict,
    subscriptions: SubscriptionRepository,
    plans: PlanRepository,
):
    """
    Handle subscription cancellation/deletion.

    Moves the user to the free plan.
    """
    stripe_subscription_id = subscription_data.get("id")
    subscription = await subscriptions.get_by_stripe_subscription_id(stripe_subscription_id)

    if not subscription:
        logger.warning(f"Subscription not found for Stripe subscription {stripe_subscription_id}")
        return

    free_plan_name = get_settings().free_plan_name
    free_plan = await plans.get_by_name(free_plan_name)
    if not free_plan:
        logger.error(f"Plan '{free_plan_name}' not found, cannot downgrade {subscription.user_id}")
        return

    await subscriptions.update(
        subscription.model_copy(
            update={
                "plan_id": free_plan.id,
                "status": SubscriptionStatus.CANCELED,
                "canceled_at": datetime.now(timezone.utc),
            }
        )
    )
    logger.info(f"Downgraded user {subscription.user_id} to {free_plan_name}")


async def handle_invoice_payment_succeeded(
    invoice: dict,
    subscriptions: SubscriptionRepository,
    limiter: UsageLimiter,
):
    """
    Handle successful invoice payment.

    A paid renewal starts a fresh month of Jarvis usage.
    """
    stripe_subscription_id = invoice_subscription_id(invoice)
    if not stripe_subscription_id:
        return

    subscription = await subscriptions.get_by_stripe_subscription_id(stripe_subscription_id)
    if not subscription:
        return

    removed = await limiter.reset_monthly_ai_usage(subscription.user_id)
    logger.info(f"Reset {removed} monthly AI counters for user {subscription.user_id}")


async def handle_invoice_payment_failed(invoice: dict, subscriptions: SubscriptionRepository):
    """
    Handle failed invoice payment.

    Sets subscription to past_due status.
    """
    stripe_subscription_id = invoice_subscription_id(invoice)
    if not stripe_subscription_id:
        return

    subscription = await subscriptions.get_by_stripe_subscription_id(stripe_subscription_id)
    if not subscription:
        return

    await subscriptions.update(
        subscription.model_copy(update={"status": SubscriptionStatus.PAST_DUE})
    )
    logger.warning(f"Payment failed for Stripe subscription {stripe_subscription_id}, set to past_due")
