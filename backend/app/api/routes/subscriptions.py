"""
Subscription API Routes

REST API endpoints for subscription views and Stripe billing flows
(checkout, customer portal, manual sync).
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.config.settings import get_settings
from app.domain.subscription import (
    CreateCheckoutRequest,
    LimitCheckResult,
    LimitKey,
    RedirectResponse,
    SubscriptionPlan,
    SubscriptionStatus,
    SubscriptionWithUsage,
    SyncSubscriptionResponse,
)
from app.infrastructure.exceptions import NotFoundError, TaskiSpaceError
from app.infrastructure.payments.stripe_service import (
    StripeService,
    StripeServiceError,
    get_stripe_service,
    subscription_period,
)
from app.api.dependencies import (
    AuthenticatedUser,
    PlanRepoDep,
    SubscriptionRepoDep,
    UsageLimiterDep,
    get_current_user,
    get_current_user_id,
)


logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Subscription Views
# =============================================================================

@router.get("/subscription", response_model=SubscriptionWithUsage)
async def get_subscription(
    limiter: UsageLimiterDep,
    user_id: str = Depends(get_current_user_id),
):
    """Current user's subscription, plan and usage counters."""
    subscription = await limiter.get_user_subscription_with_usage(user_id)

    if not subscription:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found"
        )

    return subscription


@router.get("/subscription/plans", response_model=List[SubscriptionPlan])
async def list_plans(plans: PlanRepoDep):
    """Active plans, cheapest first."""
    return await plans.get_active_plans()


@router.get("/subscription/limits/{limit_key}", response_model=LimitCheckResult)
async def check_limit(
    limit_key: LimitKey,
    limiter: UsageLimiterDep,
    user_id: str = Depends(get_current_user_id),
):
    """Whether the user may perform one more action governed by limit_key."""
    return await limiter.check_limit(user_id, limit_key)


# =============================================================================
# Checkout Endpoints
# =============================================================================

@router.post("/stripe/checkout", response_model=RedirectResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    plans: PlanRepoDep,
    subscriptions: SubscriptionRepoDep,
    user: AuthenticatedUser = Depends(get_current_user),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Create a Stripe Checkout session for a plan purchase.

    Args:
        request: Plan id and billing period

    Returns:
        RedirectResponse with the hosted checkout URL
    """
    settings = get_settings()

    plan = await plans.get_by_id(request.plan_id)
    if not plan:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Plan not found"
        )

    price_id = plan.price_id_for(request.billing_period)
    if not price_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Price ID not configured"
        )

    try:
        subscription = await subscriptions.get_or_create_free(
            user.id, plans, settings.free_plan_name
        )

        customer_id = subscription.stripe_customer_id
        if not customer_id:
            if not user.email:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="An email address is required for billing"
                )

            customer = await stripe_service.create_customer(user_id=user.id, email=user.email)
            customer_id = customer.id
            await subscriptions.update(
                subscription.model_copy(update={"stripe_customer_id": customer_id})
            )

        session = await stripe_service.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            user_id=user.id,
            plan_id=plan.id,
            success_url=f"{settings.app_url}/settings?success=true&tab=subscription",
            cancel_url=f"{settings.app_url}/pricing?canceled=true",
        )

        return RedirectResponse(url=session.url)

    except StripeServiceError as e:
        logger.error(f"Stripe error creating checkout: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except (HTTPException, TaskiSpaceError):
        raise
    except Exception as e:
        logger.error(f"Error creating checkout session: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create checkout session"
        )


# =============================================================================
# Portal Endpoints
# =============================================================================

@router.get("/stripe/portal", response_model=RedirectResponse)
async def create_portal_session(
    subscriptions: SubscriptionRepoDep,
    user_id: str = Depends(get_current_user_id),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Create a Stripe Customer Portal session.

    Allows customers to update payment methods, cancel and view invoices.
    """
    settings = get_settings()
    subscription = await subscriptions.get_by_user_id(user_id)

    if not subscription or not subscription.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No Stripe customer found"
        )

    try:
        session = await stripe_service.create_portal_session(
            customer_id=subscription.stripe_customer_id,
            return_url=f"{settings.app_url}/settings?tab=subscription",
        )
        return RedirectResponse(url=session.url)

    except StripeServiceError as e:
        logger.error(f"Stripe error creating portal: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


# =============================================================================
# Manual Sync
# =============================================================================

@router.post("/stripe/sync-subscription", response_model=SyncSubscriptionResponse)
async def sync_subscription(
    plans: PlanRepoDep,
    subscriptions: SubscriptionRepoDep,
    user_id: str = Depends(get_current_user_id),
    stripe_service: StripeService = Depends(get_stripe_service),
):
    """
    Pull the user's active Stripe subscription into the local row.

    Recovery path for when the checkout webhook was missed.
    """
    settings = get_settings()
    subscription = await subscriptions.get_by_user_id(user_id)

    if not subscription or not subscription.stripe_customer_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No Stripe customer found"
        )

    try:
        stripe_subscription = await stripe_service.get_active_subscription(
            subscription.stripe_customer_id
        )
    except StripeServiceError as e:
        logger.error(f"Stripe error syncing subscription: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    if not stripe_subscription:
        return SyncSubscriptionResponse(
            message="No active subscription found in Stripe",
            synced=False,
        )

    pro_plan = await plans.get_by_name(settings.pro_plan_name)
    if not pro_plan:
        raise NotFoundError(
            f"Plan '{settings.pro_plan_name}' not found",
            operation="sync subscription",
            table="subscription_plans",
        )

    period_start, period_end = subscription_period(stripe_subscription)
    await subscriptions.update(
        subscription.model_copy(
            update={
                "plan_id": pro_plan.id,
                "stripe_subscription_id": stripe_subscription["id"],
                "status": SubscriptionStatus.ACTIVE,
                "current_period_start": period_start,
                "current_period_end": period_end,
            }
        )
    )

    logger.info(f"Synced Stripe subscription {stripe_subscription['id']} for user {user_id}")
    return SyncSubscriptionResponse(
        message="Subscription synced successfully",
        synced=True,
        plan=pro_plan.name,
    )
