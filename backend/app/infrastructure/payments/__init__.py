"""
Payments Infrastructure Module

Stripe payment processing services.
"""

from app.infrastructure.payments.stripe_service import (
    StripeService,
    StripeServiceError,
    from_timestamp,
    get_stripe_service,
    invoice_subscription_id,
    subscription_period,
)

__all__ = [
    "StripeService",
    "StripeServiceError",
    "from_timestamp",
    "get_stripe_service",
    "invoice_subscription_id",
    "subscription_period",
]
