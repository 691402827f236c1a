"""
Payment adapters for external services.

All Stripe calls go through StripeAdapter to get consistent error handling,
timeouts, idempotency and observability.

Usage:
    from payments.adapters import StripeAdapter, CheckoutSessionParams

    session = StripeAdapter.create_checkout_session(CheckoutSessionParams(...))
"""

from payments.adapters.stripe_adapter import (
    CheckoutSessionParams,
    CheckoutSessionResult,
    IdempotencyKeyGenerator,
    PayoutResult,
    RefundResult,
    StripeAdapter,
    is_retryable_stripe_error,
)

__all__ = [
    "CheckoutSessionParams",
    "CheckoutSessionResult",
    "IdempotencyKeyGenerator",
    "PayoutResult",
    "RefundResult",
    "StripeAdapter",
    "is_retryable_stripe_error",
]
