"""
Stripe-specific exceptions for payment gateway operations.

Exception Hierarchy:
    ExternalGatewayError (core.exceptions)
    └── StripeError - Base for all Stripe errors
        ├── StripeCardDeclinedError - Card declined (permanent)
        ├── StripeInsufficientFundsError - Insufficient funds (permanent)
        ├── StripeInvalidRequestError - Invalid request params (permanent)
        ├── StripeRateLimitError - Rate limited (transient, retry)
        └── StripeAPIUnavailableError - API unavailable (transient, retry)

Domain rule violations (wrong status, wrong actor, amount mismatch) use
core.exceptions directly; this module only describes gateway failures.

Usage:
    from payments.exceptions import StripeError

    try:
        StripeAdapter.create_refund(...)
    except StripeError as e:
        if e.is_retryable:
            raise self.retry(exc=e)
        raise
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import ExternalGatewayError

if TYPE_CHECKING:
    from typing import Any


class StripeError(ExternalGatewayError):
    """
    Base exception for all Stripe-related errors.

    Attributes:
        stripe_code: Stripe's internal error code
        decline_code: Card decline code (if applicable)
        is_retryable: Whether the operation can be retried with backoff
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    Permanent for this card; decline_code carries the bank's reason.
    """

    default_error_code: str = "CARD_DECLINED"


class StripeInsufficientFundsError(StripeError):
    """Insufficient funds on the payment method or platform balance."""

    default_error_code: str = "INSUFFICIENT_FUNDS"


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Possible causes:
    - Unknown checkout session or payment intent
    - Refund larger than the captured amount
    - Invalid webhook signature

    This usually indicates a bug or a misconfiguration, not a user error.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


# -----------------------------------------------------------------------------
# Transient Errors (safe to retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe could not be reached or returned a server error.

    Covers connection errors, timeouts and 5xx responses.
    """

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True
