"""
Stripe API adapter for escrow payment operations.

All Stripe calls go through this adapter to get consistent error
handling, timeouts, idempotency and observability.

Features:
- Bounded timeouts and SDK-level network retries on every call
- Automatic error translation to payments.exceptions
- Structured logging with timing metrics
- Idempotency keys for every mutating call

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK network retries (default: 3)

Usage:
    from payments.adapters import StripeAdapter, CheckoutSessionParams

    session = StripeAdapter.create_checkout_session(
        CheckoutSessionParams(
            amount_cents=100000,
            currency="usd",
            product_name=job.title,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"offerId": str(offer.id), "paymentType": "escrow"},
            idempotency_key="checkout:offer_123:1:ab12cd34",
        )
    )
    session.id, session.url
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidRequestError,
    StripeRateLimitError,
)

# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CheckoutSessionParams:
    """
    Parameters for a one-item Stripe Checkout Session.

    Attributes:
        amount_cents: Unit amount in smallest currency unit
        currency: ISO 4217 currency code
        product_name: Line item name shown on the checkout page
        success_url/cancel_url: Redirect targets
        idempotency_key: Unique key for idempotent creation
        metadata: String key-value pairs echoed back in webhooks
        product_description: Optional line item description
        customer_email: Prefills the checkout form
    """

    amount_cents: int
    currency: str
    product_name: str
    success_url: str
    cancel_url: str
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    product_description: str | None = None
    customer_email: str | None = None

    def __post_init__(self) -> None:
        if self.amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")

    def to_stripe(self) -> dict[str, Any]:
        product_data: dict[str, Any] = {"name": self.product_name}
        if self.product_description:
            product_data["description"] = self.product_description

        params: dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": product_data,
                        "unit_amount": self.amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "metadata": self.metadata,
        }
        if self.customer_email:
            params["customer_email"] = self.customer_email
        return params


@dataclass
class CheckoutSessionResult:
    """
    Result from Checkout Session create/retrieve.

    Attributes:
        id: Session ID (cs_xxx)
        url: Hosted checkout URL (None once completed)
        status: open | complete | expired
        payment_status: paid | unpaid | no_payment_required
        payment_intent_id: PaymentIntent created by the session, if any
        metadata: Metadata attached at creation
    """

    id: str
    url: str | None = None
    status: str | None = None
    payment_status: str | None = None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass
class RefundResult:
    id: str
    amount_cents: int
    status: str
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class PayoutResult:
    """
    Result from Stripe Payout creation.

    Attributes:
        id: Payout ID (po_xxx)
        status: paid | pending | in_transit | canceled | failed
    """

    id: str
    amount_cents: int
    currency: str
    status: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Example:
        key = IdempotencyKeyGenerator.generate("payout", payment.id)
        # "payout:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if a Stripe error is transient.

    Used by the payout flow to decide whether a retry may reuse the same
    idempotency key.
    """
    if isinstance(error, StripeError):
        return error.is_retryable
    return False


def _metadata(obj) -> dict[str, str]:
    return dict(getattr(obj, "metadata", None) or {})


def _payment_intent_id(session) -> str | None:
    """A session's payment_intent may be an ID or an expanded object."""
    intent = getattr(session, "payment_intent", None)
    if intent is None or isinstance(intent, str):
        return intent
    return getattr(intent, "id", None)


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.

    Usage:
        session = StripeAdapter.create_checkout_session(params)
        session = StripeAdapter.retrieve_checkout_session("cs_xxx")
        refund = StripeAdapter.create_refund("pi_xxx", 7000, idem_key, metadata)
        payout = StripeAdapter.create_payout(100000, "usd", idem_key, metadata)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    @classmethod
    def create_checkout_session(cls, params: CheckoutSessionParams) -> CheckoutSessionResult:
        """
        Create a hosted Checkout Session for a single line item.

        Raises:
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_checkout_session",
            "amount_cents": params.amount_cents,
            "currency": params.currency,
            "offer_id": params.metadata.get("offerId"),
            "idempotency_key": params.idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.create(
                idempotency_key=params.idempotency_key,
                **params.to_stripe(),
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "session_id": session.id,
                    "duration_ms": duration_ms,
                },
            )

            return CheckoutSessionResult(
                id=session.id,
                url=session.url,
                status=getattr(session, "status", None),
                payment_status=getattr(session, "payment_status", None),
                payment_intent_id=_payment_intent_id(session),
                metadata=_metadata(session),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_checkout_session(cls, session_id: str) -> CheckoutSessionResult:
        """
        Fetch a Checkout Session (used by the payment status poll).

        Raises:
            StripeInvalidRequestError: Session not found
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_checkout_session",
            "session_id": session_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.retrieve(session_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_status": session.payment_status,
                    "duration_ms": duration_ms,
                },
            )

            return CheckoutSessionResult(
                id=session.id,
                url=getattr(session, "url", None),
                status=getattr(session, "status", None),
                payment_status=session.payment_status,
                payment_intent_id=_payment_intent_id(session),
                metadata=_metadata(session),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def expire_checkout_session(cls, session_id: str) -> CheckoutSessionResult:
        """
        Close an open Checkout Session so it can no longer be paid.

        Raises:
            StripeInvalidRequestError: Session is not open (paid or expired)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "expire_checkout_session",
            "session_id": session_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.expire(session_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": getattr(session, "status", None),
                    "duration_ms": duration_ms,
                },
            )

            return CheckoutSessionResult(
                id=session.id,
                url=getattr(session, "url", None),
                status=getattr(session, "status", None),
                payment_status=getattr(session, "payment_status", None),
                payment_intent_id=_payment_intent_id(session),
                metadata=_metadata(session),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Refunds & Payouts
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        amount_cents: int,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> RefundResult:
        """
        Refund part or all of a captured PaymentIntent.

        Raises:
            StripeInvalidRequestError: Refund not possible
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_refund",
            "payment_intent_id": payment_intent_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            refund = stripe.Refund.create(
                payment_intent=payment_intent_id,
                amount=amount_cents,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "refund_id": refund.id,
                    "status": refund.status,
                    "duration_ms": duration_ms,
                },
            )

            return RefundResult(
                id=refund.id,
                amount_cents=refund.amount,
                status=refund.status,
                payment_intent_id=getattr(refund, "payment_intent", None),
                metadata=_metadata(refund),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_payout(
        cls,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        statement_descriptor: str | None = None,
    ) -> PayoutResult:
        """
        Pay funds out of the platform balance.

        Raises:
            StripeInvalidRequestError: e.g. insufficient platform balance
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_payout",
            "amount_cents": amount_cents,
            "currency": currency,
            "payment_id": (metadata or {}).get("paymentId"),
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            payout_params: dict[str, Any] = {
                "amount": amount_cents,
                "currency": currency,
                "metadata": metadata or {},
            }
            if statement_descriptor:
                payout_params["statement_descriptor"] = statement_descriptor

            payout = stripe.Payout.create(
                idempotency_key=idempotency_key,
                **payout_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payout_id": payout.id,
                    "status": payout.status,
                    "duration_ms": duration_ms,
                },
            )

            return PayoutResult(
                id=payout.id,
                amount_cents=payout.amount,
                currency=payout.currency,
                status=payout.status,
                metadata=_metadata(payout),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify a webhook's Stripe-Signature header and parse the event.

        Raises:
            StripeInvalidRequestError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook payload",
                stripe_code="invalid_payload",
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe SDK exceptions to payments.exceptions.

        Raises:
            StripeCardDeclinedError / StripeInsufficientFundsError: Card errors
            StripeInvalidRequestError: Bad parameters or authentication
            StripeRateLimitError: Rate limited
            StripeAPIUnavailableError: Connection, server or unknown errors
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            if decline_code == "insufficient_funds":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                    decline_code=decline_code,
                ) from error
            raise StripeCardDeclinedError(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if error.code == "balance_insufficient":
                raise StripeInsufficientFundsError(
                    str(error.user_message or error),
                    stripe_code=error.code,
                ) from error
            raise StripeInvalidRequestError(
                str(error.user_message or error),
                stripe_code=error.code,
            ) from error

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            ) from error

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            ) from error

        if isinstance(error, stripe.AuthenticationError):
            logger.critical("Stripe authentication failed - check API key", extra=log_context)
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            ) from error

        if isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            ) from error

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        raise StripeAPIUnavailableError(
            f"Unexpected Stripe error: {error}",
            stripe_code="unknown_error",
        ) from error
