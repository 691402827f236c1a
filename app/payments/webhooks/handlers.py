"""
Webhook event handlers for Stripe events.

Handlers are registered per event type and receive the stored
WebhookEvent plus the SettlementCoordinator that owns the state change.
Every handler is safe to run twice for the same event: the settlement
methods check current state first and return a no-op result when the
change has already been applied.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event, coordinator) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event, coordinator)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.models import Payment, WebhookEvent
from payments.services import SettlementCoordinator

logger = logging.getLogger(__name__)

Handler = Callable[[WebhookEvent, SettlementCoordinator], ServiceResult]


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Handler] = {}


def register_handler(event_type: str) -> Callable[[Handler], Handler]:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payout.paid")
        def handle_payout_paid(webhook_event, coordinator) -> ServiceResult:
            ...
    """

    def decorator(func: Handler) -> Handler:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(
    webhook_event: WebhookEvent,
    coordinator: SettlementCoordinator | None = None,
) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Event types without a handler are acknowledged with success so Stripe
    stops redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    if coordinator is None:
        coordinator = SettlementCoordinator()

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return handler(webhook_event, coordinator)


def _invalid_payload(webhook_event: WebhookEvent, what: str) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: Could not extract {what}",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return ServiceResult.failure(
        f"Could not extract {what} from webhook",
        error_code="INVALID_WEBHOOK_PAYLOAD",
    )


def _payment_for_payout(payout: dict) -> Payment | None:
    """Payouts carry paymentId in metadata; fall back to the stored payout ID."""
    payment_id = (payout.get("metadata") or {}).get("paymentId")
    if payment_id:
        payment = Payment.objects.filter(id=payment_id).first()
        if payment:
            return payment
    payout_id = payout.get("id")
    if payout_id:
        return Payment.objects.filter(stripe_payout_id=payout_id).first()
    return None


# =============================================================================
# Checkout
# =============================================================================


@register_handler("checkout.session.completed")
@register_handler("checkout.session.async_payment_succeeded")
def handle_checkout_session_completed(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    """
    Checkout paid: hold escrow funds, or complete a direct payment.

    A redelivered event finds the payment already escrowed and returns a
    no-op without touching the offer or notifying anyone again.
    """
    session = webhook_event.get_object()
    session_id = session.get("id")

    if not session_id:
        return _invalid_payload(webhook_event, "session id")

    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")

    logger.info(
        "Processing checkout.session.completed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "session_id": session_id,
            "payment_status": session.get("payment_status"),
        },
    )

    if session.get("payment_status") not in (None, "paid", "no_payment_required"):
        # Delayed payment methods report later via async_payment_succeeded
        logger.info(
            "Checkout completed without payment, waiting",
            extra={"session_id": session_id, "payment_status": session.get("payment_status")},
        )
        return ServiceResult.success(None)

    return coordinator.complete_checkout(
        session_id,
        payment_intent_id=payment_intent,
        metadata=session.get("metadata") or {},
    )


# =============================================================================
# Payment Intents (acknowledged, state is driven by the checkout session)
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    logger.info(
        "Payment intent succeeded",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": webhook_event.get_object_id(),
        },
    )
    return ServiceResult.success(None)


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    """
    A card attempt failed. The checkout session stays open so the seeker
    can retry, so the pending Payment is left as is.
    """
    data_object = webhook_event.get_object()
    last_error = data_object.get("last_payment_error") or {}

    logger.warning(
        "Payment intent failed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": data_object.get("id"),
            "reason": last_error.get("message", "Payment failed"),
        },
    )
    return ServiceResult.success(None)


# =============================================================================
# Payouts
# =============================================================================


@register_handler("payout.created")
def handle_payout_created(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    payout = webhook_event.get_object()

    logger.info(
        "Payout created",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payout_id": payout.get("id"),
            "amount": payout.get("amount"),
            "currency": payout.get("currency"),
        },
    )
    return ServiceResult.success(None)


@register_handler("payout.paid")
def handle_payout_paid(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    payout = webhook_event.get_object()
    if not payout.get("id"):
        return _invalid_payload(webhook_event, "payout id")

    payment = _payment_for_payout(payout)
    if payment is None:
        # Payouts not created by this platform
        logger.info(
            "No payment for payout, ignoring",
            extra={"payout_id": payout.get("id"), "stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    return coordinator.ledger.record_payout_paid(payment, payout["id"])


@register_handler("payout.failed")
def handle_payout_failed(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    payout = webhook_event.get_object()
    if not payout.get("id"):
        return _invalid_payload(webhook_event, "payout id")

    payment = _payment_for_payout(payout)
    if payment is None:
        logger.info(
            "No payment for failed payout, ignoring",
            extra={"payout_id": payout.get("id"), "stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    reason = payout.get("failure_message") or "Unknown failure reason"
    return coordinator.ledger.record_payout_failed(payment, payout["id"], reason)


# =============================================================================
# Refunds
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent, coordinator) -> ServiceResult:
    """
    Refunds are recorded when they are created; this only confirms them.
    """
    charge = webhook_event.get_object()
    payment = None
    payment_intent_id = charge.get("payment_intent")
    if payment_intent_id:
        payment = Payment.objects.filter(stripe_payment_intent_id=payment_intent_id).first()

    logger.info(
        "Refund confirmed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "charge_id": charge.get("id"),
            "payment_id": str(payment.id) if payment else None,
            "amount_refunded": charge.get("amount_refunded"),
        },
    )
    return ServiceResult.success(payment)
