"""
WebhookEventProcessor: applies Stripe events and the status poll.

Both paths end in SettlementCoordinator.complete_checkout, so a payment
paid while its webhook is delayed or lost reconciles the same way as one
reported by the webhook.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from payments.adapters import StripeAdapter
from payments.exceptions import StripeError
from payments.models import Payment, WebhookEvent
from payments.services import SettlementCoordinator
from payments.state_machines import PaymentStatus
from payments.webhooks.handlers import dispatch_webhook

if TYPE_CHECKING:
    from uuid import UUID


class WebhookEventProcessor(BaseService):
    """
    Usage:
        processor = WebhookEventProcessor()
        result = processor.process(webhook_event)
        status = processor.check_payment_status(conversation_id)
    """

    def __init__(self, coordinator: SettlementCoordinator | None = None, gateway=StripeAdapter):
        self.coordinator = coordinator or SettlementCoordinator()
        self.gateway = gateway

    def process(self, webhook_event: WebhookEvent) -> ServiceResult:
        return dispatch_webhook(webhook_event, self.coordinator)

    def check_payment_status(self, conversation_id: UUID | str) -> dict:
        """
        Report the latest payment for a conversation, syncing it first.

        A pending payment whose checkout session Stripe reports as paid is
        completed here. A Stripe lookup failure is logged and the local
        state is reported as is.
        """
        logger = self.get_logger()
        payment = Payment.objects.filter(conversation_id=conversation_id).order_by("-created_at").first()

        if payment is None:
            return {"status": "not_found", "exists": False}

        if payment.status == PaymentStatus.PENDING and payment.stripe_session_id:
            try:
                session = self.gateway.retrieve_checkout_session(payment.stripe_session_id)
            except StripeError as e:
                logger.warning(
                    "Could not sync payment with Stripe",
                    extra={"payment_id": str(payment.id), "error_code": e.error_code},
                )
            else:
                if session.is_paid:
                    result = self.coordinator.complete_checkout(
                        session.id,
                        payment_intent_id=session.payment_intent_id,
                        metadata=session.metadata,
                    )
                    if result.success:
                        logger.info(
                            "Payment synced from Stripe",
                            extra={"payment_id": str(payment.id), "session_id": session.id},
                        )
                    payment = Payment.objects.get(pk=payment.pk)

        return {
            "status": payment.status,
            "escrow_status": payment.escrow_status,
            "exists": True,
            "payment_id": str(payment.id),
            "session_id": payment.stripe_session_id,
            "offer_id": str(payment.offer_id),
            "completed_at": payment.completed_at,
            "escrowed_at": payment.escrow_held_at,
        }
