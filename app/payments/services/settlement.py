"""
SettlementCoordinator: business events that span offers, payments and jobs.

Each entry point runs its authoritative mutations (Offer, Payment,
JobRequest) in one transaction and registers notifications, realtime
pushes and payouts to run after commit. A failing secondary effect is
logged and never rolls the settlement back.

Usage:
    from payments.services import SettlementCoordinator

    coordinator = SettlementCoordinator()
    coordinator.complete_checkout(session_id, payment_intent_id, metadata)
    coordinator.complete_service(payment.id, seeker)
    coordinator.request_cancellation(offer.id, user, reason="Change of plans")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from core.exceptions import StateConflictError
from core.services import BaseService, ServiceResult
from jobs.models import JobRequestStatus
from jobs.services import JobRequestStore
from notifications.models import NotificationType
from notifications.services import NotificationService
from offers.models import Offer
from offers.negotiation import apply_transition, load_offer, require_party
from offers.states import CancellationStatus, OfferPaymentStatus, OfferStatus

from payments.models import Payment
from payments.refund_policy import RefundDecision, RefundPolicyEngine
from payments.services.escrow_ledger import EscrowLedger
from payments.state_machines import PaymentStatus, PaymentType

if TYPE_CHECKING:
    from uuid import UUID

    from authentication.models import User


@dataclass
class CancellationOutcome:
    offer: Offer
    decision: RefundDecision
    payment: Payment | None = None

    def to_dict(self) -> dict:
        return {
            "offer_id": str(self.offer.id),
            "status": self.offer.status,
            "cancellation_status": self.offer.cancellation_status,
            "refund_percentage": self.decision.percentage,
            "refund_tier": self.decision.tier,
            "refund_amount": self.payment.refund_amount if self.payment else 0,
            "payment_id": str(self.payment.id) if self.payment else None,
            "payment_status": self.payment.status if self.payment else None,
        }


class SettlementCoordinator(BaseService):
    """
    Sequences EscrowLedger calls with the offer, job and notification
    updates each settlement event implies.
    """

    def __init__(
        self,
        ledger: EscrowLedger | None = None,
        policy: RefundPolicyEngine | None = None,
        job_store=JobRequestStore,
        notifications=NotificationService,
    ):
        self.ledger = ledger or EscrowLedger(job_store=job_store, notifications=notifications)
        self.policy = policy or RefundPolicyEngine()
        self.job_store = job_store
        self.notifications = notifications

    # ==========================================================================
    # Funding
    # ==========================================================================

    def complete_checkout(
        self,
        session_id: str,
        payment_intent_id: str | None = None,
        metadata: dict | None = None,
    ) -> ServiceResult[Payment]:
        """
        Apply a paid checkout session.

        The single completion path for the checkout webhook and the status
        poll. Escrow sessions are held; any other session completes the
        payment directly.
        """
        metadata = metadata or {}

        if metadata.get("paymentType") != PaymentType.ESCROW:
            return self.ledger.complete_direct_payment(session_id, payment_intent_id)

        with self.atomic():
            result = self.ledger.mark_escrowed(session_id, payment_intent_id)
            payment = result.data
            if result.success and not result.already_processed and payment.status == PaymentStatus.ESCROWED:
                self._notify(
                    payment.seeker,
                    NotificationType.PAYMENT_ESCROWED,
                    "Payment secured",
                    f'Your payment for "{payment.service_title}" is held in escrow until the service is completed',
                    payment,
                    idempotency_key=f"payment_escrowed:{payment.id}:seeker",
                )
        return result

    # ==========================================================================
    # Release
    # ==========================================================================

    def complete_service(self, payment_id: UUID | str, seeker: User) -> Payment:
        """
        Seeker confirms the work is done; escrow is released to the provider.

        Raises:
            Everything EscrowLedger.release_from_escrow raises
        """
        with self.atomic():
            payment = self.ledger.release_from_escrow(payment_id, seeker)

            self._notify(
                payment.provider,
                NotificationType.PAYMENT_RELEASED,
                "Payment released",
                f'Funds for "{payment.service_title}" were released and your payout is on its way',
                payment,
                idempotency_key=f"payment_released:{payment.id}:provider",
            )
            self._notify(
                payment.seeker,
                NotificationType.PAYMENT_RELEASED,
                "Service completed",
                f'You released the payment for "{payment.service_title}"',
                payment,
                idempotency_key=f"payment_released:{payment.id}:seeker",
            )
            if payment.conversation_id:
                self.ledger.chat.deactivate(payment.conversation_id)

        return payment

    release = complete_service

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    def request_cancellation(self, offer_id: UUID | str, user: User, reason: str = "") -> CancellationOutcome:
        """
        Cancel an accepted or in-progress engagement.

        Cancellation is approved immediately. The refund share comes from
        the service cancellation policy; an escrowed payment is refunded by
        that share and the rest paid out to the provider. An unpaid checkout
        is abandoned and its Stripe session expired.

        Raises:
            AuthorizationError: User is not a party
            StateConflictError: ALREADY_CANCELLED, PAYMENT_IN_PROGRESS, or offer not cancellable
            StripeError: Refund or session expiry failed (nothing is cancelled)
        """
        logger = self.get_logger()

        with self.atomic():
            offer = load_offer(offer_id, for_update=True)
            require_party(offer, user)

            if offer.cancellation_status == CancellationStatus.APPROVED or offer.status == OfferStatus.CANCELLED:
                raise StateConflictError(
                    "This service has already been cancelled",
                    error_code="ALREADY_CANCELLED",
                    details={"offer_id": str(offer.id)},
                )
            if offer.status not in OfferStatus.cancellable_statuses():
                raise StateConflictError(
                    f"Cannot cancel an offer in status '{offer.status}'",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )

            payment = (
                Payment.objects.select_for_update()
                .filter(offer=offer, status__in=PaymentStatus.active_statuses())
                .first()
            )

            decision = self.policy.service_cancellation(
                scheduled_date=offer.scheduled_date or offer.negotiation_date,
                scheduled_time=offer.scheduled_time or offer.negotiation_time,
                amount=payment.amount if payment else 0,
            )

            if payment is not None and payment.status == PaymentStatus.ESCROWED:
                payment = self.ledger.process_cancellation(
                    payment.id,
                    decision.percentage,
                    requested_by=user,
                    reason=reason,
                )
                offer.payment_status = (
                    OfferPaymentStatus.REFUNDED if decision.percentage == 100 else OfferPaymentStatus.PARTIAL_REFUND
                )
                offer.cancellation_refund_amount = Decimal(payment.refund_amount or 0) / 100
            elif payment is not None:
                payment = self.ledger.cancel_pending_payment(payment)
                offer.payment_status = OfferPaymentStatus.NONE

            apply_transition(offer, "cancel", user, reason, decision.percentage)
            offer.save()

            job = self.job_store.get(offer.job_request_id, for_update=True)
            self.job_store.update_status(job, JobRequestStatus.CANCELLED)

            self._notify_cancellation(offer, user, decision)

        logger.info(
            "Service cancelled",
            extra={
                "offer_id": str(offer.id),
                "payment_id": str(payment.id) if payment else None,
                "refund_percentage": decision.percentage,
                "requested_by": str(user.pk),
            },
        )
        return CancellationOutcome(offer=offer, decision=decision, payment=payment)

    # ==========================================================================
    # Secondary effects
    # ==========================================================================

    def _notify(
        self,
        recipient: User,
        notification_type: str,
        title: str,
        message: str,
        payment: Payment,
        idempotency_key: str | None = None,
    ) -> None:
        conversation = payment.conversation

        self.after_commit(
            f"{notification_type} notification",
            lambda: self.notifications.create(
                recipient=recipient,
                notification_type=notification_type,
                title=title,
                message=message,
                conversation=conversation,
                data={"payment_id": str(payment.id), "offer_id": str(payment.offer_id)},
                idempotency_key=idempotency_key,
            ),
        )

    def _notify_cancellation(self, offer: Offer, user: User, decision: RefundDecision) -> None:
        seeker = offer.job_request.seeker
        retained = 100 - decision.percentage
        messages = (
            (seeker, f"The service was cancelled. You will receive a {decision.percentage}% refund"),
            (offer.provider, f"The service was cancelled. You will retain {retained}% of the payment"),
        )
        conversation = offer.conversation

        for recipient, message in messages:
            self.after_commit(
                "service_cancelled notification",
                lambda recipient=recipient, message=message: self.notifications.create(
                    recipient=recipient,
                    notification_type=NotificationType.SERVICE_CANCELLED,
                    title="Service cancelled",
                    message=message,
                    conversation=conversation,
                    data={
                        "offer_id": str(offer.id),
                        "refund_percentage": decision.percentage,
                        "cancelled_by": str(user.pk),
                    },
                    actor=user,
                    idempotency_key=f"service_cancelled:{offer.id}:{recipient.pk}",
                ),
            )
