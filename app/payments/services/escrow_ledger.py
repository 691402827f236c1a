"""
EscrowLedger: the money side of an accepted offer.

Owns the Payment row from checkout to payout or refund:

    create_escrow_checkout  -> Stripe Checkout Session + pending Payment
    mark_escrowed           -> funds held, offer/job move to in_progress
    cancel_pending_payment  -> unpaid checkout abandoned, Stripe session expired
    release_from_escrow     -> payment completed, offer/job completed
    create_provider_payout  -> Stripe payout of the released amount
    process_cancellation    -> Stripe refund of the policy percentage

Gateway calls that create money movement (checkout, refund) run before the
local mutation commits, so a Stripe failure leaves no half-written state.
The provider payout after release is the exception: the release is
authoritative and the payout is requested after commit, recording its own
failure on the payout sub-state.

Usage:
    from payments.services import EscrowLedger

    ledger = EscrowLedger()
    checkout = ledger.create_escrow_checkout(offer.id, seeker, Decimal("1000"))
    checkout.url   # redirect the seeker here
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.paginator import Paginator
from django.db import IntegrityError
from django.db.models import Count, Q, Sum
from django.utils import timezone

from core.exceptions import (
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from core.services import BaseService, ServiceResult
from chat.models import Conversation
from chat.services import ChatService
from jobs.models import JobRequestStatus
from jobs.services import JobRequestStore
from notifications.models import NotificationType
from notifications.realtime import RealtimeGateway
from notifications.services import NotificationService
from offers.models import Offer
from offers.negotiation import apply_transition, load_offer, require_seeker
from offers.states import CancellationStatus, OfferPaymentStatus, OfferStatus

from payments.adapters import (
    CheckoutSessionParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
    is_retryable_stripe_error,
)
from payments.exceptions import StripeError, StripeInvalidRequestError
from payments.models import Payment
from payments.refund_policy import round_half_up
from payments.state_machines import PaymentStatus, PaymentType, PayoutStatus

if TYPE_CHECKING:
    from uuid import UUID

    from authentication.models import User

# Statuses a completion event can no longer move forward from
SETTLED_STATUSES = (
    PaymentStatus.ESCROWED,
    PaymentStatus.COMPLETED,
    PaymentStatus.REFUNDED,
    PaymentStatus.PARTIAL_REFUND,
)


@dataclass
class EscrowRequest:
    """Validated snapshot used to build a checkout session."""

    offer: Offer
    amount: Decimal

    @property
    def job_request(self):
        return self.offer.job_request

    @property
    def conversation(self):
        return self.offer.conversation


@dataclass
class EscrowCheckout:
    session_id: str
    url: str | None
    payment_id: str

    def to_dict(self) -> dict:
        return {"session_id": self.session_id, "url": self.url, "payment_id": self.payment_id}


def load_payment(payment_id: UUID | str, for_update: bool = False) -> Payment:
    """
    Fetch a payment.

    Raises:
        NotFoundError: If the payment does not exist
    """
    queryset = Payment.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    payment = queryset.filter(id=payment_id).first()
    if payment is None:
        raise NotFoundError("Payment not found", details={"payment_id": str(payment_id)})
    return payment


def checkout_urls(conversation_id) -> tuple[str, str]:
    frontend = settings.FRONTEND_URL.rstrip("/")
    success_url = f"{frontend}/payment/success?session_id={{CHECKOUT_SESSION_ID}}&type=escrow"
    cancel_url = f"{frontend}/chat/{conversation_id}"
    return success_url, cancel_url


class EscrowLedger(BaseService):
    """
    Escrow lifecycle for offer payments.

    Collaborators are injected so tests can substitute the gateway or the
    notifier without patching module globals.
    """

    def __init__(
        self,
        gateway=StripeAdapter,
        job_store=JobRequestStore,
        chat=ChatService,
        notifications=NotificationService,
        realtime=RealtimeGateway,
    ):
        self.gateway = gateway
        self.job_store = job_store
        self.chat = chat
        self.notifications = notifications
        self.realtime = realtime

    # ==========================================================================
    # Checkout
    # ==========================================================================

    def validate_escrow_payment_request(self, offer_id: UUID | str, user: User, amount) -> EscrowRequest:
        """
        Check that ``user`` may pay ``amount`` into escrow for the offer.

        Raises:
            NotFoundError: Offer missing
            AuthorizationError: User is not the job request's seeker
            StateConflictError: Offer not accepted, or an active payment exists
            ValidationError: Missing price, or amount off by more than the tolerance
        """
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError(
                "Amount must be a number",
                details={"amount": ["A valid number is required."]},
            ) from e
        if amount <= 0:
            raise ValidationError(
                "Amount must be positive",
                details={"amount": ["Ensure this value is greater than 0."]},
            )

        offer = load_offer(offer_id)
        require_seeker(offer, user)

        if offer.status != OfferStatus.ACCEPTED:
            raise StateConflictError(
                "Offer must be accepted before payment",
                details={"offer_id": str(offer.id), "status": offer.status},
            )

        if Payment.objects.filter(offer=offer, status__in=PaymentStatus.active_statuses()).exists():
            raise StateConflictError(
                "A payment for this offer already exists",
                error_code="ACTIVE_PAYMENT_EXISTS",
                details={"offer_id": str(offer.id)},
            )

        if offer.negotiation_price is None:
            raise ValidationError(
                "Negotiated price must be set before payment",
                error_code="MISSING_FIELD",
                details={"missing_fields": ["price"]},
            )

        tolerance = Decimal(str(getattr(settings, "ESCROW_AMOUNT_TOLERANCE", 1)))
        if abs(amount - offer.negotiation_price) > tolerance:
            raise ValidationError(
                "Payment amount does not match the negotiated price",
                error_code="AMOUNT_MISMATCH",
                details={
                    "amount": str(amount),
                    "negotiated_price": str(offer.negotiation_price),
                },
            )

        return EscrowRequest(offer=offer, amount=amount)

    def create_escrow_checkout(self, offer_id: UUID | str, seeker: User, amount) -> EscrowCheckout:
        """
        Open a Stripe Checkout Session and record the pending payment.

        Raises:
            Everything validate_escrow_payment_request raises
            StripeError: Session could not be created (nothing is persisted)
        """
        logger = self.get_logger()
        request = self.validate_escrow_payment_request(offer_id, seeker, amount)
        offer = request.offer
        job = request.job_request

        amount_cents = round_half_up(request.amount * 100)
        success_url, cancel_url = checkout_urls(offer.conversation_id)
        attempt = Payment.objects.filter(offer=offer).count() + 1

        metadata = {
            "offerId": str(offer.id),
            "conversationId": str(offer.conversation_id or ""),
            "jobRequestId": str(job.id),
            "userId": str(seeker.pk),
            "providerId": str(offer.provider_id),
            "serviceTitle": job.title,
            "amount": str(amount_cents),
            "originalCurrency": offer.currency or "EGP",
            "originalAmount": str(request.amount),
            "paymentType": PaymentType.ESCROW,
        }

        session = self.gateway.create_checkout_session(
            CheckoutSessionParams(
                amount_cents=amount_cents,
                currency=getattr(settings, "STRIPE_CURRENCY", "usd"),
                product_name=job.title,
                product_description=f"Escrow payment for service: {job.title}",
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
                customer_email=seeker.email or None,
                idempotency_key=IdempotencyKeyGenerator.generate("checkout", offer.id, attempt),
            )
        )

        payment = self.create_pending_payment(request, seeker, session.id, amount_cents)

        logger.info(
            "Escrow checkout created",
            extra={
                "payment_id": str(payment.id),
                "offer_id": str(offer.id),
                "session_id": session.id,
                "amount": amount_cents,
            },
        )
        return EscrowCheckout(session_id=session.id, url=session.url, payment_id=str(payment.id))

    def create_pending_payment(
        self,
        request: EscrowRequest,
        seeker: User,
        session_id: str,
        amount_cents: int,
    ) -> Payment:
        """
        Persist the pending Payment for a created checkout session.

        The offer is re-read under lock; a payment created concurrently for
        the same offer loses on the one-active-payment constraint.

        Raises:
            StateConflictError: ACTIVE_PAYMENT_EXISTS, or the offer left accepted
        """
        with self.atomic():
            offer = load_offer(request.offer.id, for_update=True)
            if offer.status != OfferStatus.ACCEPTED:
                raise StateConflictError(
                    "Offer must be accepted before payment",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )

            try:
                with self.atomic():
                    payment = Payment.objects.create(
                        offer=offer,
                        job_request=offer.job_request,
                        conversation=offer.conversation,
                        seeker=seeker,
                        provider=offer.provider,
                        service_title=offer.job_request.title,
                        payment_type=PaymentType.ESCROW,
                        stripe_session_id=session_id,
                        amount=amount_cents,
                        currency=getattr(settings, "STRIPE_CURRENCY", "usd"),
                        original_amount=request.amount,
                        original_currency=offer.currency or "EGP",
                        scheduled_date=offer.negotiation_date,
                        scheduled_time=offer.negotiation_time or "",
                    )
            except IntegrityError as e:
                raise StateConflictError(
                    "A payment for this offer already exists",
                    error_code="ACTIVE_PAYMENT_EXISTS",
                    details={"offer_id": str(offer.id)},
                ) from e

            offer.payment = payment
            offer.payment_status = OfferPaymentStatus.PENDING
            offer.payment_amount = request.amount
            offer.payment_currency = offer.currency
            offer.scheduled_date = offer.negotiation_date
            offer.scheduled_time = offer.negotiation_time or ""
            offer.save()

        return payment

    # ==========================================================================
    # Completion (webhook + polling)
    # ==========================================================================

    def mark_escrowed(self, session_id: str, payment_intent_id: str | None = None) -> ServiceResult[Payment]:
        """
        Record that a checkout session was paid into escrow.

        Safe to call repeatedly: a payment that is already escrowed (or
        settled further) returns a no-op result without touching the offer,
        the job or sending notifications again.
        """
        logger = self.get_logger()

        with self.atomic():
            payment = Payment.objects.select_for_update().filter(stripe_session_id=session_id).first()
            if payment is None:
                return ServiceResult.failure(
                    f"Payment not found for session: {session_id}",
                    error_code="PAYMENT_NOT_FOUND",
                )

            if payment.status in SETTLED_STATUSES:
                logger.info(
                    "Escrow completion already processed",
                    extra={"payment_id": str(payment.id), "session_id": session_id},
                )
                return ServiceResult.noop(payment)

            if payment.status == PaymentStatus.CANCELLED:
                return self._refund_late_checkout(payment, payment_intent_id)

            if payment.status != PaymentStatus.PENDING:
                logger.error(
                    "Paid checkout for a payment that is no longer pending",
                    extra={
                        "payment_id": str(payment.id),
                        "session_id": session_id,
                        "status": payment.status,
                    },
                )
                return ServiceResult.failure(
                    f"Payment {payment.id} is {payment.status}, cannot escrow",
                    error_code="PAYMENT_NOT_PENDING",
                )

            payment.mark_escrowed(payment_intent_id)
            payment.save()

            offer = load_offer(payment.offer_id, for_update=True)
            offer.payment = payment
            offer.payment_status = OfferPaymentStatus.ESCROWED
            offer.escrowed_at = payment.escrow_held_at
            if offer.status == OfferStatus.ACCEPTED:
                offer.start_work()
            else:
                logger.warning(
                    "Escrow funded for an offer that is not accepted",
                    extra={"offer_id": str(offer.id), "status": offer.status},
                )
            offer.save()

            job = self.job_store.get(payment.job_request_id, for_update=True)
            self.job_store.update_status(job, JobRequestStatus.IN_PROGRESS)

            self._notify(
                payment.provider,
                NotificationType.PAYMENT_ESCROWED,
                "Payment secured in escrow",
                f'The seeker has paid for "{payment.service_title}". You can start the work',
                payment,
                idempotency_key=f"payment_escrowed:{payment.id}:provider",
            )
            self._push_payment_update(payment)

        logger.info(
            "Payment escrowed",
            extra={
                "payment_id": str(payment.id),
                "offer_id": str(payment.offer_id),
                "session_id": session_id,
                "amount": payment.amount,
            },
        )
        return ServiceResult.success(payment)

    def _refund_late_checkout(self, payment: Payment, payment_intent_id: str | None) -> ServiceResult[Payment]:
        """
        Refund a checkout paid after its offer was cancelled.

        Runs under the caller's row lock. The refund key is stable per
        payment, so a redelivered event cannot refund twice.
        """
        logger = self.get_logger()
        payment_intent_id = payment_intent_id or payment.stripe_payment_intent_id
        if not payment_intent_id:
            logger.error(
                "Cancelled checkout paid without a payment intent",
                extra={"payment_id": str(payment.id), "session_id": payment.stripe_session_id},
            )
            return ServiceResult.failure(
                f"Payment {payment.id} was paid after cancellation but has no payment intent to refund",
                error_code="PAYMENT_INTENT_MISSING",
            )

        try:
            refund = self.gateway.create_refund(
                payment_intent_id=payment_intent_id,
                amount_cents=payment.amount,
                idempotency_key=IdempotencyKeyGenerator.generate("late_checkout_refund", payment.id),
                metadata={
                    "paymentId": str(payment.id),
                    "offerId": str(payment.offer_id),
                    "refundPercentage": "100",
                    "reason": "Checkout paid after the service was cancelled",
                },
            )
        except StripeError as e:
            logger.error(
                "Refund of late checkout failed",
                extra={"payment_id": str(payment.id), "error_code": e.error_code},
            )
            return ServiceResult.from_exception(e)

        payment.refund_late_checkout(payment_intent_id, refund.id)
        payment.cancellation_processed_at = timezone.now()
        payment.save()

        self._notify(
            payment.seeker,
            NotificationType.PAYMENT_REFUNDED,
            "Payment refunded",
            f'Your payment for the cancelled service "{payment.service_title}" has been refunded in full',
            payment,
            idempotency_key=f"late_checkout_refund:{payment.id}",
        )

        logger.warning(
            "Refunded checkout paid after cancellation",
            extra={
                "payment_id": str(payment.id),
                "refund_id": refund.id,
                "amount": payment.amount,
            },
        )
        return ServiceResult.success(payment)

    def complete_direct_payment(
        self,
        session_id: str,
        payment_intent_id: str | None = None,
    ) -> ServiceResult[Payment]:
        """
        Completion for a checkout that does not go through escrow.

        The payment completes, the job completes and the conversation is
        closed.
        """
        with self.atomic():
            payment = Payment.objects.select_for_update().filter(stripe_session_id=session_id).first()
            if payment is None:
                return ServiceResult.failure(
                    f"Payment not found for session: {session_id}",
                    error_code="PAYMENT_NOT_FOUND",
                )
            if payment.status != PaymentStatus.PENDING:
                return ServiceResult.noop(payment)

            payment.complete_direct(payment_intent_id)
            payment.save()

            job = self.job_store.get(payment.job_request_id, for_update=True)
            self.job_store.update_status(job, JobRequestStatus.COMPLETED)

            if payment.conversation_id:
                self.chat.deactivate(payment.conversation_id)

        self.get_logger().info(
            "Direct payment completed",
            extra={"payment_id": str(payment.id), "session_id": session_id},
        )
        return ServiceResult.success(payment)

    # ==========================================================================
    # Release & payout
    # ==========================================================================

    def release_from_escrow(self, payment_id: UUID | str, actor: User) -> Payment:
        """
        Release held funds to the provider.

        The payment, offer and job complete in one transaction; the Stripe
        payout is requested after commit and never undoes the release.

        Raises:
            NotFoundError: Payment missing
            AuthorizationError: Actor is not the paying seeker
            StateConflictError: Funds are not held in escrow
        """
        with self.atomic():
            payment = load_payment(payment_id, for_update=True)

            if actor.pk != payment.seeker_id:
                raise AuthorizationError(
                    "Only the seeker who paid can release funds",
                    details={"payment_id": str(payment.id)},
                )

            if not payment.is_escrow_held:
                raise StateConflictError(
                    "Payment is not held in escrow",
                    details={
                        "payment_id": str(payment.id),
                        "status": payment.status,
                        "escrow_status": payment.escrow_status,
                    },
                )

            payment.release()
            payment.save()

            offer = load_offer(payment.offer_id, for_update=True)
            if offer.status == OfferStatus.ACCEPTED:
                apply_transition(offer, "start_work")
            apply_transition(offer, "complete")
            offer.save()

            job = self.job_store.get(payment.job_request_id, for_update=True)
            self.job_store.update_status(job, JobRequestStatus.COMPLETED)

            payment_pk = payment.pk
            self.after_commit("provider payout", lambda: self.create_provider_payout(payment_pk))

        self.get_logger().info(
            "Escrow released",
            extra={
                "payment_id": str(payment.id),
                "offer_id": str(payment.offer_id),
                "amount": payment.amount,
            },
        )
        return payment

    def create_provider_payout(self, payment_id: UUID | str) -> ServiceResult[Payment]:
        """
        Pay the provider's share out through Stripe.

        Phase 1 claims the payout under a row lock and commits. Phase 2 calls
        Stripe outside any transaction. Phase 3 stores the payout ID, or the
        failure reason. A payment that already has a payout ID is a no-op.

        The idempotency key carries payout_key_attempt, which only advances
        after Stripe definitively rejects a request. A timeout or connection
        error leaves it unchanged so the retry sweep resends the same key.
        """
        logger = self.get_logger()

        with self.atomic():
            payment = load_payment(payment_id, for_update=True)

            if payment.stripe_payout_id:
                return ServiceResult.noop(payment)

            if payment.payout_status not in (PayoutStatus.PROCESSING, PayoutStatus.FAILED):
                return ServiceResult.failure(
                    f"Payout for payment {payment.id} is {payment.payout_status}",
                    error_code="PAYOUT_NOT_READY",
                )

            payment.payout_status = PayoutStatus.PROCESSING
            payment.payout_attempts += 1
            payment.save()

        amount = payment.payout_amount or payment.amount
        idempotency_key = IdempotencyKeyGenerator.generate("payout", payment.id, payment.payout_key_attempt)

        try:
            payout = self.gateway.create_payout(
                amount_cents=amount,
                currency=payment.currency,
                idempotency_key=idempotency_key,
                metadata={
                    "paymentId": str(payment.id),
                    "offerId": str(payment.offer_id),
                    "providerId": str(payment.provider_id),
                    "serviceTitle": payment.service_title,
                },
                statement_descriptor=f"Service: {payment.service_title}"[:22],
            )
        except StripeError as e:
            with self.atomic():
                payment = load_payment(payment_id, for_update=True)
                payment.mark_payout_failed(e.message)
                if not is_retryable_stripe_error(e):
                    # Transient errors keep the key: Stripe may already have created the payout
                    payment.payout_key_attempt += 1
                payment.save()
                self._notify(
                    payment.provider,
                    NotificationType.PAYOUT_FAILED,
                    "Payout failed",
                    "We could not send your payout. Our team has been alerted",
                    payment,
                )
            logger.error(
                "Provider payout failed",
                extra={
                    "payment_id": str(payment.id),
                    "amount": amount,
                    "error_code": e.error_code,
                    "attempt": payment.payout_attempts,
                    "retryable": e.is_retryable,
                },
            )
            return ServiceResult.from_exception(e)

        with self.atomic():
            payment = load_payment(payment_id, for_update=True)
            payment.stripe_payout_id = payout.id
            if payout.is_paid:
                payment.mark_payout_processed()
            payment.save()

        logger.info(
            "Provider payout created",
            extra={
                "payment_id": str(payment.id),
                "payout_id": payout.id,
                "amount": amount,
                "payout_status": payment.payout_status,
            },
        )
        return ServiceResult.success(payment)

    def record_payout_paid(self, payment: Payment, payout_id: str) -> ServiceResult[Payment]:
        """payout.paid: the provider has been paid."""
        with self.atomic():
            payment = load_payment(payment.pk, for_update=True)
            if payment.payout_status == PayoutStatus.PROCESSED:
                return ServiceResult.noop(payment)

            if not payment.stripe_payout_id:
                payment.stripe_payout_id = payout_id
            payment.mark_payout_processed()
            payment.save()

        self.get_logger().info(
            "Payout completed",
            extra={"payment_id": str(payment.id), "payout_id": payout_id},
        )
        return ServiceResult.success(payment)

    def record_payout_failed(self, payment: Payment, payout_id: str, reason: str) -> ServiceResult[Payment]:
        """payout.failed: keep the release, record why the money did not arrive."""
        with self.atomic():
            payment = load_payment(payment.pk, for_update=True)
            if payment.payout_status == PayoutStatus.FAILED and payment.payout_failure_reason == reason:
                return ServiceResult.noop(payment)

            if not payment.stripe_payout_id:
                payment.stripe_payout_id = payout_id
            payment.mark_payout_failed(reason)
            payment.save()

            self._notify(
                payment.provider,
                NotificationType.PAYOUT_FAILED,
                "Payout failed",
                "We could not send your payout. Our team has been alerted",
                payment,
                idempotency_key=f"payout_failed:{payout_id}",
            )

        self.get_logger().error(
            "Payout failed",
            extra={"payment_id": str(payment.id), "payout_id": payout_id, "reason": reason},
        )
        return ServiceResult.success(payment)

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    def cancel_pending_payment(self, payment: Payment) -> Payment:
        """
        Abandon an unpaid checkout.

        The Checkout Session is expired first so it can no longer be paid.
        Call inside the cancellation transaction: a Stripe failure propagates
        and nothing is cancelled. A session Stripe reports as already
        complete means the payment is in flight, so the cancellation is
        refused until the completion webhook has escrowed it.

        Raises:
            StateConflictError: PAYMENT_IN_PROGRESS, the session was paid
            StripeError: Stripe could not expire or look up the session
        """
        if payment.stripe_session_id:
            try:
                self.gateway.expire_checkout_session(payment.stripe_session_id)
            except StripeInvalidRequestError:
                session = self.gateway.retrieve_checkout_session(payment.stripe_session_id)
                if session.status != "expired":
                    raise StateConflictError(
                        "The checkout has just been paid; cancel again once the payment is confirmed",
                        error_code="PAYMENT_IN_PROGRESS",
                        details={"payment_id": str(payment.id), "session_status": session.status},
                    ) from None

        payment.cancel()
        payment.save()

        self.get_logger().info(
            "Pending checkout abandoned",
            extra={"payment_id": str(payment.id), "session_id": payment.stripe_session_id},
        )
        return payment

    def process_cancellation(
        self,
        payment_id: UUID | str,
        refund_percentage: int,
        requested_by: User | None = None,
        reason: str = "",
    ) -> Payment:
        """
        Refund ``refund_percentage`` of an escrowed payment.

        The Stripe refund is created inside the transaction; if it fails the
        payment is left untouched. A partial refund pays the remainder out to
        the provider after commit.

        Raises:
            StateConflictError: ALREADY_REFUNDED, or funds not held
            ValidationError: Percentage outside 0..100
            StripeError: Refund rejected by Stripe
        """
        if not 0 <= refund_percentage <= 100:
            raise ValidationError(
                "Refund percentage must be between 0 and 100",
                details={"refund_percentage": [str(refund_percentage)]},
            )

        with self.atomic():
            payment = load_payment(payment_id, for_update=True)

            if payment.stripe_refund_id or payment.status in (PaymentStatus.REFUNDED, PaymentStatus.PARTIAL_REFUND):
                raise StateConflictError(
                    "Payment has already been refunded",
                    error_code="ALREADY_REFUNDED",
                    details={"payment_id": str(payment.id)},
                )

            if not payment.is_escrow_held:
                raise StateConflictError(
                    "Only payments held in escrow can be refunded",
                    details={"payment_id": str(payment.id), "status": payment.status},
                )

            refund_amount = round_half_up(Decimal(payment.amount) * refund_percentage / 100)
            provider_amount = payment.amount - refund_amount

            if refund_amount > 0:
                if not payment.stripe_payment_intent_id:
                    raise StateConflictError(
                        "Payment has no captured payment intent to refund",
                        details={"payment_id": str(payment.id)},
                    )
                refund = self.gateway.create_refund(
                    payment_intent_id=payment.stripe_payment_intent_id,
                    amount_cents=refund_amount,
                    idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
                    metadata={
                        "paymentId": str(payment.id),
                        "offerId": str(payment.offer_id),
                        "refundPercentage": str(refund_percentage),
                        "reason": reason or "Service cancelled",
                    },
                )
                payment.stripe_refund_id = refund.id

            if refund_percentage == 100:
                payment.refund_in_full()
            else:
                payment.refund_in_part(provider_amount)

            now = timezone.now()
            payment.cancellation_status = CancellationStatus.APPROVED
            payment.cancellation_requested_by = requested_by
            payment.cancellation_requested_at = now
            payment.cancellation_reason = reason or ""
            payment.refund_amount = refund_amount
            payment.refund_percentage = refund_percentage
            payment.cancellation_processed_at = now
            payment.save()

            if refund_percentage < 100 and provider_amount > 0:
                payment_pk = payment.pk
                self.after_commit("remainder payout", lambda: self.create_provider_payout(payment_pk))

        self.get_logger().info(
            "Escrow refunded",
            extra={
                "payment_id": str(payment.id),
                "refund_amount": refund_amount,
                "refund_percentage": refund_percentage,
                "provider_amount": provider_amount,
            },
        )
        return payment

    # ==========================================================================
    # Queries
    # ==========================================================================

    def get_payment(self, payment_id: UUID | str, user: User) -> Payment:
        payment = load_payment(payment_id)
        if not payment.is_party(user):
            raise AuthorizationError(
                "You are not a party to this payment",
                details={"payment_id": str(payment.id)},
            )
        return payment

    def get_user_payments(self, user: User, page: int = 1, limit: int = 20) -> dict:
        """Payments where the user paid or is being paid, newest first."""
        queryset = (
            Payment.objects.filter(Q(seeker=user) | Q(provider=user))
            .select_related("offer", "job_request")
            .order_by("-created_at")
        )
        paginator = Paginator(queryset, max(1, min(limit, 100)))
        page_obj = paginator.get_page(page)
        return {
            "results": list(page_obj.object_list),
            "page": page_obj.number,
            "pages": paginator.num_pages,
            "total": paginator.count,
        }

    def get_payment_stats(self, user: User) -> dict:
        """
        Totals in minor units, split by role.

        Example:
            {
                "as_seeker": {"count": 2, "total_paid": 150000, "in_escrow": 50000, "refunded": 0},
                "as_provider": {"count": 1, "total_earned": 100000, "pending_release": 0},
            }
        """
        as_seeker = Payment.objects.filter(seeker=user).aggregate(
            count=Count("id"),
            total_paid=Sum("amount", filter=Q(status__in=SETTLED_STATUSES)),
            in_escrow=Sum("amount", filter=Q(status=PaymentStatus.ESCROWED)),
            refunded=Sum("refund_amount", filter=Q(status__in=[PaymentStatus.REFUNDED, PaymentStatus.PARTIAL_REFUND])),
        )
        as_provider = Payment.objects.filter(provider=user).aggregate(
            count=Count("id"),
            total_earned=Sum("payout_amount", filter=Q(payout_status=PayoutStatus.PROCESSED)),
            pending_release=Sum("amount", filter=Q(status=PaymentStatus.ESCROWED)),
        )
        return {
            "as_seeker": {key: value or 0 for key, value in as_seeker.items()},
            "as_provider": {key: value or 0 for key, value in as_provider.items()},
        }

    def get_payments_by_conversation(self, conversation_id: UUID | str, user: User) -> list[Payment]:
        conversation = Conversation.objects.filter(id=conversation_id).first()
        if conversation is None:
            raise NotFoundError("Conversation not found", details={"conversation_id": str(conversation_id)})
        if not conversation.has_participant(user):
            raise AuthorizationError(
                "You are not a participant in this conversation",
                details={"conversation_id": str(conversation_id)},
            )
        return list(Payment.objects.filter(conversation=conversation).order_by("-created_at"))

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

    def _push_payment_update(self, payment: Payment) -> None:
        payload = {
            "payment_id": str(payment.id),
            "offer_id": str(payment.offer_id),
            "status": payment.status,
            "escrow_status": payment.escrow_status,
        }
        for user_id in (payment.seeker_id, payment.provider_id):
            self.after_commit(
                "payment realtime update",
                lambda user_id=user_id: self.realtime.emit_to_user(user_id, "payment_update", payload),
            )
