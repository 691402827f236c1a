"""
Payment model for escrow-backed offer settlement.

A Payment is created when the seeker opens a Stripe Checkout Session for
an accepted offer and is driven from there by webhooks and settlement
operations.

Usage:
    from payments.models import Payment

    payment = Payment.objects.create(
        offer=offer,
        job_request=offer.job_request,
        conversation=offer.conversation,
        seeker=seeker,
        provider=offer.provider,
        amount=100000,
        stripe_session_id="cs_test_123",
    )

    payment.mark_escrowed(payment_intent_id="pi_123")  # pending -> escrowed
    payment.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from offers.states import CancellationStatus

from payments.state_machines import EscrowStatus, PaymentStatus, PaymentType, PayoutStatus

SERVICE_COMPLETED = "service_completed"


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    One escrow transaction, tied to an accepted offer.

    State Flow (Escrow):
        PENDING -> ESCROWED -> COMPLETED

    Cancellation Flow:
        ESCROWED -> REFUNDED / PARTIAL_REFUND
        PENDING -> CANCELLED

    Other:
        PENDING -> COMPLETED (non-escrow checkout)
        PENDING -> FAILED

    Fields:
        offer/job_request/conversation/seeker/provider: References
        stripe_*_id: Gateway references, each written once and unique
        amount/currency: Charged amount in minor units
        original_amount/original_currency: Negotiated price as agreed
        status: Current FSM state
        escrow_*: Escrow sub-state
        payout_*: Provider payout sub-state
        cancellation_*: Cancellation/refund record
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    offer = models.ForeignKey(
        "offers.Offer",
        on_delete=models.PROTECT,
        related_name="payments",
    )

    job_request = models.ForeignKey(
        "jobs.JobRequest",
        on_delete=models.PROTECT,
        related_name="payments",
    )

    conversation = models.ForeignKey(
        "chat.Conversation",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )

    seeker = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="seeker_payments",
        help_text="User paying into escrow",
    )

    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="provider_payments",
        help_text="User receiving the payout",
    )

    service_title = models.CharField(max_length=200, blank=True, default="")

    payment_type = models.CharField(
        max_length=10,
        choices=PaymentType.choices,
        default=PaymentType.ESCROW,
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_session_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    stripe_payout_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Payout ID (po_xxx)",
    )

    stripe_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Refund ID (re_xxx)",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Charged amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    original_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Negotiated price in major units",
    )

    original_currency = models.CharField(max_length=3, default="EGP")

    scheduled_date = models.DateField(null=True, blank=True)

    scheduled_time = models.CharField(max_length=16, blank=True, default="")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payment (managed by FSM)",
    )

    completed_at = models.DateTimeField(null=True, blank=True)

    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Escrow
    # ==========================================================================

    escrow_status = models.CharField(
        max_length=20,
        choices=EscrowStatus.choices,
        default=EscrowStatus.PENDING,
    )

    escrow_held_at = models.DateTimeField(null=True, blank=True)

    escrow_released_at = models.DateTimeField(null=True, blank=True)

    escrow_refunded_at = models.DateTimeField(null=True, blank=True)

    release_reason = models.CharField(max_length=50, blank=True, default="")

    # ==========================================================================
    # Payout
    # ==========================================================================

    payout_status = models.CharField(
        max_length=20,
        choices=PayoutStatus.choices,
        default=PayoutStatus.PENDING,
        db_index=True,
    )

    payout_amount = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Amount paid out to the provider in minor units",
    )

    payout_attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Payout requests sent to Stripe",
    )

    payout_key_attempt = models.PositiveSmallIntegerField(
        default=1,
        help_text="Attempt component of the payout idempotency key; advances only after a definitive rejection",
    )

    payout_processed_at = models.DateTimeField(null=True, blank=True)

    payout_failed_at = models.DateTimeField(null=True, blank=True)

    payout_failure_reason = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    cancellation_status = models.CharField(
        max_length=20,
        choices=CancellationStatus.choices,
        default=CancellationStatus.NONE,
    )

    cancellation_requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    cancellation_requested_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True, default="")

    refund_amount = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Refunded amount in minor units",
    )

    refund_percentage = models.PositiveSmallIntegerField(null=True, blank=True)

    cancellation_processed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["seeker", "status"], name="payments_seeker_status_idx"),
            models.Index(fields=["provider", "status"], name="payments_provider_status_idx"),
            models.Index(fields=["conversation", "created_at"], name="payments_conv_created_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["offer"],
                condition=models.Q(status__in=PaymentStatus.active_statuses()),
                name="payments_one_active_per_offer",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="payments_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(refund_amount__isnull=True) | models.Q(refund_amount__lte=models.F("amount")),
                name="payments_refund_within_amount",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.id}, {self.status}, {amount_display})"

    @property
    def amount_major(self) -> Decimal:
        return Decimal(self.amount) / 100

    @property
    def is_escrow_held(self) -> bool:
        return self.status == PaymentStatus.ESCROWED and self.escrow_status == EscrowStatus.HELD

    def is_party(self, user) -> bool:
        return user.pk in (self.seeker_id, self.provider_id)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.ESCROWED,
    )
    def mark_escrowed(self, payment_intent_id: str | None):
        """
        Funds captured by Stripe and held on the platform.

        Transition: PENDING -> ESCROWED
        """
        self.escrow_status = EscrowStatus.HELD
        self.escrow_held_at = timezone.now()
        if payment_intent_id and not self.stripe_payment_intent_id:
            self.stripe_payment_intent_id = payment_intent_id

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.COMPLETED,
    )
    def complete_direct(self, payment_intent_id: str | None):
        """Non-escrow checkout paid; nothing is held."""
        self.completed_at = timezone.now()
        if payment_intent_id and not self.stripe_payment_intent_id:
            self.stripe_payment_intent_id = payment_intent_id

    @transition(
        field=status,
        source=PaymentStatus.ESCROWED,
        target=PaymentStatus.COMPLETED,
        conditions=[lambda payment: payment.escrow_status == EscrowStatus.HELD],
    )
    def release(self):
        """
        Release held funds to the provider.

        Transition: ESCROWED -> COMPLETED

        The payout sub-state moves to PROCESSING; the Stripe payout itself
        is requested after commit.
        """
        now = timezone.now()
        self.escrow_status = EscrowStatus.RELEASED
        self.escrow_released_at = now
        self.release_reason = SERVICE_COMPLETED
        self.completed_at = now
        self.payout_status = PayoutStatus.PROCESSING
        self.payout_amount = self.amount

    @transition(
        field=status,
        source=PaymentStatus.ESCROWED,
        target=PaymentStatus.REFUNDED,
    )
    def refund_in_full(self):
        self.escrow_status = EscrowStatus.REFUNDED
        self.escrow_refunded_at = timezone.now()

    @transition(
        field=status,
        source=PaymentStatus.ESCROWED,
        target=PaymentStatus.PARTIAL_REFUND,
    )
    def refund_in_part(self, provider_amount: int):
        self.escrow_status = EscrowStatus.PARTIAL_REFUND
        self.escrow_refunded_at = timezone.now()
        if provider_amount > 0:
            self.payout_status = PayoutStatus.PROCESSING
            self.payout_amount = provider_amount

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str):
        self.failed_at = timezone.now()
        self.failure_reason = reason

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.CANCELLED,
    )
    def cancel(self):
        """Checkout abandoned because the offer was cancelled."""

    @transition(
        field=status,
        source=PaymentStatus.CANCELLED,
        target=PaymentStatus.REFUNDED,
    )
    def refund_late_checkout(self, payment_intent_id: str, refund_id: str):
        """
        A cancelled checkout was paid anyway and the charge was refunded.

        Transition: CANCELLED -> REFUNDED
        """
        self.stripe_payment_intent_id = payment_intent_id
        self.stripe_refund_id = refund_id
        self.escrow_status = EscrowStatus.REFUNDED
        self.escrow_refunded_at = timezone.now()
        self.refund_amount = self.amount
        self.refund_percentage = 100

    # ==========================================================================
    # Payout helpers (sub-state, not FSM)
    # ==========================================================================

    def mark_payout_processed(self) -> None:
        self.payout_status = PayoutStatus.PROCESSED
        self.payout_processed_at = timezone.now()
        self.payout_failure_reason = None

    def mark_payout_failed(self, reason: str) -> None:
        self.payout_status = PayoutStatus.FAILED
        self.payout_failed_at = timezone.now()
        self.payout_failure_reason = reason
