"""
Offer and negotiation history models.

Usage:
    from offers.models import Offer
    from offers.states import OfferStatus

    offer = Offer.objects.create(
        job_request=job,
        provider=provider,
        budget_min=Decimal("800"),
        budget_max=Decimal("1200"),
    )

    # State transitions using django-fsm
    offer.reach_agreement()  # pending/negotiating -> agreement_reached
    offer.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from jobs.models import Currency

from offers.states import CancellationStatus, OfferPaymentStatus, OfferStatus

NEGOTIATION_FIELDS = ("price", "date", "time", "materials", "scope")


class Offer(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A provider's bid on a job request.

    State Flow:
        PENDING -> NEGOTIATING -> AGREEMENT_REACHED -> ACCEPTED -> IN_PROGRESS -> COMPLETED

    Reset Flow:
        AGREEMENT_REACHED/ACCEPTED -> NEGOTIATING

    Exit Flows:
        PENDING -> REJECTED / WITHDRAWN
        ACCEPTED/IN_PROGRESS -> CANCELLED

    Fields:
        job_request/provider: Identity of the bid
        conversation: Chat conversation between seeker and provider
        budget_min/budget_max/currency: Offered price range
        negotiation_*: Negotiated terms (price, date, time, materials, scope)
        seeker_confirmed/provider_confirmed: Per-party confirmation flags
        payment_*: Mirror of the escrow payment state
        cancellation_*: Cancellation record
        status: Current FSM state
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    job_request = models.ForeignKey(
        "jobs.JobRequest",
        on_delete=models.CASCADE,
        related_name="offers",
    )

    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="offers",
        help_text="User making the bid",
    )

    conversation = models.ForeignKey(
        "chat.Conversation",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="offers",
    )

    # ==========================================================================
    # Bid
    # ==========================================================================

    budget_min = models.DecimalField(max_digits=12, decimal_places=2)

    budget_max = models.DecimalField(max_digits=12, decimal_places=2)

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.EGP,
    )

    message = models.TextField(blank=True, default="")

    estimated_time_days = models.PositiveIntegerField(null=True, blank=True)

    available_dates = models.JSONField(
        default=list,
        blank=True,
        help_text="ISO dates the provider can work on",
    )

    # ==========================================================================
    # Negotiation
    # ==========================================================================

    negotiation_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
    )

    negotiation_date = models.DateField(null=True, blank=True)

    negotiation_time = models.CharField(
        max_length=16,
        blank=True,
        default="",
        help_text="Agreed start time, e.g. '14:30'",
    )

    negotiation_materials = models.TextField(blank=True, default="")

    negotiation_scope = models.TextField(blank=True, default="")

    seeker_confirmed = models.BooleanField(default=False)

    provider_confirmed = models.BooleanField(default=False)

    last_modified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    last_modified_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Payment mirror
    # ==========================================================================

    payment_status = models.CharField(
        max_length=20,
        choices=OfferPaymentStatus.choices,
        default=OfferPaymentStatus.NONE,
        db_index=True,
    )

    payment_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
    )

    payment_currency = models.CharField(max_length=3, blank=True, default="")

    escrowed_at = models.DateTimeField(null=True, blank=True)

    released_at = models.DateTimeField(null=True, blank=True)

    scheduled_date = models.DateField(null=True, blank=True, db_index=True)

    scheduled_time = models.CharField(max_length=16, blank=True, default="")

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Most recent escrow payment for this offer",
    )

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

    cancellation_refund_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
    )

    cancellation_refund_percentage = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OfferStatus.PENDING,
        choices=OfferStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the offer (managed by FSM)",
    )

    accepted_at = models.DateTimeField(null=True, blank=True)

    completed_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["job_request", "status"], name="offers_job_status_idx"),
            models.Index(fields=["provider", "status"], name="offers_provider_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "job_request"],
                condition=models.Q(status__in=OfferStatus.active_statuses()),
                name="offers_one_active_per_provider",
            ),
            models.CheckConstraint(
                condition=models.Q(budget_min__lte=models.F("budget_max")),
                name="offers_budget_range_valid",
            ),
        ]

    def __str__(self) -> str:
        return f"Offer({self.id}, {self.status})"

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def seeker_id(self):
        return self.job_request.seeker_id

    def is_provider(self, user) -> bool:
        return user.pk == self.provider_id

    def is_seeker(self, user) -> bool:
        return user.pk == self.job_request.seeker_id

    def is_party(self, user) -> bool:
        return self.is_provider(user) or self.is_seeker(user)

    @property
    def both_confirmed(self) -> bool:
        return self.seeker_confirmed and self.provider_confirmed

    def get_term(self, name: str):
        return getattr(self, f"negotiation_{name}")

    def set_term(self, name: str, value) -> None:
        setattr(self, f"negotiation_{name}", value)

    def missing_terms(self) -> list[str]:
        """Negotiation fields that are still unset or blank."""
        return [name for name in NEGOTIATION_FIELDS if self.get_term(name) in (None, "")]

    def touch(self, user) -> None:
        self.last_modified_by = user
        self.last_modified_at = timezone.now()

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=OfferStatus.PENDING,
        target=OfferStatus.NEGOTIATING,
    )
    def start_negotiating(self):
        """A party edited the terms of a pending offer."""

    @transition(
        field=status,
        source=[OfferStatus.PENDING, OfferStatus.NEGOTIATING],
        target=OfferStatus.AGREEMENT_REACHED,
        conditions=[lambda offer: offer.both_confirmed],
    )
    def reach_agreement(self):
        """Both parties confirmed the current terms."""

    @transition(
        field=status,
        source=[OfferStatus.AGREEMENT_REACHED, OfferStatus.ACCEPTED],
        target=OfferStatus.NEGOTIATING,
    )
    def reopen_negotiation(self):
        """Confirmations were cleared; terms must be agreed again."""

    @transition(
        field=status,
        source=OfferStatus.AGREEMENT_REACHED,
        target=OfferStatus.ACCEPTED,
        conditions=[lambda offer: offer.both_confirmed],
    )
    def accept(self):
        self.accepted_at = timezone.now()

    @transition(
        field=status,
        source=[OfferStatus.PENDING, OfferStatus.NEGOTIATING, OfferStatus.AGREEMENT_REACHED],
        target=OfferStatus.REJECTED,
    )
    def reject(self):
        """
        Transition: PENDING/NEGOTIATING/AGREEMENT_REACHED -> REJECTED

        Seekers may only reject pending offers; the wider source set is
        used when a competing offer is accepted.
        """

    @transition(
        field=status,
        source=OfferStatus.PENDING,
        target=OfferStatus.WITHDRAWN,
    )
    def withdraw(self):
        """Provider pulled the bid before negotiation started."""

    @transition(
        field=status,
        source=OfferStatus.ACCEPTED,
        target=OfferStatus.IN_PROGRESS,
    )
    def start_work(self):
        """Escrow funded; the engagement is under way."""

    @transition(
        field=status,
        source=OfferStatus.IN_PROGRESS,
        target=OfferStatus.COMPLETED,
    )
    def complete(self):
        now = timezone.now()
        self.completed_at = now
        self.payment_status = OfferPaymentStatus.RELEASED
        self.released_at = now

    @transition(
        field=status,
        source=[OfferStatus.ACCEPTED, OfferStatus.IN_PROGRESS],
        target=OfferStatus.CANCELLED,
    )
    def cancel(self, requested_by, reason: str, refund_percentage: int):
        now = timezone.now()
        self.cancelled_at = now
        self.cancellation_status = CancellationStatus.APPROVED
        self.cancellation_requested_by = requested_by
        self.cancellation_requested_at = now
        self.cancellation_reason = reason or "No reason provided"
        self.cancellation_refund_percentage = refund_percentage


class HistoryField(models.TextChoices):
    PRICE = "price", "Price"
    DATE = "date", "Date"
    TIME = "time", "Time"
    MATERIALS = "materials", "Materials"
    SCOPE = "scope", "Scope"
    CONFIRMATION = "confirmation", "Confirmation"


class NegotiationHistoryEntry(BaseModel):
    """
    One append-only entry in an offer's negotiation log.

    old_value/new_value hold the JSON encoding produced by
    offers.history; read entries back through that module to get typed
    values.
    """

    offer = models.ForeignKey(
        Offer,
        on_delete=models.CASCADE,
        related_name="history_entries",
    )

    field = models.CharField(max_length=20, choices=HistoryField.choices)

    old_value = models.JSONField(null=True, blank=True)

    new_value = models.JSONField(null=True, blank=True)

    changed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="+",
    )

    note = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name = "Negotiation History Entry"
        verbose_name_plural = "Negotiation History Entries"

    def __str__(self) -> str:
        return f"{self.field}: {self.old_value!r} -> {self.new_value!r}"
