"""
State enums for payment models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States (django-fsm):
    pending → escrowed → completed (released to provider)
    escrowed → refunded / partial_refund (cancellation)
    pending → completed (non-escrow checkout)
    pending → failed / cancelled

Escrow sub-state:
    pending → held → released / refunded / partial_refund

Payout sub-state:
    pending → processing → processed
    processing → failed

WebhookEvent:
    pending → processing → processed / failed
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: COMPLETED, REFUNDED, PARTIAL_REFUND, FAILED, CANCELLED
    """

    PENDING = "pending", "Pending"
    ESCROWED = "escrowed", "Escrowed"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"
    PARTIAL_REFUND = "partial_refund", "Partial Refund"

    @classmethod
    def active_statuses(cls) -> list[str]:
        """At most one payment per offer may be in these states."""
        return [cls.PENDING, cls.ESCROWED]


class EscrowStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    HELD = "held", "Held"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    PARTIAL_REFUND = "partial_refund", "Partial Refund"


class PayoutStatus(models.TextChoices):
    """
    Provider payout sub-state.

    PROCESSING means the release happened and a Stripe payout was
    requested (or is about to be); PROCESSED is confirmed by Stripe.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class PaymentType(models.TextChoices):
    ESCROW = "escrow", "Escrow"
    DIRECT = "direct", "Direct"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
