"""
State enums for the Offer model.

Offer States:
    pending → negotiating → agreement_reached → accepted → in_progress → completed
    pending/negotiating → agreement_reached (both parties confirmed)
    agreement_reached/accepted → negotiating (confirmations reset)
    pending → rejected (seeker) / withdrawn (provider)
    pending/negotiating/agreement_reached → rejected (competing offer accepted)
    accepted/in_progress → cancelled
"""

from django.db import models


class OfferStatus(models.TextChoices):
    """
    States for the Offer lifecycle.

    Terminal states: COMPLETED, CANCELLED, REJECTED, WITHDRAWN
    """

    PENDING = "pending", "Pending"
    NEGOTIATING = "negotiating", "Negotiating"
    AGREEMENT_REACHED = "agreement_reached", "Agreement Reached"
    ACCEPTED = "accepted", "Accepted"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REJECTED = "rejected", "Rejected"
    WITHDRAWN = "withdrawn", "Withdrawn"

    @classmethod
    def active_statuses(cls) -> list[str]:
        """Statuses that block a second offer by the same provider."""
        return [
            cls.PENDING,
            cls.NEGOTIATING,
            cls.AGREEMENT_REACHED,
            cls.ACCEPTED,
            cls.IN_PROGRESS,
        ]

    @classmethod
    def negotiable_statuses(cls) -> list[str]:
        """Statuses in which terms may be edited or confirmed."""
        return [cls.PENDING, cls.NEGOTIATING, cls.AGREEMENT_REACHED]

    @classmethod
    def non_resettable_statuses(cls) -> list[str]:
        return [cls.COMPLETED, cls.CANCELLED, cls.REJECTED]

    @classmethod
    def cancellable_statuses(cls) -> list[str]:
        return [cls.ACCEPTED, cls.IN_PROGRESS]


class OfferPaymentStatus(models.TextChoices):
    """Payment state mirrored onto the offer."""

    NONE = "none", "None"
    PENDING = "pending", "Pending"
    ESCROWED = "escrowed", "Escrowed"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    PARTIAL_REFUND = "partial_refund", "Partial Refund"


class CancellationStatus(models.TextChoices):
    """
    Cancellation record status, shared by Offer and Payment.

    Cancellation is approved immediately on request; there is no
    separate pending-approval state.
    """

    NONE = "none", "None"
    APPROVED = "approved", "Approved"
