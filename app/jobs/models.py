"""
JobRequest model.

Status flow:
    open -> assigned -> in_progress -> completed
    assigned/in_progress -> cancelled

The request is owned by the seeker. Status is driven by the offer and
settlement services through jobs.services.JobRequestStore; nothing else
writes it.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class JobRequestStatus(models.TextChoices):
    OPEN = "open", "Open"
    ASSIGNED = "assigned", "Assigned"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class Currency(models.TextChoices):
    EGP = "EGP", "Egyptian Pound"
    USD = "USD", "US Dollar"
    EUR = "EUR", "Euro"


class JobRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    A seeker's request for a service.

    Fields:
        seeker: User who posted the request
        title/description: What is being requested
        budget_min/budget_max: Optional acceptable price range
        currency: Currency of the budget range
        status: Current lifecycle status
        assigned_to: Provider whose offer was accepted
        completed_at/cancelled_at: Terminal timestamps
    """

    seeker = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="job_requests",
        help_text="User who posted the request",
    )

    title = models.CharField(max_length=200)

    description = models.TextField(blank=True, default="")

    budget_min = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Lowest acceptable offer amount",
    )

    budget_max = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Highest acceptable offer amount",
    )

    currency = models.CharField(
        max_length=3,
        choices=Currency.choices,
        default=Currency.EGP,
    )

    status = models.CharField(
        max_length=20,
        choices=JobRequestStatus.choices,
        default=JobRequestStatus.OPEN,
        db_index=True,
    )

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_job_requests",
        help_text="Provider whose offer was accepted",
    )

    completed_at = models.DateTimeField(null=True, blank=True)

    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Job Request"
        verbose_name_plural = "Job Requests"
        indexes = [
            models.Index(fields=["seeker", "status"], name="jobs_seeker_status_idx"),
        ]

    def __str__(self) -> str:
        return f"JobRequest({self.id}, {self.title!r}, {self.status})"

    def budget_allows(self, amount_min, amount_max) -> bool:
        """Whether an offered range sits inside this request's budget."""
        if self.budget_min is not None and amount_min < self.budget_min:
            return False
        if self.budget_max is not None and amount_max > self.budget_max:
            return False
        return True
