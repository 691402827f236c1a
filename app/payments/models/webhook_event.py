"""
WebhookEvent model: every Stripe event we accept, stored before dispatch.

The unique stripe_event_id makes redelivered events detectable; the
status column lets the retry sweep pick up failures and stuck rows.
"""

from __future__ import annotations

from typing import Any

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A received Stripe webhook event.

    Processing Flow:
        1. Receiver verifies the signature and get_or_creates the row
        2. Already PROCESSED -> acknowledged, not dispatched again
        3. Celery task marks PROCESSING and dispatches by event_type
        4. Handler result marks PROCESSED or FAILED (retried later)

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: e.g. "checkout.session.completed"
        payload: Full event JSON
        status: Processing status
        processed_at: When processing succeeded
        error_message: Last failure
        retry_count: Processing attempts so far
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(max_length=100, db_index=True)

    payload = models.JSONField(help_text="Full webhook payload from Stripe")

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    retry_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="payments_wh_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="payments_wh_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        max_retries = getattr(settings, "WEBHOOK_MAX_RETRIES", 5)
        return self.status == WebhookEventStatus.FAILED and self.retry_count < max_retries

    def mark_processing(self) -> None:
        """Does not save."""
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """Does not save."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """Does not save."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict[str, Any]:
        """The event's data.object, or an empty dict."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        obj = (data or {}).get("object")
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
