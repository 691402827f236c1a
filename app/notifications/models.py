"""
Notification models.

Design Decisions:
    - Notification types are a fixed TextChoices enum; every type is
      emitted by negotiation or settlement code in this project
    - Notification inherits from BaseModel (timestamps, ordering)
    - Actor uses SET_NULL (preserve notification when actor deleted)
    - idempotency_key is unique when set so retried secondary effects
      never produce a second row
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class NotificationType(models.TextChoices):
    """Kinds of notifications produced by offers and payments."""

    OFFER_RECEIVED = "offer_received", "Offer Received"
    OFFER_ACCEPTED = "offer_accepted", "Offer Accepted"
    OFFER_REJECTED = "offer_rejected", "Offer Rejected"
    OFFER_WITHDRAWN = "offer_withdrawn", "Offer Withdrawn"
    NEGOTIATION_UPDATED = "negotiation_updated", "Negotiation Updated"
    AGREEMENT_REACHED = "agreement_reached", "Agreement Reached"
    PAYMENT_ESCROWED = "payment_escrowed", "Payment Escrowed"
    PAYMENT_RELEASED = "payment_released", "Payment Released"
    PAYMENT_REFUNDED = "payment_refunded", "Payment Refunded"
    PAYOUT_FAILED = "payout_failed", "Payout Failed"
    SERVICE_CANCELLED = "service_cancelled", "Service Cancelled"


class Notification(BaseModel):
    """
    Individual notification record for a user.

    Notifications are immutable once created; title and message are
    fully rendered strings serving as historical records.

    Fields:
        recipient: User receiving the notification (scopes all queries)
        actor: Optional user who triggered the notification
        notification_type: One of NotificationType
        title: Rendered title
        message: Rendered body
        data: JSON context (offer_id, payment_id, refund percentage...)
        conversation: Related chat conversation for deep links
        is_read: Whether recipient has read this notification
        idempotency_key: Optional dedupe key
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving this notification",
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="triggered_notifications",
        help_text="User who triggered this notification (optional)",
    )

    notification_type = models.CharField(
        max_length=32,
        choices=NotificationType.choices,
        db_index=True,
    )

    title = models.CharField(
        max_length=255,
        help_text="Fully rendered notification title",
    )

    message = models.TextField(
        blank=True,
        default="",
        help_text="Fully rendered notification body",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary context data (ids, amounts)",
    )

    conversation = models.ForeignKey(
        "chat.Conversation",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="notifications",
    )

    is_read = models.BooleanField(
        default=False,
        db_index=True,
    )

    idempotency_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Idempotency key to prevent duplicate notifications",
    )

    class Meta:
        db_table = "notifications_notification"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["idempotency_key"],
                condition=models.Q(idempotency_key__isnull=False),
                name="notif_unique_idempotency_key",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.notification_type} -> {self.recipient_id}"
