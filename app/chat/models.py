"""
Conversation model linking a seeker and a provider around a job request.

Message transport and realtime delivery are handled elsewhere; settlement
only needs the conversation's identity (for notification deep links and
checkout cancel URLs) and its active flag.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Conversation(UUIDPrimaryKeyMixin, BaseModel):
    """
    A two-party conversation about one job request.

    Fields:
        job_request: Request being discussed
        seeker: User who posted the request
        provider: User who bid on it
        is_active: False once the engagement has been paid out
        last_message_at: Timestamp of most recent message (for sorting)
    """

    job_request = models.ForeignKey(
        "jobs.JobRequest",
        on_delete=models.CASCADE,
        related_name="conversations",
    )

    seeker = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="seeker_conversations",
    )

    provider = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="provider_conversations",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting conversation lists)",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["job_request", "seeker", "provider"],
                name="chat_conv_unique_parties",
            ),
        ]

    def __str__(self) -> str:
        return f"Conversation({self.pk}, job={self.job_request_id})"

    def has_participant(self, user) -> bool:
        return user.pk in (self.seeker_id, self.provider_id)
