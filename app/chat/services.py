"""
Chat service: the conversation port consumed by offers and payments.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from core.services import BaseService

from chat.models import Conversation

if TYPE_CHECKING:
    from authentication.models import User
    from jobs.models import JobRequest

logger = logging.getLogger(__name__)


class ChatService(BaseService):
    """
    Conversation lookups for the negotiation flow.

    Methods:
        get_or_create_conversation: One conversation per (job, seeker, provider)
        deactivate: Mark a finished engagement's conversation inactive
    """

    @classmethod
    def get_or_create_conversation(
        cls,
        job_request: JobRequest,
        seeker: User,
        provider: User,
    ) -> Conversation:
        conversation, created = Conversation.objects.get_or_create(
            job_request=job_request,
            seeker=seeker,
            provider=provider,
        )
        if created:
            logger.info(
                "Conversation created",
                extra={
                    "conversation_id": str(conversation.id),
                    "job_request_id": str(job_request.id),
                },
            )
        return conversation

    @classmethod
    def deactivate(cls, conversation_id) -> int:
        """Set is_active=False; returns rows updated."""
        return Conversation.objects.filter(id=conversation_id, is_active=True).update(
            is_active=False
        )
