"""
Notification service layer.

Design Principles:
    - Services are stateless (use class methods)
    - Creation is idempotent when an idempotency_key is given
    - The realtime push is best-effort and runs after the row is saved

Usage:
    from notifications.services import NotificationService

    result = NotificationService.create(
        recipient=seeker,
        notification_type=NotificationType.PAYMENT_ESCROWED,
        title="Payment secured",
        message="Your payment is held in escrow",
        conversation=payment.conversation,
        data={"payment_id": str(payment.id)},
        idempotency_key=f"payment_escrowed:{payment.id}:{seeker.id}",
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService, ServiceResult

from notifications.models import Notification
from notifications.realtime import RealtimeGateway

if TYPE_CHECKING:
    from authentication.models import User
    from chat.models import Conversation

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        create: Persist a notification and push it to the recipient
    """

    @classmethod
    def create(
        cls,
        recipient: User,
        notification_type: str,
        title: str,
        message: str = "",
        conversation: Conversation | None = None,
        data: dict | None = None,
        actor: User | None = None,
        idempotency_key: str | None = None,
    ) -> ServiceResult[Notification]:
        """
        Create a notification for a user.

        Returns:
            ServiceResult with the Notification. A duplicate idempotency_key
            returns the existing row with already_processed set.
        """
        if idempotency_key:
            existing = Notification.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                cls.get_logger().info(
                    f"Duplicate notification prevented: idempotency_key={idempotency_key}"
                )
                return ServiceResult.noop(existing)

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient=recipient,
                    actor=actor,
                    notification_type=notification_type,
                    title=title,
                    message=message,
                    conversation=conversation,
                    data=data or {},
                    idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Lost a race with a concurrent insert of the same key
            existing = Notification.objects.get(idempotency_key=idempotency_key)
            return ServiceResult.noop(existing)

        RealtimeGateway.emit_to_user(
            recipient.pk,
            "notification",
            {
                "id": notification.pk,
                "type": notification_type,
                "title": title,
                "message": message,
                "conversation_id": str(conversation.pk) if conversation else None,
                "data": notification.data,
            },
        )

        logger.info(
            "Notification created",
            extra={
                "notification_id": notification.pk,
                "recipient_id": recipient.pk,
                "notification_type": notification_type,
            },
        )
        return ServiceResult.success(notification)
