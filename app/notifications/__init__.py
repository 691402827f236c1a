"""
Notifications application.

Persists in-app notifications for offer and payment events and pushes
them to the recipient's realtime channel group.

Usage:
    from notifications.models import NotificationType
    from notifications.services import NotificationService

    NotificationService.create(
        recipient=provider,
        notification_type=NotificationType.OFFER_ACCEPTED,
        title="Offer accepted",
        message="Your offer was accepted",
        conversation=offer.conversation,
    )
"""
