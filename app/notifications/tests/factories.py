"""
Factory Boy factories for notifications.
"""

import factory

from authentication.tests.factories import UserFactory
from notifications.models import Notification, NotificationType


class NotificationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Notification

    recipient = factory.SubFactory(UserFactory)
    notification_type = NotificationType.OFFER_RECEIVED
    title = "New offer"
    message = "A provider sent you an offer"
    data = factory.LazyFunction(dict)
    is_read = False
