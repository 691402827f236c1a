"""
WebSocket URL routing.

URL Patterns:
    ws/notifications/ - Per-user stream of offer and payment events
"""

from django.urls import path

from notifications import consumers

websocket_urlpatterns = [
    path("ws/notifications/", consumers.UserEventsConsumer.as_asgi()),
]
