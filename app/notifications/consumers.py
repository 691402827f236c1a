"""
WebSocket consumer delivering realtime offer and payment events.

Channel Groups:
    Each user joins "user_{user_id}". RealtimeGateway.emit_to_user sends
    ``realtime.event`` messages to that group.

Message Types (to client):
    {"type": <event>, "payload": {...}}
"""

from __future__ import annotations

import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from notifications.realtime import user_group_name

logger = logging.getLogger(__name__)


class UserEventsConsumer(AsyncJsonWebsocketConsumer):
    """Per-user event stream."""

    group_name: str | None = None

    async def connect(self):
        user = self.scope.get("user")
        if not user or isinstance(user, AnonymousUser):
            logger.warning("Rejected unauthenticated realtime connection")
            await self.close(code=4001)
            return

        self.group_name = user_group_name(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        logger.info(f"User {user.id} connected to realtime events")

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def realtime_event(self, event):
        """Handle realtime.event messages from the channel layer."""
        await self.send_json({"type": event["event"], "payload": event["payload"]})
