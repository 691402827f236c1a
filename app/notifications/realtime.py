"""
Best-effort realtime push over Django Channels.

Each authenticated websocket joins the ``user_<id>`` group; pushing to a
user is a group_send on that group. A missing or failing channel layer
is logged and never raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)


def user_group_name(user_id) -> str:
    return f"user_{user_id}"


class RealtimeGateway:
    """Push events to a user's connected clients."""

    @classmethod
    def emit_to_user(cls, user_id, event: str, payload: dict[str, Any]) -> bool:
        """
        Send ``payload`` as ``event`` to every socket of ``user_id``.

        Returns:
            True if the message was handed to the channel layer
        """
        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.debug("No channel layer configured, skipping realtime push")
            return False

        try:
            async_to_sync(channel_layer.group_send)(
                user_group_name(user_id),
                {
                    "type": "realtime.event",
                    "event": event,
                    "payload": payload,
                },
            )
        except Exception:
            logger.warning(
                "Realtime push failed",
                extra={"user_id": str(user_id), "event": event},
                exc_info=True,
            )
            return False
        return True
