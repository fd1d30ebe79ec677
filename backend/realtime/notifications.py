"""
Live channel helpers for sending WebSocket messages to connected clients.

This module provides functions to:
- Broadcast presence changes and request closures to connected mechanics
- Push a structured event to a single connection by channel name
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from .exceptions import DeliveryError

logger = logging.getLogger(__name__)

# Every connected mechanic joins both groups
PRESENCE_GROUP = "presence"
MECHANICS_GROUP = "mechanics"


def broadcast_event(group: str, event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Send an event to every connection in a group.

    Args:
        group: Channel layer group name
        event_type: Handler name in the consumer (e.g. mechanic_online)
        payload: Event data

    Returns:
        True if handed to the channel layer, False if no layer is configured
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available for %s broadcast", event_type)
        return False

    message = {"type": event_type, **payload}
    logger.debug("WS -> %s: %s", group, message)
    async_to_sync(channel_layer.group_send)(group, message)
    return True


def broadcast_presence_event(event_type: str, payload: Dict[str, Any]) -> bool:
    """Announce a mechanic going online or offline."""
    return broadcast_event(PRESENCE_GROUP, event_type, payload)


def broadcast_request_closed(request) -> bool:
    """Tell mechanics a request was awarded or cancelled so they can drop the offer."""
    return broadcast_event(
        MECHANICS_GROUP,
        "request_taken",
        {
            "request_id": request.id,
            "status": request.status,
            "accepted_by": request.accepted_by_id,
        },
    )


async def send_to_channel(channel_name: str, event_type: str, payload: Dict[str, Any]) -> None:
    """
    Push an event to one connection.

    Raises:
        DeliveryError: No channel layer, or the layer refused the message
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        raise DeliveryError("No channel layer available")

    try:
        await channel_layer.send(channel_name, {"type": event_type, **payload})
    except Exception as e:
        raise DeliveryError(f"Channel send to {channel_name} failed: {e}") from e
