"""Mechanic WebSocket consumer: presence and live service request offers."""

import logging
from typing import Dict, Any, List, Optional

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.exceptions import InvalidIdentityError
from realtime.notifications import MECHANICS_GROUP, PRESENCE_GROUP
from realtime.presence import PresenceRegistry, get_presence_registry

logger = logging.getLogger(__name__)


class MechanicConsumer(BaseConsumer):
    """
    WebSocket consumer for mechanics.

    Handles:
        - mechanic_identify: bind this connection to a mechanic (presence)
        - Service request offers pushed by dispatch
        - request_taken / presence broadcasts
    """

    # Overridable in tests
    registry: Optional[PresenceRegistry] = None

    def get_groups(self) -> List[str]:
        return [PRESENCE_GROUP, MECHANICS_GROUP]

    def get_registry(self) -> PresenceRegistry:
        return self.registry if self.registry is not None else get_presence_registry()

    async def on_connect(self):
        self.mechanic_id = None
        await self.send_json({
            "type": "connection_established",
            "message": "Send mechanic_identify with your access token to receive offers",
        })

    async def on_disconnect(self, close_code):
        """Drop presence for this channel. Safe to run more than once."""
        await sync_to_async(self.get_registry().remove)(self.channel_name)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle mechanic-specific messages."""
        if msg_type == "mechanic_identify":
            await self._handle_identify(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_identify(self, data: Dict[str, Any]):
        token = data.get("token")
        identify = database_sync_to_async(self.get_registry().identify)
        try:
            self.mechanic_id = await identify(token, self.channel_name)
        except InvalidIdentityError as e:
            logger.info("Rejected mechanic_identify on %s: %s", self.channel_name, e)
            await self.send_error(str(e))
            return

        await self.send_success("identified", mechanic_id=self.mechanic_id)

    # ---------------------- Event Handlers (from channel layer) ----------------------

    async def service_request_offer(self, event):
        """Sent by dispatch to one candidate."""
        await self.send_json({
            "type": "new_service_request",
            "request": event.get("request"),
            "distance_km": event.get("distance_km"),
        })

    async def request_taken(self, event):
        """Sent to all mechanics when a request is awarded or cancelled."""
        await self.send_json({
            "type": "request_taken",
            "request_id": event.get("request_id"),
            "status": event.get("status"),
            "accepted_by": event.get("accepted_by"),
        })

    async def mechanic_online(self, event):
        await self.send_json({"type": "mechanic_online", "mechanic_id": event.get("mechanic_id")})

    async def mechanic_offline(self, event):
        await self.send_json({"type": "mechanic_offline", "mechanic_id": event.get("mechanic_id")})
