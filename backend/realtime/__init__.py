"""
Realtime app for WebSocket communication with connected mechanics.

This app provides:
- The mechanic WebSocket consumer (identify, offers, presence broadcasts)
- An in-process presence registry of mechanics with a live channel
- Token verification for identify messages
- Notification helpers for sending real-time updates

Key Components:
    - presence.py: PresenceRegistry and its singleton
    - identity.py: simplejwt-backed identity verification
    - consumers/: WebSocket consumers
    - notifications.py: group broadcasts and per-channel sends

Usage:
    from realtime.consumers import MechanicConsumer
    from realtime.presence import get_presence_registry
    from realtime.notifications import broadcast_request_closed, send_to_channel
"""
