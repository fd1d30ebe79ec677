"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.mechanic_consumer import MechanicConsumer

websocket_urlpatterns = [
    # Mechanic presence and live offers
    # URL: ws://localhost:8000/ws/mechanic/
    re_path(
        r"ws/mechanic/$",
        MechanicConsumer.as_asgi(),
        name="mechanic-ws"
    ),
]
