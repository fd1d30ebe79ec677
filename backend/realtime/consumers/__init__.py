"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .mechanic_consumer import MechanicConsumer

__all__ = [
    "BaseConsumer",
    "MechanicConsumer",
]
