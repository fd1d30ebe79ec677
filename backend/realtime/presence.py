"""
In-process registry of mechanics reachable over a live WebSocket channel.

Entries live only as long as this process; they are never persisted. One
lock guards every mutation, so an identify and a disconnect racing on the
same mechanic are applied one after the other. Events are emitted after the
lock is released.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from django.utils import timezone

from .exceptions import InvalidIdentityError

logger = logging.getLogger(__name__)

EmitFn = Callable[[str, Dict[str, Any]], Any]


@dataclass(frozen=True)
class PresenceEntry:
    """A mechanic's live connection."""
    mechanic_id: int
    channel_name: str
    since: datetime


def _key(mechanic_id) -> str:
    return str(mechanic_id)


class PresenceRegistry:
    """
    Tracks which mechanics currently hold a live channel.

    Args:
        verifier: Object with verify(token) -> VerifiedIdentity
        emit: Callable(event_type, payload) used to announce online/offline
    """

    def __init__(self, verifier=None, emit: Optional[EmitFn] = None):
        if verifier is None:
            from .identity import JWTIdentityVerifier
            verifier = JWTIdentityVerifier()
        if emit is None:
            from .notifications import broadcast_presence_event
            emit = broadcast_presence_event
        self._verifier = verifier
        self._emit = emit
        self._lock = threading.Lock()
        self._entries: Dict[str, PresenceEntry] = {}

    # ---------------------- Mutations ----------------------

    def identify(self, token: str, channel_name: str) -> int:
        """
        Verify token and register channel_name as the mechanic's live channel.

        A later identify for the same mechanic replaces the earlier channel.

        Returns:
            The mechanic id

        Raises:
            InvalidIdentityError: Token invalid or its subject is not a mechanic
        """
        identity = self._verifier.verify(token)
        if identity.mechanic_id is None or identity.role != "mechanic":
            raise InvalidIdentityError("Token subject is not a mechanic")

        entry = PresenceEntry(
            mechanic_id=identity.mechanic_id,
            channel_name=channel_name,
            since=timezone.now(),
        )
        with self._lock:
            previous = self._entries.get(_key(entry.mechanic_id))
            self._entries[_key(entry.mechanic_id)] = entry

        if previous and previous.channel_name != channel_name:
            logger.info(
                "Mechanic %s moved from channel %s to %s",
                entry.mechanic_id, previous.channel_name, channel_name
            )
        else:
            logger.info("Mechanic %s identified on channel %s", entry.mechanic_id, channel_name)

        self._announce("mechanic_online", {"mechanic_id": entry.mechanic_id})
        return entry.mechanic_id

    def remove(self, channel_name: str) -> List[int]:
        """
        Drop whichever mechanic is registered on channel_name.

        Idempotent: removing an unknown channel does nothing and emits nothing.

        Returns:
            Mechanic ids that went offline
        """
        with self._lock:
            gone = [e for e in self._entries.values() if e.channel_name == channel_name]
            for entry in gone:
                del self._entries[_key(entry.mechanic_id)]

        for entry in gone:
            logger.info("Mechanic %s disconnected and marked offline", entry.mechanic_id)
            self._announce("mechanic_offline", {"mechanic_id": entry.mechanic_id})
        return [e.mechanic_id for e in gone]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ---------------------- Queries ----------------------

    def is_online(self, mechanic_id) -> bool:
        with self._lock:
            return _key(mechanic_id) in self._entries

    def channel_of(self, mechanic_id) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(_key(mechanic_id))
        return entry.channel_name if entry else None

    def online_mechanics(self) -> List[PresenceEntry]:
        with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.since)

    def __len__(self):
        with self._lock:
            return len(self._entries)

    # ---------------------- Helpers ----------------------

    def _announce(self, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            self._emit(event_type, payload)
        except Exception:
            logger.exception("Failed to broadcast %s for %s", event_type, payload)


# ---------------------- Singleton Instance ----------------------

_presence_registry: Optional[PresenceRegistry] = None
_registry_guard = threading.Lock()


def get_presence_registry() -> PresenceRegistry:
    """Get singleton PresenceRegistry instance."""
    global _presence_registry
    with _registry_guard:
        if _presence_registry is None:
            _presence_registry = PresenceRegistry()
        return _presence_registry
