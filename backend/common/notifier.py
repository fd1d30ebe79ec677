"""
Fallback message delivery.

A notifier has a single contract: send(address, subject, body). It raises
DeliveryError when the message could not be handed to the transport; callers
that fan out treat that as a per-recipient failure.
"""

import logging
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail
from django.utils.module_loading import import_string

from common.conf import dispatch_setting
from realtime.exceptions import DeliveryError

logger = logging.getLogger(__name__)


class Notifier:
    """Base notifier. Subclasses implement send()."""

    def send(self, address: str, subject: str, body: str) -> None:
        raise NotImplementedError


class EmailNotifier(Notifier):
    """Deliver fallback messages through Django's configured email backend."""

    def __init__(self, from_email: Optional[str] = None):
        self.from_email = from_email or dispatch_setting("FROM_EMAIL") or settings.DEFAULT_FROM_EMAIL

    def send(self, address: str, subject: str, body: str) -> None:
        if not address:
            raise DeliveryError("No contact address on file")
        try:
            sent = send_mail(subject, body, self.from_email, [address], fail_silently=False)
        except Exception as e:
            raise DeliveryError(f"Email to {address} failed: {e}") from e
        if not sent:
            raise DeliveryError(f"Email backend rejected message to {address}")
        logger.debug("Email sent to %s: %s", address, subject)


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """Get the singleton notifier configured by DISPATCH['NOTIFIER_CLASS']."""
    global _notifier
    if _notifier is None:
        _notifier = import_string(dispatch_setting("NOTIFIER_CLASS"))()
    return _notifier


def reset_notifier() -> None:
    """Drop the cached notifier (settings changed, tests)."""
    global _notifier
    _notifier = None
