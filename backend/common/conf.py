"""
Dispatch settings with defaults.

Project settings may override any key through the DISPATCH dict:

    DISPATCH = {
        "DEFAULT_RADIUS_KM": 10,
        "SEND_TIMEOUT_SECONDS": 5,
    }
"""

from typing import Any, Dict

from django.conf import settings

DEFAULTS: Dict[str, Any] = {
    # Candidate search radius used by dispatch and the nearby-requests view
    "DEFAULT_RADIUS_KM": 10.0,
    # Upper bound for a single live push or fallback email
    "SEND_TIMEOUT_SECONDS": 5.0,
    # Concurrent sends per dispatch
    "MAX_CONCURRENT_SENDS": 20,
    # Catch-up window for a mechanic's nearby pending requests
    "NEARBY_WINDOW_HOURS": 24,
    # Also email candidates that were pushed over a live channel
    "FALLBACK_TO_LIVE_CANDIDATES": True,
    "NOTIFIER_CLASS": "common.notifier.EmailNotifier",
    # Background threads running fire-and-forget dispatches
    "DISPATCH_WORKERS": 4,
    "FROM_EMAIL": None,
}


def dispatch_setting(name: str) -> Any:
    """Return DISPATCH[name] from project settings, falling back to DEFAULTS."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown dispatch setting: {name}")
    overrides = getattr(settings, "DISPATCH", None) or {}
    return overrides.get(name, DEFAULTS[name])
