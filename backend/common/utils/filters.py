"""Predicates deciding whether a mechanic may be offered a service request."""

from typing import Iterable, Optional


def offers_service(services_offered: Optional[Iterable[str]], service_type: str) -> bool:
    """True if service_type is one of the offered services."""
    if not services_offered:
        return False
    return service_type in set(services_offered)


def is_dispatch_candidate(is_available: bool, services_offered: Optional[Iterable[str]], service_type: str) -> bool:
    """
    Availability and service-type half of the candidate rule.

    The radius half is checked separately with common.utils.geo.within_radius.
    """
    return bool(is_available) and offers_service(services_offered, service_type)
