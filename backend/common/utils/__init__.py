"""Common utility functions."""

from .geo import (
    EARTH_RADIUS_KM,
    GeoPoint,
    bounding_box,
    display_km,
    distance_km,
    radius_to_radians,
    within_radius,
)
from .filters import is_dispatch_candidate, offers_service

__all__ = [
    "EARTH_RADIUS_KM",
    "GeoPoint",
    "bounding_box",
    "display_km",
    "distance_km",
    "radius_to_radians",
    "within_radius",
    "is_dispatch_candidate",
    "offers_service",
]
