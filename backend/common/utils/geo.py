"""
Geographic utility functions.

This module provides the core geospatial calculations used by candidate
matching and the nearby-request views. Distances are in kilometres.
"""

from math import radians, degrees, asin, cos, sin, atan2, sqrt
from typing import NamedTuple, Tuple

EARTH_RADIUS_KM = 6371.0


class GeoPoint(NamedTuple):
    """A WGS84 coordinate pair in degrees."""
    latitude: float
    longitude: float


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """
    Calculate the great-circle distance between two points using the Haversine formula.

    Args:
        a: First point
        b: Second point

    Returns:
        Distance in kilometres, full precision (use display_km for output)
    """
    lat1, lon1, lat2, lon2 = map(
        radians, [float(a.latitude), float(a.longitude), float(b.latitude), float(b.longitude)]
    )
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(h), sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def display_km(distance: float) -> float:
    """Round a distance to one decimal for display."""
    return round(distance, 1)


def within_radius(center: GeoPoint, point: GeoPoint, radius_km: float) -> bool:
    """True iff point lies within radius_km of center (boundary inclusive)."""
    return distance_km(center, point) <= radius_km


def radius_to_radians(radius_km: float) -> float:
    """Angular radius of a spherical cap of radius_km on the Earth's surface."""
    return radius_km / EARTH_RADIUS_KM


def bounding_box(center: GeoPoint, radius_km: float) -> Tuple[float, float, float, float]:
    """
    Get a lat/lon box that fully contains the spherical cap around center.

    Used as a cheap database prefilter before the exact haversine check.

    Returns:
        (min_lat, max_lat, min_lon, max_lon)
    """
    angular = radius_to_radians(radius_km)
    lat = radians(float(center.latitude))
    lon = radians(float(center.longitude))

    min_lat = lat - angular
    max_lat = lat + angular

    # Cap reaches a pole: any longitude may qualify
    if min_lat <= -radians(90) or max_lat >= radians(90):
        return max(degrees(min_lat), -90.0), min(degrees(max_lat), 90.0), -180.0, 180.0

    ratio = sin(angular) / cos(lat)
    if ratio >= 1:
        return degrees(min_lat), degrees(max_lat), -180.0, 180.0
    delta_lon = asin(ratio)

    min_lon = lon - delta_lon
    max_lon = lon + delta_lon
    if min_lon < -radians(180) or max_lon > radians(180):
        return degrees(min_lat), degrees(max_lat), -180.0, 180.0

    return degrees(min_lat), degrees(max_lat), degrees(min_lon), degrees(max_lon)
