"""
Find the mechanics that qualify for a service request.

Uses a lat/lon bounding box as a database prefilter, then the exact
haversine distance, then ranks best-rated first (closest wins ties).
"""

import logging
from typing import List

from common.utils import GeoPoint, bounding_box, distance_km, is_dispatch_candidate
from mechanics.models import Mechanic

logger = logging.getLogger(__name__)


def candidate_rank(mechanic: Mechanic):
    """Sort key: rating desc, review count desc, distance asc."""
    return (-mechanic.rating, -mechanic.review_count, mechanic.distance_km)


def find_candidates(center: GeoPoint, radius_km: float, service_type: str) -> List[Mechanic]:
    """
    Return the ranked mechanics that may be offered a request at center.

    Args:
        center: Request location
        radius_km: Search radius in kilometres (boundary inclusive)
        service_type: Requested service; candidates must offer it

    Returns:
        Mechanic instances annotated with distance_km, best first.
        An empty list when nobody qualifies.
    """
    center = GeoPoint(float(center[0]), float(center[1]))
    min_lat, max_lat, min_lon, max_lon = bounding_box(center, radius_km)

    # Fetch currently available mechanics with a stored location inside the box
    nearby = (
        Mechanic.objects.select_related("user")
        .filter(
            is_available=True,
            latitude__isnull=False,
            longitude__isnull=False,
            latitude__range=(min_lat, max_lat),
            longitude__range=(min_lon, max_lon),
        )
    )

    candidates: List[Mechanic] = []
    for mechanic in nearby:
        if not is_dispatch_candidate(mechanic.is_available, mechanic.services_offered, service_type):
            continue
        distance = distance_km(center, mechanic.location)
        # Only keep mechanics inside the search radius
        if distance <= radius_km:
            mechanic.distance_km = distance
            candidates.append(mechanic)

    candidates.sort(key=candidate_rank)

    logger.debug(
        "Found %d candidates for %s within %skm of %s,%s",
        len(candidates), service_type, radius_km, center.latitude, center.longitude
    )
    return candidates
