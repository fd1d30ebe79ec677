import logging

from django.utils import timezone

from mechanics.models import Mechanic

logger = logging.getLogger(__name__)


# MECHANIC AVAILABILITY
def set_mechanic_availability(mechanic: Mechanic, is_available: bool):
    """
    Toggle whether the mechanic is offered new requests.
    Only this row is written, so a concurrent location update is never lost.
    """
    Mechanic.objects.filter(pk=mechanic.pk).update(is_available=is_available)
    mechanic.is_available = is_available
    logger.info("Mechanic %s availability set to %s", mechanic.pk, is_available)
    return mechanic


def update_mechanic_location(mechanic: Mechanic, lat, lon):
    """
    Update mechanic location, used by the mechanic app while on shift.
    """
    now = timezone.now()
    Mechanic.objects.filter(pk=mechanic.pk).update(
        latitude=lat,
        longitude=lon,
        last_location_update=now,
    )
    mechanic.refresh_from_db(fields=["latitude", "longitude", "last_location_update"])
    return mechanic
