"""
Seed a few mechanics around Mumbai, raise a request and dispatch it.

    cd backend && python scripts/demo_dispatch.py

Nothing is connected over WebSocket here, so every candidate is reached by
email (printed by the console email backend).
"""

import os
import sys
from pathlib import Path

import django

BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "dispatch_backend.settings.settings")
django.setup()

from django.utils import timezone  # noqa: E402
from accounts.models import User  # noqa: E402
from mechanics.models import Mechanic  # noqa: E402
from services.matching import dispatch_service_request, find_candidates  # noqa: E402
from services.request_lifecycle import create_service_request  # noqa: E402

CENTER = (19.0760, 72.8777)


def ensure_mechanic(username: str, business_name: str, lat: float, lon: float, services) -> Mechanic:
    user, created = User.objects.get_or_create(
        username=username,
        defaults={
            "role": User.ROLE_MECHANIC,
            "phone_number": "9000011111",
            "email": f"{username}@example.com",
        },
    )
    if created:
        user.set_password("demo1234")
        user.save()

    mechanic, _ = Mechanic.objects.update_or_create(
        user=user,
        defaults={
            "business_name": business_name,
            "latitude": lat,
            "longitude": lon,
            "services_offered": services,
            "is_available": True,
            "last_location_update": timezone.now(),
        },
    )
    return mechanic


def main():
    ensure_mechanic("demo_mech_near", "Bandra Auto Care", 19.0860, 72.8840, ["battery-service", "electrical"])
    ensure_mechanic("demo_mech_mid", "Dadar Garage", 19.0176, 72.8562, ["battery-service"])
    ensure_mechanic("demo_mech_far", "Thane Motors", 19.2183, 72.9781, ["battery-service"])
    ensure_mechanic("demo_mech_wrong", "Kurla Tyres", 19.0728, 72.8826, ["tire-repair"])

    service_request = create_service_request(
        {
            "latitude": CENTER[0],
            "longitude": CENTER[1],
            "address": "Santacruz, Mumbai",
            "service_type": "battery-service",
            "description": "Car will not start on the highway shoulder",
            "customer_name": "Demo Customer",
            "customer_email": "demo.customer@example.com",
        },
        dispatch=False,
    )
    print(f"Created request #{service_request.id} ({service_request.service_type})")

    candidates = find_candidates(service_request.location, 10, service_request.service_type)
    print(f"{len(candidates)} candidates within 10 km (far and wrong-service mechanics are skipped):")
    for mechanic in candidates:
        print(f"  {mechanic.business_name}: {mechanic.distance_km:.1f} km")

    report = dispatch_service_request(service_request.id)
    print("Dispatch report:", report.as_dict())


if __name__ == "__main__":
    main()
