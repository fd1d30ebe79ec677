import math

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.models import User
from mechanics.models import Mechanic
from mechanics.serializers import (
    MechanicSerializer,
    AvailabilityUpdateSerializer,
    LocationUpdateSerializer,
)
from service_requests.serializers import ServiceRequestOfferSerializer
from realtime.presence import get_presence_registry
from services.request_lifecycle import list_nearby_requests_for_mechanic

from common.utils import display_km
from mechanics import services


# Utility: Ensure request.user is a mechanic
def require_mechanic(user):
    if user.role != User.ROLE_MECHANIC:
        return False, Response({"error": "Only mechanics allowed"}, status=403)
    try:
        profile = user.mechanic_profile
        return True, profile
    except Mechanic.DoesNotExist:
        return False, Response({"error": "Mechanic profile not found"}, status=404)


class MechanicProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_mechanic(request.user)
        if ok is False:
            return profile  # Response object

        serializer = MechanicSerializer(profile, context={"request": request})
        return Response(serializer.data)


class MechanicAvailabilityView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_mechanic(request.user)
        if ok is False:
            return profile

        return Response({"is_available": profile.is_available, "availability": profile.availability})

    def put(self, request):
        ok, profile = require_mechanic(request.user)
        if ok is False:
            return profile

        serializer = AvailabilityUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        is_available = serializer.validated_data["is_available"]

        services.set_mechanic_availability(profile, is_available)

        return Response({
            "message": "Availability updated",
            "is_available": is_available,
        })


class MechanicLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_mechanic(request.user)
        if ok is False:
            return profile

        return Response({
            "latitude": float(profile.latitude) if profile.latitude is not None else None,
            "longitude": float(profile.longitude) if profile.longitude is not None else None,
            "last_updated": profile.last_location_update,
        })

    def put(self, request):
        ok, profile = require_mechanic(request.user)
        if ok is False:
            return profile

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        services.update_mechanic_location(profile, lat, lon)

        return Response({
            "message": "Location updated",
            "latitude": float(lat),
            "longitude": float(lon),
            "last_updated": profile.last_location_update,
        })


# Catch-up list for a mechanic that missed live offers
class NearbyRequestsForMechanicView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, profile = require_mechanic(request.user)
        if ok is False:
            return profile

        within_hours = request.query_params.get("within_hours")
        try:
            within_hours = float(within_hours) if within_hours is not None else None
        except ValueError:
            return Response({"error": "within_hours must be a number"}, status=400)
        if within_hours is not None and (not math.isfinite(within_hours) or within_hours <= 0):
            return Response({"error": "within_hours must be a positive number"}, status=400)

        if profile.location is None:
            return Response({
                "requests": [],
                "count": 0,
                "message": "Update your location to see nearby requests."
            })

        nearby = list_nearby_requests_for_mechanic(profile.id, within_hours=within_hours)
        payload = []
        for service_request in nearby:
            data = dict(ServiceRequestOfferSerializer(service_request).data)
            data["distance_km"] = display_km(service_request.distance_km)
            payload.append(data)

        return Response({"requests": payload, "count": len(payload)})


class OnlineMechanicsView(APIView):
    """Mechanics currently holding a live channel in this process."""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        entries = get_presence_registry().online_mechanics()
        return Response({
            "count": len(entries),
            "mechanics": [
                {"mechanic_id": e.mechanic_id, "online_since": e.since.isoformat()}
                for e in entries
            ],
        })
