from rest_framework import serializers
from mechanics.models import Mechanic


class MechanicSerializer(serializers.ModelSerializer):
    """
    Full mechanic profile serializer
    """
    username = serializers.CharField(source="user.username", read_only=True)

    class Meta:
        model = Mechanic
        fields = [
            "id",
            "username",
            "business_name",
            "phone",
            "latitude",
            "longitude",
            "last_location_update",
            "services_offered",
            "is_available",
            "rating",
            "review_count",
            "availability",
        ]
        read_only_fields = ["id", "last_location_update", "rating", "review_count"]


class MechanicBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of mechanic info embedded in request payloads.
    """
    class Meta:
        model = Mechanic
        fields = [
            "id",
            "business_name",
            "phone",
            "rating",
            "review_count",
        ]


class MechanicCandidateSerializer(MechanicBasicSerializer):
    """Mechanic returned by a candidate search, with its distance from the search center."""
    distance_km = serializers.SerializerMethodField()
    services_offered = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta(MechanicBasicSerializer.Meta):
        fields = MechanicBasicSerializer.Meta.fields + ["services_offered", "latitude", "longitude", "distance_km"]

    def get_distance_km(self, obj):
        distance = getattr(obj, "distance_km", None)
        return round(distance, 1) if distance is not None else None


class AvailabilityUpdateSerializer(serializers.Serializer):
    """
    Serializer for toggling whether the mechanic takes new requests.
    """
    is_available = serializers.BooleanField()


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating mechanic GPS location.
    """
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
