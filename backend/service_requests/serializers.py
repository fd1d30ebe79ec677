from rest_framework import serializers

from mechanics.serializers import MechanicBasicSerializer
from .models import (
    DESCRIPTION_MAX_LENGTH,
    REVIEW_MAX_LENGTH,
    RequestNote,
    RequestStatus,
    ServiceRequest,
    ServiceType,
)


class RequestNoteSerializer(serializers.ModelSerializer):
    class Meta:
        model = RequestNote
        fields = ['id', 'message', 'author_role', 'created_at']
        read_only_fields = ['id', 'created_at']


class ServiceRequestSerializer(serializers.ModelSerializer):
    """Serializer for service requests"""
    accepted_by = MechanicBasicSerializer(read_only=True)
    notes = RequestNoteSerializer(many=True, read_only=True)

    class Meta:
        model = ServiceRequest
        fields = ['id', 'customer', 'customer_name', 'latitude', 'longitude', 'address',
                  'service_type', 'description', 'vehicle_make', 'vehicle_model',
                  'vehicle_year', 'vehicle_license_plate', 'vehicle_vin', 'status',
                  'accepted_by', 'estimated_cost', 'actual_cost', 'created_at',
                  'accepted_at', 'completed_at', 'cancelled_at', 'cancellation_reason',
                  'notes', 'rating', 'review']
        read_only_fields = fields


class ServiceRequestOfferSerializer(serializers.ModelSerializer):
    """Compact payload pushed to candidate mechanics"""

    class Meta:
        model = ServiceRequest
        fields = ['id', 'latitude', 'longitude', 'address', 'service_type', 'description',
                  'vehicle_make', 'vehicle_model', 'vehicle_year', 'status', 'created_at']


class ServiceRequestCreateSerializer(serializers.ModelSerializer):
    """Serializer for creating service requests"""
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    service_type = serializers.ChoiceField(choices=ServiceType.choices)
    description = serializers.CharField(max_length=DESCRIPTION_MAX_LENGTH, allow_blank=False)

    class Meta:
        model = ServiceRequest
        fields = ['latitude', 'longitude', 'address', 'service_type', 'description',
                  'vehicle_make', 'vehicle_model', 'vehicle_year', 'vehicle_license_plate',
                  'vehicle_vin', 'customer_name', 'customer_email', 'customer_phone']


class AcceptRequestSerializer(serializers.Serializer):
    estimated_cost = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True
    )


class StatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=RequestStatus.choices)
    actual_cost = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True
    )


class CancelRequestSerializer(serializers.Serializer):
    """Serializer for request cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True)


class NoteCreateSerializer(serializers.Serializer):
    message = serializers.CharField(max_length=DESCRIPTION_MAX_LENGTH)
    author_role = serializers.ChoiceField(choices=RequestNote.AUTHOR_CHOICES)


class ReviewSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    review = serializers.CharField(max_length=REVIEW_MAX_LENGTH, required=False, allow_blank=True)


class CandidateQuerySerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)
    radius_km = serializers.FloatField(min_value=0, required=False)
    service_type = serializers.ChoiceField(choices=ServiceType.choices)
