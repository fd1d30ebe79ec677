from django.db import models
from django.db.models import Q
from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator

from common.utils import GeoPoint


class ServiceType(models.TextChoices):
    ENGINE_REPAIR = 'engine-repair', 'Engine Repair'
    BRAKE_SERVICE = 'brake-service', 'Brake Service'
    OIL_CHANGE = 'oil-change', 'Oil Change'
    TIRE_REPAIR = 'tire-repair', 'Tire Repair'
    BATTERY_SERVICE = 'battery-service', 'Battery Service'
    TRANSMISSION = 'transmission', 'Transmission'
    ELECTRICAL = 'electrical', 'Electrical'
    AC_HEATING = 'ac-heating', 'AC / Heating'
    OTHER = 'other', 'Other'


class RequestStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    IN_PROGRESS = 'in-progress', 'In Progress'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'


AWARDED_STATUSES = [RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED]
DESCRIPTION_MAX_LENGTH = 500
REVIEW_MAX_LENGTH = 500


class ServiceRequest(models.Model):
    """Roadside assistance request raised by a customer"""

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='service_requests'
    )
    # Contact details for guest requests (or to override the account email)
    customer_name = models.CharField(max_length=100, blank=True)
    customer_email = models.EmailField(blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)

    # Breakdown location
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    address = models.TextField(blank=True)

    service_type = models.CharField(max_length=20, choices=ServiceType.choices)
    description = models.CharField(max_length=DESCRIPTION_MAX_LENGTH)

    # Vehicle
    vehicle_make = models.CharField(max_length=50, blank=True)
    vehicle_model = models.CharField(max_length=50, blank=True)
    vehicle_year = models.PositiveSmallIntegerField(null=True, blank=True)
    vehicle_license_plate = models.CharField(max_length=20, blank=True)
    vehicle_vin = models.CharField(max_length=17, blank=True)

    status = models.CharField(max_length=20, choices=RequestStatus.choices, default=RequestStatus.PENDING)
    accepted_by = models.ForeignKey(
        'mechanics.Mechanic',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='accepted_requests'
    )

    estimated_cost = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )
    actual_cost = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True, validators=[MinValueValidator(0)]
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(blank=True)

    # Set once, after completion
    rating = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    review = models.TextField(max_length=REVIEW_MAX_LENGTH, blank=True)

    class Meta:
        db_table = 'service_requests'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='request_status_created_idx'),
            models.Index(fields=['latitude', 'longitude'], name='request_location_idx'),
        ]
        constraints = [
            # accepted_by is set exactly when a mechanic has been awarded the request.
            # Cancelled requests keep whatever they had when cancelled.
            models.CheckConstraint(
                condition=(
                    Q(status=RequestStatus.PENDING, accepted_by__isnull=True)
                    | Q(status__in=AWARDED_STATUSES, accepted_by__isnull=False)
                    | Q(status=RequestStatus.CANCELLED)
                ),
                name='service_request_accepted_by_matches_status',
            ),
        ]

    def __str__(self):
        return f"Request #{self.id} - {self.service_type} - {self.status}"

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(float(self.latitude), float(self.longitude))

    @property
    def contact_email(self) -> str:
        if self.customer_email:
            return self.customer_email
        return self.customer.email if self.customer_id else ""


class RequestNote(models.Model):
    """Free-text note appended to a request by either party"""

    AUTHOR_CHOICES = [
        ('customer', 'Customer'),
        ('mechanic', 'Mechanic'),
    ]

    request = models.ForeignKey(ServiceRequest, on_delete=models.CASCADE, related_name='notes')
    message = models.TextField(max_length=DESCRIPTION_MAX_LENGTH)
    author_role = models.CharField(max_length=10, choices=AUTHOR_CHOICES)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'service_request_notes'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Note #{self.id} on request {self.request_id} by {self.author_role}"
