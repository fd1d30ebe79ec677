from django.db import models
from django.utils import timezone
from django.conf import settings

from common.utils import GeoPoint

User = settings.AUTH_USER_MODEL

WEEKDAYS = ['monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday']


def default_availability():
    return {day: {'start': '09:00', 'end': '18:00', 'available': True} for day in WEEKDAYS}


class Mechanic(models.Model):
    """Service provider profile: location, offered services and availability"""

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='mechanic_profile')

    business_name = models.CharField(max_length=100)
    phone = models.CharField(max_length=20, blank=True)

    # Location (updated by the mechanic app; indexed for radius prefiltering)
    latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(default=timezone.now)

    services_offered = models.JSONField(default=list, blank=True)
    is_available = models.BooleanField(default=True)

    # Rollups maintained by the review service
    rating = models.FloatField(default=0)
    review_count = models.PositiveIntegerField(default=0)

    # Advisory weekly schedule, not enforced by matching
    availability = models.JSONField(default=default_availability, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'mechanics'
        indexes = [
            models.Index(fields=['latitude', 'longitude'], name='mechanic_location_idx'),
        ]

    def __str__(self):
        return f"{self.business_name} ({self.user.username})"

    @property
    def location(self):
        if self.latitude is None or self.longitude is None:
            return None
        return GeoPoint(float(self.latitude), float(self.longitude))

    @property
    def contact_email(self) -> str:
        return self.user.email if self.user_id else ""
