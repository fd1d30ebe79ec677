from django.contrib import admin
from mechanics.models import Mechanic


@admin.register(Mechanic)
class MechanicAdmin(admin.ModelAdmin):
    """Admin panel for managing mechanics"""

    list_display = [
        "business_name",
        "user",
        "is_available",
        "rating",
        "review_count",
        "latitude",
        "longitude",
        "last_location_update",
    ]

    list_filter = [
        "is_available",
        "last_location_update",
    ]

    search_fields = [
        "business_name",
        "user__username",
        "phone",
    ]

    readonly_fields = [
        "last_location_update",
        "rating",
        "review_count",
    ]

    ordering = ("business_name",)
