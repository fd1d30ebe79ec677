"""Tells what to show in the Django admin interface for the service_requests app"""

from django.contrib import admin
from .models import ServiceRequest, RequestNote


class RequestNoteInline(admin.TabularInline):
    model = RequestNote
    extra = 0
    readonly_fields = ['created_at']


@admin.register(ServiceRequest)
class ServiceRequestAdmin(admin.ModelAdmin):
    """Service request admin"""
    list_display = ['id', 'customer_name', 'service_type', 'status', 'accepted_by', 'created_at', 'accepted_at', 'completed_at']
    list_filter = ['status', 'service_type', 'created_at']
    search_fields = ['customer_name', 'customer_email', 'address', 'accepted_by__business_name']
    readonly_fields = ['created_at', 'accepted_at', 'completed_at', 'cancelled_at']
    date_hierarchy = 'created_at'
    inlines = [RequestNoteInline]


@admin.register(RequestNote)
class RequestNoteAdmin(admin.ModelAdmin):
    list_display = ("request", "author_role", "created_at")
    list_filter = ("author_role",)
    search_fields = ("request__id", "message")
