"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import ChangeEvent, Notification, Ride, RideOffer, RideStatusHistory


class RideOfferInline(admin.TabularInline):
    model = RideOffer
    extra = 0
    readonly_fields = ['driver', 'quoted_price', 'status', 'offered_at', 'responded_at', 'version']
    can_delete = False


@admin.register(Ride)
class RideAdmin(admin.ModelAdmin):
    list_display = ['id', 'passenger', 'driver', 'status', 'service_type', 'fare', 'billing_status', 'created_at']
    list_filter = ['status', 'service_type', 'timing_mode', 'billing_status']
    search_fields = ['passenger__username', 'driver__username', 'pickup_address', 'dropoff_address']
    readonly_fields = ['version', 'created_at', 'accepted_at', 'trip_completed_at', 'completed_at',
                       'cancelled_at', 'updated_at']
    date_hierarchy = 'created_at'
    inlines = [RideOfferInline]


@admin.register(RideOffer)
class RideOfferAdmin(admin.ModelAdmin):
    list_display = ("id", "ride", "driver", "quoted_price", "status", "offered_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("ride__id", "driver__username")


@admin.register(RideStatusHistory)
class RideStatusHistoryAdmin(admin.ModelAdmin):
    list_display = ("ride", "old_status", "new_status", "changed_by", "created_at")
    list_filter = ("new_status",)

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ChangeEvent)
class ChangeEventAdmin(admin.ModelAdmin):
    list_display = ("id", "entity_type", "entity_id", "event_type", "version", "created_at")
    list_filter = ("entity_type", "event_type")


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "recipient", "kind", "title", "delivered_at", "delivery_attempts")
    list_filter = ("kind",)
    search_fields = ("recipient__username", "dedupe_key")
