from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for passengers and drivers"""

    list_display = [
        "username",
        "email",
        "role",
        "phone_number",
        "completed_rides",
        "is_active",
    ]

    list_filter = [
        "role",
        "is_active",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
    ]

    ordering = ("username",)

    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Dispatch Info",
            {"fields": ("role", "phone_number", "completed_rides")},
        ),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Dispatch Info",
            {"fields": ("role", "phone_number")},
        ),
    )
