# req_core/iam/admin.py
from __future__ import annotations

from django.contrib import admin

from req_core.iam.models import UserProfile


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("display_name", "user", "role", "department", "is_active", "created_at")
    list_filter = ("role", "is_active")
    search_fields = ("display_name", "user__username", "user__email", "department")
    ordering = ("display_name",)
