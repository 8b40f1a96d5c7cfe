from django.contrib import admin

from req_core.notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("title", "recipient", "severity", "related_requisition_id", "is_read", "created_at")
    list_filter = ("severity", "is_read")
    search_fields = ("title", "body", "related_requisition_id", "recipient__username")
    ordering = ("-created_at",)
