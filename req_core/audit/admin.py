# req_core/audit/admin.py
from django.contrib import admin

from req_core.audit.models import AuditLogEntry


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    list_display = (
        "requisition",
        "sequence",
        "action",
        "stage",
        "actor_name",
        "actor_role",
        "occurred_at",
    )
    list_filter = ("action", "stage", "actor_role")
    search_fields = ("requisition__id", "actor_name", "comment")
    readonly_fields = [f.name for f in AuditLogEntry._meta.fields]
    ordering = ("-occurred_at",)

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
