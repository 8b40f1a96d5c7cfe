# req_core/requisitions/admin.py
from django.contrib import admin

from req_core.requisitions.models import Attachment, PendingSignature, Requisition, RequisitionItem


class RequisitionItemInline(admin.TabularInline):
    model = RequisitionItem
    extra = 0
    can_delete = False
    readonly_fields = ("position", "kind", "name", "quantity", "unit_cost", "estimated_cost", "supplier", "details")


@admin.register(Requisition)
class RequisitionAdmin(admin.ModelAdmin):
    """Read-mostly: stage and money only change through the workflow service."""
    list_display = ("id", "type", "title", "requester_name", "stage", "total_cost", "payment_status", "created_at")
    list_filter = ("type", "stage", "payment_status", "urgency")
    search_fields = ("id", "title", "requester_name")
    readonly_fields = ("stage", "total_cost", "amount_paid", "payment_status", "version", "parent")
    inlines = [RequisitionItemInline]
    ordering = ("-created_at",)


@admin.register(Attachment)
class AttachmentAdmin(admin.ModelAdmin):
    list_display = ("name", "requisition", "content_type", "uploaded_by", "created_at")
    search_fields = ("name", "requisition__id")

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(PendingSignature)
class PendingSignatureAdmin(admin.ModelAdmin):
    list_display = ("id", "requisition", "action", "actor", "status", "expires_at")
    list_filter = ("status", "action")
