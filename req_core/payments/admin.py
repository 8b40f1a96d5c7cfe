# req_core/payments/admin.py
from django.contrib import admin

from req_core.payments.models import PaymentRecord


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ("requisition", "amount", "paid_on", "reference", "recorded_by_name", "recorded_at")
    search_fields = ("requisition__id", "reference")
    readonly_fields = [f.name for f in PaymentRecord._meta.fields]

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
