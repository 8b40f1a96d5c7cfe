# req_core/audit/api/serializers.py
from rest_framework import serializers

from req_core.audit.models import AuditLogEntry


class AuditLogEntrySerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)
    requisition_id = serializers.CharField(read_only=True)
    actor_user_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = AuditLogEntry
        fields = [
            "id",
            "requisition_id",
            "sequence",
            "timestamp",
            "actor_user_id",
            "actor_name",
            "actor_role",
            "stage",
            "action",
            "comment",
            "signature_kind",
        ]
        read_only_fields = fields
