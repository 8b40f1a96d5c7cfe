# req_core/requisitions/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from req_core.iam.api.schema_serializers import SignatureArtifactSerializer
from req_core.requisitions.models import Action, PendingSignature, RequisitionType, Urgency
from req_core.requisitions.transitions import stage_label


# ----------------------------
# Output (snapshot) serializers
# ----------------------------

class AuditEntrySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    sequence = serializers.IntegerField()
    timestamp = serializers.DateTimeField()
    actor_id = serializers.IntegerField(allow_null=True)
    actor_name = serializers.CharField()
    actor_role = serializers.CharField()
    stage = serializers.CharField()
    action = serializers.CharField()
    comment = serializers.CharField(allow_blank=True)
    signature = serializers.SerializerMethodField()

    def get_signature(self, obj):
        return obj.signature.as_dict() if obj.signature else None


class AttachmentRefSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    reference = serializers.CharField(max_length=500)
    content_type = serializers.CharField(max_length=120, required=False, allow_blank=True)
    uploaded_by_id = serializers.IntegerField(read_only=True, allow_null=True)
    created_at = serializers.DateTimeField(read_only=True, allow_null=True)


class PaymentEntrySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    paid_on = serializers.DateField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    reference = serializers.CharField(allow_blank=True)
    recorded_by_id = serializers.IntegerField(allow_null=True)
    recorded_by_name = serializers.CharField(allow_blank=True)
    receipt_name = serializers.CharField(allow_blank=True)
    recorded_at = serializers.DateTimeField(allow_null=True)


class RequisitionSummarySerializer(serializers.Serializer):
    id = serializers.CharField()
    type = serializers.CharField()
    title = serializers.CharField()
    requester_id = serializers.IntegerField()
    requester_name = serializers.CharField()
    department = serializers.CharField(allow_blank=True)
    urgency = serializers.CharField()
    stage = serializers.CharField()
    status_label = serializers.SerializerMethodField()
    total_cost = serializers.DecimalField(max_digits=14, decimal_places=2)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_status = serializers.CharField()
    parent_id = serializers.CharField(allow_null=True)
    version = serializers.IntegerField()
    created_at = serializers.DateTimeField(allow_null=True)
    updated_at = serializers.DateTimeField(allow_null=True)

    def get_status_label(self, obj) -> str:
        return stage_label(obj.stage)


class RequisitionSerializer(RequisitionSummarySerializer):
    justification = serializers.CharField(allow_blank=True)
    beneficiary = serializers.CharField(allow_blank=True)
    items = serializers.SerializerMethodField()
    outstanding = serializers.DecimalField(max_digits=14, decimal_places=2)
    split_children = serializers.ListField(child=serializers.CharField())
    reminder_count = serializers.IntegerField()
    last_reminded_at = serializers.DateTimeField(allow_null=True)
    audit_trail = AuditEntrySerializer(many=True)
    attachments = AttachmentRefSerializer(many=True)
    payments = PaymentEntrySerializer(many=True)

    def get_items(self, obj) -> list[dict]:
        return [item.as_dict() for item in obj.items]


class CommittedResultSerializer(serializers.Serializer):
    requisition = RequisitionSerializer()
    children = RequisitionSerializer(many=True)
    entry = AuditEntrySerializer()


class PendingSignatureSerializer(serializers.ModelSerializer):
    class Meta:
        model = PendingSignature
        fields = [
            "id",
            "requisition_id",
            "action",
            "payload",
            "expected_version",
            "status",
            "expires_at",
            "resolved_at",
            "created_at",
        ]
        read_only_fields = fields


class LegalActionsSerializer(serializers.Serializer):
    requisition_id = serializers.CharField()
    stage = serializers.CharField()
    status_label = serializers.CharField()
    actions = serializers.ListField(child=serializers.CharField())


class DuplicateMatchSerializer(serializers.Serializer):
    requisition = RequisitionSummarySerializer()
    matched_items = serializers.ListField(child=serializers.CharField())


# ----------------------------
# Input serializers
# ----------------------------

class _HeaderFieldsMixin(serializers.Serializer):
    department = serializers.CharField(required=False, allow_blank=True, max_length=120)
    urgency = serializers.ChoiceField(choices=Urgency.choices, required=False)
    justification = serializers.CharField(required=False, allow_blank=True)
    beneficiary = serializers.CharField(required=False, allow_blank=True, max_length=255)
    # Raw line items; numbers are coerced by the sanitizer, not here.
    items = serializers.ListField(child=serializers.DictField(), required=False)
    total_amount = serializers.CharField(required=False, allow_blank=True)
    comment = serializers.CharField(required=False, allow_blank=True)
    attachments = AttachmentRefSerializer(many=True, required=False)


class RequisitionCreateSerializer(_HeaderFieldsMixin):
    type = serializers.ChoiceField(choices=RequisitionType.choices)
    title = serializers.CharField(max_length=255)


class ActionRequestSerializer(_HeaderFieldsMixin):
    action = serializers.ChoiceField(choices=Action.choices)
    title = serializers.CharField(required=False, max_length=255)


class ConfirmSignatureSerializer(serializers.Serializer):
    signature = SignatureArtifactSerializer()


class AttachmentUploadSerializer(serializers.Serializer):
    file = serializers.FileField()
    name = serializers.CharField(required=False, allow_blank=True, max_length=255)


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    paid_on = serializers.DateField(required=False)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=128)
    receipt_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
