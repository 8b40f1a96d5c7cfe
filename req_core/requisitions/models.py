# req_core/requisitions/models.py
from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from req_core.common.models import AppendOnlyModel, TimeStampedModel


class RequisitionType(models.TextChoices):
    LAB_PO = "Lab Purchase Order", "Lab Purchase Order"
    EQUIPMENT = "Equipment Request", "Equipment Request"
    PHARMACY_PO = "Pharmacy Purchase Order", "Pharmacy Purchase Order"
    HISTOLOGY = "Outsourced Histology Payment", "Outsourced Histology Payment"
    EMERGENCY_1_WEEK = "Emergency Request (1 Week)", "Emergency Request (1 Week)"
    EMERGENCY_1_MONTH = "Emergency Request (1 Month)", "Emergency Request (1 Month)"


EMERGENCY_TYPES = frozenset({RequisitionType.EMERGENCY_1_WEEK, RequisitionType.EMERGENCY_1_MONTH})


class Stage(models.TextChoices):
    DRAFT = "Draft", "Draft"
    CHAIRMAN_REVIEW = "Chairman-Review", "Chairman Review"
    STORE_FULFILLMENT = "Store-Fulfillment", "Store Fulfillment"
    AUDIT_1 = "Audit1", "Audit 1"
    AUDIT_2 = "Audit2", "Audit 2"
    FINAL_APPROVAL = "Final-Approval", "Final Approval"
    FINANCE_APPROVAL = "Finance-Approval", "Finance Approval"
    APPROVED = "Approved", "Approved"
    REJECTED = "Rejected", "Rejected"
    RETURNED = "Returned", "Returned"
    SPLIT = "Split", "Split"


TERMINAL_STAGES = frozenset({Stage.APPROVED, Stage.REJECTED, Stage.SPLIT})
EDITABLE_STAGES = frozenset({Stage.RETURNED, Stage.DRAFT})


class Action(models.TextChoices):
    CREATED = "Created", "Created"
    RESUBMITTED = "Resubmitted", "Resubmitted"
    EDIT = "Edit", "Edit"
    APPROVED = "Approved", "Approved"
    FINAL_APPROVAL = "Final Approval", "Final Approval"
    UPDATED = "Updated", "Updated"
    ADVICE_SUBMITTED = "Advice Submitted", "Advice Submitted"
    REFERRED_TO_AUDIT = "Referred to Audit", "Referred to Audit"
    REFERRED_TO_STORE = "Referred to Store", "Referred to Store"
    REJECTED = "Rejected", "Rejected"
    RETURNED = "Returned", "Returned"
    SPLIT = "Split", "Split"
    PAYMENT_RECORDED = "Payment Recorded", "Payment Recorded"
    ATTACHMENT_ADDED = "Attachment Added", "Attachment Added"


class Urgency(models.TextChoices):
    LOW = "Low", "Low"
    MEDIUM = "Medium", "Medium"
    HIGH = "High", "High"
    CRITICAL = "Critical", "Critical"


class PaymentStatus(models.TextChoices):
    UNPAID = "Unpaid", "Unpaid"
    PARTIALLY_PAID = "PartiallyPaid", "Partially Paid"
    FULLY_PAID = "FullyPaid", "Fully Paid"


class ItemKind(models.TextChoices):
    GENERIC = "GENERIC", "Generic"
    HISTOLOGY = "HISTOLOGY", "Histology"
    EMERGENCY = "EMERGENCY", "Emergency"


class Requisition(TimeStampedModel):
    """
    Aggregate root. Every full-row write goes through the store,
    which compares ``version`` and bumps it.
    """
    id = models.CharField(primary_key=True, max_length=40, editable=False)

    type = models.CharField(max_length=40, choices=RequisitionType.choices, db_index=True)
    title = models.CharField(max_length=255)
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requisitions",
    )
    requester_name = models.CharField(max_length=150)
    department = models.CharField(max_length=120, blank=True, default="")
    urgency = models.CharField(max_length=16, choices=Urgency.choices, default=Urgency.MEDIUM)
    justification = models.TextField(blank=True, default="")
    beneficiary = models.CharField(max_length=255, blank=True, default="")

    stage = models.CharField(max_length=24, choices=Stage.choices, db_index=True)

    total_cost = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)

    parent = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        related_name="split_children",
        null=True,
        blank=True,
    )

    version = models.PositiveIntegerField(default=1)

    reminder_count = models.PositiveIntegerField(default=0)
    last_reminded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "requisitions_requisition"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["stage", "type"]),
            models.Index(fields=["requester", "stage"]),
        ]

    def __str__(self) -> str:
        return f"{self.id} [{self.stage}]"


class RequisitionItem(models.Model):
    """
    Base columns shared by every item kind; kind-specific fields live in ``details``.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    requisition = models.ForeignKey(Requisition, on_delete=models.CASCADE, related_name="items")
    position = models.PositiveIntegerField()
    kind = models.CharField(max_length=16, choices=ItemKind.choices, default=ItemKind.GENERIC)

    name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("1.00"))
    unit = models.CharField(max_length=32, blank=True, default="")
    unit_cost = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    estimated_cost = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    supplier = models.CharField(max_length=255, blank=True, default="")
    stock_level = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    category = models.CharField(max_length=64, blank=True, default="General")
    notes = models.TextField(blank=True, default="")

    details = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = "requisitions_item"
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(fields=["requisition", "position"], name="uq_requisition_item_position"),
        ]


class Attachment(AppendOnlyModel):
    """
    Immutable once added; a name is unique within its requisition.
    ``reference`` is the opaque handle returned by the attachment store.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    requisition = models.ForeignKey(Requisition, on_delete=models.CASCADE, related_name="attachments")
    name = models.CharField(max_length=255)
    content_type = models.CharField(max_length=120, blank=True, default="application/octet-stream")
    reference = models.CharField(max_length=500)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name="requisition_attachments",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "requisitions_attachment"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["requisition", "name"], name="uq_requisition_attachment_name"),
        ]


class PendingSignatureStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    CANCELLED = "CANCELLED", "Cancelled"


class PendingSignature(TimeStampedModel):
    """
    First half of the two-step protocol: an action validated and waiting
    for its signature. Nothing is committed until it is confirmed.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    requisition = models.ForeignKey(
        Requisition,
        on_delete=models.CASCADE,
        related_name="pending_signatures",
        null=True,
        blank=True,
    )
    action = models.CharField(max_length=32, choices=Action.choices)
    payload = models.JSONField(default=dict, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="pending_signatures",
    )
    expected_version = models.PositiveIntegerField(null=True, blank=True)

    status = models.CharField(
        max_length=16,
        choices=PendingSignatureStatus.choices,
        default=PendingSignatureStatus.PENDING,
        db_index=True,
    )
    expires_at = models.DateTimeField()
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "requisitions_pending_signature"
        indexes = [
            models.Index(fields=["actor", "status"]),
        ]
