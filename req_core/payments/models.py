# req_core/payments/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models

from req_core.common.models import AppendOnlyModel


class PaymentRecord(AppendOnlyModel):
    """
    One payment against an approved requisition. Append-only:
    the requisition's amount_paid is always the sum of these rows.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    requisition = models.ForeignKey(
        "requisitions.Requisition",
        on_delete=models.PROTECT,
        related_name="payment_records",
    )
    amount = models.DecimalField(max_digits=14, decimal_places=2)
    paid_on = models.DateField()
    reference = models.CharField(max_length=128, blank=True, default="")
    receipt_name = models.CharField(max_length=255, blank=True, default="")

    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="recorded_requisition_payments",
        null=True,
        blank=True,
    )
    recorded_by_name = models.CharField(max_length=150, blank=True, default="")
    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "payments_payment_record"
        ordering = ["recorded_at"]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gt=0), name="ck_payment_amount_positive"),
        ]
