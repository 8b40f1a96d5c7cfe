# req_core/audit/models.py
import uuid

from django.conf import settings
from django.db import models

from req_core.common.models import AppendOnlyModel
from req_core.requisitions.models import Action, Stage


class SignatureKind(models.TextChoices):
    NONE = "", "None"
    DRAWN = "DRAWN", "Drawn"
    STAMP = "STAMP", "Stamp"


class AuditLogEntry(AppendOnlyModel):
    """
    Immutable ledger line.
    Requisition timelines and printable signature blocks are read from here.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    requisition = models.ForeignKey(
        "requisitions.Requisition",
        on_delete=models.PROTECT,
        related_name="audit_entries",
    )
    sequence = models.PositiveIntegerField()
    occurred_at = models.DateTimeField(db_index=True)

    actor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requisition_audit_entries",
        null=True,
        blank=True,
    )
    actor_name = models.CharField(max_length=150)
    actor_role = models.CharField(max_length=16)

    stage = models.CharField(max_length=24, choices=Stage.choices)
    action = models.CharField(max_length=32, choices=Action.choices, db_index=True)
    comment = models.TextField(blank=True, default="")

    signature_kind = models.CharField(max_length=8, choices=SignatureKind.choices, blank=True, default="")
    signature_data = models.TextField(blank=True, default="")

    class Meta:
        db_table = "audit_log_entry"
        ordering = ["requisition", "sequence"]
        constraints = [
            models.UniqueConstraint(fields=["requisition", "sequence"], name="uq_audit_entry_requisition_sequence"),
        ]
        indexes = [
            models.Index(fields=["actor_user", "occurred_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.requisition_id}#{self.sequence} {self.action}"
