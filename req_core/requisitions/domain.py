# req_core/requisitions/domain.py
"""
Immutable snapshots the workflow engine computes with.

The store loads a ``Requisition`` snapshot, engine functions return new
snapshots via ``dataclasses.replace``, and the store writes them back.
A loaded snapshot is never modified, so the pre-action state is always
available when a write fails.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping

from req_core.iam.signatures import SignatureArtifact
from req_core.requisitions.items import ZERO, LineItem
from req_core.requisitions.models import (
    EDITABLE_STAGES,
    EMERGENCY_TYPES,
    TERMINAL_STAGES,
    PaymentStatus,
    Urgency,
)


@dataclass(frozen=True)
class AttachmentRef:
    name: str
    reference: str
    content_type: str = "application/octet-stream"
    uploaded_by_id: int | None = None
    created_at: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "reference": self.reference,
            "content_type": self.content_type,
            "uploaded_by_id": self.uploaded_by_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttachmentRef":
        return cls(
            name=str(data.get("name") or ""),
            reference=str(data.get("reference") or ""),
            content_type=str(data.get("content_type") or "application/octet-stream"),
            uploaded_by_id=data.get("uploaded_by_id"),
        )


@dataclass(frozen=True)
class AuditEntry:
    """One immutable ledger line."""
    id: uuid.UUID
    sequence: int
    timestamp: datetime
    actor_id: int | None
    actor_name: str
    actor_role: str
    stage: str
    action: str
    comment: str = ""
    signature: SignatureArtifact | None = None

    def copied(self) -> "AuditEntry":
        """Same content under a fresh id, for seeding a split child's trail."""
        return replace(self, id=uuid.uuid4())


@dataclass(frozen=True)
class PaymentEntry:
    id: uuid.UUID
    paid_on: date
    amount: Decimal
    reference: str
    recorded_by_id: int | None
    recorded_by_name: str
    receipt_name: str = ""
    recorded_at: datetime | None = None


@dataclass(frozen=True)
class Requisition:
    id: str
    type: str
    title: str
    requester_id: int
    requester_name: str
    stage: str
    items: tuple[LineItem, ...] = ()
    total_cost: Decimal = ZERO
    department: str = ""
    urgency: str = Urgency.MEDIUM
    justification: str = ""
    beneficiary: str = ""
    amount_paid: Decimal = ZERO
    payment_status: str = PaymentStatus.UNPAID
    audit_trail: tuple[AuditEntry, ...] = ()
    attachments: tuple[AttachmentRef, ...] = ()
    payments: tuple[PaymentEntry, ...] = ()
    parent_id: str | None = None
    version: int = 0
    reminder_count: int = 0
    last_reminded_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    split_children: tuple[str, ...] = field(default=(), compare=False)

    @property
    def outstanding(self) -> Decimal:
        return self.total_cost - self.amount_paid

    @property
    def is_terminal(self) -> bool:
        return self.stage in TERMINAL_STAGES

    @property
    def is_editable(self) -> bool:
        return self.stage in EDITABLE_STAGES

    @property
    def is_emergency(self) -> bool:
        return self.type in EMERGENCY_TYPES

    @property
    def next_sequence(self) -> int:
        return (self.audit_trail[-1].sequence + 1) if self.audit_trail else 1

    def attachment(self, name: str) -> AttachmentRef | None:
        for att in self.attachments:
            if att.name == name:
                return att
        return None
