# req_core/audit/services.py
from __future__ import annotations

import uuid

from django.utils import timezone

from req_core.audit.models import AuditLogEntry
from req_core.common.errors import ValidationError
from req_core.iam.identity import Actor
from req_core.iam.signatures import SignatureArtifact
from req_core.requisitions.domain import AuditEntry
from req_core.requisitions.transitions import COMMENT_REQUIRED_ACTIONS


class LedgerService:
    """
    Append-only audit/signature ledger.
    Entries are built (and validated) in memory, then appended once.
    """

    @staticmethod
    def entry(
        *,
        actor: Actor,
        action: str,
        stage: str,
        sequence: int,
        comment: str = "",
        signature: SignatureArtifact | None = None,
    ) -> AuditEntry:
        comment = (comment or "").strip()
        if action in COMMENT_REQUIRED_ACTIONS and not comment:
            raise ValidationError(
                f"A comment is required to record '{action}'. Nothing was changed.",
                details={"fields": {"comment": "This field is required."}},
            )

        return AuditEntry(
            id=uuid.uuid4(),
            sequence=sequence,
            timestamp=timezone.now(),
            actor_id=actor.user_id,
            actor_name=actor.display_name,
            actor_role=actor.role,
            stage=stage,
            action=action,
            comment=comment,
            signature=signature,
        )

    @staticmethod
    def append(requisition_id: str, entry: AuditEntry) -> AuditLogEntry:
        return AuditLogEntry.objects.create(
            id=entry.id,
            requisition_id=requisition_id,
            sequence=entry.sequence,
            occurred_at=entry.timestamp,
            actor_user_id=entry.actor_id,
            actor_name=entry.actor_name,
            actor_role=entry.actor_role,
            stage=entry.stage,
            action=entry.action,
            comment=entry.comment,
            signature_kind=entry.signature.kind if entry.signature else "",
            signature_data=entry.signature.data if entry.signature else "",
        )

    @staticmethod
    def to_entry(row: AuditLogEntry) -> AuditEntry:
        signature = None
        if row.signature_kind:
            signature = SignatureArtifact(kind=row.signature_kind, data=row.signature_data)
        return AuditEntry(
            id=row.id,
            sequence=row.sequence,
            timestamp=row.occurred_at,
            actor_id=row.actor_user_id,
            actor_name=row.actor_name,
            actor_role=row.actor_role,
            stage=row.stage,
            action=row.action,
            comment=row.comment,
            signature=signature,
        )
