# req_core/audit/selectors.py
from __future__ import annotations

from typing import Iterable, Sequence

from django.db.models import QuerySet

from req_core.audit.models import AuditLogEntry
from req_core.requisitions.domain import AuditEntry


def list_audit_entries(
    *,
    requisition_id: str | None = None,
    action: str | None = None,
    actor_user_id: int | None = None,
) -> QuerySet[AuditLogEntry]:
    qs = AuditLogEntry.objects.all()

    if requisition_id:
        qs = qs.filter(requisition_id=requisition_id)
    if action:
        qs = qs.filter(action=action)
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)

    return qs.order_by("requisition_id", "sequence")


def latest_matching_entry(
    trail: Sequence[AuditEntry],
    *,
    actions: Iterable[str],
    role: str | None = None,
    actor_id: int | None = None,
    exclude_actor_id: int | None = None,
    stage: str | None = None,
) -> AuditEntry | None:
    """
    Most recent entry matching the filters, scanning the trail in reverse.
    Used by printable signature blocks.
    """
    wanted = set(actions)
    for entry in reversed(trail):
        if entry.action not in wanted:
            continue
        if role is not None and entry.actor_role != role:
            continue
        if actor_id is not None and entry.actor_id != actor_id:
            continue
        if exclude_actor_id is not None and entry.actor_id == exclude_actor_id:
            continue
        if stage is not None and entry.stage != stage:
            continue
        return entry
    return None
