# req_core/notifications/subscribers.py
"""
Workflow event handlers: work out who should hear about a committed change.
"""
from __future__ import annotations

from typing import Any, Dict

from req_core.common.events import subscribe
from req_core.iam.identity import user_ids_for_role
from req_core.notifications.models import Severity
from req_core.notifications.services import notify_many
from req_core.requisitions.events import PAYMENT_RECORDED, REMINDER_SENT, STAGE_CHANGED
from req_core.requisitions.gate import approver_roles_for_stage
from req_core.requisitions.models import PaymentStatus, Stage
from req_core.requisitions.transitions import stage_label

APPROVAL_REQUIRED = "Approval Required"

_REQUESTER_NOTICES = {
    Stage.APPROVED: ("Requisition Approved", Severity.SUCCESS),
    Stage.REJECTED: ("Requisition Rejected", Severity.ERROR),
    Stage.RETURNED: ("Requisition Returned", Severity.WARNING),
    Stage.SPLIT: ("Requisition Split", Severity.INFO),
}


def approver_ids(stage: str) -> list[int]:
    owner = approver_roles_for_stage(stage)
    if owner is None:
        return []
    role, second_auditor = owner
    return user_ids_for_role(role, second_auditor=second_auditor)


def _requester_body(payload: Dict[str, Any]) -> str:
    rid = payload["requisition_id"]
    stage = payload["to_stage"]
    comment = (payload.get("comment") or "").strip()

    if stage == Stage.SPLIT:
        children = ", ".join(payload.get("children") or [])
        return f"{rid} was split by supplier into {children}."
    body = f"{rid} ({payload.get('title', '')}) is now {stage_label(stage)}."
    if comment and stage in (Stage.REJECTED, Stage.RETURNED):
        body = f"{body} Comment: {comment}"
    return body


@subscribe(STAGE_CHANGED)
def on_stage_changed(payload: Dict[str, Any]) -> None:
    stage = payload["to_stage"]
    rid = payload["requisition_id"]

    notice = _REQUESTER_NOTICES.get(stage)
    if notice is not None:
        title, severity = notice
        notify_many([payload["requester_id"]], title=title, body=_requester_body(payload), related_id=rid, severity=severity)
        return

    recipients = approver_ids(stage)
    if recipients:
        notify_many(
            recipients,
            title=APPROVAL_REQUIRED,
            body=f"{rid} ({payload.get('title', '')}) is {stage_label(stage)} and awaits your action.",
            related_id=rid,
            severity=Severity.INFO,
        )


@subscribe(REMINDER_SENT)
def on_reminder_sent(payload: Dict[str, Any]) -> None:
    rid = payload["requisition_id"]
    notify_many(
        approver_ids(payload["stage"]),
        title="Reminder: Approval Pending",
        body=f"{payload.get('requester_name', 'The requester')} is waiting on {rid} ({payload.get('title', '')}).",
        related_id=rid,
        severity=Severity.WARNING,
    )


@subscribe(PAYMENT_RECORDED)
def on_payment_recorded(payload: Dict[str, Any]) -> None:
    rid = payload["requisition_id"]
    fully_paid = payload.get("payment_status") == PaymentStatus.FULLY_PAID
    body = f"A payment of {payload['amount']} was recorded on {rid}."
    body += " It is now fully paid." if fully_paid else f" Outstanding: {payload['outstanding']}."
    notify_many(
        [payload["requester_id"]],
        title="Payment Recorded",
        body=body,
        related_id=rid,
        severity=Severity.SUCCESS if fully_paid else Severity.INFO,
    )
