# req_core/requisitions/printable.py
"""
Canonical printable form of a requisition.

Everything here is derived from the snapshot; nothing is written back.
A ``DocumentRenderer`` turns the form (plus attachment references) into
a downloadable document.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol, Sequence

from django.conf import settings

from req_core.audit.selectors import latest_matching_entry
from req_core.common.errors import ValidationError
from req_core.iam.signatures import STAMP, stamp_text
from req_core.requisitions.domain import AttachmentRef, AuditEntry, Requisition
from req_core.requisitions.items import line_total
from req_core.requisitions.models import Action, RequisitionType, Stage
from req_core.requisitions.transitions import stage_label

_ONES = (
    "", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine", "ten",
    "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen", "seventeen", "eighteen", "nineteen",
)
_TENS = ("", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety")
_SCALES = ((10**9, "billion"), (10**6, "million"), (10**3, "thousand"))


def _words(n: int) -> str:
    if n < 20:
        return _ONES[n]
    if n < 100:
        return _TENS[n // 10] + (f" {_ONES[n % 10]}" if n % 10 else "")
    if n < 1000:
        return f"{_ONES[n // 100]} hundred" + (f" and {_words(n % 100)}" if n % 100 else "")
    for size, name in _SCALES:
        if n >= size:
            head, rest = divmod(n, size)
            return f"{_words(head)} {name}" + (f" {_words(rest)}" if rest else "")
    raise AssertionError("unreachable")


def amount_in_words(amount: Decimal, *, currency: str | None = None) -> str:
    """
    257500 -> "TWO HUNDRED AND FIFTY SEVEN THOUSAND FIVE HUNDRED NAIRA ONLY".
    A fractional part is spelled out in kobo.
    """
    currency = (currency or settings.REQUISITION_WORKFLOW.get("CURRENCY_NAME") or "Naira").upper()
    amount = Decimal(amount).quantize(Decimal("0.01"))
    if amount < 0:
        amount = -amount
    whole = int(amount)
    kobo = int((amount - whole) * 100)

    text = f"{_words(whole) if whole else 'zero'} {currency.lower()}"
    if kobo:
        text = f"{text}, {_words(kobo)} kobo"
    return f"{text} only".upper()


@dataclass(frozen=True)
class SignatureSlot:
    label: str
    actions: frozenset[str]
    stage: str | None = None
    requester: bool = False


_APPLICANT = SignatureSlot("APPLICANT'S (NAME & SIGN)", frozenset({Action.CREATED, Action.RESUBMITTED}), requester=True)
_REQUESTED_BY = SignatureSlot("Requested By", frozenset({Action.CREATED, Action.RESUBMITTED}), requester=True)
_AUDIT_1 = SignatureSlot("Audit Verification", frozenset({Action.APPROVED, Action.ADVICE_SUBMITTED}), Stage.AUDIT_1)
_FINAL = SignatureSlot("Final Approval", frozenset({Action.FINAL_APPROVAL}), Stage.FINAL_APPROVAL)

SIGNATURE_SLOTS: dict[str, tuple[SignatureSlot, ...]] = {
    RequisitionType.EMERGENCY_1_MONTH: (
        _APPLICANT,
        SignatureSlot("CONFIRMED BY (AUDIT 2)", frozenset({Action.APPROVED}), Stage.AUDIT_2),
        SignatureSlot("CONFIRMED BY (AUDIT 1)", frozenset({Action.APPROVED}), Stage.AUDIT_1),
        SignatureSlot("APPROVED BY (CHAIRMAN)", frozenset({Action.APPROVED}), Stage.CHAIRMAN_REVIEW),
        SignatureSlot("FINAL APPROVAL (FINANCE)", frozenset({Action.FINAL_APPROVAL}), Stage.FINANCE_APPROVAL),
    ),
    RequisitionType.EMERGENCY_1_WEEK: (
        _APPLICANT,
        SignatureSlot("CONFIRMED BY (AUDIT 1)", frozenset({Action.APPROVED}), Stage.AUDIT_1),
        SignatureSlot("APPROVED BY (CHAIRMAN)", frozenset({Action.FINAL_APPROVAL}), Stage.FINAL_APPROVAL),
    ),
    RequisitionType.LAB_PO: (
        _REQUESTED_BY,
        SignatureSlot("Chairman (Initial)", frozenset({Action.APPROVED}), Stage.CHAIRMAN_REVIEW),
        SignatureSlot("Store Verification", frozenset({Action.UPDATED, Action.SPLIT}), Stage.STORE_FULFILLMENT),
        SignatureSlot("Audit Check", frozenset({Action.APPROVED}), Stage.AUDIT_1),
        _FINAL,
    ),
    RequisitionType.PHARMACY_PO: (_REQUESTED_BY, _AUDIT_1, _FINAL),
    RequisitionType.HISTOLOGY: (_REQUESTED_BY, _AUDIT_1, _FINAL),
    RequisitionType.EQUIPMENT: (_REQUESTED_BY, _AUDIT_1, _FINAL),
}


def _signature_text(entry: AuditEntry) -> dict[str, str] | None:
    if entry.signature is None:
        return None
    if entry.signature.kind != STAMP:
        return entry.signature.as_dict()
    try:
        text = stamp_text(entry.signature)
    except ValidationError:
        text = f"Stamp of {entry.actor_name} (unverifiable)"
    return {"kind": STAMP, "data": text}


def signature_blocks(requisition: Requisition) -> list[dict[str, Any]]:
    blocks = []
    for slot in SIGNATURE_SLOTS.get(requisition.type, ()):
        entry = latest_matching_entry(
            requisition.audit_trail,
            actions=slot.actions,
            stage=slot.stage,
            actor_id=requisition.requester_id if slot.requester else None,
        )
        blocks.append(
            {
                "label": slot.label,
                "signed": entry is not None,
                "name": entry.actor_name if entry else "",
                "role": entry.actor_role if entry else "",
                "signed_at": entry.timestamp.isoformat() if entry else None,
                "comment": entry.comment if entry else "",
                "signature": _signature_text(entry) if entry else None,
            }
        )
    return blocks


def printable_form(requisition: Requisition) -> dict[str, Any]:
    return {
        "id": requisition.id,
        "type": requisition.type,
        "title": requisition.title,
        "requester_name": requisition.requester_name,
        "department": requisition.department,
        "urgency": requisition.urgency,
        "justification": requisition.justification,
        "beneficiary": requisition.beneficiary,
        "stage": requisition.stage,
        "status_label": stage_label(requisition.stage),
        "parent_id": requisition.parent_id,
        "created_at": requisition.created_at.isoformat() if requisition.created_at else None,
        "items": [{**item.as_dict(), "line_total": str(line_total(item))} for item in requisition.items],
        "total_cost": str(requisition.total_cost),
        "amount_in_words": amount_in_words(requisition.total_cost),
        "amount_paid": str(requisition.amount_paid),
        "outstanding": str(requisition.outstanding),
        "payment_status": requisition.payment_status,
        "payments": [
            {
                "paid_on": p.paid_on.isoformat(),
                "amount": str(p.amount),
                "reference": p.reference,
                "recorded_by": p.recorded_by_name,
                "receipt_name": p.receipt_name,
            }
            for p in requisition.payments
        ],
        "signatures": signature_blocks(requisition),
        "attachments": [a.as_dict() for a in requisition.attachments],
    }


class DocumentRenderer(Protocol):
    content_type: str

    def render(self, form: dict[str, Any], attachments: Sequence[AttachmentRef]) -> bytes: ...


def render_document(requisition: Requisition, renderer: DocumentRenderer) -> bytes:
    return renderer.render(printable_form(requisition), requisition.attachments)
