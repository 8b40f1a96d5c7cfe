import uuid
from decimal import Decimal

import pytest
from django.utils import timezone

from req_core.iam.signatures import DRAWN, STAMP, SignatureArtifact, mint_stamp
from req_core.requisitions.domain import AuditEntry
from req_core.requisitions.models import Action, RequisitionType
from req_core.requisitions.printable import (
    _signature_text,
    amount_in_words,
    printable_form,
    render_document,
    signature_blocks,
)
from req_core.requisitions.services import Command


@pytest.mark.parametrize(
    "amount, words",
    [
        (Decimal("257500"), "TWO HUNDRED AND FIFTY SEVEN THOUSAND FIVE HUNDRED NAIRA ONLY"),
        (Decimal("50000"), "FIFTY THOUSAND NAIRA ONLY"),
        (Decimal("0"), "ZERO NAIRA ONLY"),
        (Decimal("1000000"), "ONE MILLION NAIRA ONLY"),
        (Decimal("13"), "THIRTEEN NAIRA ONLY"),
        (
            Decimal("1234567.50"),
            "ONE MILLION TWO HUNDRED AND THIRTY FOUR THOUSAND FIVE HUNDRED AND SIXTY SEVEN NAIRA, FIFTY KOBO ONLY",
        ),
    ],
)
def test_amount_in_words(amount, words):
    assert amount_in_words(amount) == words


def test_amount_in_words_uses_the_given_currency():
    assert amount_in_words(Decimal("21"), currency="Cedi") == "TWENTY ONE CEDI ONLY"


@pytest.mark.django_db
def test_emergency_week_form_is_fully_signed(lab_user, auditor, chairman, create_requisition, run_action):
    req = create_requisition(
        lab_user, type=RequisitionType.EMERGENCY_1_WEEK, title="Generator repair", total_amount="257500"
    ).requisition
    run_action(auditor, req.id, Action.APPROVED)
    final = run_action(chairman, req.id, Action.FINAL_APPROVAL).requisition

    form = printable_form(final)

    assert form["amount_in_words"] == "TWO HUNDRED AND FIFTY SEVEN THOUSAND FIVE HUNDRED NAIRA ONLY"
    assert form["total_cost"] == "257500.00"
    assert form["status_label"] == "Approved"
    assert [b["label"] for b in form["signatures"]] == [
        "APPLICANT'S (NAME & SIGN)",
        "CONFIRMED BY (AUDIT 1)",
        "APPROVED BY (CHAIRMAN)",
    ]
    assert all(b["signed"] for b in form["signatures"])
    assert [b["name"] for b in form["signatures"]] == ["Lab Tech", "Audit One", "The Chairman"]
    assert form["signatures"][1]["signature"]["kind"] == DRAWN


@pytest.mark.django_db
def test_unsigned_slots_stay_empty(pharmacy_user, create_requisition):
    req = create_requisition(
        pharmacy_user,
        type=RequisitionType.PHARMACY_PO,
        title="Drugs",
        items=[{"name": "Paracetamol", "quantity": 10, "unit_cost": 5}],
    ).requisition

    blocks = signature_blocks(req)

    assert [b["signed"] for b in blocks] == [True, False, False]
    assert blocks[1]["signature"] is None


@pytest.mark.django_db
def test_stamp_renders_as_text(pharmacy_user, auditor, actor, workflow, create_requisition):
    req = create_requisition(
        pharmacy_user,
        type=RequisitionType.PHARMACY_PO,
        title="Drugs",
        items=[{"name": "Paracetamol", "quantity": 10, "unit_cost": 5}],
    ).requisition
    a = actor(auditor)
    pending = workflow.begin_action(a, Command(requisition_id=req.id, action=Action.APPROVED))
    approved = workflow.confirm_signature(a, pending.id, mint_stamp(auditor, "testpass")).requisition

    audit_block = signature_blocks(approved)[1]

    assert audit_block["signature"]["kind"] == STAMP
    assert audit_block["signature"]["data"].startswith("Digitally signed by Audit One")


@pytest.mark.django_db
def test_render_document_hands_form_and_attachments_to_the_renderer(pharmacy_user, create_requisition):
    req = create_requisition(
        pharmacy_user,
        type=RequisitionType.PHARMACY_PO,
        title="Drugs",
        items=[{"name": "Paracetamol", "quantity": 10, "unit_cost": 5}],
    ).requisition

    class TextRenderer:
        content_type = "text/plain"

        def render(self, form, attachments):
            return f"{form['id']} {form['total_cost']} {len(attachments)}".encode()

    assert render_document(req, TextRenderer()) == b"REQ-000001 50.00 0"


def test_tampered_stamp_is_shown_as_unverifiable():
    entry = AuditEntry(
        id=uuid.uuid4(),
        sequence=1,
        timestamp=timezone.now(),
        actor_id=1,
        actor_name="Audit One",
        actor_role="AUDITOR",
        stage="Audit1",
        action=Action.APPROVED,
        signature=SignatureArtifact(kind=STAMP, data="not-a-stamp"),
    )
    assert _signature_text(entry) == {"kind": STAMP, "data": "Stamp of Audit One (unverifiable)"}
