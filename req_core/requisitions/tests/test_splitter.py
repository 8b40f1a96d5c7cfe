import uuid
from decimal import Decimal

from django.utils import timezone

from req_core.common.permissions import ROLE_PHARMACY
from req_core.requisitions.domain import AuditEntry, Requisition
from req_core.requisitions.items import items_total, sanitize_items
from req_core.requisitions.models import Action, ItemKind, PaymentStatus, RequisitionType, Stage
from req_core.requisitions.splitter import (
    UNASSIGNED,
    child_suffix,
    group_by_supplier,
    split_requisition,
)


def _entry(*, sequence: int, action: str = Action.CREATED, stage: str = Stage.DRAFT, comment: str = "") -> AuditEntry:
    return AuditEntry(
        id=uuid.uuid4(),
        sequence=sequence,
        timestamp=timezone.now(),
        actor_id=7,
        actor_name="Store Keeper",
        actor_role=ROLE_PHARMACY,
        stage=stage,
        action=action,
        comment=comment,
    )


def _parent(items) -> Requisition:
    return Requisition(
        id="REQ-000042",
        type=RequisitionType.PHARMACY_PO,
        title="Monthly drugs",
        requester_id=7,
        requester_name="Store Keeper",
        stage=Stage.DRAFT,
        items=items,
        total_cost=items_total(items),
        audit_trail=(_entry(sequence=1),),
        version=3,
    )


EMZOR_MB = sanitize_items(
    [
        {"name": "Paracetamol", "quantity": 1000, "unit_cost": 5, "supplier": "Emzor"},
        {"name": "Amoxicillin", "quantity": 500, "unit_cost": 8, "supplier": "M&B"},
    ],
    kind=ItemKind.GENERIC,
)


def test_two_suppliers_give_two_children_with_their_own_totals():
    parent = _parent(EMZOR_MB)
    outcome = split_requisition(
        parent,
        EMZOR_MB,
        child_stage=Stage.AUDIT_1,
        entry=_entry(sequence=2, action=Action.SPLIT),
    )

    assert outcome is not None
    a, b = outcome.children
    assert (a.id, b.id) == ("REQ-000042-A", "REQ-000042-B")
    assert a.total_cost == Decimal("5000.00")
    assert b.total_cost == Decimal("4000.00")
    assert [i.supplier for i in a.items] == ["Emzor"]
    assert [i.supplier for i in b.items] == ["M&B"]

    for child in outcome.children:
        assert child.parent_id == parent.id
        assert child.stage == Stage.AUDIT_1
        assert child.amount_paid == Decimal("0.00")
        assert child.payment_status == PaymentStatus.UNPAID
        assert [e.action for e in child.audit_trail] == [Action.CREATED, Action.SPLIT]

    closed = outcome.parent
    assert closed.stage == Stage.SPLIT
    assert closed.split_children == ("REQ-000042-A", "REQ-000042-B")
    assert [e.action for e in closed.audit_trail] == [Action.CREATED, Action.SPLIT]
    assert "REQ-000042-A (Emzor)" in closed.audit_trail[-1].comment


def test_children_inherit_trail_under_fresh_ids():
    parent = _parent(EMZOR_MB)
    outcome = split_requisition(parent, EMZOR_MB, child_stage=Stage.AUDIT_1, entry=_entry(sequence=2))

    parent_ids = {e.id for e in parent.audit_trail}
    for child in outcome.children:
        assert child.audit_trail[0].sequence == 1
        assert child.audit_trail[0].id not in parent_ids


def test_sibling_children_never_share_audit_ids():
    parent = _parent(EMZOR_MB)
    outcome = split_requisition(parent, EMZOR_MB, child_stage=Stage.AUDIT_1, entry=_entry(sequence=2))

    a, b = outcome.children
    a_ids = {e.id for e in a.audit_trail}
    b_ids = {e.id for e in b.audit_trail}
    parent_ids = {e.id for e in outcome.parent.audit_trail}
    assert len(a_ids) == len(a.audit_trail)
    assert a_ids.isdisjoint(b_ids)
    assert parent_ids.isdisjoint(a_ids | b_ids)


def test_groups_partition_the_items():
    items = sanitize_items(
        [
            {"name": "a", "unit_cost": 1, "supplier": "Zeta"},
            {"name": "b", "unit_cost": 2, "supplier": ""},
            {"name": "c", "unit_cost": 3, "supplier": "Alpha"},
            {"name": "d", "unit_cost": 4, "supplier": "Zeta"},
        ],
        kind=ItemKind.GENERIC,
    )
    groups = group_by_supplier(items)

    assert [g.supplier for g in groups] == ["Alpha", UNASSIGNED, "Zeta"]
    assert [i.name for i in groups[2].items] == ["a", "d"]
    assert sorted(i.name for g in groups for i in g.items) == ["a", "b", "c", "d"]
    assert sum((g.total for g in groups), Decimal("0")) == items_total(items)


def test_single_supplier_does_not_split():
    items = sanitize_items(
        [
            {"name": "a", "unit_cost": 1, "supplier": "Emzor"},
            {"name": "b", "unit_cost": 2, "supplier": " Emzor "},
        ],
        kind=ItemKind.GENERIC,
    )
    assert split_requisition(_parent(items), items, child_stage=Stage.AUDIT_1, entry=_entry(sequence=2)) is None


def test_child_suffix_runs_past_z():
    assert child_suffix(0) == "A"
    assert child_suffix(25) == "Z"
    assert child_suffix(26) == "AA"
    assert child_suffix(27) == "AB"
