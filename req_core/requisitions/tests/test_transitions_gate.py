import pytest

from req_core.common.errors import AuthorizationError, ValidationError
from req_core.common.permissions import (
    ROLE_ACCOUNTS,
    ROLE_ADMIN,
    ROLE_AUDITOR,
    ROLE_CHAIRMAN,
    ROLE_FINANCE,
    ROLE_LAB,
    ROLE_PHARMACY,
)
from req_core.iam.identity import Actor
from req_core.requisitions import gate
from req_core.requisitions.domain import Requisition
from req_core.requisitions.models import Action, RequisitionType, Stage
from req_core.requisitions.transitions import (
    AUDIT_ADVISORY,
    ENTRY_STAGES,
    FINAL_APPROVAL_STAGES,
    REQUESTER,
    STAGE_ROLES,
    Transition,
    TransitionTable,
    WorkflowPolicy,
    build_table,
    stage_label,
)

REQUESTER_ID = 100

ACTORS = {
    "chairman": Actor(user_id=1, username="chairman", display_name="C", role=ROLE_CHAIRMAN),
    "auditor1": Actor(user_id=2, username="auditor1", display_name="A1", role=ROLE_AUDITOR),
    "auditor2": Actor(user_id=3, username="auditor2", display_name="A2", role=ROLE_AUDITOR, is_second_auditor=True),
    "pharmacy": Actor(user_id=4, username="pharm", display_name="P", role=ROLE_PHARMACY),
    "finance": Actor(user_id=5, username="hof", display_name="F", role=ROLE_FINANCE),
    "accounts": Actor(user_id=6, username="acc", display_name="Acc", role=ROLE_ACCOUNTS),
    "admin": Actor(user_id=8, username="admin", display_name="Adm", role=ROLE_ADMIN),
    "requester": Actor(user_id=REQUESTER_ID, username="labtech", display_name="L", role=ROLE_LAB),
}


def _req(rtype: str, stage: str) -> Requisition:
    return Requisition(
        id="REQ-000001",
        type=rtype,
        title="t",
        requester_id=REQUESTER_ID,
        requester_name="L",
        stage=stage,
    )


@pytest.fixture
def table():
    return build_table(WorkflowPolicy())


def test_every_type_has_an_entry_stage_in_the_table(table):
    for rtype in RequisitionType.values:
        assert ENTRY_STAGES[rtype] in table.stages_for(rtype)


def test_rows_are_owned_by_the_stage_role(table):
    for t in table:
        assert t.role == STAGE_ROLES[t.stage]


def test_gate_and_table_agree_for_every_stage_and_actor(table):
    for rtype in RequisitionType.values:
        for stage in Stage.values:
            requisition = _req(rtype, stage)
            for actor in ACTORS.values():
                allowed = gate.legal_actions(requisition, actor, table=table)
                assert allowed <= {t.action for t in table.rows_for(rtype, stage)}
                for action in allowed:
                    assert table.get(rtype, stage, action) is not None


def test_terminal_stages_have_no_actions(table):
    for rtype in RequisitionType.values:
        for stage in (Stage.APPROVED, Stage.REJECTED, Stage.SPLIT):
            for actor in ACTORS.values():
                assert gate.legal_actions(_req(rtype, stage), actor, table=table) == frozenset()


def test_audit2_belongs_to_the_second_auditor_only(table):
    requisition = _req(RequisitionType.EMERGENCY_1_MONTH, Stage.AUDIT_2)
    assert gate.legal_actions(requisition, ACTORS["auditor2"], table=table) == {
        Action.APPROVED,
        Action.REJECTED,
        Action.RETURNED,
    }
    assert gate.legal_actions(requisition, ACTORS["auditor1"], table=table) == frozenset()


def test_audit1_is_not_open_to_the_second_auditor(table):
    requisition = _req(RequisitionType.EMERGENCY_1_MONTH, Stage.AUDIT_1)
    assert Action.APPROVED in gate.legal_actions(requisition, ACTORS["auditor1"], table=table)
    assert gate.legal_actions(requisition, ACTORS["auditor2"], table=table) == frozenset()


def test_audit2_approval_routes_to_audit1(table):
    rows = [t for t in table if t.stage == Stage.AUDIT_2 and t.action == Action.APPROVED]
    assert rows
    assert {t.next_stage for t in rows} == {Stage.AUDIT_1}


def test_final_approval_only_at_final_stages(table):
    for t in table:
        if t.action == Action.FINAL_APPROVAL:
            assert t.stage in FINAL_APPROVAL_STAGES
            assert t.next_stage == Stage.APPROVED
        if t.action == Action.APPROVED:
            assert t.stage not in FINAL_APPROVAL_STAGES


@pytest.mark.parametrize("stage", [Stage.RETURNED, Stage.DRAFT])
def test_edit_is_the_only_requester_action(table, stage):
    requisition = _req(RequisitionType.PHARMACY_PO, stage)
    assert gate.legal_actions(requisition, ACTORS["requester"], table=table) == {Action.EDIT}
    assert gate.legal_actions(requisition, ACTORS["admin"], table=table) == frozenset()
    assert gate.legal_actions(requisition, ACTORS["auditor1"], table=table) == frozenset()


def test_edit_returns_to_the_entry_stage(table):
    for t in table:
        if t.action == Action.EDIT:
            assert t.role == REQUESTER
            assert t.next_stage == ENTRY_STAGES[t.type]


def test_stage_without_rows_for_type_allows_nothing(table):
    requisition = _req(RequisitionType.HISTOLOGY, Stage.STORE_FULFILLMENT)
    assert gate.legal_actions(requisition, ACTORS["pharmacy"], table=table) == frozenset()


def test_reject_and_return_require_a_comment(table):
    for t in table:
        if t.action in (Action.REJECTED, Action.RETURNED):
            assert t.requires_comment


def test_store_update_splits_only_lab_orders(table):
    lab = table.get(RequisitionType.LAB_PO, Stage.STORE_FULFILLMENT, Action.UPDATED)
    pharmacy = table.get(RequisitionType.PHARMACY_PO, Stage.STORE_FULFILLMENT, Action.UPDATED)
    assert lab.may_split and lab.mutates_items
    assert pharmacy.mutates_items and not pharmacy.may_split


def test_advisory_audit_replaces_approve():
    table = build_table(WorkflowPolicy(audit_modes={RequisitionType.EQUIPMENT: AUDIT_ADVISORY}))
    actions = {t.action for t in table.rows_for(RequisitionType.EQUIPMENT, Stage.AUDIT_1)}
    assert Action.ADVICE_SUBMITTED in actions
    assert Action.APPROVED not in actions
    assert Action.REJECTED not in actions
    assert Action.RETURNED not in actions
    advice = table.get(RequisitionType.EQUIPMENT, Stage.AUDIT_1, Action.ADVICE_SUBMITTED)
    assert advice.requires_comment
    assert advice.next_stage == Stage.FINAL_APPROVAL

    # Other types keep the approval step.
    assert table.get(RequisitionType.PHARMACY_PO, Stage.AUDIT_1, Action.APPROVED) is not None
    assert table.get(RequisitionType.PHARMACY_PO, Stage.AUDIT_1, Action.REJECTED) is not None
    assert table.get(RequisitionType.EQUIPMENT, Stage.FINAL_APPROVAL, Action.REJECTED) is not None


def test_unknown_audit_mode_falls_back_to_approval():
    policy = WorkflowPolicy(audit_modes={RequisitionType.EQUIPMENT: "maybe"})
    table = build_table(policy)
    assert table.get(RequisitionType.EQUIPMENT, Stage.AUDIT_1, Action.APPROVED) is not None


def test_duplicate_rows_are_refused():
    row = Transition(
        type=RequisitionType.HISTOLOGY,
        stage=Stage.AUDIT_1,
        action=Action.APPROVED,
        role=ROLE_AUDITOR,
        next_stage=Stage.FINAL_APPROVAL,
    )
    with pytest.raises(ValueError):
        TransitionTable([row, row])


def test_authorize_resolves_the_transition(table):
    t = gate.authorize(_req(RequisitionType.PHARMACY_PO, Stage.AUDIT_1), Action.APPROVED, ACTORS["auditor1"], table=table)
    assert t.next_stage == Stage.FINAL_APPROVAL


def test_authorize_refuses_the_wrong_role(table):
    with pytest.raises(AuthorizationError):
        gate.authorize(_req(RequisitionType.PHARMACY_PO, Stage.AUDIT_1), Action.APPROVED, ACTORS["chairman"], table=table)


def test_authorize_refuses_an_action_not_on_offer(table):
    with pytest.raises(ValidationError) as exc:
        gate.authorize(
            _req(RequisitionType.PHARMACY_PO, Stage.AUDIT_1),
            Action.FINAL_APPROVAL,
            ACTORS["auditor1"],
            table=table,
        )
    assert Action.APPROVED in exc.value.details["legal_actions"]


def test_authorize_refuses_terminal_requisitions(table):
    with pytest.raises(ValidationError):
        gate.authorize(_req(RequisitionType.PHARMACY_PO, Stage.APPROVED), Action.APPROVED, ACTORS["auditor1"], table=table)


def test_approver_roles_for_stage():
    assert gate.approver_roles_for_stage(Stage.AUDIT_2) == (ROLE_AUDITOR, True)
    assert gate.approver_roles_for_stage(Stage.AUDIT_1) == (ROLE_AUDITOR, False)
    assert gate.approver_roles_for_stage(Stage.FINANCE_APPROVAL) == (ROLE_FINANCE, None)
    assert gate.approver_roles_for_stage(Stage.RETURNED) is None
    assert gate.approver_roles_for_stage(Stage.APPROVED) is None


def test_stage_labels():
    assert stage_label(Stage.AUDIT_1) == "Pending Audit Review"
    assert stage_label("Unknown") == "Unknown"


def test_authorize_refuses_an_allowed_action_missing_from_the_table(monkeypatch, table):
    monkeypatch.setattr(gate, "legal_actions", lambda requisition, actor, table=None: frozenset({"Escalated"}))

    with pytest.raises(ValidationError) as exc:
        gate.authorize(_req(RequisitionType.PHARMACY_PO, Stage.AUDIT_1), "Escalated", ACTORS["auditor1"], table=table)
    assert exc.value.details["stage"] == Stage.AUDIT_1
