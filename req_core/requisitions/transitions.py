# req_core/requisitions/transitions.py
"""
Stage transition table.

The single source of truth for routing: every (type, stage, action)
row names the role allowed to take it and the stage it leads to.
The authorization gate, the API's "legal actions" and display labels
are all derived from these rows.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Mapping

from django.conf import settings

from req_core.common.permissions import ROLE_AUDITOR, ROLE_CHAIRMAN, ROLE_FINANCE, ROLE_PHARMACY
from req_core.iam.identity import Actor
from req_core.requisitions.models import Action, RequisitionType, Stage

# Pseudo-role matched by identity (the requisition's requester), not by role.
REQUESTER = "REQUESTER"

AUDIT_APPROVAL = "approval"
AUDIT_ADVISORY = "advisory"
AUDIT_MODES = (AUDIT_APPROVAL, AUDIT_ADVISORY)

ENTRY_STAGES: dict[str, str] = {
    RequisitionType.LAB_PO: Stage.CHAIRMAN_REVIEW,
    RequisitionType.EQUIPMENT: Stage.FINAL_APPROVAL,
    RequisitionType.PHARMACY_PO: Stage.AUDIT_1,
    RequisitionType.HISTOLOGY: Stage.AUDIT_1,
    RequisitionType.EMERGENCY_1_WEEK: Stage.AUDIT_1,
    RequisitionType.EMERGENCY_1_MONTH: Stage.AUDIT_2,
}

STAGE_ROLES: dict[str, str] = {
    Stage.CHAIRMAN_REVIEW: ROLE_CHAIRMAN,
    Stage.FINAL_APPROVAL: ROLE_CHAIRMAN,
    Stage.AUDIT_1: ROLE_AUDITOR,
    Stage.AUDIT_2: ROLE_AUDITOR,
    Stage.STORE_FULFILLMENT: ROLE_PHARMACY,
    Stage.FINANCE_APPROVAL: ROLE_FINANCE,
    Stage.RETURNED: REQUESTER,
    Stage.DRAFT: REQUESTER,
}

FINAL_APPROVAL_STAGES = frozenset({Stage.FINAL_APPROVAL, Stage.FINANCE_APPROVAL})

STAGE_LABELS: dict[str, str] = {
    Stage.DRAFT: "Draft",
    Stage.CHAIRMAN_REVIEW: "Pending Chairman Review",
    Stage.STORE_FULFILLMENT: "Pending Store Fulfillment",
    Stage.AUDIT_1: "Pending Audit Review",
    Stage.AUDIT_2: "Pending Audit 2 Review",
    Stage.FINAL_APPROVAL: "Pending Final Approval",
    Stage.FINANCE_APPROVAL: "Pending Finance Approval",
    Stage.APPROVED: "Approved",
    Stage.REJECTED: "Rejected",
    Stage.RETURNED: "Returned",
    Stage.SPLIT: "Split",
}

COMMENT_REQUIRED_ACTIONS = frozenset({Action.REJECTED, Action.RETURNED, Action.ADVICE_SUBMITTED})


@dataclass(frozen=True)
class Transition:
    type: str
    stage: str
    action: str
    role: str
    next_stage: str
    requires_comment: bool = False
    mutates_items: bool = False
    may_split: bool = False


# Forward routes per type: (stage, action, next_stage, flags)
_ROUTES: dict[str, tuple[tuple[str, str, str, dict], ...]] = {
    RequisitionType.LAB_PO: (
        (Stage.CHAIRMAN_REVIEW, Action.APPROVED, Stage.STORE_FULFILLMENT, {}),
        (Stage.STORE_FULFILLMENT, Action.UPDATED, Stage.AUDIT_1, {"mutates_items": True, "may_split": True}),
        (Stage.AUDIT_1, Action.APPROVED, Stage.FINAL_APPROVAL, {}),
        (Stage.FINAL_APPROVAL, Action.FINAL_APPROVAL, Stage.APPROVED, {}),
    ),
    RequisitionType.EQUIPMENT: (
        (Stage.FINAL_APPROVAL, Action.FINAL_APPROVAL, Stage.APPROVED, {}),
        (Stage.FINAL_APPROVAL, Action.REFERRED_TO_AUDIT, Stage.AUDIT_1, {}),
        (Stage.AUDIT_1, Action.APPROVED, Stage.FINAL_APPROVAL, {}),
    ),
    RequisitionType.PHARMACY_PO: (
        (Stage.AUDIT_1, Action.APPROVED, Stage.FINAL_APPROVAL, {}),
        (Stage.AUDIT_1, Action.REFERRED_TO_STORE, Stage.STORE_FULFILLMENT, {}),
        (Stage.STORE_FULFILLMENT, Action.UPDATED, Stage.AUDIT_1, {"mutates_items": True}),
        (Stage.FINAL_APPROVAL, Action.FINAL_APPROVAL, Stage.APPROVED, {}),
    ),
    RequisitionType.HISTOLOGY: (
        (Stage.AUDIT_1, Action.APPROVED, Stage.FINAL_APPROVAL, {}),
        (Stage.FINAL_APPROVAL, Action.FINAL_APPROVAL, Stage.APPROVED, {}),
    ),
    RequisitionType.EMERGENCY_1_WEEK: (
        (Stage.AUDIT_1, Action.APPROVED, Stage.FINAL_APPROVAL, {}),
        (Stage.FINAL_APPROVAL, Action.FINAL_APPROVAL, Stage.APPROVED, {}),
    ),
    RequisitionType.EMERGENCY_1_MONTH: (
        (Stage.AUDIT_2, Action.APPROVED, Stage.AUDIT_1, {}),
        (Stage.AUDIT_1, Action.APPROVED, Stage.CHAIRMAN_REVIEW, {}),
        (Stage.CHAIRMAN_REVIEW, Action.APPROVED, Stage.FINANCE_APPROVAL, {}),
        (Stage.FINANCE_APPROVAL, Action.FINAL_APPROVAL, Stage.APPROVED, {}),
    ),
}


@dataclass(frozen=True)
class WorkflowPolicy:
    """
    Per-type knobs. ``audit_modes`` decides whether the Audit1 step of a
    type is an approval (Approve) or advisory (Advice Submitted).
    """
    audit_modes: Mapping[str, str] = field(default_factory=dict)

    def audit_mode(self, requisition_type: str) -> str:
        mode = self.audit_modes.get(requisition_type, AUDIT_APPROVAL)
        return mode if mode in AUDIT_MODES else AUDIT_APPROVAL

    @classmethod
    def from_settings(cls) -> "WorkflowPolicy":
        cfg = getattr(settings, "REQUISITION_WORKFLOW", {}) or {}
        return cls(audit_modes=dict(cfg.get("AUDIT_MODES") or {}))


class TransitionTable:
    def __init__(self, transitions: list[Transition]):
        self._rows: dict[tuple[str, str, str], Transition] = {}
        for t in transitions:
            key = (t.type, t.stage, t.action)
            if key in self._rows:
                raise ValueError(f"Duplicate transition {key}")
            self._rows[key] = t

    def __iter__(self) -> Iterator[Transition]:
        return iter(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def get(self, requisition_type: str, stage: str, action: str) -> Transition | None:
        return self._rows.get((requisition_type, stage, action))

    def rows_for(self, requisition_type: str, stage: str) -> tuple[Transition, ...]:
        return tuple(t for t in self._rows.values() if t.type == requisition_type and t.stage == stage)

    def stages_for(self, requisition_type: str) -> frozenset[str]:
        return frozenset(t.stage for t in self._rows.values() if t.type == requisition_type)

    @staticmethod
    def entry_stage(requisition_type: str) -> str:
        return ENTRY_STAGES[requisition_type]


def build_table(policy: WorkflowPolicy | None = None) -> TransitionTable:
    policy = policy or WorkflowPolicy()
    rows: list[Transition] = []

    for rtype, routes in _ROUTES.items():
        advisory = policy.audit_mode(rtype) == AUDIT_ADVISORY
        actionable_stages: list[str] = []

        for stage, action, next_stage, flags in routes:
            if advisory and stage == Stage.AUDIT_1 and action == Action.APPROVED:
                action = Action.ADVICE_SUBMITTED
            rows.append(
                Transition(
                    type=rtype,
                    stage=stage,
                    action=action,
                    role=STAGE_ROLES[stage],
                    next_stage=next_stage,
                    requires_comment=action in COMMENT_REQUIRED_ACTIONS,
                    **flags,
                )
            )
            if stage not in actionable_stages:
                actionable_stages.append(stage)

        # Any actionable stage may reject or return instead of advancing; an advisory audit only advises.
        for stage in actionable_stages:
            if advisory and stage == Stage.AUDIT_1:
                continue
            for action, next_stage in ((Action.REJECTED, Stage.REJECTED), (Action.RETURNED, Stage.RETURNED)):
                rows.append(
                    Transition(
                        type=rtype,
                        stage=stage,
                        action=action,
                        role=STAGE_ROLES[stage],
                        next_stage=next_stage,
                        requires_comment=True,
                    )
                )

        # Returned/Draft go back through the creation flow.
        for stage in (Stage.RETURNED, Stage.DRAFT):
            rows.append(
                Transition(
                    type=rtype,
                    stage=stage,
                    action=Action.EDIT,
                    role=REQUESTER,
                    next_stage=ENTRY_STAGES[rtype],
                    mutates_items=True,
                )
            )

    return TransitionTable(rows)


def default_table() -> TransitionTable:
    return build_table(WorkflowPolicy.from_settings())


def stage_actor_matches(stage: str, actor: Actor, *, requester_id: int | None = None) -> bool:
    """
    Does ``actor`` own ``stage``? Auditors split by identity: the designated
    second auditor owns Audit2 only, every other auditor owns Audit1 only.
    """
    role = STAGE_ROLES.get(stage)
    if role is None:
        return False
    if role == REQUESTER:
        return requester_id is not None and actor.user_id == requester_id
    if stage == Stage.AUDIT_2:
        return actor.role == ROLE_AUDITOR and actor.is_second_auditor
    if stage == Stage.AUDIT_1:
        return actor.role == ROLE_AUDITOR and not actor.is_second_auditor
    return actor.role == role


def stage_label(stage: str) -> str:
    return STAGE_LABELS.get(stage, stage)
