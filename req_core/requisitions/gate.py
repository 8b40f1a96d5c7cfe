# req_core/requisitions/gate.py
from __future__ import annotations

from req_core.common.errors import AuthorizationError, ValidationError
from req_core.iam.identity import Actor
from req_core.requisitions.domain import Requisition
from req_core.requisitions.models import Action, Stage
from req_core.requisitions.transitions import (
    REQUESTER,
    STAGE_ROLES,
    Transition,
    TransitionTable,
    default_table,
    stage_actor_matches,
    stage_label,
)


def legal_actions(requisition: Requisition, actor: Actor, *, table: TransitionTable | None = None) -> frozenset[str]:
    """
    Actions ``actor`` may take on ``requisition`` right now.

    1. Returned/Draft and actor is the requester -> Edit only.
    2. Actor owns the current stage -> that stage's rows in the table.
    3. Otherwise nothing (viewing is always allowed).
    """
    table = table or default_table()
    rows = table.rows_for(requisition.type, requisition.stage)

    if requisition.is_editable:
        if actor.user_id == requisition.requester_id:
            return frozenset(t.action for t in rows if t.action == Action.EDIT)
        return frozenset()

    if not stage_actor_matches(requisition.stage, actor):
        return frozenset()

    return frozenset(t.action for t in rows if t.role != REQUESTER)


def is_actionable_by(requisition: Requisition, actor: Actor, *, table: TransitionTable | None = None) -> bool:
    return bool(legal_actions(requisition, actor, table=table))


def authorize(
    requisition: Requisition,
    action: str,
    actor: Actor,
    *,
    table: TransitionTable | None = None,
) -> Transition:
    """
    Resolve the transition for ``action`` or refuse.
    AuthorizationError when the actor has no business at this stage;
    ValidationError when they do but the action is not one of the legal ones.
    """
    table = table or default_table()

    if requisition.is_terminal:
        raise ValidationError(
            f"{requisition.id} is {stage_label(requisition.stage)} and can no longer be acted on.",
            details={"stage": requisition.stage},
        )

    allowed = legal_actions(requisition, actor, table=table)
    if not allowed:
        raise AuthorizationError(
            f"You cannot act on {requisition.id} while it is {stage_label(requisition.stage)}.",
            details={"stage": requisition.stage},
        )

    if action not in allowed:
        raise ValidationError(
            f"'{action}' is not available at {stage_label(requisition.stage)}.",
            details={"stage": requisition.stage, "legal_actions": sorted(allowed)},
        )

    transition = table.get(requisition.type, requisition.stage, action)
    if transition is None:
        raise ValidationError(
            f"'{action}' has no transition for {requisition.type} at {stage_label(requisition.stage)}.",
            details={"stage": requisition.stage},
        )
    return transition


def approver_roles_for_stage(stage: str) -> tuple[str, bool | None] | None:
    """
    (role, second_auditor) for whoever must act at ``stage``, or None when
    the stage is owned by the requester or nobody. ``second_auditor`` is only
    meaningful for audit stages.
    """
    role = STAGE_ROLES.get(stage)
    if role is None or role == REQUESTER:
        return None
    if stage == Stage.AUDIT_2:
        return role, True
    if stage == Stage.AUDIT_1:
        return role, False
    return role, None
