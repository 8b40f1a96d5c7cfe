# req_core/requisitions/services.py
"""
Workflow orchestrator.

Every mutating action is a two-step protocol:

    pending = service.begin_action(actor, Command(...))      # validated, nothing committed
    result = service.confirm_signature(actor, pending.id, artifact)

``begin_action`` authorizes, sanitizes items and checks attachments, then
parks the command as a ``PendingSignature``. ``confirm_signature`` verifies
the signature, re-reads the requisition, refuses if its version moved,
computes the new snapshot(s) and persists them in one transaction.
Notifications are published only after the commit.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Mapping

from django.conf import settings
from django.utils import timezone

from req_core.audit.services import LedgerService
from req_core.common.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from req_core.common.permissions import ROLE_ACCOUNTS, ROLE_ADMIN, ROLE_LAB, ROLE_PHARMACY
from req_core.iam.identity import Actor
from req_core.iam.signatures import SignatureArtifact, verify_artifact
from req_core.requisitions import events
from req_core.requisitions.attachments import AttachmentStore, ensure_attachable, parse_refs
from req_core.requisitions.domain import AttachmentRef, AuditEntry, Requisition
from req_core.requisitions.gate import authorize, legal_actions
from req_core.requisitions.items import (
    KIND_BY_TYPE,
    LineItem,
    emergency_item,
    items_total,
    sanitize_items,
    validate_items,
)
from req_core.requisitions.models import (
    EMERGENCY_TYPES,
    Action,
    PendingSignature,
    PendingSignatureStatus,
    RequisitionType,
    Stage,
    Urgency,
)
from req_core.requisitions.splitter import split_requisition
from req_core.requisitions.store import RequisitionStore, atomic_write, changed_only_stage, retry_on_conflict
from req_core.requisitions.transitions import Transition, TransitionTable, default_table

logger = logging.getLogger(__name__)

HEADER_FIELDS = ("title", "department", "urgency", "justification", "beneficiary")

CREATABLE_TYPES: dict[str, frozenset[str]] = {
    ROLE_LAB: frozenset(
        {
            RequisitionType.LAB_PO,
            RequisitionType.EQUIPMENT,
            RequisitionType.HISTOLOGY,
            RequisitionType.EMERGENCY_1_WEEK,
            RequisitionType.EMERGENCY_1_MONTH,
        }
    ),
    ROLE_PHARMACY: frozenset(
        {
            RequisitionType.PHARMACY_PO,
            RequisitionType.EQUIPMENT,
            RequisitionType.EMERGENCY_1_WEEK,
            RequisitionType.EMERGENCY_1_MONTH,
        }
    ),
    ROLE_ADMIN: frozenset(RequisitionType.values),
}


@dataclass(frozen=True)
class Command:
    """An actor's intent against one requisition (``requisition_id`` None means create)."""
    requisition_id: str | None
    action: str
    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CommittedResult:
    requisition: Requisition
    children: tuple[Requisition, ...]
    entry: AuditEntry
    from_stage: str


def _workflow_setting(name: str, default: Any) -> Any:
    return settings.REQUISITION_WORKFLOW.get(name, default)


def creatable_types(actor: Actor) -> frozenset[str]:
    return CREATABLE_TYPES.get(actor.role, frozenset())


def _recorded_action(transition: Transition) -> str:
    # Resubmitting a returned requisition is logged as a fresh creation-equivalent entry.
    return Action.RESUBMITTED if transition.action == Action.EDIT else transition.action


def _clean_header(raw: Mapping[str, Any], *, defaults: Mapping[str, Any]) -> dict[str, str]:
    header = {name: str(raw.get(name, defaults.get(name, "")) or "").strip() for name in HEADER_FIELDS}
    if not header["urgency"]:
        header["urgency"] = Urgency.MEDIUM

    errors: dict[str, str] = {}
    if not header["title"]:
        errors["title"] = "Title is required."
    if header["urgency"] not in Urgency.values:
        errors["urgency"] = f"Urgency must be one of {', '.join(Urgency.values)}."
    if errors:
        raise ValidationError("Some fields are invalid. Nothing was saved.", details={"fields": errors})
    return header


class WorkflowService:
    def __init__(
        self,
        *,
        store: RequisitionStore | None = None,
        table: TransitionTable | None = None,
        attachments: AttachmentStore | None = None,
    ):
        self.store = store or RequisitionStore()
        self.table = table or default_table()
        self.attachments = attachments or AttachmentStore()

    # ------------------------------------------------------------------
    # step 1: validate and park
    # ------------------------------------------------------------------

    def begin_create(self, actor: Actor, draft: Mapping[str, Any]) -> PendingSignature:
        return self.begin_action(actor, Command(requisition_id=None, action=Action.CREATED, payload=draft))

    def begin_action(self, actor: Actor, command: Command) -> PendingSignature:
        if command.requisition_id is None:
            payload = self._prepare_draft(actor, command.payload)
            action = Action.CREATED
            expected_version = None
        else:
            requisition = self.store.get(command.requisition_id)
            transition = authorize(requisition, command.action, actor, table=self.table)
            payload = self._prepare_action(requisition, transition, actor, command.payload)
            action = transition.action
            expected_version = requisition.version

        ttl = int(_workflow_setting("PENDING_SIGNATURE_TTL", 900))
        pending = atomic_write(
            lambda: PendingSignature.objects.create(
                requisition_id=command.requisition_id,
                action=action,
                payload=payload,
                actor_id=actor.user_id,
                expected_version=expected_version,
                expires_at=timezone.now() + timedelta(seconds=ttl),
            )
        )
        logger.debug("Pending %s on %s by %s", action, command.requisition_id or "new requisition", actor.username)
        return pending

    def _prepare_draft(self, actor: Actor, draft: Mapping[str, Any]) -> dict[str, Any]:
        rtype = str(draft.get("type") or "")
        if rtype not in RequisitionType.values:
            raise ValidationError(
                f"Unknown requisition type: {rtype!r}.",
                details={"fields": {"type": "Choose a valid requisition type."}},
            )
        if rtype not in creatable_types(actor):
            raise AuthorizationError(f"Your role cannot raise a {rtype}. Nothing was saved.")

        header = _clean_header(draft, defaults={"department": actor.department})
        items = self._incoming_items(rtype, draft, header, current=())
        validate_items(rtype, items)

        refs = parse_refs(draft.get("attachments"), uploaded_by_id=actor.user_id)
        ensure_attachable(refs, requisition=None, store=self.attachments, uploader_id=actor.user_id)

        return {
            "draft": {"type": rtype, **header},
            "comment": str(draft.get("comment") or "").strip(),
            "items": [item.as_dict() for item in items],
            "attachments": [ref.as_dict() for ref in refs],
        }

    def _prepare_action(
        self,
        requisition: Requisition,
        transition: Transition,
        actor: Actor,
        raw: Mapping[str, Any],
    ) -> dict[str, Any]:
        comment = str(raw.get("comment") or "").strip()
        # Dry run: refuses a missing mandatory comment before anything is parked.
        LedgerService.entry(
            actor=actor,
            action=_recorded_action(transition),
            stage=requisition.stage,
            sequence=requisition.next_sequence,
            comment=comment,
        )

        payload: dict[str, Any] = {"comment": comment}
        if transition.mutates_items:
            header = {}
            if transition.action == Action.EDIT:
                header = _clean_header(raw, defaults={n: getattr(requisition, n) for n in HEADER_FIELDS})
                payload["header"] = header
            items = self._incoming_items(requisition.type, raw, header, current=requisition.items, requisition=requisition)
            validate_items(requisition.type, items)
            payload["items"] = [item.as_dict() for item in items]
        elif raw.get("items"):
            raise ValidationError(f"'{transition.action}' does not change items. Nothing was saved.")

        refs = parse_refs(raw.get("attachments"), uploaded_by_id=actor.user_id)
        ensure_attachable(refs, requisition=requisition, store=self.attachments, uploader_id=actor.user_id)
        payload["attachments"] = [ref.as_dict() for ref in refs]
        return payload

    def _incoming_items(
        self,
        rtype: str,
        raw: Mapping[str, Any],
        header: Mapping[str, str],
        *,
        current: tuple[LineItem, ...],
        requisition: Requisition | None = None,
    ) -> tuple[LineItem, ...]:
        """Sanitize incoming items once; keep the stored ones when none are sent."""
        if rtype in EMERGENCY_TYPES:
            if "total_amount" not in raw and requisition is not None:
                total = requisition.total_cost
            else:
                total = raw.get("total_amount")
            return (
                emergency_item(
                    total_amount=total,
                    payee=header.get("beneficiary", ""),
                    title=header.get("title", ""),
                ),
            )
        if "items" not in raw and current:
            return current
        return sanitize_items(raw.get("items"), kind=KIND_BY_TYPE[rtype])

    # ------------------------------------------------------------------
    # step 2: sign and commit
    # ------------------------------------------------------------------

    def confirm_signature(self, actor: Actor, pending_id, artifact: SignatureArtifact | None) -> CommittedResult:
        pending = self._load_pending(actor, pending_id)
        signature = verify_artifact(artifact, actor=actor)

        if pending.requisition_id is None:
            result = atomic_write(lambda: self._commit_create(actor, pending, signature))
        else:
            result = atomic_write(lambda: self._commit_action(actor, pending, signature))

        logger.info(
            "%s committed %s on %s (%s -> %s)%s",
            actor.username,
            pending.action,
            result.requisition.id,
            result.from_stage,
            result.requisition.stage,
            f", split into {', '.join(c.id for c in result.children)}" if result.children else "",
        )
        self._publish(actor, result)
        return result

    def cancel(self, actor: Actor, pending_id) -> PendingSignature:
        pending = self._load_pending(actor, pending_id)
        PendingSignature.objects.filter(pk=pending.pk, status=PendingSignatureStatus.PENDING).update(
            status=PendingSignatureStatus.CANCELLED,
            resolved_at=timezone.now(),
        )
        pending.refresh_from_db()
        return pending

    def _load_pending(self, actor: Actor, pending_id) -> PendingSignature:
        pending = PendingSignature.objects.filter(pk=pending_id).first()
        if pending is None:
            raise NotFoundError("Pending signature was not found.")
        if pending.actor_id != actor.user_id:
            raise AuthorizationError("This action was started by another user. Nothing was changed.")
        if pending.status != PendingSignatureStatus.PENDING:
            raise ValidationError(f"This action was already {pending.status.lower()}.")
        if pending.expires_at <= timezone.now():
            raise ValidationError("This action has expired. Start it again.")
        return pending

    def _claim(self, pending: PendingSignature) -> None:
        claimed = PendingSignature.objects.filter(pk=pending.pk, status=PendingSignatureStatus.PENDING).update(
            status=PendingSignatureStatus.CONFIRMED,
            resolved_at=timezone.now(),
        )
        if not claimed:
            raise ConflictError("This action was already confirmed or cancelled.")

    def _commit_create(self, actor: Actor, pending: PendingSignature, signature: SignatureArtifact) -> CommittedResult:
        self._claim(pending)
        payload = pending.payload
        draft = payload["draft"]
        items = tuple(LineItem.from_dict(i) for i in payload["items"])
        refs = parse_refs(payload.get("attachments"))
        ensure_attachable(refs, requisition=None, store=self.attachments, uploader_id=actor.user_id)

        entry = LedgerService.entry(
            actor=actor,
            action=Action.CREATED,
            stage=Stage.DRAFT,
            sequence=1,
            comment=payload.get("comment", ""),
            signature=signature,
        )
        requisition = Requisition(
            id=self.store.next_id(),
            type=draft["type"],
            title=draft["title"],
            requester_id=actor.user_id,
            requester_name=actor.display_name,
            stage=self.table.entry_stage(draft["type"]),
            items=items,
            total_cost=items_total(items),
            department=draft["department"],
            urgency=draft["urgency"],
            justification=draft["justification"],
            beneficiary=draft["beneficiary"],
            audit_trail=(entry,),
            attachments=refs,
        )

        outcome = self._split_on_entry(requisition, actor, signature, comment="")
        if outcome is None:
            saved = self.store.create(requisition)
            return CommittedResult(requisition=saved, children=(), entry=entry, from_stage=Stage.DRAFT)

        self.store.create(outcome.parent)
        children = tuple(self.store.create(child) for child in outcome.children)
        return CommittedResult(
            requisition=self.store.get(outcome.parent.id),
            children=children,
            entry=entry,
            from_stage=Stage.DRAFT,
        )

    def _commit_action(self, actor: Actor, pending: PendingSignature, signature: SignatureArtifact) -> CommittedResult:
        self._claim(pending)
        payload = pending.payload
        current = self.store.get(pending.requisition_id)
        if current.version != pending.expected_version:
            logger.warning(
                "Stale confirm on %s: signed against v%s, stored v%s",
                current.id,
                pending.expected_version,
                current.version,
            )
            raise ConflictError(
                details={"expected_version": pending.expected_version, "current_version": current.version}
            )

        transition = authorize(current, pending.action, actor, table=self.table)
        comment = payload.get("comment", "")
        entry = LedgerService.entry(
            actor=actor,
            action=_recorded_action(transition),
            stage=current.stage,
            sequence=current.next_sequence,
            comment=comment,
            signature=signature,
        )

        refs = parse_refs(payload.get("attachments"))
        ensure_attachable(refs, requisition=current, store=self.attachments, uploader_id=actor.user_id)
        base = replace(current, attachments=current.attachments + refs)

        items = current.items
        if transition.mutates_items and "items" in payload:
            items = tuple(LineItem.from_dict(i) for i in payload["items"])
        header = payload.get("header") or {}

        if transition.may_split:
            split_entry = replace(entry, action=Action.SPLIT)
            outcome = split_requisition(base, items, child_stage=transition.next_stage, entry=split_entry)
            if outcome is not None:
                return self._persist_split(current, outcome, entry=split_entry)

        after = replace(
            base,
            **header,
            stage=transition.next_stage,
            items=items,
            total_cost=items_total(items),
            audit_trail=current.audit_trail + (entry,),
        )

        if transition.action == Action.EDIT:
            outcome = self._split_on_entry(after, actor, signature, comment=comment)
            if outcome is not None:
                return self._persist_split(current, outcome, entry=entry)

        if changed_only_stage(current, after):
            self.store.set_stage(current.id, after.stage, expected_version=current.version)
            self.store.append_audit_entry(current.id, entry)
            saved = self.store.get(current.id)
        else:
            saved = self.store.replace(after, expected_version=current.version)
        return CommittedResult(requisition=saved, children=(), entry=entry, from_stage=current.stage)

    def _split_on_entry(self, requisition: Requisition, actor: Actor, signature: SignatureArtifact, *, comment: str):
        """Creation and resubmission split a multi-supplier order of the configured types."""
        if requisition.type not in _workflow_setting("SPLIT_ON_CREATE_TYPES", ()):
            return None
        split_entry = LedgerService.entry(
            actor=actor,
            action=Action.SPLIT,
            stage=requisition.stage,
            sequence=requisition.next_sequence,
            comment=comment,
            signature=signature,
        )
        return split_requisition(requisition, requisition.items, child_stage=requisition.stage, entry=split_entry)

    def _persist_split(self, current: Requisition, outcome, *, entry: AuditEntry) -> CommittedResult:
        self.store.replace(outcome.parent, expected_version=current.version)
        children = tuple(self.store.create(child) for child in outcome.children)
        return CommittedResult(
            requisition=self.store.get(outcome.parent.id),
            children=children,
            entry=entry,
            from_stage=current.stage,
        )

    def _publish(self, actor: Actor, result: CommittedResult) -> None:
        parent = result.requisition
        base = {
            "action": result.entry.action,
            "actor_id": actor.user_id,
            "comment": result.entry.comment,
            "from_stage": result.from_stage,
        }
        events.emit(
            events.STAGE_CHANGED,
            {
                **base,
                "requisition_id": parent.id,
                "type": parent.type,
                "title": parent.title,
                "requester_id": parent.requester_id,
                "to_stage": parent.stage,
                "children": [c.id for c in result.children],
            },
        )
        for child in result.children:
            events.emit(
                events.STAGE_CHANGED,
                {
                    **base,
                    "action": Action.SPLIT,
                    "requisition_id": child.id,
                    "type": child.type,
                    "title": child.title,
                    "requester_id": child.requester_id,
                    "to_stage": child.stage,
                    "children": [],
                },
            )

    # ------------------------------------------------------------------
    # single-step actions
    # ------------------------------------------------------------------

    def add_attachment(
        self,
        actor: Actor,
        requisition_id: str,
        *,
        name: str,
        content: Any,
        content_type: str = "",
    ) -> Requisition:
        """
        Store the blob, then attach it with an ``Attachment Added`` entry.
        The write re-reads the requisition and is retried on a version conflict.
        """
        current = self.store.get(requisition_id)
        self._check_can_attach(current, actor)
        if current.attachment(name.strip()) is not None:
            raise ValidationError(f"An attachment named {name.strip()!r} already exists on this requisition.")

        ref = self.attachments.put(name=name, content=content, content_type=content_type, uploaded_by_id=actor.user_id)

        def write() -> Requisition:
            fresh = self.store.get(requisition_id)
            self._check_can_attach(fresh, actor)
            ensure_attachable((ref,), requisition=fresh, store=self.attachments, uploader_id=actor.user_id)
            entry = LedgerService.entry(
                actor=actor,
                action=Action.ATTACHMENT_ADDED,
                stage=fresh.stage,
                sequence=fresh.next_sequence,
                comment=ref.name,
            )
            after = replace(
                fresh,
                attachments=fresh.attachments + (ref,),
                audit_trail=fresh.audit_trail + (entry,),
            )
            return self.store.replace(after, expected_version=fresh.version)

        saved = retry_on_conflict(lambda: atomic_write(write))
        logger.info("%s attached %s to %s", actor.username, ref.name, requisition_id)
        return saved

    def _check_can_attach(self, requisition: Requisition, actor: Actor) -> None:
        if requisition.stage in (Stage.REJECTED, Stage.SPLIT):
            raise ValidationError(f"{requisition.id} is closed; attachments can no longer be added.")
        if actor.role in (ROLE_ADMIN, ROLE_ACCOUNTS) or actor.user_id == requisition.requester_id:
            return
        if legal_actions(requisition, actor, table=self.table):
            return
        raise AuthorizationError(f"You cannot add attachments to {requisition.id}.")

    def remind(self, actor: Actor, requisition_id: str) -> Requisition:
        """Nudge whoever must act next. Only touches reminder metadata."""
        current = self.store.get(requisition_id)
        if actor.user_id != current.requester_id and actor.role != ROLE_ADMIN:
            raise AuthorizationError("Only the requester can send a reminder.")
        if current.is_terminal or current.is_editable:
            raise ValidationError(f"{current.id} is not waiting on an approver.")

        atomic_write(lambda: self.store.bump_reminder(current.id))
        saved = self.store.get(current.id)
        events.emit(
            events.REMINDER_SENT,
            {
                "requisition_id": saved.id,
                "title": saved.title,
                "stage": saved.stage,
                "requester_name": saved.requester_name,
                "reminder_count": saved.reminder_count,
            },
        )
        return saved

    def upload(self, actor: Actor, *, name: str, content: Any, content_type: str = "") -> AttachmentRef:
        """Store a blob that a later command can name in its ``attachments``."""
        return self.attachments.put(name=name, content=content, content_type=content_type, uploaded_by_id=actor.user_id)
