# req_core/requisitions/store.py
"""
Persistent store for requisition snapshots.

Full-row writes are compare-and-swap on ``version``: the caller supplies
the version it read and a mismatch raises ConflictError instead of
overwriting someone else's change.
"""
from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Callable, TypeVar

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from req_core.audit.models import AuditLogEntry
from req_core.audit.services import LedgerService
from req_core.common.errors import ConflictError, NotFoundError, PersistenceError
from req_core.payments.models import PaymentRecord
from req_core.requisitions.domain import AttachmentRef, AuditEntry, PaymentEntry, Requisition
from req_core.requisitions.items import LineItem
from req_core.requisitions.models import Attachment, RequisitionItem
from req_core.requisitions.models import Requisition as RequisitionRow

logger = logging.getLogger(__name__)

T = TypeVar("T")

ROOT_ID_RE = re.compile(r"^REQ-(\d{6})$")

_HEADER_FIELDS = (
    "type",
    "title",
    "requester_id",
    "requester_name",
    "department",
    "urgency",
    "justification",
    "beneficiary",
    "stage",
    "total_cost",
    "amount_paid",
    "payment_status",
    "parent_id",
)


def _row_values(req: Requisition) -> dict:
    return {name: getattr(req, name) for name in _HEADER_FIELDS}


class RequisitionStore:
    def queryset(self) -> QuerySet[RequisitionRow]:
        return RequisitionRow.objects.prefetch_related(
            "items",
            "attachments",
            "audit_entries",
            "payment_records",
            "split_children",
        )

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get(self, requisition_id: str) -> Requisition:
        row = self.queryset().filter(pk=requisition_id).first()
        if row is None:
            raise NotFoundError(f"Requisition {requisition_id} was not found.")
        return self.to_domain(row)

    def list(self, rows: QuerySet[RequisitionRow] | None = None) -> list[Requisition]:
        qs = rows if rows is not None else RequisitionRow.objects.all()
        qs = qs.prefetch_related("items", "attachments", "audit_entries", "payment_records", "split_children")
        return [self.to_domain(row) for row in qs]

    def to_domain(self, row: RequisitionRow) -> Requisition:
        items = tuple(
            LineItem.from_dict(
                {
                    "kind": i.kind,
                    "name": i.name,
                    "quantity": i.quantity,
                    "unit": i.unit,
                    "unit_cost": i.unit_cost,
                    "estimated_cost": i.estimated_cost,
                    "supplier": i.supplier,
                    "stock_level": i.stock_level,
                    "category": i.category,
                    "notes": i.notes,
                    **(i.details or {}),
                }
            )
            for i in sorted(row.items.all(), key=lambda i: i.position)
        )
        attachments = tuple(
            AttachmentRef(
                name=a.name,
                reference=a.reference,
                content_type=a.content_type,
                uploaded_by_id=a.uploaded_by_id,
                created_at=a.created_at,
            )
            for a in sorted(row.attachments.all(), key=lambda a: (a.created_at, a.name))
        )
        trail = tuple(
            LedgerService.to_entry(e) for e in sorted(row.audit_entries.all(), key=lambda e: e.sequence)
        )
        payments = tuple(
            PaymentEntry(
                id=p.id,
                paid_on=p.paid_on,
                amount=p.amount,
                reference=p.reference,
                recorded_by_id=p.recorded_by_id,
                recorded_by_name=p.recorded_by_name,
                receipt_name=p.receipt_name,
                recorded_at=p.recorded_at,
            )
            for p in sorted(row.payment_records.all(), key=lambda p: p.recorded_at)
        )
        children = tuple(sorted(c.pk for c in row.split_children.all()))

        return Requisition(
            id=row.pk,
            type=row.type,
            title=row.title,
            requester_id=row.requester_id,
            requester_name=row.requester_name,
            stage=row.stage,
            items=items,
            total_cost=row.total_cost,
            department=row.department,
            urgency=row.urgency,
            justification=row.justification,
            beneficiary=row.beneficiary,
            amount_paid=row.amount_paid,
            payment_status=row.payment_status,
            audit_trail=trail,
            attachments=attachments,
            payments=payments,
            parent_id=row.parent_id,
            version=row.version,
            reminder_count=row.reminder_count,
            last_reminded_at=row.last_reminded_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
            split_children=children,
        )

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def next_id(self) -> str:
        latest = (
            RequisitionRow.objects.select_for_update()
            .filter(parent__isnull=True, id__regex=r"^REQ-[0-9]{6}$")
            .order_by("-id")
            .values_list("id", flat=True)
            .first()
        )
        if not latest:
            return "REQ-000001"
        n = int(ROOT_ID_RE.match(latest).group(1)) + 1
        return f"REQ-{n:06d}"

    def create(self, req: Requisition) -> Requisition:
        try:
            with transaction.atomic():
                RequisitionRow.objects.create(id=req.id, version=1, **_row_values(req))
        except IntegrityError as exc:
            raise ConflictError(f"Requisition id {req.id} is already taken.") from exc

        self._write_items(req)
        self._append_new(req)
        logger.debug("Created requisition %s at %s", req.id, req.stage)
        return self.get(req.id)

    def replace(self, req: Requisition, *, expected_version: int) -> Requisition:
        """Atomic full-row replace, guarded by ``expected_version``."""
        updated = RequisitionRow.objects.filter(pk=req.id, version=expected_version).update(
            version=expected_version + 1,
            updated_at=timezone.now(),
            **_row_values(req),
        )
        if updated == 0:
            self._raise_conflict(req.id, expected_version)

        self._write_items(req)
        self._append_new(req)
        return self.get(req.id)

    def set_stage(self, requisition_id: str, stage: str, *, expected_version: int) -> int:
        updated = RequisitionRow.objects.filter(pk=requisition_id, version=expected_version).update(
            stage=stage,
            version=expected_version + 1,
            updated_at=timezone.now(),
        )
        if updated == 0:
            self._raise_conflict(requisition_id, expected_version)
        return expected_version + 1

    def append_audit_entry(self, requisition_id: str, entry: AuditEntry) -> None:
        LedgerService.append(requisition_id, entry)

    def append_payment(self, requisition_id: str, payment: PaymentEntry) -> None:
        PaymentRecord.objects.create(
            id=payment.id,
            requisition_id=requisition_id,
            amount=payment.amount,
            paid_on=payment.paid_on,
            reference=payment.reference,
            receipt_name=payment.receipt_name,
            recorded_by_id=payment.recorded_by_id,
            recorded_by_name=payment.recorded_by_name,
        )

    def append_attachment(self, requisition_id: str, ref: AttachmentRef) -> None:
        Attachment.objects.create(
            requisition_id=requisition_id,
            name=ref.name,
            content_type=ref.content_type,
            reference=ref.reference,
            uploaded_by_id=ref.uploaded_by_id,
        )

    def bump_reminder(self, requisition_id: str) -> None:
        """Partial update of reminder metadata; does not touch ``version``."""
        RequisitionRow.objects.filter(pk=requisition_id).update(
            reminder_count=F("reminder_count") + 1,
            last_reminded_at=timezone.now(),
        )

    # ------------------------------------------------------------------

    def _raise_conflict(self, requisition_id: str, expected_version: int) -> None:
        current = RequisitionRow.objects.filter(pk=requisition_id).values_list("version", flat=True).first()
        if current is None:
            raise NotFoundError(f"Requisition {requisition_id} was not found.")
        logger.warning(
            "Version conflict on %s: expected %s, stored %s", requisition_id, expected_version, current
        )
        raise ConflictError(details={"expected_version": expected_version, "current_version": current})

    def _write_items(self, req: Requisition) -> None:
        RequisitionItem.objects.filter(requisition_id=req.id).delete()
        RequisitionItem.objects.bulk_create(
            [
                RequisitionItem(
                    requisition_id=req.id,
                    position=position,
                    kind=item.kind,
                    details=item.detail_fields(),
                    **item.base_fields(),
                )
                for position, item in enumerate(req.items)
            ]
        )

    def _append_new(self, req: Requisition) -> None:
        """Append ledger lines, attachments and payments the store has not seen yet."""
        known_sequences = set(
            AuditLogEntry.objects.filter(requisition_id=req.id).values_list("sequence", flat=True)
        )
        for entry in req.audit_trail:
            if entry.sequence not in known_sequences:
                self.append_audit_entry(req.id, entry)

        known_names = set(Attachment.objects.filter(requisition_id=req.id).values_list("name", flat=True))
        for ref in req.attachments:
            if ref.name not in known_names:
                self.append_attachment(req.id, ref)

        known_payments = set(PaymentRecord.objects.filter(requisition_id=req.id).values_list("id", flat=True))
        for payment in req.payments:
            if payment.id not in known_payments:
                self.append_payment(req.id, payment)


def atomic_write(fn: Callable[[], T]) -> T:
    """
    Run ``fn`` in one transaction.

    A database error inside ``fn`` rolls everything back: nothing applied.
    A database error raised while committing leaves the outcome unknown.
    """
    try:
        with transaction.atomic():
            try:
                return fn()
            except DatabaseError as exc:
                logger.error("Requisition write failed; rolled back", exc_info=True)
                raise PersistenceError(partial=False) from exc
    except DatabaseError as exc:
        logger.error("Requisition commit failed; outcome unknown", exc_info=True)
        raise PersistenceError(partial=True) from exc


def retry_on_conflict(fn: Callable[[], T], *, attempts: int | None = None) -> T:
    """
    Re-run ``fn`` (which must re-read fresh state) after a version conflict.
    """
    if attempts is None:
        attempts = int(settings.REQUISITION_WORKFLOW.get("CONFLICT_RETRIES", 3))
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ConflictError:
            if attempt == attempts:
                raise
            logger.warning("Conflict on attempt %s/%s; retrying against fresh state", attempt, attempts)
    raise AssertionError("unreachable")


def changed_only_stage(before: Requisition, after: Requisition) -> bool:
    """True when ``after`` differs from ``before`` only by stage and new ledger lines."""
    return replace(after, stage=before.stage, audit_trail=before.audit_trail) == before


