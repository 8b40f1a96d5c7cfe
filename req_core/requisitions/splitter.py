# req_core/requisitions/splitter.py
"""
Supplier splitting.

A multi-supplier order becomes one child requisition per supplier and the
parent is closed as ``Split``. The same code runs at creation and at
store fulfillment.
"""
from __future__ import annotations

import string
import uuid
from dataclasses import dataclass, replace
from decimal import Decimal

from req_core.requisitions.domain import AuditEntry, Requisition
from req_core.requisitions.items import ZERO, LineItem, items_total
from req_core.requisitions.models import Action, PaymentStatus, Stage

UNASSIGNED = "Unassigned"


@dataclass(frozen=True)
class SupplierGroup:
    supplier: str
    items: tuple[LineItem, ...]

    @property
    def total(self) -> Decimal:
        return items_total(self.items)


@dataclass(frozen=True)
class SplitOutcome:
    parent: Requisition
    children: tuple[Requisition, ...]


def supplier_key(item: LineItem) -> str:
    return item.supplier.strip() or UNASSIGNED


def group_by_supplier(items: tuple[LineItem, ...]) -> list[SupplierGroup]:
    """Groups in ascending supplier order; item order is kept inside a group."""
    buckets: dict[str, list[LineItem]] = {}
    for item in items:
        buckets.setdefault(supplier_key(item), []).append(item)
    return [SupplierGroup(supplier=key, items=tuple(buckets[key])) for key in sorted(buckets)]


def child_suffix(index: int) -> str:
    """A, B, ... Z, AA, AB, ..."""
    letters = string.ascii_uppercase
    suffix = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        suffix = letters[rem] + suffix
    return suffix


def split_requisition(
    parent: Requisition,
    items: tuple[LineItem, ...],
    *,
    child_stage: str,
    entry: AuditEntry,
) -> SplitOutcome | None:
    """
    Split ``parent`` by supplier of ``items``; None when there is at most
    one supplier group.

    ``entry`` is the Split ledger line as taken by the acting user; the parent
    gets it with a summary comment and each child gets a copy naming its supplier.
    ``parent`` is the pre-split state whose trail the children inherit.
    """
    groups = group_by_supplier(items)
    if len(groups) <= 1:
        return None

    child_ids = [f"{parent.id}-{child_suffix(i)}" for i in range(len(groups))]
    split_sequence = parent.next_sequence

    children = []
    for child_id, group in zip(child_ids, groups):
        inherited = tuple(e.copied() for e in parent.audit_trail)
        split_entry = replace(
            entry,
            id=uuid.uuid4(),
            sequence=split_sequence,
            action=Action.SPLIT,
            comment=f"Split from {parent.id} for supplier {group.supplier}.",
        )
        children.append(
            replace(
                parent,
                id=child_id,
                stage=child_stage,
                items=group.items,
                total_cost=group.total,
                amount_paid=ZERO,
                payment_status=PaymentStatus.UNPAID,
                payments=(),
                audit_trail=inherited + (split_entry,),
                parent_id=parent.id,
                version=0,
                reminder_count=0,
                last_reminded_at=None,
                created_at=None,
                updated_at=None,
                split_children=(),
            )
        )

    summary = ", ".join(f"{cid} ({g.supplier})" for cid, g in zip(child_ids, groups))
    summary = f"Split into {len(groups)} orders by supplier: {summary}."
    parent_entry = replace(
        entry,
        sequence=split_sequence,
        action=Action.SPLIT,
        comment=f"{entry.comment}\n{summary}" if entry.comment else summary,
    )
    closed_parent = replace(
        parent,
        stage=Stage.SPLIT,
        items=items,
        total_cost=items_total(items),
        audit_trail=parent.audit_trail + (parent_entry,),
        split_children=tuple(child_ids),
    )
    return SplitOutcome(parent=closed_parent, children=tuple(children))
