# req_core/requisitions/selectors.py
from __future__ import annotations

from dataclasses import dataclass

import django_filters
from django.db.models import Q, QuerySet
from django.db.models.functions import Lower

from req_core.iam.identity import Actor
from req_core.requisitions.domain import Requisition
from req_core.requisitions.gate import legal_actions
from req_core.requisitions.models import (
    EDITABLE_STAGES,
    PaymentStatus,
    RequisitionItem,
    RequisitionType,
    Stage,
    Urgency,
)
from req_core.requisitions.models import Requisition as RequisitionRow
from req_core.requisitions.store import RequisitionStore
from req_core.requisitions.transitions import STAGE_ROLES, TransitionTable, stage_actor_matches


class RequisitionFilter(django_filters.FilterSet):
    type = django_filters.ChoiceFilter(choices=RequisitionType.choices)
    stage = django_filters.MultipleChoiceFilter(choices=Stage.choices)
    urgency = django_filters.ChoiceFilter(choices=Urgency.choices)
    payment_status = django_filters.ChoiceFilter(choices=PaymentStatus.choices)
    parent = django_filters.CharFilter(field_name="parent_id")
    search = django_filters.CharFilter(method="filter_search")
    mine = django_filters.BooleanFilter(method="filter_mine")

    class Meta:
        model = RequisitionRow
        fields = ["type", "stage", "urgency", "payment_status", "parent", "department"]

    def filter_search(self, queryset, name, value):
        value = (value or "").strip()
        if not value:
            return queryset
        return queryset.filter(Q(id__icontains=value) | Q(title__icontains=value) | Q(requester_name__icontains=value))

    def filter_mine(self, queryset, name, value):
        user = getattr(self.request, "user", None)
        if value is None or user is None or not user.is_authenticated:
            return queryset
        if value:
            return queryset.filter(requester_id=user.pk)
        return queryset.exclude(requester_id=user.pk)


def requisitions_qs() -> QuerySet[RequisitionRow]:
    return RequisitionRow.objects.all().order_by("-created_at", "-id")


def actionable_for(
    actor: Actor,
    *,
    store: RequisitionStore | None = None,
    table: TransitionTable | None = None,
) -> list[Requisition]:
    """
    The actor's inbox: everything the gate would let them act on right now.
    """
    store = store or RequisitionStore()
    owned = [s for s in STAGE_ROLES if s not in EDITABLE_STAGES and stage_actor_matches(s, actor)]
    rows = requisitions_qs().filter(
        Q(stage__in=owned) | Q(stage__in=EDITABLE_STAGES, requester_id=actor.user_id)
    )
    return [r for r in store.list(rows) if legal_actions(r, actor, table=table)]


@dataclass(frozen=True)
class DuplicateMatch:
    requisition: Requisition
    matched_items: tuple[str, ...]


def possible_duplicates(requisition: Requisition, *, store: RequisitionStore | None = None) -> list[DuplicateMatch]:
    """
    Approved requisitions sharing at least one item name (case-insensitive).
    The requisition's own split family is excluded.
    """
    store = store or RequisitionStore()
    names = {item.name.strip().lower() for item in requisition.items if item.name.strip()}
    if not names:
        return []

    family = {requisition.id, *requisition.split_children}
    if requisition.parent_id:
        family.add(requisition.parent_id)

    hits = (
        RequisitionItem.objects.annotate(lname=Lower("name"))
        .filter(lname__in=names, requisition__stage=Stage.APPROVED)
        .exclude(requisition_id__in=family)
        .values_list("requisition_id", "lname")
    )
    matched: dict[str, set[str]] = {}
    for rid, lname in hits:
        matched.setdefault(rid, set()).add(lname)
    if not matched:
        return []

    rows = requisitions_qs().filter(pk__in=matched)
    return [
        DuplicateMatch(requisition=r, matched_items=tuple(sorted(matched[r.id])))
        for r in store.list(rows)
    ]
