# req_core/requisitions/items.py
"""
Line items as a closed union of kinds, plus the sanitizer.

Raw item input is untrusted: numbers may arrive as strings, blanks,
``None`` or garbage. ``sanitize_item`` is the single place where that
is turned into a numeric-safe record. It runs once, when items enter
the system, and is idempotent on its own output.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar, Iterable, Mapping

from req_core.common.errors import ValidationError
from req_core.requisitions.models import EMERGENCY_TYPES, ItemKind, RequisitionType

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
ONE = Decimal("1.00")
MAX_AMOUNT = Decimal("999999999999.99")

DEFAULT_CATEGORY = "General"


def _number(value: Any, fallback: Decimal = ZERO) -> Decimal:
    """
    Coerce to a non-negative Decimal with two places.
    Empty, None, NaN, infinities, negatives and non-numeric text give ``fallback``.
    """
    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return fallback
        try:
            number = Decimal(text)
        except InvalidOperation:
            return fallback
    else:
        return fallback

    if not number.is_finite() or number < 0 or number > MAX_AMOUNT:
        return fallback

    try:
        number = number.quantize(CENT)
    except InvalidOperation:
        return fallback

    return ZERO if number == 0 else number


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class LineItem:
    """Generic item used by purchase orders and equipment requests."""

    kind: ClassVar[str] = ItemKind.GENERIC
    numeric_fields: ClassVar[tuple[str, ...]] = ("unit_cost", "estimated_cost", "stock_level")

    name: str = ""
    quantity: Decimal = ONE
    unit: str = ""
    unit_cost: Decimal = ZERO
    estimated_cost: Decimal = ZERO
    supplier: str = ""
    stock_level: Decimal = ZERO
    category: str = DEFAULT_CATEGORY
    notes: str = ""

    @property
    def line_total(self) -> Decimal:
        return line_total(self)

    def as_dict(self) -> dict[str, Any]:
        """JSON-safe representation (decimals as strings)."""
        data = {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}
        data["kind"] = self.kind
        return data

    def base_fields(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(LineItem)}

    def detail_fields(self) -> dict[str, Any]:
        """Kind-specific fields only, JSON-safe."""
        base = {f.name for f in fields(LineItem)}
        data = self.as_dict()
        return {f.name: data[f.name] for f in fields(self) if f.name not in base}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        """
        Rebuild an already-sanitized item (e.g. from storage).
        Does not sanitize; unknown keys are ignored.
        """
        item_cls = ITEM_CLASSES.get(data.get("kind") or cls.kind, cls)
        decimal_fields = {"quantity", *item_cls.numeric_fields}
        values = {}
        for f in fields(item_cls):
            if f.name not in data:
                continue
            raw = data[f.name]
            values[f.name] = Decimal(str(raw)) if f.name in decimal_fields else raw
        return item_cls(**values)


@dataclass(frozen=True)
class HistologyItem(LineItem):
    """Outsourced histology test billed per patient."""

    kind: ClassVar[str] = ItemKind.HISTOLOGY
    numeric_fields: ClassVar[tuple[str, ...]] = (
        "unit_cost",
        "estimated_cost",
        "stock_level",
        "retainership",
        "zmc_charge",
    )

    patient_name: str = ""
    hospital_number: str = ""
    lab_number: str = ""
    payment_reference: str = ""
    service_date: str = ""
    retainership: Decimal = ZERO
    zmc_charge: Decimal = ZERO


@dataclass(frozen=True)
class EmergencyItem(LineItem):
    """Single pseudo-item that carries an emergency request's lump sum."""

    kind: ClassVar[str] = ItemKind.EMERGENCY

    payee: str = ""


ITEM_CLASSES: dict[str, type[LineItem]] = {
    ItemKind.GENERIC: LineItem,
    ItemKind.HISTOLOGY: HistologyItem,
    ItemKind.EMERGENCY: EmergencyItem,
}

KIND_BY_TYPE: dict[str, str] = {
    RequisitionType.LAB_PO: ItemKind.GENERIC,
    RequisitionType.EQUIPMENT: ItemKind.GENERIC,
    RequisitionType.PHARMACY_PO: ItemKind.GENERIC,
    RequisitionType.HISTOLOGY: ItemKind.HISTOLOGY,
    RequisitionType.EMERGENCY_1_WEEK: ItemKind.EMERGENCY,
    RequisitionType.EMERGENCY_1_MONTH: ItemKind.EMERGENCY,
}

# Aliases accepted from clients that send camelCase.
_ALIASES = {
    "unitCost": "unit_cost",
    "estimatedCost": "estimated_cost",
    "stockLevel": "stock_level",
    "patientName": "patient_name",
    "hospitalNumber": "hospital_number",
    "labNumber": "lab_number",
    "paymentReference": "payment_reference",
    "serviceDate": "service_date",
    "zmcCharge": "zmc_charge",
}


def item_class_for(requisition_type: str) -> type[LineItem]:
    try:
        return ITEM_CLASSES[KIND_BY_TYPE[requisition_type]]
    except KeyError:
        raise ValidationError(f"Unknown requisition type: {requisition_type!r}.")


def sanitize_item(raw: Mapping[str, Any] | LineItem, *, kind: str = ItemKind.GENERIC) -> LineItem:
    """
    Return a numeric-safe item of the given kind.

    - numeric fields: invalid/empty/negative -> 0
    - quantity: below 1 -> 1
    - supplier: None -> ""
    - category: blank -> "General"
    - keys that do not belong to ``kind`` are dropped
    """
    if isinstance(raw, LineItem):
        raw = raw.as_dict()

    data = {_ALIASES.get(k, k): v for k, v in dict(raw).items()}
    item_cls = ITEM_CLASSES.get(kind)
    if item_cls is None:
        raise ValidationError(f"Unknown item kind: {kind!r}.")

    quantity = _number(data.get("quantity"), ONE)
    if quantity < ONE:
        quantity = ONE

    values: dict[str, Any] = {"quantity": quantity}
    for f in fields(item_cls):
        if f.name == "quantity":
            continue
        if f.name in item_cls.numeric_fields:
            values[f.name] = _number(data.get(f.name))
        else:
            values[f.name] = _text(data.get(f.name))

    if not values["category"]:
        values["category"] = DEFAULT_CATEGORY

    return item_cls(**values)


def sanitize_items(raw_items: Iterable[Mapping[str, Any] | LineItem] | None, *, kind: str) -> tuple[LineItem, ...]:
    return tuple(sanitize_item(raw, kind=kind) for raw in (raw_items or ()))


def line_total(item: LineItem) -> Decimal:
    unit = item.unit_cost or item.estimated_cost or ZERO
    return (unit * item.quantity).quantize(CENT)


def items_total(items: Iterable[LineItem]) -> Decimal:
    return sum((line_total(i) for i in items), ZERO)


def emergency_item(*, total_amount: Any, payee: str = "", title: str = "") -> EmergencyItem:
    """Synthesize the pseudo-item holding an emergency request's total."""
    amount = _number(total_amount)
    return EmergencyItem(
        name=_text(title) or "Emergency Cash Request",
        quantity=ONE,
        unit_cost=amount,
        estimated_cost=amount,
        category="Emergency",
        payee=_text(payee),
    )


def validate_items(requisition_type: str, items: tuple[LineItem, ...]) -> None:
    errors: dict[str, str] = {}
    if not items:
        errors["items"] = "At least one item is required."
    for index, item in enumerate(items):
        if not item.name:
            errors[f"items[{index}].name"] = "Item name is required."
    if requisition_type in EMERGENCY_TYPES and items and items_total(items) <= ZERO:
        errors["total_amount"] = "Emergency requests need a total amount greater than zero."
    if errors:
        raise ValidationError("Some items are incomplete. Nothing was saved.", details={"fields": errors})
