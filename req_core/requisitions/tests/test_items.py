from decimal import Decimal

import pytest

from req_core.common.errors import ValidationError
from req_core.requisitions.items import (
    EmergencyItem,
    HistologyItem,
    LineItem,
    emergency_item,
    items_total,
    line_total,
    sanitize_item,
    validate_items,
)
from req_core.requisitions.models import ItemKind, RequisitionType

RAW_ITEMS = [
    {},
    {"name": "  Gloves ", "quantity": "0", "unit_cost": "abc", "supplier": None},
    {"name": "Syringe", "quantity": -4, "unit_cost": -1, "estimated_cost": "12.5", "category": ""},
    {"name": "Reagent", "quantity": "1,000", "unitCost": "5", "stockLevel": "NaN"},
    {"name": "Test tubes", "quantity": 2.5, "unit_cost": float("inf"), "estimated_cost": 3.333},
    {"name": "Paracetamol", "quantity": True, "unit_cost": "", "supplier": "  Emzor  "},
]


@pytest.mark.parametrize("raw", RAW_ITEMS)
def test_sanitize_is_idempotent(raw):
    once = sanitize_item(raw, kind=ItemKind.GENERIC)
    assert sanitize_item(once, kind=ItemKind.GENERIC) == once


@pytest.mark.parametrize(
    "raw",
    [
        {"name": "Biopsy", "patientName": "Jane", "retainership": "1500", "zmc_charge": "x"},
        {"name": "Biopsy", "hospital_number": None, "lab_number": 42, "service_date": "2024-05-01"},
    ],
)
def test_histology_sanitize_is_idempotent(raw):
    once = sanitize_item(raw, kind=ItemKind.HISTOLOGY)
    assert isinstance(once, HistologyItem)
    assert sanitize_item(once, kind=ItemKind.HISTOLOGY) == once


def test_invalid_numbers_become_zero_and_quantity_defaults_to_one():
    item = sanitize_item(
        {"name": "Gloves", "quantity": "", "unit_cost": "abc", "estimated_cost": None, "stock_level": -3},
        kind=ItemKind.GENERIC,
    )
    assert item.quantity == Decimal("1.00")
    assert item.unit_cost == Decimal("0.00")
    assert item.estimated_cost == Decimal("0.00")
    assert item.stock_level == Decimal("0.00")


def test_quantity_that_resolves_to_zero_becomes_one():
    assert sanitize_item({"name": "x", "quantity": 0}, kind=ItemKind.GENERIC).quantity == Decimal("1.00")
    assert sanitize_item({"name": "x", "quantity": "0.4"}, kind=ItemKind.GENERIC).quantity == Decimal("1.00")


def test_supplier_none_becomes_empty_and_category_defaults():
    item = sanitize_item({"name": "x", "supplier": None, "category": "  "}, kind=ItemKind.GENERIC)
    assert item.supplier == ""
    assert item.category == "General"


def test_thousands_separator_and_camel_case_aliases():
    item = sanitize_item({"name": "x", "quantity": "1,000", "unitCost": "5"}, kind=ItemKind.GENERIC)
    assert item.quantity == Decimal("1000.00")
    assert item.unit_cost == Decimal("5.00")


def test_fields_of_other_kinds_are_dropped():
    item = sanitize_item({"name": "x", "patient_name": "Jane", "payee": "Bob"}, kind=ItemKind.GENERIC)
    assert type(item) is LineItem
    assert not hasattr(item, "patient_name")
    assert not hasattr(item, "payee")


def test_unknown_kind_is_refused():
    with pytest.raises(ValidationError):
        sanitize_item({"name": "x"}, kind="BOGUS")


def test_line_total_prefers_unit_cost_then_estimated_cost():
    priced = sanitize_item({"name": "a", "quantity": 3, "unit_cost": 10, "estimated_cost": 99}, kind=ItemKind.GENERIC)
    estimated = sanitize_item({"name": "b", "quantity": 2, "estimated_cost": "7.5"}, kind=ItemKind.GENERIC)
    assert line_total(priced) == Decimal("30.00")
    assert line_total(estimated) == Decimal("15.00")
    assert items_total([priced, estimated]) == Decimal("45.00")


def test_round_trip_through_storage_shape_is_lossless():
    item = sanitize_item(
        {"name": "Biopsy", "unit_cost": "2500", "patient_name": "Jane", "retainership": "100"},
        kind=ItemKind.HISTOLOGY,
    )
    stored = {**item.base_fields(), "kind": item.kind, **item.detail_fields()}
    assert LineItem.from_dict(stored) == item


def test_emergency_item_carries_the_lump_sum():
    item = emergency_item(total_amount="50,000", payee="Vendor Ltd", title="Oxygen refill")
    assert isinstance(item, EmergencyItem)
    assert item.quantity == Decimal("1.00")
    assert line_total(item) == Decimal("50000.00")
    assert item.payee == "Vendor Ltd"


def test_validate_items_requires_items_and_names():
    with pytest.raises(ValidationError) as exc:
        validate_items(RequisitionType.PHARMACY_PO, ())
    assert "items" in exc.value.details["fields"]

    unnamed = (sanitize_item({"quantity": 2}, kind=ItemKind.GENERIC),)
    with pytest.raises(ValidationError) as exc:
        validate_items(RequisitionType.LAB_PO, unnamed)
    assert "items[0].name" in exc.value.details["fields"]


def test_validate_items_requires_positive_emergency_total():
    with pytest.raises(ValidationError):
        validate_items(RequisitionType.EMERGENCY_1_WEEK, (emergency_item(total_amount="0"),))

    validate_items(RequisitionType.EMERGENCY_1_WEEK, (emergency_item(total_amount="10"),))
