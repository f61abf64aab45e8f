"""Canonical field keys shared by the parser, the caller's update flow and missing-field reports."""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any, Iterable, Optional

from confirmation_engine.schemas.confirmation import ParsedConfirmationFieldsV1


class CanonicalField(StrEnum):
    SUPPLIER_REFERENCE = "supplier_reference"
    DELIVERY_DATE = "delivery_date"
    QUANTITY = "quantity"


PARSER_TO_CANONICAL: dict[str, CanonicalField] = {
    "supplier_order_number": CanonicalField.SUPPLIER_REFERENCE,
    "supplier_reference": CanonicalField.SUPPLIER_REFERENCE,
    "confirmed_delivery_date": CanonicalField.DELIVERY_DATE,
    "confirmed_ship_date": CanonicalField.DELIVERY_DATE,
    "delivery_date": CanonicalField.DELIVERY_DATE,
    "ship_date": CanonicalField.DELIVERY_DATE,
    "confirmed_quantity": CanonicalField.QUANTITY,
    "supplier_confirmed_quantity": CanonicalField.QUANTITY,
    "quantity": CanonicalField.QUANTITY,
}


def to_canonical_field_key(name: str) -> Optional[CanonicalField]:
    return PARSER_TO_CANONICAL.get((name or "").strip().lower())


def normalize_missing_fields(names: Iterable[str]) -> list[str]:
    """Map parser field names to canonical keys; unknown names are dropped, order kept."""
    out: list[str] = []
    for name in names:
        key = to_canonical_field_key(name)
        if key is not None and key.value not in out:
            out.append(key.value)
    return out


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _has_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def compute_missing_fields(result: ParsedConfirmationFieldsV1) -> list[str]:
    missing: list[str] = []
    if not _has_text(result.supplier_order_number.value):
        missing.append(CanonicalField.SUPPLIER_REFERENCE.value)
    if not _has_text(result.confirmed_delivery_date.value):
        missing.append(CanonicalField.DELIVERY_DATE.value)
    if not _has_number(result.supplier_confirmed_quantity.value):
        missing.append(CanonicalField.QUANTITY.value)
    return missing


def map_extracted_to_canonical(result: ParsedConfirmationFieldsV1) -> dict[str, dict[str, Any]]:
    """``{canonical_key: {"value", "confidence"}}`` for every populated core field."""
    pairs = (
        (CanonicalField.SUPPLIER_REFERENCE, result.supplier_order_number),
        (CanonicalField.DELIVERY_DATE, result.confirmed_delivery_date),
        (CanonicalField.QUANTITY, result.supplier_confirmed_quantity),
    )
    return {
        key.value: {"value": field.value, "confidence": field.confidence}
        for key, field in pairs
        if field.value is not None
    }
