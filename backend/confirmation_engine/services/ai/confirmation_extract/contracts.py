"""Confirmation extract scope contracts: the completion's JSON, re-validated field by field."""

from __future__ import annotations

import math
import re
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from confirmation_engine.services.confirmation_parser.dates import to_iso_date

# Order matters: it is the JSON schema shown to the model.
LLM_FIELDS: tuple[str, ...] = (
    "supplier_order_number",
    "delivery_date",
    "quantity",
    "unit_price",
    "extended_price",
    "currency",
    "payment_terms",
    "freight_terms",
    "freight_cost",
    "subtotal",
    "tax_amount",
    "order_total",
    "notes",
    "backorder_status",
)

_NULL_WORDS = {"", "null", "none", "n/a", "na", "unknown", "not found", "not specified", "-"}
_MONEY_CHARS_RE = re.compile(r"[$,\s]|usd", re.IGNORECASE)
_CURRENCY_CODE_RE = re.compile(r"^[A-Za-z]{3}$")
_CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}


def coerce_number(value: Any) -> Optional[float]:
    """``"$1,234.50"`` -> 1234.5; anything unparsable -> ``None``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        raw = _MONEY_CHARS_RE.sub("", str(value))
        if not raw:
            return None
        try:
            number = float(raw)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if text.lower() in _NULL_WORDS:
        return None
    return text


class LLMConfirmationExtraction(BaseModel):
    """What the completion service claims to have found.

    Values that do not survive coercion become ``None``; the model is never
    trusted to have followed the schema.
    """

    model_config = ConfigDict(extra="ignore")

    supplier_order_number: Optional[str] = None
    delivery_date: Optional[str] = None
    quantity: Optional[Union[int, float]] = None
    unit_price: Optional[float] = None
    extended_price: Optional[float] = None
    currency: Optional[str] = None
    payment_terms: Optional[str] = None
    freight_terms: Optional[str] = None
    freight_cost: Optional[float] = None
    subtotal: Optional[float] = None
    tax_amount: Optional[float] = None
    order_total: Optional[float] = None
    notes: Optional[str] = None
    backorder_status: Optional[str] = None

    @field_validator(
        "supplier_order_number",
        "payment_terms",
        "freight_terms",
        "notes",
        "backorder_status",
        mode="before",
    )
    @classmethod
    def _text_or_none(cls, v: Any) -> Optional[str]:
        return _clean_text(v)

    @field_validator("delivery_date", mode="before")
    @classmethod
    def _iso_date_or_none(cls, v: Any) -> Optional[str]:
        text = _clean_text(v)
        return to_iso_date(text) if text else None

    @field_validator("quantity", mode="before")
    @classmethod
    def _positive_quantity(cls, v: Any) -> Optional[Union[int, float]]:
        number = coerce_number(v)
        if number is None or number <= 0:
            return None
        return int(number) if number.is_integer() else number

    @field_validator(
        "unit_price",
        "extended_price",
        "freight_cost",
        "subtotal",
        "tax_amount",
        "order_total",
        mode="before",
    )
    @classmethod
    def _money(cls, v: Any) -> Optional[float]:
        number = coerce_number(v)
        if number is None or number < 0:
            return None
        return number

    @field_validator("currency", mode="before")
    @classmethod
    def _currency_code(cls, v: Any) -> Optional[str]:
        text = _clean_text(v)
        if text is None:
            return None
        if text in _CURRENCY_SYMBOLS:
            return _CURRENCY_SYMBOLS[text]
        if _CURRENCY_CODE_RE.match(text):
            return text.upper()
        return None

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in LLM_FIELDS)
