"""LLM fallback extraction for supplier order confirmations.

One completion request per call, constrained to a fixed JSON schema. The
answer is re-validated by :class:`LLMConfirmationExtraction`; anything the
model returns that does not coerce cleanly is dropped to ``None``.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from confirmation_engine.core.config import get_settings
from confirmation_engine.core.errors import LLMResponseError
from confirmation_engine.schemas.confirmation import (
    ParsedConfirmationFieldsV1,
    ParsedField,
    ParseInput,
    PriceChanged,
    Quantity,
)
from confirmation_engine.services.confirmation_parser.ranking import format_quantity
from confirmation_engine.services.confirmation_parser.service import assemble_result
from confirmation_engine.services.confirmation_parser.text_tools import snippet_around

from ..common import router as ai_router
from ..common.json_tools import extract_json_object
from ..common.providers.base import BaseProvider, ProviderResult
from .contracts import LLM_FIELDS, LLMConfirmationExtraction

logger = logging.getLogger(__name__)

PRICE_CHANGE_THRESHOLD = 0.01

_SCHEMA_EXAMPLE = json.dumps({name: None for name in LLM_FIELDS}, indent=2)

CONFIRMATION_EXTRACT_SYSTEM_PROMPT = (
    "You extract fields from supplier order confirmations (acknowledgements) "
    "sent in reply to a purchase order. "
    "Return ONLY a JSON object with exactly these keys:\n"
    f"{_SCHEMA_EXAMPLE}\n"
    "Rules:\n"
    "- supplier_order_number: the supplier's own sales order / acknowledgement number, "
    "never the buyer's PO number.\n"
    "- delivery_date: the confirmed ship or delivery date as YYYY-MM-DD, not the order date.\n"
    "- quantity: the confirmed quantity for the requested line as a number. "
    "Ignore dimensions, gauges, weights and grade codes (e.g. 1.500 X .120, A500, 6336 LBS).\n"
    "- prices and totals: plain numbers without currency symbols; currency as a 3-letter code.\n"
    "- Use null for anything not stated in the document. Do not invent values."
)

PROMPT_TEMPLATE = """PO number: {po_number}
PO line: {line_id}

{evidence}"""


@dataclass
class LLMExtractionOutcome:
    extraction: LLMConfirmationExtraction
    provider_result: ProviderResult


def _evidence_sections(data: ParseInput) -> list[tuple[str, str]]:
    sections: list[tuple[str, str]] = []
    for pdf in data.pdf_texts:
        if (pdf.text or "").strip():
            sections.append((f"PDF attachment {pdf.attachment_id}", pdf.text.strip()))
    if data.has_email_text():
        sections.append(("Email body", data.email_text.strip()))
    return sections


def build_confirmation_prompt(data: ParseInput, max_chars: int) -> str:
    """User prompt with PO context and the evidence, cut to *max_chars* of evidence."""
    parts: list[str] = []
    remaining = max_chars
    for title, text in _evidence_sections(data):
        if remaining <= 0:
            break
        chunk = text[:remaining]
        remaining -= len(chunk)
        parts.append(f"--- {title} ---\n{chunk}")
    return PROMPT_TEMPLATE.format(
        po_number=data.po_number or "unknown",
        line_id=data.line_id or "unknown",
        evidence="\n\n".join(parts),
    )


async def extract_confirmation_with_llm(
    data: ParseInput,
    *,
    provider: BaseProvider | None = None,
) -> LLMExtractionOutcome:
    """Ask the completion service for the confirmation fields.

    Raises ``ConfigurationError`` when no usable provider is configured,
    ``LLMResponseError`` when the answer holds no JSON object, and lets
    transport errors from the provider propagate.
    """
    settings = get_settings()
    config = ai_router.resolve("confirmation_extract", provider=provider)
    prompt = build_confirmation_prompt(data, settings.ai_confirmation_max_input_chars)

    result = await config.provider.generate(
        prompt,
        system_prompt=CONFIRMATION_EXTRACT_SYSTEM_PROMPT,
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout_seconds=config.timeout_seconds,
    )

    parsed = extract_json_object(result.raw_text)
    if parsed is None:
        logger.warning("AI returned no JSON object: %s", result.raw_text[:200])
        raise LLMResponseError("Completion did not contain a JSON object")

    extraction = LLMConfirmationExtraction.model_validate(parsed)
    logger.info(
        "LLM confirmation extract via %s:%s in %.0f ms (empty=%s)",
        result.provider,
        result.model,
        result.latency_ms,
        extraction.is_empty(),
    )
    return LLMExtractionOutcome(extraction=extraction, provider_result=result)


def detect_price_change(
    unit_price: Optional[float], expected_unit_price: Optional[float]
) -> Optional[PriceChanged]:
    if unit_price is None or expected_unit_price is None:
        return None
    delta = round(unit_price - expected_unit_price, 4)
    percent = round(delta / expected_unit_price * 100, 2) if expected_unit_price else None
    return PriceChanged(
        value=abs(delta) > PRICE_CHANGE_THRESHOLD,
        price_delta=delta,
        price_delta_percent=percent,
    )


def _value_patterns(value: Any) -> list[re.Pattern]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        forms = {format_quantity(value)}
        number = float(value)
        if number.is_integer():
            forms.add(f"{int(number):,}")
        else:
            forms.add(f"{number:.2f}")
            forms.add(f"{number:,.2f}")
        return [re.compile(rf"(?<![\d.,]){re.escape(f)}(?![\d])") for f in forms]
    return [re.compile(re.escape(str(value)), re.IGNORECASE)]


def _locate(data: ParseInput, value: Any) -> tuple[str, Optional[str], Optional[str]]:
    """``(source, attachment_id, snippet)`` of the first text that literally contains *value*."""
    patterns = _value_patterns(value)
    for pdf in data.pdf_texts:
        text = pdf.text or ""
        for pattern in patterns:
            m = pattern.search(text)
            if m:
                return "pdf", pdf.attachment_id, snippet_around(text, m.start())
    if data.has_email_text():
        for pattern in patterns:
            m = pattern.search(data.email_text)
            if m:
                return "email", None, snippet_around(data.email_text, m.start())

    # Dates come back reformatted; attribute them to the primary evidence.
    first_pdf = next((p for p in data.pdf_texts if (p.text or "").strip()), None)
    if first_pdf is not None:
        return "pdf", first_pdf.attachment_id, None
    return "email", None, None


def _llm_field(data: ParseInput, value: Any, confidence: float, field_type: type[ParsedField]) -> ParsedField:
    if value is None:
        return field_type()
    source, attachment_id, snippet = _locate(data, value)
    return field_type(
        value=value,
        confidence=confidence,
        evidence_snippet=snippet,
        source=source,
        attachment_id=attachment_id,
        message_id=data.email_message_id if source == "email" else None,
    )


_EXTENDED_TYPES: dict[str, type[ParsedField]] = {
    "unit_price": ParsedField[float],
    "extended_price": ParsedField[float],
    "currency": ParsedField[str],
    "payment_terms": ParsedField[str],
    "freight_terms": ParsedField[str],
    "freight_cost": ParsedField[float],
    "subtotal": ParsedField[float],
    "tax_amount": ParsedField[float],
    "order_total": ParsedField[float],
    "notes": ParsedField[str],
    "backorder_status": ParsedField[str],
}


def apply_extended_fields(
    result: ParsedConfirmationFieldsV1,
    data: ParseInput,
    extraction: LLMConfirmationExtraction,
    confidence: float,
) -> ParsedConfirmationFieldsV1:
    """Copy commercial fields and the price-change flag onto *result*."""
    for name, field_type in _EXTENDED_TYPES.items():
        value = getattr(extraction, name)
        setattr(result, name, _llm_field(data, value, confidence, field_type) if value is not None else None)
    result.price_changed = detect_price_change(extraction.unit_price, data.expected_unit_price)
    return result


def llm_core_fields(
    data: ParseInput, extraction: LLMConfirmationExtraction, confidence: float
) -> dict[str, ParsedField]:
    return {
        "supplier_order_number": _llm_field(
            data, extraction.supplier_order_number, confidence, ParsedField[str]
        ),
        "confirmed_delivery_date": _llm_field(
            data, extraction.delivery_date, confidence, ParsedField[str]
        ),
        "supplier_confirmed_quantity": _llm_field(
            data, extraction.quantity, confidence, ParsedField[Quantity]
        ),
    }


def build_llm_result(
    data: ParseInput,
    extraction: LLMConfirmationExtraction,
    *,
    confidence: float | None = None,
) -> ParsedConfirmationFieldsV1:
    """The aggregate result for a purely LLM-sourced extraction."""
    if confidence is None:
        confidence = get_settings().confirmation_llm_confidence
    result = assemble_result(
        **llm_core_fields(data, extraction, confidence),
        expected_qty=data.expected_qty,
        extraction_method="llm",
    )
    return apply_extended_fields(result, data, extraction, confidence)
