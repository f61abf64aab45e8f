"""Hybrid confirmation parsing: deterministic extraction with an LLM fallback.

Policy:
  - Any PDF text present: the LLM runs first; deterministic output is used
    only when the call fails or comes back empty.
  - Email only: deterministic first; the LLM is consulted when a required
    field is below the trigger confidence or the top two quantity values are
    too close to call. Per field, the more confident answer wins.
  - ``ConfigurationError`` always propagates. Every other LLM failure is
    logged and forfeits the LLM's contribution for this call.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from confirmation_engine.core.config import Settings, get_settings
from confirmation_engine.core.errors import ConfigurationError, LLMResponseError
from confirmation_engine.schemas.confirmation import ParsedConfirmationFieldsV1, ParsedField, ParseInput
from confirmation_engine.services.ai.common.providers.base import BaseProvider
from confirmation_engine.services.ai.confirmation_extract.service import (
    LLMExtractionOutcome,
    apply_extended_fields,
    build_llm_result,
    extract_confirmation_with_llm,
    llm_core_fields,
)
from confirmation_engine.services.confirmation_parser.ranking import quantity_spread
from confirmation_engine.services.confirmation_parser.service import (
    DeterministicOutcome,
    assemble_result,
    run_deterministic,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("supplier_order_number", "confirmed_delivery_date", "supplier_confirmed_quantity")


def llm_trigger_reason(outcome: DeterministicOutcome, settings: Settings) -> Optional[str]:
    """Why the deterministic result is not trustworthy, or ``None`` when it is."""
    result = outcome.result
    weak = [
        name
        for name in REQUIRED_FIELDS
        if getattr(result, name).confidence < settings.confirmation_llm_trigger_confidence
    ]
    if weak:
        return f"low confidence or missing: {', '.join(weak)}"
    spread = quantity_spread(outcome.ranked_quantities)
    if spread is not None and spread < settings.confirmation_ambiguity_spread:
        return f"ambiguous quantity: top candidates {spread:.2f} apart"
    return None


def _with_decision(result: ParsedConfirmationFieldsV1, decision: str) -> ParsedConfirmationFieldsV1:
    if result.debug_candidates is not None:
        result.debug_candidates.llm_decision = decision
    return result


def _prefer_confident(det: ParsedField, llm: ParsedField) -> ParsedField:
    return llm if llm.confidence > det.confidence else det


async def _call_llm(data: ParseInput, provider: BaseProvider | None) -> Optional[LLMExtractionOutcome]:
    try:
        outcome = await extract_confirmation_with_llm(data, provider=provider)
    except ConfigurationError:
        raise
    except (LLMResponseError, httpx.HTTPError) as exc:
        logger.warning("LLM confirmation extract failed, using deterministic result: %s", exc)
        return None
    except Exception:
        logger.exception("LLM confirmation extract crashed, using deterministic result")
        return None
    if outcome.extraction.is_empty():
        logger.warning("LLM confirmation extract returned no fields, using deterministic result")
        return None
    return outcome


async def _pdf_path(data: ParseInput, provider: BaseProvider | None) -> ParsedConfirmationFieldsV1:
    llm = await _call_llm(data, provider)
    if llm is None:
        return _with_decision(run_deterministic(data).result, "pdf present; LLM failed or empty, deterministic fallback")

    result = build_llm_result(data, llm.extraction)
    if data.debug:
        result.debug_candidates = run_deterministic(data).result.debug_candidates
    logger.info("Confirmation parsed by LLM (pdf present), missing=%s", result.missing_fields)
    return _with_decision(result, "pdf present; LLM result used")


async def _email_path(data: ParseInput, provider: BaseProvider | None) -> ParsedConfirmationFieldsV1:
    settings = get_settings()
    outcome = run_deterministic(data)
    det = outcome.result

    reason = llm_trigger_reason(outcome, settings)
    if reason is None:
        logger.info("Deterministic confirmation parse trusted")
        return _with_decision(det, "deterministic result trusted")

    logger.info("Consulting LLM: %s", reason)
    llm = await _call_llm(data, provider)
    if llm is None:
        return _with_decision(det, f"{reason}; LLM failed or empty, deterministic kept")

    confidence = settings.confirmation_llm_confidence
    llm_fields = llm_core_fields(data, llm.extraction, confidence)
    merged = assemble_result(
        supplier_order_number=_prefer_confident(det.supplier_order_number, llm_fields["supplier_order_number"]),
        confirmed_delivery_date=_prefer_confident(
            det.confirmed_delivery_date, llm_fields["confirmed_delivery_date"]
        ),
        supplier_confirmed_quantity=_prefer_confident(
            det.supplier_confirmed_quantity, llm_fields["supplier_confirmed_quantity"]
        ),
        expected_qty=data.expected_qty,
        extraction_method="hybrid",
    )
    merged = apply_extended_fields(merged, data, llm.extraction, confidence)
    merged.debug_candidates = det.debug_candidates
    return _with_decision(merged, f"{reason}; merged with LLM result")


async def parse_confirmation_fields_smart(
    data: ParseInput,
    *,
    provider: BaseProvider | None = None,
) -> ParsedConfirmationFieldsV1:
    """Parse one confirmation, deferring to the LLM under the hybrid policy.

    *provider* replaces the configured completion provider (tests, alternative
    backends). Always returns a well-formed result unless the LLM is needed
    and not configured.
    """
    settings = get_settings()
    if not settings.ai_confirmation_llm_enabled:
        return _with_decision(run_deterministic(data).result, "LLM disabled")

    if data.has_pdf_text():
        return await _pdf_path(data, provider)

    if not data.has_email_text():
        return _with_decision(run_deterministic(data).result, "no evidence text")

    return await _email_path(data, provider)
