"""Deterministic confirmation-field extraction (no AI).

Runs every extractor over each PDF text and the email body, picks the best
candidate per field per source, merges PDF against email and reconciles the
supplier-confirmed quantity with the ordered quantity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence

from confirmation_engine.core.config import get_settings
from confirmation_engine.schemas.confirmation import (
    DateCandidateTrace,
    DebugCandidates,
    ExtractionMethod,
    OrderNumberCandidateTrace,
    ParsedConfirmationFieldsV1,
    ParsedField,
    ParseInput,
    Quantity,
    QuantityCandidateTrace,
)

from .anchors import locate_anchors, locate_dom_anchors
from .candidates import Candidate
from .dates import extract_date_candidates
from .field_mapping import compute_missing_fields
from .order_numbers import extract_order_number_candidates
from .quantities import (
    QuantityContext,
    extract_labeled_quantities,
    scan_dom_neighborhoods,
    score_quantity_candidates,
)
from .ranking import (
    best_candidate,
    build_quantity_mismatch,
    choose_best_field,
    format_quantity,
    pick_best_by_confidence,
    rank_date_candidates,
    rank_order_number_candidates,
    rank_quantity_candidates,
    to_parsed_field,
)
from .tables import parse_generic_table, parse_qty_price_table
from .text_tools import NormalizedText

logger = logging.getLogger(__name__)


@dataclass
class SourceExtraction:
    """Ranked candidates from one evidence text."""

    source: str
    attachment_id: Optional[str] = None
    dates: list[Candidate] = field(default_factory=list)
    quantities: list[Candidate] = field(default_factory=list)
    order_numbers: list[Candidate] = field(default_factory=list)


@dataclass
class DeterministicOutcome:
    result: ParsedConfirmationFieldsV1
    ranked_quantities: list[Candidate]


def extract_from_text(
    text: str,
    *,
    source: str,
    attachment_id: Optional[str] = None,
    po_number: Optional[str] = None,
    line_id: Optional[str] = None,
    expected_qty: Optional[Quantity] = None,
) -> SourceExtraction:
    norm = NormalizedText.from_raw(text or "")
    if not norm.lines:
        return SourceExtraction(source=source, attachment_id=attachment_id)

    anchors = locate_anchors(norm.lines, po_number, line_id)
    dates = extract_date_candidates(norm, source, anchors)
    order_numbers = extract_order_number_candidates(
        norm, source, anchors=anchors, po_number=po_number
    )

    ctx = QuantityContext(source=source, anchors=anchors, line_id=line_id, expected_qty=expected_qty)
    quantities = (
        extract_labeled_quantities(norm, ctx)
        + parse_qty_price_table(norm, ctx)
        + parse_generic_table(norm, ctx)
    )
    if not any(not c.excluded for c in quantities):
        dom_anchors = locate_dom_anchors(norm.lines)
        if dom_anchors:
            quantities += scan_dom_neighborhoods(norm, ctx, dom_anchors)
    quantities = score_quantity_candidates(quantities, norm, expected_qty)

    if attachment_id is not None:
        dates = [replace(c, attachment_id=attachment_id) for c in dates]
        order_numbers = [replace(c, attachment_id=attachment_id) for c in order_numbers]
        quantities = [replace(c, attachment_id=attachment_id) for c in quantities]

    for cand in quantities:
        logger.debug(
            "qty candidate %s src=%s label=%s conf=%.2f excluded=%s reason=%s weight=%s",
            cand.value,
            source,
            cand.label,
            cand.confidence,
            cand.excluded,
            cand.exclusion_reason,
            cand.near_weight_unit,
        )

    return SourceExtraction(
        source=source,
        attachment_id=attachment_id,
        dates=rank_date_candidates(dates),
        quantities=rank_quantity_candidates(quantities),
        order_numbers=rank_order_number_candidates(order_numbers),
    )


def _best_across(extractions: Sequence[SourceExtraction], attr: str) -> Optional[Candidate]:
    return pick_best_by_confidence([best_candidate(getattr(e, attr)) for e in extractions])


def _gather(extractions: Sequence[SourceExtraction], attr: str) -> list[Candidate]:
    return [c for e in extractions for c in getattr(e, attr)]


def _quantity_reason(
    ranked: Sequence[Candidate], chosen: Optional[Candidate], threshold: float
) -> str:
    if not ranked:
        return "no quantity candidates found"
    if chosen is None:
        usable = [c for c in ranked if not c.excluded]
        if not usable:
            return f"all {len(ranked)} quantity candidates excluded as dimension/spec numbers"
        top = usable[0]
        return (
            f"best candidate {format_quantity(top.value)} ({top.label}) "
            f"confidence {top.confidence:.2f} below {threshold:.2f}; not guessing"
        )
    extra = ", near weight unit" if chosen.near_weight_unit else ""
    return (
        f"chose {format_quantity(chosen.value)} from {chosen.source} "
        f"({chosen.label}, priority {chosen.priority}, confidence {chosen.confidence:.2f}{extra})"
    )


def _date_reason(ranked: Sequence[Candidate], chosen: Optional[Candidate]) -> str:
    if chosen is None:
        return "no date candidates found"
    return (
        f"chose {chosen.value} from {chosen.source} "
        f"({chosen.label}, priority {chosen.priority}, confidence {chosen.confidence:.2f}); "
        f"{len(ranked)} candidate(s)"
    )


def _debug_block(
    dates: Sequence[Candidate],
    quantities: Sequence[Candidate],
    order_numbers: Sequence[Candidate],
    date_reason: str,
    qty_reason: str,
) -> DebugCandidates:
    return DebugCandidates(
        date_candidates=[
            DateCandidateTrace(
                value=c.value,
                confidence=round(c.confidence, 4),
                label=c.label,
                priority=c.priority,
                origin=c.origin,
                source=c.source,
                attachment_id=c.attachment_id,
                evidence_snippet=c.evidence_snippet,
            )
            for c in dates
        ],
        qty_candidates=[
            QuantityCandidateTrace(
                value=c.value,
                confidence=round(c.confidence, 4),
                label=c.label,
                priority=c.priority,
                origin=c.origin,
                source=c.source,
                excluded=c.excluded,
                exclusion_reason=c.exclusion_reason,
                near_weight_unit=c.near_weight_unit,
                attachment_id=c.attachment_id,
                evidence_snippet=c.evidence_snippet,
            )
            for c in quantities
        ],
        order_number_candidates=[
            OrderNumberCandidateTrace(
                value=c.value,
                confidence=round(c.confidence, 4),
                label=c.label,
                origin=c.origin,
                source=c.source,
                attachment_id=c.attachment_id,
                evidence_snippet=c.evidence_snippet,
            )
            for c in order_numbers
        ],
        date_chosen_reason=date_reason,
        qty_chosen_reason=qty_reason,
    )


def ordered_quantity_field(expected_qty: Optional[Quantity]) -> ParsedField:
    """System-of-record quantity; never read from evidence text."""
    if expected_qty is None:
        return ParsedField[Quantity]()
    return ParsedField[Quantity](value=expected_qty, confidence=1.0, source="none")


def assemble_result(
    *,
    supplier_order_number: ParsedField,
    confirmed_delivery_date: ParsedField,
    supplier_confirmed_quantity: ParsedField,
    expected_qty: Optional[Quantity],
    extraction_method: ExtractionMethod,
) -> ParsedConfirmationFieldsV1:
    """Build the aggregate and every field derived from the three core fields."""
    winners = (supplier_order_number, confirmed_delivery_date, supplier_confirmed_quantity)
    if any(f.source == "pdf" for f in winners):
        evidence_source = "pdf"
    elif any(f.value is not None for f in winners):
        evidence_source = "email"
    else:
        evidence_source = "none"

    result = ParsedConfirmationFieldsV1(
        supplier_order_number=supplier_order_number,
        confirmed_delivery_date=confirmed_delivery_date,
        confirmed_quantity=supplier_confirmed_quantity,
        ordered_quantity=ordered_quantity_field(expected_qty),
        supplier_confirmed_quantity=supplier_confirmed_quantity,
        quantity_mismatch=build_quantity_mismatch(expected_qty, supplier_confirmed_quantity.value),
        evidence_source=evidence_source,
        raw_excerpt=next((f.evidence_snippet for f in winners if f.evidence_snippet), None),
        extraction_method=extraction_method,
    )
    result.missing_fields = compute_missing_fields(result)
    return result


def run_deterministic(data: ParseInput) -> DeterministicOutcome:
    """Full deterministic pass; also returns the ranked quantity list for ambiguity checks."""
    settings = get_settings()
    min_qty_conf = settings.confirmation_min_quantity_confidence

    pdfs = [
        extract_from_text(
            p.text or "",
            source="pdf",
            attachment_id=p.attachment_id,
            po_number=data.po_number,
            line_id=data.line_id,
            expected_qty=data.expected_qty,
        )
        for p in data.pdf_texts
        if (p.text or "").strip()
    ]
    email = extract_from_text(
        data.email_text or "",
        source="email",
        po_number=data.po_number,
        line_id=data.line_id,
        expected_qty=data.expected_qty,
    )
    message_id = data.email_message_id

    order_field = choose_best_field(
        _best_across(pdfs, "order_numbers"),
        best_candidate(email.order_numbers),
        message_id,
        field_type=ParsedField[str],
    )
    date_pdf = _best_across(pdfs, "dates")
    date_email = best_candidate(email.dates)
    date_field = choose_best_field(date_pdf, date_email, message_id, field_type=ParsedField[str])

    qty_choice = pick_best_by_confidence(
        [_best_across(pdfs, "quantities"), best_candidate(email.quantities)]
    )
    if qty_choice is not None and qty_choice.confidence < min_qty_conf:
        logger.info(
            "Supplier quantity %s discarded: confidence %.2f < %.2f",
            qty_choice.value,
            qty_choice.confidence,
            min_qty_conf,
        )
        qty_choice = None
    qty_field = to_parsed_field(qty_choice, message_id, field_type=ParsedField[Quantity])

    all_quantities = rank_quantity_candidates(_gather(pdfs, "quantities") + email.quantities)
    all_dates = rank_date_candidates(_gather(pdfs, "dates") + email.dates)
    all_orders = rank_order_number_candidates(_gather(pdfs, "order_numbers") + email.order_numbers)

    result = assemble_result(
        supplier_order_number=order_field,
        confirmed_delivery_date=date_field,
        supplier_confirmed_quantity=qty_field,
        expected_qty=data.expected_qty,
        extraction_method="deterministic",
    )

    if data.debug:
        result.debug_candidates = _debug_block(
            all_dates,
            all_quantities,
            all_orders,
            _date_reason(all_dates, pick_best_by_confidence([date_pdf, date_email])),
            _quantity_reason(all_quantities, qty_choice, min_qty_conf),
        )

    logger.debug(
        "Deterministic parse: so=%s date=%s qty=%s source=%s missing=%s",
        order_field.value,
        date_field.value,
        qty_field.value,
        result.evidence_source,
        result.missing_fields,
    )
    return DeterministicOutcome(result=result, ranked_quantities=all_quantities)


def parse_confirmation_fields(data: ParseInput) -> ParsedConfirmationFieldsV1:
    """Deterministic-only parse of one confirmation."""
    return run_deterministic(data).result
