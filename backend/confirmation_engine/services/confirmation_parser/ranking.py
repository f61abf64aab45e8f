"""Candidate ranking, cross-source field choice and quantity reconciliation."""

from __future__ import annotations

from typing import Optional, Sequence

from confirmation_engine.schemas.confirmation import ParsedField, QuantityMismatch

from .candidates import Candidate

# Quantities within this much of their group's best confidence are tied; the smaller value wins.
QTY_TIE_WINDOW = 0.05


def _quantity_group(c: Candidate) -> tuple[bool, bool, int]:
    return (c.excluded, c.near_weight_unit, -c.priority)


def rank_quantity_candidates(candidates: Sequence[Candidate]) -> list[Candidate]:
    """Order quantity candidates: clean, away from weight units, label priority, confidence.

    Confidence ties are judged against the best confidence of the same
    (excluded, weight-unit, priority) group, so the order does not depend on
    the order the extractors produced the candidates in.
    """
    group_best: dict[tuple[bool, bool, int], float] = {}
    for c in candidates:
        group = _quantity_group(c)
        group_best[group] = max(group_best.get(group, c.confidence), c.confidence)

    def key(c: Candidate):
        group = _quantity_group(c)
        if group_best[group] - c.confidence <= QTY_TIE_WINDOW:
            return (group, 0, 0.0, c.value)
        return (group, 1, -c.confidence, c.value)

    return sorted(candidates, key=key)


def rank_date_candidates(candidates: Sequence[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=lambda c: (-c.priority, -c.confidence))


def rank_order_number_candidates(candidates: Sequence[Candidate]) -> list[Candidate]:
    return sorted(candidates, key=lambda c: -c.confidence)


def best_candidate(ranked: Sequence[Candidate]) -> Optional[Candidate]:
    """First usable candidate of an already ranked list."""
    for cand in ranked:
        if not cand.excluded and cand.confidence > 0:
            return cand
    return None


def pick_best_by_confidence(candidates: Sequence[Optional[Candidate]]) -> Optional[Candidate]:
    """Highest confidence wins; the earlier candidate wins ties."""
    best: Optional[Candidate] = None
    for cand in candidates:
        if cand is None:
            continue
        if best is None or cand.confidence > best.confidence:
            best = cand
    return best


def to_parsed_field(
    cand: Optional[Candidate],
    message_id: Optional[str] = None,
    field_type: type[ParsedField] = ParsedField,
) -> ParsedField:
    if cand is None:
        return field_type()
    return field_type(
        value=cand.value,
        confidence=round(cand.confidence, 4),
        evidence_snippet=cand.evidence_snippet or None,
        source=cand.source,
        attachment_id=cand.attachment_id if cand.source == "pdf" else None,
        message_id=message_id if cand.source == "email" else None,
    )


def choose_best_field(
    pdf: Optional[Candidate],
    email: Optional[Candidate],
    message_id: Optional[str] = None,
    field_type: type[ParsedField] = ParsedField,
) -> ParsedField:
    """Merge the best PDF and best email candidate for one field.

    The PDF candidate is compared first, so it keeps the field on equal
    confidence.
    """
    return to_parsed_field(pick_best_by_confidence([pdf, email]), message_id, field_type)


def format_quantity(value) -> str:
    if value is None:
        return "none"
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:g}"


def build_quantity_mismatch(ordered, supplier) -> QuantityMismatch:
    if ordered is None and supplier is None:
        return QuantityMismatch(value=None, reason="ordered and supplier quantities missing")
    if ordered is None:
        return QuantityMismatch(
            value=None,
            reason=f"ordered quantity missing; supplier={format_quantity(supplier)}",
        )
    if supplier is None:
        return QuantityMismatch(
            value=None,
            reason=f"supplier quantity missing; ordered={format_quantity(ordered)}",
        )
    pair = f"ordered={format_quantity(ordered)}, supplier={format_quantity(supplier)}"
    if abs(float(ordered) - float(supplier)) < 1e-9:
        return QuantityMismatch(value=False, reason=f"match: {pair}")
    return QuantityMismatch(value=True, reason=f"mismatch: {pair}")


def quantity_spread(ranked: Sequence[Candidate]) -> Optional[float]:
    """Confidence gap between the two best distinct quantity values.

    ``None`` when fewer than two distinct usable values exist.
    """
    top: list[Candidate] = []
    for cand in ranked:
        if cand.excluded:
            continue
        if any(abs(float(cand.value) - float(t.value)) < 1e-9 for t in top):
            continue
        top.append(cand)
        if len(top) == 2:
            return abs(top[0].confidence - top[1].confidence)
    return None
