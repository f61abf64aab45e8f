"""Supplier order number extraction: per-line scan plus a whole-text fallback."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Sequence

from .anchors import distance_boost
from .candidates import Candidate
from .text_tools import NormalizedText, clamp01, clean_token

MIN_LENGTH = 4
WHOLE_TEXT_PENALTY = 0.05

STOPWORDS = frozenset(
    {"for", "the", "and", "or", "to", "of", "a", "an", "in", "on", "with", "from", "by", "not", "all", "any"}
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_SLASH_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$")

_NUMBER_SUFFIX = r"\s*(?:no\.?|#|number|:)?\s*[:#]?\s*([A-Z0-9][A-Z0-9\-/]{3,})\b"


@dataclass(frozen=True)
class OrderNumberPattern:
    name: str
    pattern: re.Pattern
    base: float


ORDER_NUMBER_PATTERNS: tuple[OrderNumberPattern, ...] = (
    OrderNumberPattern(
        "Supplier/Sales Order",
        re.compile(r"\b(?:supplier\s*(?:sales\s*)?|sales\s*)order" + _NUMBER_SUFFIX, re.I),
        0.9,
    ),
    OrderNumberPattern("SO", re.compile(r"\b(?:so|s/o)" + _NUMBER_SUFFIX, re.I), 0.75),
    OrderNumberPattern(
        "Acknowledgment",
        re.compile(r"\b(?:acknowledg(?:e)?ment|ack)" + _NUMBER_SUFFIX, re.I),
        0.75,
    ),
    OrderNumberPattern("Order No", re.compile(r"\border" + _NUMBER_SUFFIX, re.I), 0.55),
)


def is_plausible_order_number(token: str, po_number: Optional[str] = None) -> bool:
    t = token.strip()
    if len(t) < MIN_LENGTH:
        return False
    if not any(ch.isdigit() for ch in t):
        return False
    if t.lower() in STOPWORDS:
        return False
    if _ISO_DATE_RE.match(t) or _SLASH_DATE_RE.match(t):
        return False
    if po_number and t.lower() == po_number.strip().lower():
        return False
    return True


def extract_order_number_candidates(
    norm: NormalizedText,
    source: str,
    *,
    anchors: Sequence[int] = (),
    po_number: Optional[str] = None,
) -> list[Candidate]:
    """Candidates sorted by confidence (desc); line matches first on ties."""
    out: list[Candidate] = []

    for idx, line in enumerate(norm.lines):
        for p in ORDER_NUMBER_PATTERNS:
            for m in p.pattern.finditer(line):
                raw = clean_token(m.group(1))
                if not is_plausible_order_number(raw, po_number):
                    continue
                out.append(
                    Candidate(
                        value=raw,
                        confidence=clamp01(p.base + distance_boost(anchors, idx)),
                        evidence_snippet=norm.line_snippet(idx),
                        source=source,
                        label=p.name,
                        origin="line",
                        line_index=idx,
                    )
                )

    # Label and value split across lines, or flattened PDF text.
    for p in ORDER_NUMBER_PATTERNS:
        for m in p.pattern.finditer(norm.text):
            raw = clean_token(m.group(1))
            if not is_plausible_order_number(raw, po_number):
                continue
            out.append(
                Candidate(
                    value=raw,
                    confidence=clamp01(p.base - WHOLE_TEXT_PENALTY),
                    evidence_snippet=norm.snippet_around(m.start()),
                    source=source,
                    label=p.name,
                    origin="whole_text",
                    line_index=norm.line_index_at(m.start()),
                )
            )

    out.sort(key=lambda c: -c.confidence)
    return out
