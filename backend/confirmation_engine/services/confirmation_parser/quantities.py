"""Label-aware quantity extraction with dimension/spec exclusion (deterministic, no AI).

Steel and tube acknowledgements mix real quantities with physical specs such as
``1.500 SQ X .120 X 20/24 A500``. Numbers are therefore classified in two tiers:

* *rejected*: never a quantity (line id echoed back, calendar year, money,
  part of a date, out of range); dropped before scoring.
* *excluded*: embedded in a dimension or grade code; kept for the debug trace
  with an ``exclusion_reason`` but never selected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from .anchors import DOM_NEIGHBORHOOD_LINES, distance_boost, neighborhood
from .candidates import Candidate
from .dates import date_spans, find_label_hits
from .text_tools import NormalizedText, NumericToken, clamp01, iter_numeric_tokens

logger = logging.getLogger(__name__)

LABEL_WINDOW_CHARS = 60
MAX_QUANTITY = 10_000_000

WEIGHT_UNIT_PENALTY = 0.3
EXPECTED_MATCH_BONUS = 0.4
PLAUSIBLE_BONUS = 0.1
PLAUSIBLE_RANGE = (1, 10_000)

WEIGHT_UNIT_RE = re.compile(
    r"\b(?:lbs?|ft|feet|foot|ga|gauge|od|id|mm|cm|kgs?|wt|weight|inch(?:es)?)\b",
    re.IGNORECASE,
)
UOM_RE = re.compile(r"^(?:ea|each|pcs?|pieces?|units?|pk|pkg|bx|box(?:es)?|cs|rolls?|sets?|lengths?|ct)$", re.I)
UOM_HINT_RE = re.compile(r"\b(?:ea|each|pcs?|pieces?|units?)\b", re.IGNORECASE)
MONEY_TOKEN_RE = re.compile(r"^\d{1,3}(?:,\d{3})*\.\d{2}$|^\d+\.\d{2}$")

_MULT_MARKER_RE = re.compile(r"(?:(?<=[\d\s.])|^)[xX×](?=[\s\d.]|$)")
_FRACTION_RE = re.compile(r"(?<![\d/])\d{1,3}/\d{1,3}(?![\d/])")
_INCH_MARK_RE = re.compile(r"\d[\"”']")
_BARE_DECIMAL_RE = re.compile(r"(?<![\d.])\.\d+")


@dataclass(frozen=True)
class QuantityLabel:
    name: str
    pattern: re.Pattern
    priority: int


QUANTITY_LABELS: tuple[QuantityLabel, ...] = (
    QuantityLabel("Confirmed Qty", re.compile(r"\bconfirmed\s*(?:qty|quantity)\b", re.I), 100),
    QuantityLabel("Order Qty", re.compile(r"\border(?:ed)?\s*(?:qty|quantity)\b", re.I), 80),
    QuantityLabel("Qty", re.compile(r"\b(?:qty|quantity)\b", re.I), 60),
    QuantityLabel("Shipped", re.compile(r"\bshipped(?:\s*(?:qty|quantity))?\b", re.I), 50),
    QuantityLabel("Balance", re.compile(r"\bbalance(?:\s*(?:qty|quantity|due))?\b", re.I), 40),
)

ANY_QTY_LABEL_RE = re.compile(r"\b(?:qty|quantity|shipped|balance)\b", re.IGNORECASE)
QTY_WORD_RE = re.compile(r"\b(?:qty|quantity)\b", re.IGNORECASE)
COLUMN_WORD_RE = re.compile(
    r"\b(?:item|line|part|description|uom|unit|price|amount|ext(?:ended|\.)?)\b", re.IGNORECASE
)


def label_confidence(priority: int) -> float:
    return 0.5 + priority / 200


def is_column_header(line: str) -> bool:
    """A table header row: a quantity column word next to other column words, no figures."""
    if any(ch.isdigit() for ch in line):
        return False
    return bool(QTY_WORD_RE.search(line) and COLUMN_WORD_RE.search(line))


def is_plausible_quantity(value: float) -> bool:
    lo, hi = PLAUSIBLE_RANGE
    return float(value).is_integer() and lo <= value <= hi


def looks_like_money(text: str, token: NumericToken) -> bool:
    if MONEY_TOKEN_RE.match(token.text):
        return True
    j = token.start - 1
    while j >= 0 and text[j] == " ":
        j -= 1
    return j >= 0 and text[j] == "$"


def count_dimension_markers(line: str) -> int:
    return (
        len(_MULT_MARKER_RE.findall(line))
        + len(_FRACTION_RE.findall(line))
        + len(_INCH_MARK_RE.findall(line))
        + len(_BARE_DECIMAL_RE.findall(line))
    )


def _letters_after(text: str, pos: int) -> str:
    end = pos
    while end < len(text) and text[end].isalpha():
        end += 1
    return text[pos:end]


def _prev_non_space(text: str, pos: int) -> tuple[int, str]:
    j = pos - 1
    while j >= 0 and text[j] == " ":
        j -= 1
    return j, (text[j] if j >= 0 else "")


def _next_non_space(text: str, pos: int) -> tuple[int, str]:
    j = pos
    while j < len(text) and text[j] == " ":
        j += 1
    return j, (text[j] if j < len(text) else "")


def dimension_exclusion(text: str, token: NumericToken, line: Optional[str]) -> Optional[str]:
    """Return why ``token`` is part of a dimension/spec string, or ``None``.

    ``line`` is the full text line containing the token; pass ``None`` to judge
    the token only by its neighbours (table rows put a description and the
    quantity on one line).
    """
    before = text[token.start - 1] if token.start > 0 else ""
    after = text[token.end] if token.end < len(text) else ""

    j, prev = _prev_non_space(text, token.start)
    if prev in ("x", "X", "×"):
        prev2 = text[j - 1] if j >= 1 else " "
        if not prev2.isalpha():
            return "multiplication"
    j, nxt = _next_non_space(text, token.end)
    if nxt in ("x", "X", "×"):
        nxt2 = text[j + 1] if j + 1 < len(text) else " "
        if not nxt2.isalpha():
            return "multiplication"

    if before.isalpha():
        return "alphanumeric_code"
    if after.isalpha() and not UOM_RE.match(_letters_after(text, token.end)):
        return "alphanumeric_code"

    if before == "-" and token.start >= 2 and text[token.start - 2].isalnum():
        return "part_number"
    if after == "-" and token.end + 1 < len(text) and text[token.end + 1].isalnum():
        return "part_number"

    if before == "/" or after == "/":
        return "fraction"

    if after in ('"', "”", "'"):
        return "dimension_unit"

    if token.text.startswith("."):
        return "decimal_spec"
    if "." in token.text and len(token.text.rsplit(".", 1)[1]) >= 3:
        return "decimal_spec"

    if line is not None and count_dimension_markers(line) >= 2:
        return "dimension_line"
    return None


@dataclass(frozen=True)
class QuantityContext:
    """Read-only context for one text: PO anchors, line id, expected quantity."""

    source: str
    anchors: Sequence[int] = ()
    line_id: Optional[str] = None
    expected_qty: Optional[float] = None


class TokenScanner:
    """Classifies numeric tokens of one normalised text."""

    def __init__(self, norm: NormalizedText, ctx: QuantityContext):
        self.norm = norm
        self.ctx = ctx
        self._date_spans = date_spans(norm.text)
        lid = (ctx.line_id or "").strip()
        self._line_id = int(lid) if lid.isdigit() else None

    def _inside_date(self, token: NumericToken) -> bool:
        return any(s <= token.start and token.end <= e for s, e in self._date_spans)

    def reject_reason(self, token: NumericToken, *, allow_money: bool = False) -> Optional[str]:
        value = token.value
        if value <= 0 or value > MAX_QUANTITY:
            return "out_of_range"
        if self._inside_date(token):
            return "date_token"
        is_int_text = "." not in token.text
        if self._line_id is not None and is_int_text and value == self._line_id:
            return "line_id_echo"
        if is_int_text and "," not in token.text and 1990 <= value <= 2100:
            return "year"
        if not allow_money and looks_like_money(self.norm.text, token):
            return "currency"
        return None

    def exclusion_reason(self, token: NumericToken, *, row_local: bool = False) -> Optional[str]:
        line = None if row_local else self.norm.line_at(token.start)
        return dimension_exclusion(self.norm.text, token, line)

    def make(
        self,
        token: NumericToken,
        *,
        base: float,
        label: str,
        priority: int,
        origin: str,
        excluded_reason: Optional[str] = None,
        line_index: Optional[int] = None,
    ) -> Candidate:
        idx = self.norm.line_index_at(token.start) if line_index is None else line_index
        return Candidate(
            value=token.value,
            confidence=clamp01(base + distance_boost(self.ctx.anchors, idx)),
            evidence_snippet=self.norm.line_snippet(idx),
            source=self.ctx.source,
            label=label,
            priority=priority,
            origin=origin,
            line_index=idx,
            excluded=excluded_reason is not None,
            exclusion_reason=excluded_reason,
        )


def extract_labeled_quantities(norm: NormalizedText, ctx: QuantityContext) -> list[Candidate]:
    """Scan a window after every quantity label; the first clean number is the label's candidate."""
    scanner = TokenScanner(norm, ctx)
    text = norm.text
    out: list[Candidate] = []

    for hit in find_label_hits(text, QUANTITY_LABELS):
        # Column names are handled by the table parsers.
        if is_column_header(norm.line_at(hit.start)):
            continue
        window_end = min(len(text), hit.end + LABEL_WINDOW_CHARS)
        for token in iter_numeric_tokens(text, hit.end, window_end):
            if scanner.reject_reason(token):
                continue
            reason = scanner.exclusion_reason(token)
            cand = scanner.make(
                token,
                base=label_confidence(hit.priority),
                label=hit.label,
                priority=hit.priority,
                origin="label",
                excluded_reason=reason,
            )
            out.append(cand)
            if reason is None:
                break
    return out


def scan_dom_neighborhoods(
    norm: NormalizedText,
    ctx: QuantityContext,
    dom_anchors: Sequence[int],
    radius: int = DOM_NEIGHBORHOOD_LINES,
) -> list[Candidate]:
    """Last-resort loose numeric scan around ``DOM`` description lines."""
    scanner = TokenScanner(norm, ctx)
    seen: set[int] = set()
    out: list[Candidate] = []
    for anchor in dom_anchors:
        for i in neighborhood(anchor, len(norm.lines), radius):
            if i in seen:
                continue
            seen.add(i)
            if ANY_QTY_LABEL_RE.search(norm.lines[i]):
                continue
            start, end = norm.line_bounds(i)
            for token in iter_numeric_tokens(norm.text, start, end):
                if scanner.reject_reason(token):
                    continue
                out.append(
                    scanner.make(
                        token,
                        base=0.5,
                        label="DOM neighborhood",
                        priority=0,
                        origin="dom_anchor",
                        excluded_reason=scanner.exclusion_reason(token),
                        line_index=i,
                    )
                )
    return out


def score_quantity_candidates(
    candidates: Sequence[Candidate],
    norm: NormalizedText,
    expected_qty: Optional[float] = None,
) -> list[Candidate]:
    """Apply weight-unit penalty, expected-quantity and plausibility bonuses."""
    scored: list[Candidate] = []
    for cand in candidates:
        line = norm.lines[cand.line_index] if cand.line_index is not None else ""
        near_weight = bool(WEIGHT_UNIT_RE.search(line))
        conf = cand.confidence
        if near_weight:
            conf -= WEIGHT_UNIT_PENALTY
        if expected_qty is not None and abs(float(cand.value) - float(expected_qty)) < 1e-9:
            conf += EXPECTED_MATCH_BONUS
        if is_plausible_quantity(cand.value):
            conf += PLAUSIBLE_BONUS
        scored.append(replace(cand, confidence=clamp01(conf), near_weight_unit=near_weight))
    return scored
