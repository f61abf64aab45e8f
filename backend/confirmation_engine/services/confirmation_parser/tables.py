"""Table-row quantity parsers for acknowledgement line tables.

Two layouts are recognised:

* ``Qty | Unit Price | Extended`` tables, where the quantity is the number
  printed immediately before the first price on a row.
* Generic ``Line | Qty | Description | UOM ...`` tables, where the most
  quantity-like number on each row is taken.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .candidates import Candidate
from .quantities import (
    ANY_QTY_LABEL_RE,
    UOM_HINT_RE,
    UOM_RE,
    QuantityContext,
    TokenScanner,
    is_column_header,
    looks_like_money,
)
from .text_tools import NormalizedText, NumericToken, iter_numeric_tokens

logger = logging.getLogger(__name__)

QTY_PRICE_BASE = 0.72
QTY_PRICE_PRIORITY = 55
GENERIC_BASE_WITH_UOM = 0.68
GENERIC_BASE = 0.56
GENERIC_PRIORITY = 30
LARGE_VALUE_PENALTY = 0.08
MONEY_PENALTY = 0.2

QTY_PRICE_ROWS = 12
GENERIC_ROWS = 11

QTY_PRICE_HEADER_RE = re.compile(
    r"\b(?:qty|quantity)\b.*\bunit\s*price\b.*\bext(?:ended|\.|ension)?\b",
    re.IGNORECASE,
)
TOTAL_ROW_RE = re.compile(r"\b(?:sub\s*)?total\b", re.IGNORECASE)
_PRICE_RE = re.compile(r"^\d{1,3}(?:,\d{3})*\.\d{2}$|^\d+\.\d{2}$")
_PRICE_LONG_RE = re.compile(r"^\d+\.\d{3,4}$")


def _is_index_part_pair(tokens: list[NumericToken], i: int) -> bool:
    """``1  18195 ...``: a row number followed by a part number."""
    if i != 1:
        return False
    first, second = tokens[0], tokens[1]
    return (
        "." not in first.text
        and first.value <= 999
        and "." not in second.text
        and "," not in second.text
        and len(second.text) >= 5
    )


def _row_tokens(norm: NormalizedText, index: int) -> list[NumericToken]:
    start, end = norm.line_bounds(index)
    return list(iter_numeric_tokens(norm.text, start, end))


def _is_price(scanner: TokenScanner, token: NumericToken) -> bool:
    if not (
        _PRICE_RE.match(token.text)
        or (_PRICE_LONG_RE.match(token.text) and looks_like_money(scanner.norm.text, token))
    ):
        return False
    # Two-decimal figures inside a spec such as 2.50 X 1.25 are not prices.
    reason = scanner.exclusion_reason(token, row_local=True)
    return reason is None or reason == "decimal_spec"


def parse_qty_price_table(norm: NormalizedText, ctx: QuantityContext) -> list[Candidate]:
    """Quantities from ``Qty / Unit Price / Extended`` rows."""
    scanner = TokenScanner(norm, ctx)
    out: list[Candidate] = []

    for h, header in enumerate(norm.lines):
        if not QTY_PRICE_HEADER_RE.search(header):
            continue
        for i in range(h + 1, min(len(norm.lines), h + 1 + QTY_PRICE_ROWS)):
            row = norm.lines[i]
            if TOTAL_ROW_RE.search(row) or QTY_PRICE_HEADER_RE.search(row):
                break
            tokens = _row_tokens(norm, i)
            price_at = next((k for k, t in enumerate(tokens) if _is_price(scanner, t)), None)
            if not price_at:  # no price, or nothing printed before it
                continue
            q = price_at - 1
            token = tokens[q]
            if _is_index_part_pair(tokens, q):
                continue
            if scanner.reject_reason(token):
                continue
            out.append(
                scanner.make(
                    token,
                    base=QTY_PRICE_BASE,
                    label="Qty/Unit Price/Extended",
                    priority=QTY_PRICE_PRIORITY,
                    origin="table_qty_price",
                    excluded_reason=scanner.exclusion_reason(token, row_local=True),
                    line_index=i,
                )
            )
    return out


def _followed_by_uom(text: str, token: NumericToken) -> bool:
    m = re.match(r"\s*([A-Za-z]+)", text[token.end :])
    return bool(m and UOM_RE.match(m.group(1)))


def _pick_generic(
    scanner: TokenScanner, tokens: list[NumericToken]
) -> tuple[Optional[NumericToken], list[tuple[NumericToken, str]]]:
    text = scanner.norm.text
    clean: list[tuple[int, NumericToken]] = []
    excluded: list[tuple[NumericToken, str]] = []
    for pos, token in enumerate(tokens):
        if scanner.reject_reason(token, allow_money=True):
            continue
        if pos == 0 and len(tokens) > 1 and "." not in token.text and token.value <= 999:
            # Leading row number.
            if not _followed_by_uom(text, token):
                continue
        if "." not in token.text and "," not in token.text and len(token.text) >= 5:
            continue
        reason = scanner.exclusion_reason(token, row_local=True)
        if reason:
            excluded.append((token, reason))
            continue
        clean.append((pos, token))

    if not clean:
        return None, excluded

    def qty_rank(item: tuple[int, NumericToken]):
        pos, token = item
        return (
            not _followed_by_uom(text, token),
            not float(token.value).is_integer(),
            looks_like_money(text, token),
            pos,
        )

    clean.sort(key=qty_rank)
    return clean[0][1], excluded


def parse_generic_table(norm: NormalizedText, ctx: QuantityContext) -> list[Candidate]:
    """Quantities from a header row followed by data rows."""
    scanner = TokenScanner(norm, ctx)
    out: list[Candidate] = []

    for h, header in enumerate(norm.lines):
        if not is_column_header(header) or QTY_PRICE_HEADER_RE.search(header):
            continue
        for i in range(h + 1, min(len(norm.lines), h + 1 + GENERIC_ROWS)):
            row = norm.lines[i]
            if TOTAL_ROW_RE.search(row) or is_column_header(row):
                break
            if ANY_QTY_LABEL_RE.search(row):
                continue
            best, excluded = _pick_generic(scanner, _row_tokens(norm, i))
            for token, reason in excluded:
                out.append(
                    scanner.make(
                        token,
                        base=GENERIC_BASE,
                        label="Table row",
                        priority=GENERIC_PRIORITY,
                        origin="table_generic",
                        excluded_reason=reason,
                        line_index=i,
                    )
                )
            if best is None:
                continue
            base = GENERIC_BASE_WITH_UOM if UOM_HINT_RE.search(row) else GENERIC_BASE
            if best.value > 100_000:
                base -= LARGE_VALUE_PENALTY
            if looks_like_money(norm.text, best):
                base -= MONEY_PENALTY
            out.append(
                scanner.make(
                    best,
                    base=base,
                    label="Table row",
                    priority=GENERIC_PRIORITY,
                    origin="table_generic",
                    line_index=i,
                )
            )
    if out:
        logger.debug("Generic table rows produced %d quantity candidates", len(out))
    return out
