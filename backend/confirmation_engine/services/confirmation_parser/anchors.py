"""Anchor locator: lines that mention the PO number or line id, plus ``DOM`` description lines."""

from __future__ import annotations

import re
from typing import Optional, Sequence

# (max line distance, bonus), nearest first.
DISTANCE_BONUSES: tuple[tuple[int, float], ...] = ((2, 0.18), (5, 0.12), (12, 0.06))

DOM_RE = re.compile(r"\bDOM\b", re.IGNORECASE)
DOM_NEIGHBORHOOD_LINES = 8


def locate_anchors(
    lines: Sequence[str],
    po_number: Optional[str] = None,
    line_id: Optional[str] = None,
) -> tuple[int, ...]:
    """Return sorted indices of lines where the PO number or numeric line id appear."""
    found: set[int] = set()

    po = (po_number or "").strip()
    if po:
        po_re = re.compile(rf"(?<![A-Za-z0-9]){re.escape(po)}(?![A-Za-z0-9])", re.IGNORECASE)
        found.update(i for i, line in enumerate(lines) if po_re.search(line))

    lid = (line_id or "").strip()
    if lid.isdigit():
        line_re = re.compile(rf"\b(?:line\s*#?\s*)?{lid}\b", re.IGNORECASE)
        found.update(i for i, line in enumerate(lines) if line_re.search(line))

    return tuple(sorted(found))


def locate_dom_anchors(lines: Sequence[str]) -> tuple[int, ...]:
    return tuple(i for i, line in enumerate(lines) if DOM_RE.search(line))


def distance_boost(anchors: Sequence[int], index: Optional[int]) -> float:
    if not anchors or index is None:
        return 0.0
    d = min(abs(a - index) for a in anchors)
    for max_distance, bonus in DISTANCE_BONUSES:
        if d <= max_distance:
            return bonus
    return 0.0


def neighborhood(anchor: int, total_lines: int, radius: int = DOM_NEIGHBORHOOD_LINES) -> range:
    return range(max(0, anchor - radius), min(total_lines, anchor + radius + 1))
