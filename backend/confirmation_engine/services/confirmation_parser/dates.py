"""Label-aware date extraction and date-token canonicalisation (deterministic, no AI)."""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from .anchors import distance_boost
from .candidates import Candidate
from .text_tools import NormalizedText, clamp01

logger = logging.getLogger(__name__)

LABEL_WINDOW_CHARS = 100
LEGACY_BASE_CONFIDENCE = 0.55

MONTHS: dict[str, int] = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

DATE_TOKEN_RE = re.compile(
    r"(?<!\d)\d{4}-\d{2}-\d{2}(?!\d)"
    r"|\b\d{1,2}[/-]\d{1,2}[/-]\d{2,4}\b"
    r"|\b[A-Za-z]{3,9}\.?\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}\b"
    r"|\b\d{1,2}\s+[A-Za-z]{3,9}\.?,?\s+\d{4}\b"
)

_ISO_RE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")
_SLASH_RE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{2,4})\b")
_NAMED_RE = re.compile(r"\b([A-Za-z]{3,9})\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b")
_DAY_FIRST_RE = re.compile(r"\b(\d{1,2})\s+([A-Za-z]{3,9})\.?,?\s+(\d{4})\b")

_LEGACY_KEYWORD_RE = re.compile(
    r"\b(?:ship(?:s|ped|ping|ment)?|deliver(?:y|ed|ing|s)?|eta|arriv(?:e|es|al|ing)|dispatch(?:ed|es)?)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class DateLabel:
    name: str
    pattern: re.Pattern
    priority: int


# Highest priority first. "Order Date" only wins when nothing else matched.
DATE_LABELS: tuple[DateLabel, ...] = (
    DateLabel("Confirmed Ship Date", re.compile(r"\bconfirmed\s+ship(?:ping)?\s+date\b", re.I), 100),
    DateLabel("Confirmed Delivery Date", re.compile(r"\bconfirmed\s+delivery\s+date\b", re.I), 95),
    DateLabel("Ship Date", re.compile(r"\bship(?:ping)?\s+date\b", re.I), 80),
    DateLabel("Delivery Date", re.compile(r"\bdelivery\s+date\b", re.I), 75),
    DateLabel("Deliver By", re.compile(r"\bdeliver(?:y)?\s+by\b", re.I), 70),
    DateLabel(
        "Expected Ship/Delivery",
        re.compile(r"\bexpected\s+(?:ship(?:ment)?|delivery)(?:\s+date)?\b", re.I),
        65,
    ),
    DateLabel("Promise Date", re.compile(r"\bpromise(?:d)?\s+(?:ship\s+|delivery\s+)?date\b", re.I), 60),
    DateLabel("Order Date", re.compile(r"\border\s+date\b", re.I), 10),
)


def label_confidence(priority: int) -> float:
    return 0.5 + priority / 200


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return dt.date(year, month, day).isoformat()
    except ValueError:
        return None


def _pivot_year(year: int) -> int:
    if year < 100:
        return 2000 + year if year <= 69 else 1900 + year
    return year


def to_iso_date(raw: str) -> Optional[str]:
    """Canonicalise a date token to ``YYYY-MM-DD``.

    Accepts ISO dates (optionally with a time part), US ``M/D/YY[YY]`` and
    month-name forms. Two-digit years pivot at 69. Impossible calendar dates
    return ``None``.
    """
    s = (raw or "").strip()
    if not s:
        return None

    m = _ISO_RE.search(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _SLASH_RE.search(s)
    if m:
        month, day = int(m.group(1)), int(m.group(2))
        year = _pivot_year(int(m.group(3)))
        return _safe_date(year, month, day)

    m = _NAMED_RE.search(s)
    if m:
        month = MONTHS.get(m.group(1).lower())
        if month:
            return _safe_date(int(m.group(3)), month, int(m.group(2)))

    m = _DAY_FIRST_RE.search(s)
    if m:
        month = MONTHS.get(m.group(2).lower())
        if month:
            return _safe_date(int(m.group(3)), month, int(m.group(1)))

    return None


def iter_date_tokens(text: str, start: int = 0) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, iso_date)`` for every token that is a real calendar date.

    A match such as ``PCS 24 2500`` that fails canonicalisation is skipped and
    the scan resumes one character later.
    """
    pos = start
    while True:
        m = DATE_TOKEN_RE.search(text, pos)
        if m is None:
            return
        iso = to_iso_date(m.group(0))
        if iso is None:
            pos = m.start() + 1
            continue
        yield m.start(), m.end(), iso
        pos = m.end()


def date_spans(text: str) -> list[tuple[int, int]]:
    return [(s, e) for s, e, _ in iter_date_tokens(text)]


def first_date_in(text: str, start: int, end: int) -> Optional[tuple[str, int]]:
    """Return ``(iso_date, offset)`` of the first canonicalisable date token in ``text[start:end]``."""
    for s, _, iso in iter_date_tokens(text, start):
        if s >= end:
            break
        return iso, s
    return None


@dataclass(frozen=True)
class LabelHit:
    label: str
    priority: int
    start: int
    end: int


def find_label_hits(text: str, labels: Sequence) -> list[LabelHit]:
    """All label matches in ``text``; overlapping matches keep the longest, then highest priority."""
    hits = [
        LabelHit(label.name, label.priority, m.start(), m.end())
        for label in labels
        for m in label.pattern.finditer(text)
    ]
    hits.sort(key=lambda h: (-(h.end - h.start), -h.priority, h.start))
    accepted: list[LabelHit] = []
    for hit in hits:
        if any(hit.start < a.end and a.start < hit.end for a in accepted):
            continue
        accepted.append(hit)
    accepted.sort(key=lambda h: h.start)
    return accepted


def extract_date_candidates(
    norm: NormalizedText,
    source: str,
    anchors: Sequence[int] = (),
) -> list[Candidate]:
    """Label-aware candidates sorted by (priority desc, confidence desc).

    The unlabeled keyword scan only runs when no label produced a date.
    """
    text = norm.text
    hits = find_label_hits(text, DATE_LABELS)
    candidates: list[Candidate] = []

    for i, hit in enumerate(hits):
        window_end = hit.end + LABEL_WINDOW_CHARS
        if i + 1 < len(hits):
            window_end = min(window_end, hits[i + 1].start)
        found = first_date_in(text, hit.end, window_end)
        if not found:
            continue
        iso, _ = found
        line_idx = norm.line_index_at(hit.start)
        confidence = clamp01(label_confidence(hit.priority) + distance_boost(anchors, line_idx))
        candidates.append(
            Candidate(
                value=iso,
                confidence=confidence,
                evidence_snippet=norm.line_snippet(line_idx),
                source=source,
                label=hit.label,
                priority=hit.priority,
                origin="label",
                line_index=line_idx,
            )
        )

    if not candidates:
        candidates = _legacy_unlabeled_dates(norm, source, anchors)
        if candidates:
            logger.debug("No labeled date found; %d keyword-line candidates", len(candidates))

    candidates.sort(key=lambda c: (-c.priority, -c.confidence))
    return candidates


def _legacy_unlabeled_dates(
    norm: NormalizedText,
    source: str,
    anchors: Sequence[int],
) -> list[Candidate]:
    out: list[Candidate] = []
    for idx, line in enumerate(norm.lines):
        if not _LEGACY_KEYWORD_RE.search(line):
            continue
        for m in DATE_TOKEN_RE.finditer(line):
            iso = to_iso_date(m.group(0))
            if not iso:
                continue
            out.append(
                Candidate(
                    value=iso,
                    confidence=clamp01(LEGACY_BASE_CONFIDENCE + distance_boost(anchors, idx)),
                    evidence_snippet=norm.line_snippet(idx),
                    source=source,
                    label="Unlabeled",
                    priority=0,
                    origin="legacy",
                    line_index=idx,
                )
            )
    return out
