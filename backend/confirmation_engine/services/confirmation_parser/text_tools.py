"""Text normalisation, numeric tokenising and snippet helpers shared by every extractor."""

from __future__ import annotations

import bisect
import math
import re
from dataclasses import dataclass, field

_HSPACE_RE = re.compile(r"[ \t\f\v\u00a0]+")
_ANY_WS_RE = re.compile(r"\s+")

# Thousands-separated integers, plain integers/decimals, and bare ".120" style decimals.
NUMBER_RE = re.compile(r"(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?|\.\d+")

SNIPPET_MAX_CHARS = 220


def clamp01(n: float) -> float:
    if not math.isfinite(n):
        return 0.0
    return max(0.0, min(1.0, n))


def normalize_ws(text: str) -> str:
    """Unify line endings and collapse horizontal whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return _HSPACE_RE.sub(" ", text).strip()


def split_lines(text: str) -> list[str]:
    return [line.strip() for line in normalize_ws(text).split("\n") if line.strip()]


def clean_token(raw: str) -> str:
    return raw.strip(" \t:>#.,;()").strip()


def collapse(text: str) -> str:
    return _ANY_WS_RE.sub(" ", text).strip()


def to_number(token: str) -> int | float | None:
    """``"1,250"`` -> 1250, ``"12.5"`` -> 12.5; integral values come back as ``int``."""
    raw = token.replace(",", "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    if value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class NumericToken:
    text: str
    value: int | float
    start: int
    end: int


@dataclass
class NormalizedText:
    """Evidence text as non-empty trimmed lines joined by ``\\n``.

    Offsets into :attr:`text` map back to line indices, so window scans over the
    flattened text can still use line-local context.
    """

    lines: list[str]
    text: str = ""
    _starts: list[int] = field(default_factory=list, repr=False)

    @classmethod
    def from_raw(cls, raw: str) -> "NormalizedText":
        lines = split_lines(raw)
        starts: list[int] = []
        pos = 0
        for line in lines:
            starts.append(pos)
            pos += len(line) + 1
        return cls(lines=lines, text="\n".join(lines), _starts=starts)

    def line_index_at(self, offset: int) -> int:
        if not self._starts:
            return 0
        return max(0, bisect.bisect_right(self._starts, offset) - 1)

    def line_bounds(self, index: int) -> tuple[int, int]:
        start = self._starts[index]
        return start, start + len(self.lines[index])

    def line_at(self, offset: int) -> str:
        if not self.lines:
            return ""
        return self.lines[self.line_index_at(offset)]

    def line_snippet(self, index: int) -> str:
        lo = max(0, index - 1)
        hi = min(len(self.lines), index + 2)
        return collapse(" ".join(self.lines[lo:hi]))[:SNIPPET_MAX_CHARS]

    def snippet_around(self, offset: int) -> str:
        return snippet_around(self.text, offset)


def snippet_around(text: str, offset: int) -> str:
    lo = max(0, offset - 120)
    hi = min(len(text), offset + 220)
    return collapse(text[lo:hi])[:SNIPPET_MAX_CHARS]


def iter_numeric_tokens(text: str, start: int = 0, end: int | None = None):
    """Yield :class:`NumericToken` for every number in ``text[start:end]``.

    Offsets are absolute positions in ``text`` so callers can inspect the
    surrounding characters.
    """
    stop = len(text) if end is None else min(end, len(text))
    for m in NUMBER_RE.finditer(text, start):
        if m.start() >= stop:
            break
        value = to_number(m.group(0))
        if value is None:
            continue
        yield NumericToken(text=m.group(0), value=value, start=m.start(), end=m.end())
