"""Transient candidate values produced by extractors before ranking."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Candidate:
    value: Any
    confidence: float
    evidence_snippet: str
    source: str
    label: str = ""
    priority: int = 0
    origin: str = ""
    line_index: Optional[int] = None
    excluded: bool = False
    exclusion_reason: Optional[str] = None
    near_weight_unit: bool = False
    attachment_id: Optional[str] = None
