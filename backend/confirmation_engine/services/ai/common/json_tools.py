"""Recover a JSON payload from completion text that may wrap it in prose or a code fence."""

from __future__ import annotations

import json
import logging
import re

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_DECODER = json.JSONDecoder()


def strip_code_fence(text: str) -> str:
    stripped = text.strip()
    m = _FENCE_RE.match(stripped)
    return m.group(1) if m else stripped


def extract_json(text: str) -> dict | list | None:
    """Return the first JSON object or array found in *text*, or ``None``.

    The whole (fence-stripped) text is tried first; after that every ``{`` or
    ``[`` is tried as the start of a document, ignoring trailing prose.
    """
    if not text or not text.strip():
        return None

    body = strip_code_fence(text)
    try:
        return json.loads(body)
    except ValueError:
        pass

    for i, ch in enumerate(body):
        if ch not in "{[":
            continue
        try:
            parsed, _ = _DECODER.raw_decode(body, i)
        except ValueError:
            continue
        if isinstance(parsed, (dict, list)):
            return parsed
    return None


def extract_json_object(text: str) -> dict | None:
    """Like :func:`extract_json` but only accepts an object."""
    parsed = extract_json(text)
    if isinstance(parsed, dict):
        return parsed
    if parsed is not None:
        logger.warning("Expected a JSON object, got %s", type(parsed).__name__)
    return None
