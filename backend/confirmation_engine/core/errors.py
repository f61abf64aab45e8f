"""Typed errors raised by the confirmation engine.

A field without evidence is returned as ``null`` with confidence 0, never
raised.
"""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Deployment defect, e.g. the completion-service credential is missing.

    Propagates out of the hybrid orchestrator unchanged.
    """


class LLMResponseError(ValueError):
    """The completion service answered, but not with a usable JSON object."""
