"""Mock provider: deterministic, network-free answers for tests and local runs."""

from __future__ import annotations

import json
import time

from .base import BaseProvider, ProviderResult

EMPTY_CONFIRMATION = {
    "supplier_order_number": None,
    "delivery_date": None,
    "quantity": None,
    "unit_price": None,
    "extended_price": None,
    "currency": None,
    "payment_terms": None,
    "freight_terms": None,
    "freight_cost": None,
    "subtotal": None,
    "tax_amount": None,
    "order_total": None,
    "notes": None,
    "backorder_status": None,
}


class MockProvider(BaseProvider):
    name = "mock"

    def __init__(self, payload: dict | None = None) -> None:
        self._payload = dict(EMPTY_CONFIRMATION) if payload is None else payload

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        model: str = "",
        temperature: float = 0.0,
        max_tokens: int = 1200,
        timeout_seconds: float = 30.0,
    ) -> ProviderResult:
        t0 = time.monotonic()
        text = json.dumps(self._payload)
        elapsed = (time.monotonic() - t0) * 1000
        return ProviderResult(
            raw_text=text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=round(elapsed, 2),
        )
