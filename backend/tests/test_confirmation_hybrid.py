"""Tests for the hybrid deterministic + LLM confirmation orchestrator."""

import asyncio
import os
import unittest
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from confirmation_engine.core.config import get_settings
from confirmation_engine.core.errors import ConfigurationError
from confirmation_engine.schemas.confirmation import ParseInput
from confirmation_engine.services.ai.common.providers import MockProvider, ProviderResult
from confirmation_engine.services.confirmation_hybrid import (
    llm_trigger_reason,
    parse_confirmation_fields_smart,
)
from confirmation_engine.services.confirmation_parser.service import run_deterministic

PDF_TEXT = "Confirmed Ship Date: 03/15/2025\nConfirmed Qty: 500\nSO# AB1234567"
TRUSTED_EMAIL = "Confirmed Ship Date: 2025-03-15\nSales Order No: SO-12345\nConfirmed Qty: 500"
AMBIGUOUS_EMAIL = "Confirmed Ship Date: 2025-03-15\nSales Order No: SO-12345\nQty: 500\nQuantity: 480"
NO_ORDER_EMAIL = "Confirmed Ship Date: 03/15/2025\nConfirmed Qty: 500"


def _pdf_input(**kwargs) -> ParseInput:
    return ParseInput(pdfTexts=[{"attachment_id": "att-1", "text": PDF_TEXT}], **kwargs)


def _failing_provider(exc: Exception) -> MockProvider:
    provider = MockProvider()
    provider.generate = AsyncMock(side_effect=exc)
    return provider


def _silent_provider() -> MockProvider:
    provider = MockProvider()
    provider.generate = AsyncMock()
    return provider


def _run(data: ParseInput, provider=None):
    return asyncio.run(parse_confirmation_fields_smart(data, provider=provider))


class TriggerTests(unittest.TestCase):
    def test_missing_field_triggers(self):
        outcome = run_deterministic(ParseInput(emailText=NO_ORDER_EMAIL))
        reason = llm_trigger_reason(outcome, get_settings())
        self.assertEqual(reason, "low confidence or missing: supplier_order_number")

    def test_close_quantities_trigger(self):
        outcome = run_deterministic(ParseInput(emailText=AMBIGUOUS_EMAIL))
        self.assertTrue(llm_trigger_reason(outcome, get_settings()).startswith("ambiguous quantity"))

    def test_confident_result_is_trusted(self):
        outcome = run_deterministic(ParseInput(emailText=TRUSTED_EMAIL))
        self.assertIsNone(llm_trigger_reason(outcome, get_settings()))


class DisabledAndEmptyTests(unittest.TestCase):
    def test_llm_disabled(self):
        provider = _silent_provider()
        with patch.dict(os.environ, {"AI_CONFIRMATION_LLM_ENABLED": "false"}):
            result = _run(_pdf_input(debug=True), provider)
        provider.generate.assert_not_awaited()
        self.assertEqual(result.extraction_method, "deterministic")
        self.assertEqual(result.debug_candidates.llm_decision, "LLM disabled")

    def test_no_evidence_text(self):
        provider = _silent_provider()
        result = _run(ParseInput(debug=True), provider)
        provider.generate.assert_not_awaited()
        self.assertEqual(result.evidence_source, "none")
        self.assertEqual(result.debug_candidates.llm_decision, "no evidence text")


class PdfPathTests(unittest.TestCase):
    def test_llm_result_used(self):
        provider = MockProvider(
            {"supplier_order_number": "AB1234567", "delivery_date": "2025-03-15", "quantity": 500}
        )
        result = _run(_pdf_input(debug=True, expectedQty=500), provider)
        self.assertEqual(result.extraction_method, "llm")
        self.assertEqual(result.supplier_order_number.value, "AB1234567")
        self.assertEqual(result.supplier_order_number.attachment_id, "att-1")
        self.assertEqual(result.supplier_confirmed_quantity.confidence, 0.85)
        self.assertIs(result.quantity_mismatch.value, False)
        self.assertEqual(result.debug_candidates.llm_decision, "pdf present; LLM result used")
        self.assertTrue(result.debug_candidates.qty_candidates)

    def test_transport_failure_falls_back(self):
        provider = _failing_provider(httpx.ConnectError("boom"))
        result = _run(_pdf_input(debug=True), provider)
        self.assertEqual(result.extraction_method, "deterministic")
        self.assertEqual(result.supplier_order_number.value, "AB1234567")
        self.assertIn("deterministic fallback", result.debug_candidates.llm_decision)

    def test_empty_answer_falls_back(self):
        result = _run(_pdf_input(), MockProvider())
        self.assertEqual(result.extraction_method, "deterministic")
        self.assertEqual(result.supplier_confirmed_quantity.value, 500)

    def test_unexpected_error_logged_and_falls_back(self):
        provider = _failing_provider(RuntimeError("bad"))
        with self.assertLogs("confirmation_engine.services.confirmation_hybrid", level="ERROR"):
            result = _run(_pdf_input(), provider)
        self.assertEqual(result.extraction_method, "deterministic")

    def test_missing_credentials_propagate(self):
        env = {
            "AI_ALLOWED_PROVIDERS": "openai",
            "AI_CONFIRMATION_PROVIDER": "openai",
            "OPENAI_API_KEY": "",
            "AI_CONFIRMATION_LLM_ENABLED": "true",
        }
        with patch.dict(os.environ, env):
            with self.assertRaises(ConfigurationError):
                _run(_pdf_input())


class EmailPathTests(unittest.TestCase):
    def test_trusted_deterministic_skips_llm(self):
        provider = _silent_provider()
        result = _run(ParseInput(emailText=TRUSTED_EMAIL, debug=True), provider)
        provider.generate.assert_not_awaited()
        self.assertEqual(result.extraction_method, "deterministic")
        self.assertEqual(result.debug_candidates.llm_decision, "deterministic result trusted")

    def test_missing_order_number_merged_from_llm(self):
        provider = MockProvider(
            {
                "supplier_order_number": "SO-4411",
                "delivery_date": "2025-04-01",
                "quantity": 480,
                "payment_terms": "Net 30",
            }
        )
        data = ParseInput(emailText=NO_ORDER_EMAIL, emailMessageId="msg-7", debug=True)
        result = _run(data, provider)

        self.assertEqual(result.extraction_method, "hybrid")
        self.assertEqual(result.supplier_order_number.value, "SO-4411")
        self.assertEqual(result.supplier_order_number.confidence, 0.85)
        self.assertEqual(result.supplier_order_number.message_id, "msg-7")
        # Deterministic answers at confidence 1.0 are kept.
        self.assertEqual(result.confirmed_delivery_date.value, "2025-03-15")
        self.assertEqual(result.supplier_confirmed_quantity.value, 500)
        self.assertEqual(result.payment_terms.value, "Net 30")
        self.assertEqual(result.missing_fields, [])
        self.assertTrue(result.debug_candidates.llm_decision.endswith("merged with LLM result"))

    def test_ambiguous_quantity_consults_llm(self):
        provider = MockProvider()
        provider.generate = AsyncMock(
            return_value=ProviderResult(raw_text='{"quantity": 500}', model="m", provider="mock")
        )
        result = _run(ParseInput(emailText=AMBIGUOUS_EMAIL, debug=True), provider)
        provider.generate.assert_awaited_once()
        self.assertEqual(result.extraction_method, "hybrid")
        # The LLM's 0.85 does not beat the deterministic 0.9.
        self.assertEqual(result.supplier_confirmed_quantity.value, 480)
        self.assertTrue(result.debug_candidates.llm_decision.startswith("ambiguous quantity"))

    def test_bad_answer_keeps_deterministic(self):
        provider = MockProvider()
        provider.generate = AsyncMock(
            return_value=ProviderResult(raw_text="no idea", model="m", provider="mock")
        )
        result = _run(ParseInput(emailText=NO_ORDER_EMAIL, debug=True), provider)
        self.assertEqual(result.extraction_method, "deterministic")
        self.assertIsNone(result.supplier_order_number.value)
        self.assertIn("deterministic kept", result.debug_candidates.llm_decision)


@pytest.mark.asyncio
async def test_smart_parse_is_awaitable_directly():
    result = await parse_confirmation_fields_smart(
        ParseInput(emailText=TRUSTED_EMAIL), provider=_silent_provider()
    )
    assert result.supplier_order_number.value == "SO-12345"
    assert result.debug_candidates is None
