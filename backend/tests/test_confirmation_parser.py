"""End-to-end tests for the deterministic confirmation parser."""

import os
import unittest
from unittest.mock import patch

from confirmation_engine.schemas.confirmation import ParseInput
from confirmation_engine.services.confirmation_parser.field_mapping import (
    CanonicalField,
    map_extracted_to_canonical,
    normalize_missing_fields,
    to_canonical_field_key,
)
from confirmation_engine.services.confirmation_parser.service import (
    parse_confirmation_fields,
    run_deterministic,
)

E2E_PDF_TEXT = "Confirmed Ship Date: 03/15/2025\nConfirmed Qty: 500\nSO# AB1234567"

QTY_PRICE_PDF = """Sales Order No: SO-55120
Line Item Qty Unit Price Extended
1 18195 TUBE 1.500 SQ X .120 140 12.50 1750.00
Subtotal 1750.00"""


def _email(text: str, **kwargs) -> ParseInput:
    return ParseInput(emailText=text, emailMessageId="msg-1", **kwargs)


def _pdf(text: str, **kwargs) -> ParseInput:
    return ParseInput(pdfTexts=[{"attachment_id": "att-1", "text": text}], **kwargs)


class EndToEndTests(unittest.TestCase):
    def test_pdf_confirmation(self):
        result = parse_confirmation_fields(_pdf(E2E_PDF_TEXT, poNumber="4500123", expectedQty=500))

        self.assertEqual(result.supplier_order_number.value, "AB1234567")
        self.assertAlmostEqual(result.supplier_order_number.confidence, 0.75)
        self.assertEqual(result.supplier_order_number.attachment_id, "att-1")
        self.assertEqual(result.confirmed_delivery_date.value, "2025-03-15")
        self.assertEqual(result.confirmed_delivery_date.confidence, 1.0)
        self.assertEqual(result.supplier_confirmed_quantity.value, 500)
        self.assertEqual(result.supplier_confirmed_quantity.source, "pdf")
        self.assertIsNone(result.supplier_confirmed_quantity.message_id)
        self.assertIs(result.quantity_mismatch.value, False)
        self.assertEqual(result.quantity_mismatch.reason, "match: ordered=500, supplier=500")
        self.assertEqual(result.evidence_source, "pdf")
        self.assertEqual(result.missing_fields, [])
        self.assertEqual(result.extraction_method, "deterministic")
        self.assertIsNotNone(result.raw_excerpt)

    def test_ordered_quantity_comes_from_input(self):
        result = parse_confirmation_fields(_pdf(E2E_PDF_TEXT, expectedQty=500))
        self.assertEqual(result.ordered_quantity.value, 500)
        self.assertEqual(result.ordered_quantity.source, "none")
        self.assertEqual(result.ordered_quantity.confidence, 1.0)

    def test_email_quantity_mismatch(self):
        result = parse_confirmation_fields(_email("Confirmed Qty: 90", expectedQty=100))
        self.assertEqual(result.supplier_confirmed_quantity.value, 90)
        self.assertEqual(result.supplier_confirmed_quantity.message_id, "msg-1")
        self.assertIsNone(result.supplier_confirmed_quantity.attachment_id)
        self.assertIs(result.quantity_mismatch.value, True)
        self.assertEqual(result.quantity_mismatch.reason, "mismatch: ordered=100, supplier=90")
        self.assertEqual(result.evidence_source, "email")
        self.assertEqual(result.missing_fields, ["supplier_reference", "delivery_date"])

    def test_no_evidence(self):
        result = parse_confirmation_fields(ParseInput())
        self.assertEqual(result.evidence_source, "none")
        self.assertEqual(result.missing_fields, ["supplier_reference", "delivery_date", "quantity"])
        self.assertIsNone(result.quantity_mismatch.value)
        self.assertEqual(result.quantity_mismatch.reason, "ordered and supplier quantities missing")
        self.assertIsNone(result.raw_excerpt)

    def test_ordered_quantity_missing_reason(self):
        result = parse_confirmation_fields(_email("Confirmed Qty: 90"))
        self.assertIsNone(result.quantity_mismatch.value)
        self.assertEqual(result.quantity_mismatch.reason, "ordered quantity missing; supplier=90")

    def test_equal_confidence_prefers_pdf(self):
        data = ParseInput(
            emailText="Confirmed Qty: 40",
            emailMessageId="msg-1",
            pdfTexts=[{"attachment_id": "att-1", "text": "Confirmed Qty: 40"}],
        )
        result = parse_confirmation_fields(data)
        self.assertEqual(result.supplier_confirmed_quantity.source, "pdf")
        self.assertEqual(result.evidence_source, "pdf")

    def test_more_confident_email_wins(self):
        data = ParseInput(
            emailText="Confirmed Qty: 40",
            pdfTexts=[{"attachment_id": "att-1", "text": "Qty: 40"}],
        )
        result = parse_confirmation_fields(data)
        self.assertEqual(result.supplier_confirmed_quantity.source, "email")
        self.assertEqual(result.evidence_source, "email")

    def test_blank_pdf_is_ignored(self):
        data = ParseInput(
            emailText="Confirmed Qty: 40",
            pdfTexts=[{"attachment_id": "att-1", "text": "   "}],
        )
        self.assertEqual(parse_confirmation_fields(data).evidence_source, "email")

    def test_po_number_echo_not_used_as_supplier_order(self):
        result = parse_confirmation_fields(
            _email("Sales Order: 4500123\nSO# 88123", poNumber="4500123")
        )
        self.assertEqual(result.supplier_order_number.value, "88123")

    def test_qty_price_table_in_pdf(self):
        result = parse_confirmation_fields(_pdf(QTY_PRICE_PDF))
        self.assertEqual(result.supplier_confirmed_quantity.value, 140)
        self.assertAlmostEqual(result.supplier_confirmed_quantity.confidence, 0.82)
        self.assertEqual(result.supplier_order_number.value, "SO-55120")

    def test_weight_line_loses_to_plain_quantity(self):
        result = parse_confirmation_fields(_email("Qty 200 LB\nQuantity: 150"))
        self.assertEqual(result.supplier_confirmed_quantity.value, 150)

    def test_labeled_quantity_followed_by_weight(self):
        result = parse_confirmation_fields(_email("Confirmed Qty: 50 PCS 2500 LBS"))
        self.assertEqual(result.supplier_confirmed_quantity.value, 50)
        self.assertAlmostEqual(result.supplier_confirmed_quantity.confidence, 0.8)


class InvariantTests(unittest.TestCase):
    def test_alias_and_empty_field_invariants(self):
        for data in (
            _pdf(E2E_PDF_TEXT, expectedQty=500),
            _email("Qty: 1.500 X .120 X 20/24 A500"),
            ParseInput(),
        ):
            result = parse_confirmation_fields(data)
            self.assertEqual(result.confirmed_quantity, result.supplier_confirmed_quantity)
            for name in ("supplier_order_number", "confirmed_delivery_date", "supplier_confirmed_quantity"):
                field = getattr(result, name)
                if field.value is None:
                    self.assertEqual(field.confidence, 0.0)
                    self.assertIsNone(field.evidence_snippet)
                else:
                    self.assertGreater(field.confidence, 0.0)

    def test_parse_is_deterministic(self):
        data = _pdf(QTY_PRICE_PDF, expectedQty=140, debug=True)
        first = parse_confirmation_fields(data).model_dump()
        second = parse_confirmation_fields(data).model_dump()
        self.assertEqual(first, second)


class DebugTraceTests(unittest.TestCase):
    def test_no_debug_block_by_default(self):
        self.assertIsNone(parse_confirmation_fields(_email("Confirmed Qty: 5")).debug_candidates)

    def test_all_candidates_excluded(self):
        result = parse_confirmation_fields(_email("Qty: 1.500 X .120 X 20/24 A500", debug=True))
        self.assertIsNone(result.supplier_confirmed_quantity.value)
        debug = result.debug_candidates
        self.assertTrue(debug.qty_chosen_reason.startswith("all 5 quantity candidates excluded"))
        self.assertTrue(all(c.excluded for c in debug.qty_candidates))
        self.assertEqual(debug.date_chosen_reason, "no date candidates found")

    def test_dom_neighbourhood_below_threshold_is_not_used(self):
        result = parse_confirmation_fields(_email("DOM 1.500 SQ TUBE\n12500", debug=True))
        self.assertIsNone(result.supplier_confirmed_quantity.value)
        self.assertIn("quantity", result.missing_fields)
        reason = result.debug_candidates.qty_chosen_reason
        self.assertTrue(reason.startswith("best candidate 12500 (DOM neighborhood)"))
        self.assertTrue(reason.endswith("not guessing"))

    def test_lower_threshold_from_settings(self):
        with patch.dict(os.environ, {"CONFIRMATION_MIN_QUANTITY_CONFIDENCE": "0.4"}):
            result = parse_confirmation_fields(_email("DOM 1.500 SQ TUBE\n12500"))
        self.assertEqual(result.supplier_confirmed_quantity.value, 12500)

    def test_chosen_reason_and_ranked_quantities(self):
        outcome = run_deterministic(_email("Qty 200 LB\nQuantity: 150", debug=True))
        self.assertEqual([c.value for c in outcome.ranked_quantities], [150, 200])
        self.assertTrue(outcome.result.debug_candidates.qty_chosen_reason.startswith("chose 150 from email"))
        traces = outcome.result.debug_candidates.qty_candidates
        self.assertTrue(traces[1].near_weight_unit)


class FieldMappingTests(unittest.TestCase):
    def test_aliases(self):
        self.assertEqual(to_canonical_field_key("Confirmed_Ship_Date"), CanonicalField.DELIVERY_DATE)
        self.assertEqual(to_canonical_field_key("supplier_order_number"), CanonicalField.SUPPLIER_REFERENCE)
        self.assertIsNone(to_canonical_field_key("unit_price"))

    def test_normalize_missing_fields(self):
        names = ["quantity", "supplier_order_number", "bogus", "confirmed_quantity"]
        self.assertEqual(normalize_missing_fields(names), ["quantity", "supplier_reference"])

    def test_map_populated_fields_only(self):
        result = parse_confirmation_fields(_email("Confirmed Qty: 90"))
        mapped = map_extracted_to_canonical(result)
        self.assertEqual(list(mapped), ["quantity"])
        self.assertEqual(mapped["quantity"]["value"], 90)
