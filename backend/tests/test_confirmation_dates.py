"""Tests for date canonicalisation and label-aware date extraction."""

import unittest

import pytest

from confirmation_engine.services.confirmation_parser.anchors import locate_anchors
from confirmation_engine.services.confirmation_parser.dates import (
    extract_date_candidates,
    find_label_hits,
    DATE_LABELS,
    date_spans,
    first_date_in,
    to_iso_date,
)
from confirmation_engine.services.confirmation_parser.text_tools import NormalizedText


def _candidates(text: str, anchors=()):
    return extract_date_candidates(NormalizedText.from_raw(text), "email", anchors)


class ToIsoDateTests(unittest.TestCase):
    def test_us_slash_date(self):
        self.assertEqual(to_iso_date("03/15/2025"), "2025-03-15")

    def test_two_digit_year_pivot(self):
        self.assertEqual(to_iso_date("3/5/24"), "2024-03-05")
        self.assertEqual(to_iso_date("3/5/69"), "2069-03-05")
        self.assertEqual(to_iso_date("1/2/70"), "1970-01-02")

    def test_iso_with_time_part(self):
        self.assertEqual(to_iso_date("2025-03-15T10:00:00Z"), "2025-03-15")

    def test_month_name_forms(self):
        self.assertEqual(to_iso_date("March 5, 2025"), "2025-03-05")
        self.assertEqual(to_iso_date("Sept 30 2025"), "2025-09-30")
        self.assertEqual(to_iso_date("5 March 2025"), "2025-03-05")

    def test_impossible_calendar_date_is_none(self):
        self.assertIsNone(to_iso_date("02/31/2025"))
        self.assertIsNone(to_iso_date("13/01/2025"))

    def test_garbage_is_none(self):
        self.assertIsNone(to_iso_date(""))
        self.assertIsNone(to_iso_date("next week"))
        self.assertIsNone(to_iso_date("Blah 5, 2025"))


class DateExtractionTests(unittest.TestCase):
    def test_confirmed_ship_date_beats_order_date(self):
        cands = _candidates("Order Date: 2024-01-01\nConfirmed Ship Date: 2024-05-01")
        self.assertEqual(cands[0].value, "2024-05-01")
        self.assertEqual(cands[0].label, "Confirmed Ship Date")
        self.assertEqual(cands[-1].label, "Order Date")

    def test_overlapping_labels_keep_longest(self):
        hits = find_label_hits("Confirmed Ship Date: 2024-05-01", DATE_LABELS)
        self.assertEqual([h.label for h in hits], ["Confirmed Ship Date"])

    def test_label_confidence_follows_priority(self):
        cands = _candidates("Delivery Date: 2025-04-02")
        self.assertEqual(len(cands), 1)
        self.assertAlmostEqual(cands[0].confidence, 0.5 + 75 / 200)

    def test_window_stops_at_next_label(self):
        # "Ship Date" has no date of its own; it must not steal the order date.
        cands = _candidates("Ship Date: TBD  Order Date: 2024-01-01")
        self.assertEqual([c.label for c in cands], ["Order Date"])

    def test_date_beyond_window_ignored(self):
        cands = _candidates("Promise Date:" + " pending" * 20 + " 2025-06-01")
        self.assertEqual(cands, [])

    def test_legacy_keyword_fallback(self):
        cands = _candidates("We will ship your order on 04/02/2025.")
        self.assertEqual(len(cands), 1)
        self.assertEqual(cands[0].value, "2025-04-02")
        self.assertEqual(cands[0].origin, "legacy")
        self.assertAlmostEqual(cands[0].confidence, 0.55)

    def test_legacy_fallback_skipped_when_label_found(self):
        cands = _candidates("Delivery Date: 2025-04-02\nshipped 2025-01-01")
        self.assertEqual([c.value for c in cands], ["2025-04-02"])

    def test_invalid_date_after_label_is_skipped(self):
        self.assertEqual(_candidates("Ship Date: 02/30/2025"), [])

    def test_number_runs_are_not_date_spans(self):
        self.assertEqual(date_spans("Confirmed Qty: 50 PCS 2500 LBS"), [])
        self.assertEqual(date_spans("1 STEEL TUBE 24 1250.40"), [])
        self.assertEqual(date_spans("Qty 48 2500"), [])

    def test_real_date_found_after_false_match(self):
        text = "Ship Date: TUBE 24 2500 then March 5, 2025"
        self.assertEqual(first_date_in(text, 0, len(text)), ("2025-03-05", text.index("March")))
        self.assertEqual(len(date_spans(text)), 1)


def test_anchor_distance_boost():
    norm = NormalizedText.from_raw("PO 4500123 line 2\nPromise Date: 2025-04-02")
    anchors = locate_anchors(norm.lines, "4500123", None)
    assert anchors == (0,)
    cands = extract_date_candidates(norm, "pdf", anchors)
    assert cands[0].confidence == pytest.approx(0.8 + 0.18)


def test_far_anchor_gives_no_boost():
    lines = ["PO 4500123"] + [f"filler {i}" for i in range(20)] + ["Promise Date: 2025-04-02"]
    norm = NormalizedText.from_raw("\n".join(lines))
    cands = extract_date_candidates(norm, "pdf", locate_anchors(norm.lines, "4500123"))
    assert cands[0].confidence == pytest.approx(0.8)
