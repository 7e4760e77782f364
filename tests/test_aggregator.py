from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from docfocus.aggregator import TrackingAggregator
from docfocus.models import TrackedDocument

BASE = datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)


def _at(seconds: float) -> datetime:
    return BASE + timedelta(seconds=seconds)


class AggregatorTests(unittest.TestCase):
    def test_first_sighting_credits_one_minute_and_is_dirty(self) -> None:
        aggregator = TrackingAggregator()
        dirty = aggregator.merge(["Report"], now=_at(0))

        self.assertEqual(len(dirty), 1)
        self.assertEqual(dirty[0].name, "Report")
        self.assertEqual(dirty[0].accrued_minutes, 1.0)
        self.assertEqual(dirty[0].first_seen_at, _at(0))
        self.assertEqual(dirty[0].project, "")
        self.assertEqual(dirty[0].notes, "")

    def test_accrues_after_sixty_one_seconds(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["Report"], now=_at(0))

        dirty = aggregator.merge(["Report"], now=_at(61))

        self.assertEqual(len(dirty), 1)
        self.assertEqual(dirty[0].accrued_minutes, 2.0)
        self.assertEqual(dirty[0].first_seen_at, _at(61))

    def test_no_change_within_the_same_minute(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["Report"], now=_at(0))

        self.assertEqual(aggregator.merge(["Report"], now=_at(30)), [])
        document = aggregator.get("Report")
        self.assertEqual(document.accrued_minutes, 1.0)
        self.assertEqual(document.first_seen_at, _at(0))

    def test_clock_going_backwards_never_reduces_time(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["Report"], now=_at(0))
        aggregator.merge(["Report"], now=_at(125))
        before = aggregator.get("Report").accrued_minutes

        self.assertEqual(aggregator.merge(["Report"], now=_at(-600)), [])
        self.assertEqual(aggregator.get("Report").accrued_minutes, before)

    def test_accrual_is_non_decreasing_over_many_ticks(self) -> None:
        aggregator = TrackingAggregator()
        offsets = [0, 1, 2, 59, 61, 30, 200, 199, 400, 10, 1000]
        previous = 0.0
        for offset in offsets:
            aggregator.merge(["Report"], now=_at(offset))
            current = aggregator.get("Report").accrued_minutes
            self.assertGreaterEqual(current, previous)
            previous = current

    def test_loaded_document_resumes_without_accrual(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.seed([TrackedDocument(name="Report", accrued_minutes=12.0, project="Acme", notes="draft")])

        self.assertEqual(aggregator.merge(["Report"], now=_at(0)), [])
        document = aggregator.get("Report")
        self.assertEqual(document.first_seen_at, _at(0))
        self.assertEqual(document.accrued_minutes, 12.0)

        dirty = aggregator.merge(["Report"], now=_at(60))
        self.assertEqual(dirty[0].accrued_minutes, 13.0)
        self.assertEqual(dirty[0].project, "Acme")
        self.assertEqual(dirty[0].notes, "draft")

    def test_seed_clears_session_timestamps(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.seed([TrackedDocument(name="Report", first_seen_at=_at(0), accrued_minutes=3.0)])
        self.assertIsNone(aggregator.get("Report").first_seen_at)

    def test_same_name_never_duplicates(self) -> None:
        aggregator = TrackingAggregator()
        dirty = aggregator.merge(["Report", "Report", "Budget"], now=_at(0))
        aggregator.merge(["Report"], now=_at(5))

        self.assertEqual([document.name for document in dirty], ["Report", "Budget"])
        self.assertEqual(len(aggregator), 2)

    def test_names_are_case_sensitive(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["report", "Report"], now=_at(0))
        self.assertEqual(len(aggregator), 2)

    def test_missing_documents_are_kept(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["Report", "Budget"], now=_at(0))
        aggregator.merge(["Report"], now=_at(120))

        self.assertIn("Budget", aggregator)
        self.assertEqual(aggregator.get("Budget").accrued_minutes, 1.0)

    def test_backgrounded_time_is_credited_on_next_sighting(self) -> None:
        # Known quirk: first_seen_at only moves on accrual, so time spent while the
        # app was in the background (document still open) counts at the next sample.
        aggregator = TrackingAggregator()
        aggregator.merge(["Report"], now=_at(0))

        dirty = aggregator.merge(["Report"], now=_at(600))

        self.assertEqual(dirty[0].accrued_minutes, 11.0)

    def test_empty_names_are_ignored(self) -> None:
        aggregator = TrackingAggregator()
        self.assertEqual(aggregator.merge(["", "Report"], now=_at(0))[0].name, "Report")
        self.assertEqual(len(aggregator), 1)

    def test_returned_records_are_copies(self) -> None:
        aggregator = TrackingAggregator()
        dirty = aggregator.merge(["Report"], now=_at(0))
        dirty[0].accrued_minutes = 99.0
        self.assertEqual(aggregator.get("Report").accrued_minutes, 1.0)

    def test_project_and_notes_edits(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["Report"], now=_at(0))

        aggregator.set_project("Report", "Acme")
        aggregator.set_notes("Report", "second pass")

        row = aggregator.export_rows()[0]
        self.assertEqual((row.name, row.accrued_minutes, row.project, row.notes), ("Report", 1.0, "Acme", "second pass"))

        aggregator.merge(["Report"], now=_at(61))
        self.assertEqual(aggregator.get("Report").notes, "second pass")

    def test_edit_of_unknown_document_raises_key_error(self) -> None:
        aggregator = TrackingAggregator()
        with self.assertRaises(KeyError):
            aggregator.set_notes("Missing", "x")

    def test_clear_empties_collection(self) -> None:
        aggregator = TrackingAggregator()
        aggregator.merge(["Report"], now=_at(0))
        aggregator.clear()
        self.assertEqual(aggregator.snapshot(), [])

    def test_uses_injected_clock(self) -> None:
        aggregator = TrackingAggregator(clock=lambda: _at(42))
        dirty = aggregator.merge(["Report"])
        self.assertEqual(dirty[0].first_seen_at, _at(42))


if __name__ == "__main__":
    unittest.main()
