"""Tests for interval primitives and busy-period merging."""

from datetime import datetime, timedelta, timezone

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from availability.errors import InvalidTimeRange
from availability.intervals import as_utc, contains, merge_busy, overlaps, overlaps_any
from availability.models.slots import BusyTimePeriod, TimeSlot


def at(hour, minute=0, day=16):
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


def busy(start, end, source="google", **kwargs):
    return BusyTimePeriod(start=start, end=end, source_provider_id=source, **kwargs)


# ── TimeSlot ───────────────────────────────────────────────────────


class TestTimeSlot:
    def test_duration(self):
        slot = TimeSlot(start=at(9), end=at(10, 30))
        assert slot.duration == timedelta(minutes=90)
        assert slot.duration_minutes == 90

    def test_rejects_empty_slot(self):
        with pytest.raises(InvalidTimeRange):
            TimeSlot(start=at(9), end=at(9))

    def test_rejects_inverted_slot(self):
        with pytest.raises(InvalidTimeRange):
            TimeSlot(start=at(10), end=at(9))

    def test_sorts_by_start_then_end(self):
        slots = [
            TimeSlot(at(11), at(12)),
            TimeSlot(at(9), at(11)),
            TimeSlot(at(9), at(10)),
        ]
        assert sorted(slots) == [
            TimeSlot(at(9), at(10)),
            TimeSlot(at(9), at(11)),
            TimeSlot(at(11), at(12)),
        ]

    def test_hashable_value(self):
        assert len({TimeSlot(at(9), at(10)), TimeSlot(at(9), at(10))}) == 1


# ── Overlap tests ──────────────────────────────────────────────────


class TestOverlap:
    def test_overlapping(self):
        assert overlaps(TimeSlot(at(9), at(10)), TimeSlot(at(9, 30), at(10, 30)))

    def test_touching_is_not_overlap(self):
        assert not overlaps(TimeSlot(at(9), at(10)), TimeSlot(at(10), at(11)))

    def test_nested(self):
        assert overlaps(TimeSlot(at(9), at(12)), TimeSlot(at(10), at(11)))

    def test_overlaps_any(self):
        slot = TimeSlot(at(11), at(12))
        assert not overlaps_any(slot, [busy(at(10), at(11)), busy(at(12), at(13))])
        assert overlaps_any(slot, [busy(at(10), at(11, 1))])

    def test_contains(self):
        slot = TimeSlot(at(9), at(10))
        assert contains(at(9), at(10), slot)
        assert not contains(at(9, 1), at(12), slot)

    def test_as_utc_treats_naive_as_utc(self):
        naive = datetime(2026, 3, 16, 9, 0)
        assert as_utc(naive) == at(9)

    def test_as_utc_converts_offsets(self):
        plus_two = timezone(timedelta(hours=2))
        assert as_utc(datetime(2026, 3, 16, 11, 0, tzinfo=plus_two)) == at(9)


# ── merge_busy ─────────────────────────────────────────────────────


class TestMergeBusy:
    def test_empty(self):
        assert merge_busy([]) == []

    def test_minimal_covering_set(self):
        merged = merge_busy([
            busy(at(9), at(10)),
            busy(at(9, 30), at(11)),
            busy(at(14), at(15)),
        ])
        assert [(p.start, p.end) for p in merged] == [(at(9), at(11)), (at(14), at(15))]

    def test_touching_periods_merge(self):
        merged = merge_busy([busy(at(9), at(10)), busy(at(10), at(11))])
        assert len(merged) == 1
        assert merged[0].end == at(11)

    def test_unsorted_input(self):
        merged = merge_busy([busy(at(14), at(15)), busy(at(9), at(10))])
        assert [p.start for p in merged] == [at(9), at(14)]

    def test_nested_period_absorbed(self):
        merged = merge_busy([busy(at(9), at(12)), busy(at(10), at(11))])
        assert [(p.start, p.end) for p in merged] == [(at(9), at(12))]

    def test_associative(self):
        a = busy(at(9), at(10))
        b = busy(at(9, 30), at(11))
        c = busy(at(10, 45), at(12))
        left = merge_busy(merge_busy([a, b]) + [c])
        right = merge_busy([a] + merge_busy([b, c]))
        assert [(p.start, p.end) for p in left] == [(p.start, p.end) for p in right]

    def test_mixed_sources_labelled_merged(self):
        merged = merge_busy([
            busy(at(9), at(10), "google"),
            busy(at(9, 30), at(11), "outlook"),
        ])
        assert merged[0].source_provider_id == "merged"

    def test_same_source_kept(self):
        merged = merge_busy([
            busy(at(9), at(10), "outlook", title="Standup"),
            busy(at(9, 30), at(11), "outlook", title="Review"),
        ])
        assert merged[0].source_provider_id == "outlook"
        assert merged[0].title is None

    def test_single_period_keeps_title(self):
        merged = merge_busy([busy(at(9), at(10), title="Dentist")])
        assert merged[0].title == "Dentist"

    def test_all_day_flag_propagates(self):
        merged = merge_busy([
            busy(at(0), at(23), is_all_day=True),
            busy(at(9), at(10)),
        ])
        assert merged[0].is_all_day is True
