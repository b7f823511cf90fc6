"""Derive an AvailabilityRating for a slot from the busy time around it."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone, tzinfo
from typing import Iterable

from availability.intervals import merge_busy, overlaps_range
from availability.models.slots import AvailabilityRating, BusyTimePeriod, RatedTimeSlot, TimeSlot

ADJACENCY = timedelta(minutes=30)
EXCELLENT_MINUTES = 120
GOOD_MINUTES = 90

MIN_GAP = timedelta(minutes=30)
BOUNDED_GOOD_MINUTES = 60


def local_day(instant: datetime, zone: tzinfo) -> tuple[datetime, datetime]:
    """Return the local calendar day containing ``instant`` as UTC bounds."""
    day = instant.astimezone(zone).date()
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def rate_slot(
    slot: TimeSlot,
    busy: Iterable[BusyTimePeriod],
    zone: tzinfo = timezone.utc,
) -> AvailabilityRating:
    """Rate ``slot`` by its length and how tightly busy blocks hug it.

    A slot on a local day with no busy time at all is excellent.  Otherwise
    a busy block is adjacent when it ends within 30 minutes of the slot's
    start or begins within 30 minutes of the slot's end.
    """
    day_start, day_end = local_day(slot.start, zone)
    busy = [b for b in busy if overlaps_range(b, day_start, day_end)]
    if not busy:
        return AvailabilityRating.EXCELLENT

    busy_before = any(abs(slot.start - b.end) < ADJACENCY for b in busy)
    busy_after = any(abs(b.start - slot.end) < ADJACENCY for b in busy)
    minutes = slot.duration_minutes

    if minutes >= EXCELLENT_MINUTES and not busy_before and not busy_after:
        return AvailabilityRating.EXCELLENT
    if minutes >= GOOD_MINUTES or (not busy_before and not busy_after):
        return AvailabilityRating.GOOD
    return AvailabilityRating.FAIR


def free_gaps(
    start: datetime,
    end: datetime,
    busy: Iterable[BusyTimePeriod],
) -> list[RatedTimeSlot]:
    """Split ``[start, end)`` around busy time into rated free gaps.

    With no busy time the whole range is one excellent gap.  A gap that
    runs into a busy block is good, or fair when shorter than an hour; the
    gap after the last busy block is excellent.  Gaps shorter than 30
    minutes are dropped.
    """
    blocks = merge_busy(b for b in busy if overlaps_range(b, start, end))
    gaps: list[RatedTimeSlot] = []
    if not blocks:
        if end - start >= MIN_GAP:
            gaps.append(RatedTimeSlot(TimeSlot(start, end), AvailabilityRating.EXCELLENT))
        return gaps

    cursor = start
    for block in blocks:
        if block.start - cursor >= MIN_GAP:
            gap = TimeSlot(cursor, block.start)
            rating = (
                AvailabilityRating.GOOD
                if gap.duration_minutes >= BOUNDED_GOOD_MINUTES
                else AvailabilityRating.FAIR
            )
            gaps.append(RatedTimeSlot(gap, rating))
        cursor = max(cursor, block.end)

    if end - cursor >= MIN_GAP:
        gaps.append(RatedTimeSlot(TimeSlot(cursor, end), AvailabilityRating.EXCELLENT))
    return gaps
