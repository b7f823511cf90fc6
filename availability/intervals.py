"""Interval arithmetic over anything with ``start`` and ``end`` attributes.

All intervals are half-open ``[start, end)``: two intervals that merely
touch do not overlap, but they *are* merged into one busy block.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Protocol, Sequence

from availability.models.slots import BusyTimePeriod

MERGED_SOURCE = "merged"


class Interval(Protocol):
    start: datetime
    end: datetime


def as_utc(dt: datetime) -> datetime:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def duration(interval: Interval) -> timedelta:
    return interval.end - interval.start


def overlaps(a: Interval, b: Interval) -> bool:
    """True when the two half-open intervals share at least one instant."""
    return a.start < b.end and b.start < a.end


def overlaps_range(interval: Interval, start: datetime, end: datetime) -> bool:
    return interval.start < end and start < interval.end


def contains(outer_start: datetime, outer_end: datetime, inner: Interval) -> bool:
    """True when ``inner`` lies entirely inside ``[outer_start, outer_end)``."""
    return outer_start <= inner.start and inner.end <= outer_end


def overlaps_any(interval: Interval, others: Iterable[Interval]) -> bool:
    return any(overlaps(interval, other) for other in others)


def merge_busy(periods: Iterable[BusyTimePeriod]) -> list[BusyTimePeriod]:
    """Union busy periods into the minimal sorted covering set.

    Overlapping or touching periods collapse into one.  A merged block keeps
    its source id when every constituent came from the same provider and
    is labelled ``"merged"`` otherwise; a title survives only on blocks
    made of a single input period.  For example 09:00-10:00, 09:30-11:00
    and 14:00-15:00 merge into 09:00-11:00 and 14:00-15:00.
    """
    ordered = sorted(periods, key=lambda p: (p.start, p.end))
    if not ordered:
        return []

    merged: list[BusyTimePeriod] = []
    group: list[BusyTimePeriod] = [ordered[0]]
    group_end = ordered[0].end

    for period in ordered[1:]:
        if period.start <= group_end:
            group.append(period)
            group_end = max(group_end, period.end)
        else:
            merged.append(_collapse(group, group_end))
            group = [period]
            group_end = period.end

    merged.append(_collapse(group, group_end))
    return merged


def _collapse(group: Sequence[BusyTimePeriod], end: datetime) -> BusyTimePeriod:
    if len(group) == 1:
        return group[0]
    sources = {p.source_provider_id for p in group}
    return BusyTimePeriod(
        start=group[0].start,
        end=end,
        source_provider_id=sources.pop() if len(sources) == 1 else MERGED_SOURCE,
        title=None,
        is_all_day=any(p.is_all_day for p in group),
    )
