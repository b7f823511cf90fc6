"""Turn one party's weekly preferences into concrete candidate slots.

For every local date in the (clamped) range, each of that weekday's windows
is walked with a slot-start cursor advancing in fixed steps.  A slot is
emitted whenever ``cursor + duration`` still fits inside the window and the
slot does not touch one of the party's recurring commitments for that
weekday.  Slots that would overlap a commitment are skipped, never
truncated, so every slot has exactly the requested duration.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from availability.config import settings
from availability.errors import InvalidDuration, InvalidTimeRange
from availability.intervals import as_utc, overlaps_range
from availability.models.preferences import AvailabilityPreferences, Weekday
from availability.models.slots import TimeSlot

log = logging.getLogger("availability.slot_generator")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def validate_request(
    start: datetime,
    end: datetime,
    duration_minutes: int,
    min_minutes: int | None = None,
    max_minutes: int | None = None,
) -> None:
    """Reject an inverted range or a duration outside the accepted band.

    Raises:
        InvalidTimeRange: ``end`` is not after ``start``.
        InvalidDuration: duration outside ``[min_minutes, max_minutes]``.
    """
    lo = settings.min_duration_minutes if min_minutes is None else min_minutes
    hi = settings.max_duration_minutes if max_minutes is None else max_minutes

    if as_utc(end) <= as_utc(start):
        raise InvalidTimeRange()
    if not lo <= duration_minutes <= hi:
        raise InvalidDuration(
            f"Duration {duration_minutes} minutes is outside the accepted "
            f"range of {lo}-{hi} minutes."
        )


class SlotGenerator:
    """Generates fixed-length candidate slots from AvailabilityPreferences."""

    def __init__(
        self,
        step_minutes: int | None = None,
        min_duration_minutes: int | None = None,
        max_duration_minutes: int | None = None,
        now: Clock | None = None,
    ) -> None:
        self._step = timedelta(minutes=step_minutes or settings.slot_step_minutes)
        self._min_minutes = min_duration_minutes or settings.min_duration_minutes
        self._max_minutes = max_duration_minutes or settings.max_duration_minutes
        self._now = now or utcnow

    def validate(self, range_start: datetime, range_end: datetime, duration_minutes: int) -> None:
        validate_request(
            range_start, range_end, duration_minutes,
            self._min_minutes, self._max_minutes,
        )

    def generate(
        self,
        preferences: AvailabilityPreferences,
        range_start: datetime,
        range_end: datetime,
        duration_minutes: int,
    ) -> list[TimeSlot]:
        """Return candidate slots in ascending start order.

        Args:
            preferences: The owning party's preferences.
            range_start: Earliest acceptable slot start.
            range_end: Latest acceptable slot end.
            duration_minutes: Exact length of every returned slot.

        Raises:
            InvalidTimeRange, InvalidDuration: before any generation work.
        """
        self.validate(range_start, range_end, duration_minutes)

        now = as_utc(self._now())
        effective_start = max(as_utc(range_start), now + preferences.minimum_advance_notice)
        effective_end = min(as_utc(range_end), now + preferences.maximum_advance_window)

        if effective_end <= effective_start:
            log.info(
                "Clamped range is empty (advance notice %s, window %s)",
                preferences.minimum_advance_notice,
                preferences.maximum_advance_window,
            )
            return []

        zone = preferences.zone
        length = timedelta(minutes=duration_minutes)
        slots: list[TimeSlot] = []

        day = effective_start.astimezone(zone).date()
        last_day = effective_end.astimezone(zone).date()

        while day <= last_day:
            weekday = Weekday.from_date(day)
            windows = preferences.windows_for(weekday)
            if not windows:
                # No windows means the whole day is unavailable
                day += timedelta(days=1)
                continue

            commitments = [
                c.project(day, zone) for c in preferences.commitments_for(weekday)
            ]
            day_slots: set[TimeSlot] = set()

            for window in windows:
                window_start, window_end = window.project(day, zone)
                cursor = window_start
                while cursor + length <= window_end:
                    slot = TimeSlot(start=cursor, end=cursor + length)
                    if (
                        slot.start >= effective_start
                        and slot.end <= effective_end
                        and not any(
                            overlaps_range(slot, c_start, c_end)
                            for c_start, c_end in commitments
                        )
                    ):
                        day_slots.add(slot)
                    cursor += self._step

            # Overlapping windows on one day may yield the same slot twice
            slots.extend(sorted(day_slots))
            day += timedelta(days=1)

        log.debug(
            "Generated %d candidate slots of %d minutes between %s and %s",
            len(slots), duration_minutes,
            effective_start.isoformat(), effective_end.isoformat(),
        )
        return slots


def conflicts_with_commitments(
    slot: TimeSlot, preferences: AvailabilityPreferences
) -> bool:
    """True when ``slot`` overlaps one of the party's commitments on its local date."""
    day = preferences.local_date(slot.start)
    weekday = Weekday.from_date(day)
    zone = preferences.zone
    return any(
        overlaps_range(slot, *commitment.project(day, zone))
        for commitment in preferences.commitments_for(weekday)
    )
