"""Value types for concrete, dated intervals."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from availability.errors import InvalidTimeRange


@dataclass(frozen=True, order=True)
class TimeSlot:
    """A bookable window with an exact start and end.

    Ordering compares ``start`` first, then ``end``, so ``sorted()`` on a
    list of slots yields chronological order.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidTimeRange(
                f"Slot end {self.end.isoformat()} is not after start {self.start.isoformat()}"
            )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def duration_minutes(self) -> int:
        return int(self.duration.total_seconds() // 60)


@dataclass(frozen=True)
class BusyTimePeriod:
    """An interval during which one user is known to be unavailable.

    Produced by calendar providers; ``source_provider_id`` names the
    provider kind the interval came from (``"merged"`` once intervals from
    several providers have been combined).
    """

    start: datetime
    end: datetime
    source_provider_id: str
    title: str | None = None
    is_all_day: bool = False


class AvailabilityRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"


@dataclass(frozen=True)
class RatedTimeSlot:
    slot: TimeSlot
    rating: AvailabilityRating

    @property
    def start(self) -> datetime:
        return self.slot.start

    @property
    def end(self) -> datetime:
        return self.slot.end
