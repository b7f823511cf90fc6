"""Pydantic models for a party's recurring availability preferences.

Windows and commitments are expressed in wall-clock time of the party's
``timezone`` and are projected onto concrete dates on demand.  Projected
instants are always returned in UTC so that slot arithmetic stays exact
across daylight-saving transitions.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from availability.config import settings

MINUTES_PER_DAY = 24 * 60


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        return _WEEKDAY_ORDER[day.weekday()]


_WEEKDAY_ORDER = list(Weekday)


def project_minutes(day: date, minutes: int, zone: ZoneInfo) -> datetime:
    """Return the UTC instant ``minutes`` past local midnight of ``day``."""
    local_midnight = datetime.combine(day, time.min, tzinfo=zone)
    return (local_midnight + timedelta(minutes=minutes)).astimezone(timezone.utc)


class WeekdayWindow(BaseModel):
    """One contiguous availability window on a weekday.

    ``end_hour`` may be 24 (with ``end_minute`` 0) to mean end of day.
    """

    model_config = ConfigDict(frozen=True)

    weekday: Weekday
    start_hour: int = Field(ge=0, le=23)
    start_minute: int = Field(default=0, ge=0, le=59)
    end_hour: int = Field(ge=0, le=24)
    end_minute: int = Field(default=0, ge=0, le=59)

    @model_validator(mode="after")
    def _check_bounds(self) -> "WeekdayWindow":
        if self.end_offset_minutes > MINUTES_PER_DAY:
            raise ValueError("window cannot end after 24:00")
        if self.end_offset_minutes <= self.start_offset_minutes:
            raise ValueError("window end must be after window start")
        return self

    @property
    def start_offset_minutes(self) -> int:
        return self.start_hour * 60 + self.start_minute

    @property
    def end_offset_minutes(self) -> int:
        return self.end_hour * 60 + self.end_minute

    def project(self, day: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
        return (
            project_minutes(day, self.start_offset_minutes, zone),
            project_minutes(day, self.end_offset_minutes, zone),
        )


class RecurringCommitment(BaseModel):
    """A weekly standing conflict, e.g. a class every Monday 18:00-19:30."""

    model_config = ConfigDict(frozen=True)

    weekday: Weekday
    start_time: time
    end_time: time
    title: str = ""

    @model_validator(mode="after")
    def _check_bounds(self) -> "RecurringCommitment":
        if self.end_time <= self.start_time:
            raise ValueError("commitment end_time must be after start_time")
        return self

    def project(self, day: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
        return (
            project_minutes(day, self.start_time.hour * 60 + self.start_time.minute, zone),
            project_minutes(day, self.end_time.hour * 60 + self.end_time.minute, zone),
        )


def _default_windows() -> list[WeekdayWindow]:
    return [
        WeekdayWindow(weekday=day, start_hour=9, end_hour=21)
        for day in Weekday
    ]


class AvailabilityPreferences(BaseModel):
    """A party's weekly free-time windows, standing commitments and look-ahead bounds.

    Records are immutable; an update builds a new record with
    ``model_copy(update=...)`` and saves it whole.  ``version`` is the
    last-modified marker used for optimistic concurrency by the store.
    """

    model_config = ConfigDict(frozen=True)

    windows: list[WeekdayWindow] = Field(default_factory=_default_windows)
    commitments: list[RecurringCommitment] = []
    minimum_advance_notice: timedelta = timedelta(hours=2)
    maximum_advance_window: timedelta = timedelta(days=90)
    require_all_members_free: bool = True
    use_external_calendars: bool = True
    timezone: str = Field(default_factory=lambda: settings.calendar_timezone)
    version: int = 0
    updated_at: datetime | None = None

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"{value!r} is not a known IANA time zone") from None
        return value

    @classmethod
    def default(cls) -> "AvailabilityPreferences":
        """Canonical record used when a party has never saved preferences."""
        return cls()

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def windows_for(self, weekday: Weekday) -> list[WeekdayWindow]:
        return [w for w in self.windows if w.weekday == weekday]

    def commitments_for(self, weekday: Weekday) -> list[RecurringCommitment]:
        return [c for c in self.commitments if c.weekday == weekday]

    def local_date(self, instant: datetime) -> date:
        return instant.astimezone(self.zone).date()
