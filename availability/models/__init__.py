"""Data models for the availability engine."""

from .events import ConflictFlag, ScheduledEvent
from .party import PartyMembership, union_members
from .preferences import (
    AvailabilityPreferences,
    RecurringCommitment,
    Weekday,
    WeekdayWindow,
)
from .slots import AvailabilityRating, BusyTimePeriod, RatedTimeSlot, TimeSlot

__all__ = [
    "AvailabilityPreferences",
    "AvailabilityRating",
    "BusyTimePeriod",
    "ConflictFlag",
    "PartyMembership",
    "RatedTimeSlot",
    "RecurringCommitment",
    "ScheduledEvent",
    "TimeSlot",
    "Weekday",
    "WeekdayWindow",
    "union_members",
]
