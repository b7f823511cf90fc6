"""Already-committed events and the conflict flags raised against them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from availability.models.slots import BusyTimePeriod


@dataclass(frozen=True)
class ScheduledEvent:
    """A hangout or meeting that has been agreed on.

    ``start``/``end`` may be unset for events still being planned; such
    events are never checked for conflicts.
    """

    event_id: str
    title: str
    participants: tuple[str, ...]
    start: datetime | None = None
    end: datetime | None = None

    @property
    def is_timed(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True)
class ConflictFlag:
    event_id: str
    has_conflict: bool
    conflicting_users: tuple[str, ...] = ()
    conflicting_periods: tuple[BusyTimePeriod, ...] = field(default=(), repr=False)

    @property
    def status(self) -> str:
        return "conflict" if self.has_conflict else "no_conflict"
