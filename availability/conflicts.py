"""Flag already-committed events that now collide with calendar busy time."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from availability.intervals import as_utc, merge_busy, overlaps_range
from availability.models.events import ConflictFlag, ScheduledEvent
from availability.models.slots import BusyTimePeriod
from availability.oracle import CalendarAvailabilityOracle
from availability.stores import Notifier

log = logging.getLogger("availability.conflicts")


class ConflictDetector:
    def __init__(
        self,
        oracle: CalendarAvailabilityOracle | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._oracle = oracle
        self._notifier = notifier

    async def detect(
        self,
        events: Iterable[ScheduledEvent],
        busy_by_user: Mapping[str, Sequence[BusyTimePeriod]],
    ) -> list[ConflictFlag]:
        """Return one flag per timed event, publishing each flag's status.

        Events without a concrete start and end are skipped.  Neither the
        events nor the busy data are modified.
        """
        flags: list[ConflictFlag] = []
        for event in events:
            if not event.is_timed:
                continue
            flag = self._flag(event, busy_by_user)
            flags.append(flag)
            await self._publish(flag)

        conflicted = sum(1 for f in flags if f.has_conflict)
        log.info("Checked %d event(s), %d in conflict", len(flags), conflicted)
        return flags

    async def check_upcoming(
        self,
        events: Iterable[ScheduledEvent],
        start: datetime,
        end: datetime,
    ) -> list[ConflictFlag]:
        """Fetch participants' busy time for ``[start, end)`` and run ``detect``.

        Events outside the window are not checked.
        """
        if self._oracle is None:
            raise RuntimeError("ConflictDetector.check_upcoming needs an oracle")

        start, end = as_utc(start), as_utc(end)
        upcoming = [
            e for e in events
            if e.is_timed and as_utc(e.end) > start and as_utc(e.start) < end
        ]
        if not upcoming:
            return []

        participants = list(dict.fromkeys(p for e in upcoming for p in e.participants))
        busy = await self._oracle.fetch_busy(participants, start, end)
        return await self.detect(upcoming, busy)

    @staticmethod
    def _flag(
        event: ScheduledEvent,
        busy_by_user: Mapping[str, Sequence[BusyTimePeriod]],
    ) -> ConflictFlag:
        event_start, event_end = as_utc(event.start), as_utc(event.end)
        users: list[str] = []
        periods: list[BusyTimePeriod] = []

        for user_id in event.participants:
            hits = [
                p for p in busy_by_user.get(user_id, ())
                if overlaps_range(p, event_start, event_end)
            ]
            if hits:
                users.append(user_id)
                periods.extend(hits)

        return ConflictFlag(
            event_id=event.event_id,
            has_conflict=bool(users),
            conflicting_users=tuple(users),
            conflicting_periods=tuple(merge_busy(periods)),
        )

    async def _publish(self, flag: ConflictFlag) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.publish_conflict_status(flag)
        except Exception:
            log.exception("Failed to publish %s status for event %s", flag.status, flag.event_id)
