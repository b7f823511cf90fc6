"""Busy-time oracle over any number of calendar providers.

Each (user, provider) pair is one unit of work.  All units of a fetch run
concurrently under a semaphore and are joined with ``asyncio.gather``;
every unit settles (result or exception) before the fetch returns.  A
failing unit is logged and contributes no data.  Only when *every* unit
fails does the fetch raise, so one broken calendar never hides the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Sequence

from availability.config import settings
from availability.errors import (
    AvailabilityError,
    CalendarSyncFailed,
    NetworkTimeout,
    PermissionDenied,
)
from availability.intervals import as_utc, merge_busy, overlaps_any
from availability.models.party import PartyMembership, redact_id, union_members
from availability.models.slots import BusyTimePeriod, TimeSlot

from .calendar_providers.base import CalendarProvider

log = logging.getLogger("availability.oracle")

BusyByUser = dict[str, list[BusyTimePeriod]]


@dataclass(frozen=True)
class Confirmation:
    """Slots that passed a calendar check plus the busy data used to check them."""

    slots: list[TimeSlot]
    busy_by_user: BusyByUser

    def all_busy(self) -> list[BusyTimePeriod]:
        return merge_busy(p for periods in self.busy_by_user.values() for p in periods)


class CalendarAvailabilityOracle:
    """Answers "who is busy when" across the configured providers."""

    def __init__(
        self,
        providers: Sequence[CalendarProvider] = (),
        max_concurrency: int | None = None,
    ) -> None:
        self._providers = list(providers)
        self._max_concurrency = max_concurrency or settings.provider_max_concurrency

    @property
    def providers(self) -> list[CalendarProvider]:
        return list(self._providers)

    async def fetch_busy(
        self,
        user_ids: Iterable[str],
        start: datetime,
        end: datetime,
    ) -> BusyByUser:
        """Fetch and merge busy intervals per user.

        Returns:
            A mapping with an entry for every requested user.  Each value is
            the minimal sorted set of busy periods from all providers that
            answered for that user; a user whose providers all failed maps
            to an empty list.

        Raises:
            PermissionDenied, NetworkTimeout: every unit failed for that reason.
            CalendarSyncFailed: every unit failed, for mixed or other reasons.
        """
        users = list(dict.fromkeys(user_ids))
        start, end = as_utc(start), as_utc(end)
        raw: BusyByUser = {user_id: [] for user_id in users}

        if not users:
            return raw
        if not self._providers:
            log.warning("No calendar providers configured; treating everyone as free")
            return raw

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def fetch_one(user_id: str, provider: CalendarProvider) -> list[BusyTimePeriod]:
            async with semaphore:
                return await provider.get_busy_intervals(user_id, start, end)

        units = [(user_id, provider) for user_id in users for provider in self._providers]
        outcomes = await asyncio.gather(
            *(fetch_one(user_id, provider) for user_id, provider in units),
            return_exceptions=True,
        )

        failures: list[Exception] = []
        for (user_id, provider), outcome in zip(units, outcomes):
            if isinstance(outcome, Exception):
                log.warning(
                    "Busy fetch failed for user %s via %s: %s",
                    redact_id(user_id), provider.provider_id, outcome,
                    exc_info=outcome,
                )
                failures.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            raw[user_id].extend(
                p for p in outcome if p.start < end and start < p.end
            )

        if len(failures) == len(units):
            raise self._total_failure(failures)

        if failures:
            log.info(
                "Busy fetch completed with %d of %d sources failing",
                len(failures), len(units),
            )

        return {user_id: merge_busy(periods) for user_id, periods in raw.items()}

    @staticmethod
    def _total_failure(failures: Sequence[Exception]) -> AvailabilityError:
        for kind in (PermissionDenied, NetworkTimeout):
            if all(isinstance(f, kind) for f in failures):
                return kind(failures[0].message)
        reasons = "; ".join(sorted({f"{type(f).__name__}: {f}" for f in failures}))
        return CalendarSyncFailed(f"all {len(failures)} calendar sources failed ({reasons})")

    @staticmethod
    def slot_is_free(
        busy_by_user: Mapping[str, Sequence[BusyTimePeriod]],
        parties: Sequence[PartyMembership],
        slot: TimeSlot,
        require_all: bool,
    ) -> bool:
        """Check one slot against already-fetched busy data.

        ``require_all`` demands every member of every party be free;
        otherwise one free member per party is enough.
        """
        def member_free(user_id: str) -> bool:
            return not overlaps_any(slot, busy_by_user.get(user_id, ()))

        if require_all:
            return all(member_free(m) for party in parties for m in party.members)
        return all(any(member_free(m) for m in party.members) for party in parties)

    async def is_free(
        self,
        parties: Sequence[PartyMembership],
        slot: TimeSlot,
        require_all: bool,
    ) -> bool:
        busy = await self.fetch_busy(union_members(*parties), slot.start, slot.end)
        return self.slot_is_free(busy, parties, slot, require_all)

    async def confirm_slots(
        self,
        parties: Sequence[PartyMembership],
        slots: Sequence[TimeSlot],
        require_all: bool,
        margin: timedelta = timedelta(0),
    ) -> Confirmation:
        """Drop slots that collide with fetched busy time.

        Busy data is fetched once for the span covering every slot, widened
        by ``margin`` on both sides, then each slot is checked against it.
        The result is sorted ascending.
        """
        if not slots:
            return Confirmation(slots=[], busy_by_user={})

        span_start = min(s.start for s in slots) - margin
        span_end = max(s.end for s in slots) + margin
        busy = await self.fetch_busy(union_members(*parties), span_start, span_end)

        free = sorted(
            s for s in slots if self.slot_is_free(busy, parties, s, require_all)
        )
        log.info(
            "Calendar confirmation kept %d of %d slots (require_all=%s)",
            len(free), len(slots), require_all,
        )
        return Confirmation(slots=free, busy_by_user=busy)
