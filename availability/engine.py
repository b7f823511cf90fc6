"""Mutual availability between two parties.

Pipeline for one query:

  1. validate the range and duration
  2. resolve both parties' members and load their preferences (fresh, every call)
  3. SlotGenerator over party A's preferences     → UnavailableTimePeriod if empty
  4. PreferenceFilter against party B's preferences → PreferenceConflict if empty
  5. calendar confirmation through the oracle      → CalendarSyncFailed if empty

The pipeline stops at the first stage that leaves no candidates and raises
that stage's error.  ``suggest_alternative_time_slots`` is the opt-in
fallback ladder a caller runs after such a failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterator

from availability.config import settings
from availability.errors import (
    AvailabilityError,
    CalendarSyncFailed,
    InvalidTimeRange,
    NetworkTimeout,
    PermissionDenied,
    PreferenceConflict,
    UnavailableTimePeriod,
)
from availability.intervals import as_utc
from availability.models.party import PartyMembership, union_members
from availability.models.preferences import AvailabilityPreferences, Weekday
from availability.models.slots import BusyTimePeriod, RatedTimeSlot, TimeSlot
from availability.oracle import CalendarAvailabilityOracle
from availability.preference_filter import PreferenceFilter
from availability.rating import ADJACENCY, free_gaps, rate_slot
from availability.slot_generator import Clock, SlotGenerator
from availability.stores import MembershipResolver, Notifier, PreferenceStore

log = logging.getLogger("availability.engine")

COMMITMENT_SOURCE = "commitment"
WHOLE_DAY = timedelta(days=1)


@dataclass
class _SearchResult:
    slots: list[TimeSlot]
    busy: list[BusyTimePeriod] = field(default_factory=list)
    zone: tzinfo = timezone.utc


class MutualAvailabilityEngine:
    """Finds time slots that suit both parties of a match.

    Holds no state between queries; every collaborator is injected.
    """

    def __init__(
        self,
        preferences: PreferenceStore,
        memberships: MembershipResolver,
        oracle: CalendarAvailabilityOracle,
        generator: SlotGenerator | None = None,
        preference_filter: PreferenceFilter | None = None,
        notifier: Notifier | None = None,
        now: Clock | None = None,
    ) -> None:
        self._preferences = preferences
        self._memberships = memberships
        self._oracle = oracle
        self._generator = generator or SlotGenerator(now=now)
        self._filter = preference_filter or PreferenceFilter()
        self._notifier = notifier

    # ── Public API ───────────────────────────────────────────────

    async def find_mutual_availability(
        self,
        party_a: str,
        party_b: str,
        start: datetime,
        end: datetime,
        duration_minutes: int,
    ) -> list[TimeSlot]:
        """Return slots free for both parties, ascending by start.

        Raises:
            InvalidTimeRange, InvalidDuration: bad query, before any I/O.
            RelationshipNotFound: a party has no resolvable membership.
            UnavailableTimePeriod: party A's preferences yield no slot.
            PreferenceConflict: no slot suits party B's preferences.
            CalendarSyncFailed: calendars rejected every remaining slot or
                could not be read.
            PermissionDenied, NetworkTimeout: every calendar source failed
                for that reason.
        """
        result = await self._search(party_a, party_b, start, end, duration_minutes)
        return result.slots

    async def find_rated_mutual_availability(
        self,
        party_a: str,
        party_b: str,
        start: datetime,
        end: datetime,
        duration_minutes: int,
    ) -> list[RatedTimeSlot]:
        """Same as ``find_mutual_availability`` with a rating per slot.

        Busy time is fetched a day either side of the candidates so a slot
        is only rated excellent for a clear day when the whole local day of
        party A was checked.
        """
        result = await self._search(
            party_a, party_b, start, end, duration_minutes, margin=WHOLE_DAY
        )
        return [
            RatedTimeSlot(slot=slot, rating=rate_slot(slot, result.busy, result.zone))
            for slot in result.slots
        ]

    async def free_ranges_by_date(
        self,
        party_a: str,
        party_b: str,
        start: datetime,
        end: datetime,
    ) -> dict[date, list[RatedTimeSlot]]:
        """Return the free gaps both parties share, keyed by party A's local date.

        Party A's windows are intersected with party B's for each day, then
        both parties' commitments are cut out, along with every member's
        calendar busy time when either party uses external calendars.  Gaps
        shorter than 30 minutes are dropped and days left without a gap are
        omitted.

        Raises:
            InvalidTimeRange: ``end`` is not after ``start``.
            RelationshipNotFound: a party has no resolvable membership.
            PermissionDenied, NetworkTimeout, CalendarSyncFailed: every
                calendar source failed.
        """
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            raise InvalidTimeRange()

        members_a, members_b = await asyncio.gather(
            self._memberships.resolve_members(party_a),
            self._memberships.resolve_members(party_b),
        )
        prefs_a, prefs_b = await self._load_preferences(party_a, party_b)

        shared = _shared_windows(prefs_a, prefs_b, start, end)
        if not shared:
            log.info("No overlapping windows for %s and %s", party_a, party_b)
            return {}

        blocked = _commitment_blocks(prefs_a, start, end) + _commitment_blocks(prefs_b, start, end)
        if prefs_a.use_external_calendars or prefs_b.use_external_calendars:
            busy_by_user = await self._oracle.fetch_busy(
                union_members(members_a, members_b), start, end
            )
            blocked.extend(p for periods in busy_by_user.values() for p in periods)

        by_date: dict[date, list[RatedTimeSlot]] = {}
        for day, window_start, window_end in shared:
            gaps = free_gaps(window_start, window_end, blocked)
            if gaps:
                by_date.setdefault(day, []).extend(gaps)
        return by_date

    async def suggest_alternative_time_slots(
        self,
        party_a: str,
        party_b: str,
        start: datetime,
        end: datetime,
        duration_minutes: int,
    ) -> list[TimeSlot]:
        """Run the fallback ladder and return combined suggestions.

        Three relaxed searches run concurrently:

          shorter   same range, duration halved (not below the floor)
          later     same duration, range continued past ``end`` by the horizon
          relaxed   one free member per party instead of everyone, only when
                    both parties normally require everyone

        A strategy that fails contributes nothing.  Each contributes at
        most ``suggestions_per_strategy`` slots; the combined list is
        deduplicated and sorted.  Never raises.
        """
        limit = settings.suggestions_per_strategy
        strategies = {
            "shorter": self._shorter_duration(party_a, party_b, start, end, duration_minutes),
            "later": self._extended_range(party_a, party_b, end, duration_minutes),
            "relaxed": self._relaxed_members(party_a, party_b, start, end, duration_minutes),
        }
        outcomes = await asyncio.gather(*strategies.values(), return_exceptions=True)

        suggestions: set[TimeSlot] = set()
        for name, outcome in zip(strategies, outcomes):
            if isinstance(outcome, Exception):
                log.info("Fallback strategy %r found nothing: %s", name, outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            log.debug("Fallback strategy %r contributed %d slot(s)", name, min(len(outcome), limit))
            suggestions.update(outcome[:limit])

        return sorted(suggestions)

    # ── Fallback strategies ──────────────────────────────────────

    async def _shorter_duration(
        self, party_a: str, party_b: str, start: datetime, end: datetime, duration_minutes: int
    ) -> list[TimeSlot]:
        halved = max(duration_minutes // 2, settings.fallback_floor_minutes)
        if halved >= duration_minutes:
            return []
        result = await self._run_pipeline(party_a, party_b, start, end, halved)
        return result.slots

    async def _extended_range(
        self, party_a: str, party_b: str, end: datetime, duration_minutes: int
    ) -> list[TimeSlot]:
        horizon = timedelta(days=settings.fallback_horizon_days)
        result = await self._run_pipeline(party_a, party_b, end, end + horizon, duration_minutes)
        return result.slots

    async def _relaxed_members(
        self, party_a: str, party_b: str, start: datetime, end: datetime, duration_minutes: int
    ) -> list[TimeSlot]:
        prefs_a, prefs_b = await self._load_preferences(party_a, party_b)
        if not (prefs_a.require_all_members_free and prefs_b.require_all_members_free):
            return []
        result = await self._run_pipeline(
            party_a, party_b, start, end, duration_minutes,
            require_all=False, confirm_calendars=True,
        )
        return result.slots

    # ── Pipeline ─────────────────────────────────────────────────

    async def _search(
        self,
        party_a: str,
        party_b: str,
        start: datetime,
        end: datetime,
        duration_minutes: int,
        margin: timedelta = ADJACENCY,
    ) -> _SearchResult:
        try:
            return await self._run_pipeline(
                party_a, party_b, start, end, duration_minutes, margin=margin
            )
        except AvailabilityError as exc:
            await self._publish_failure(party_a, exc)
            raise

    async def _run_pipeline(
        self,
        party_a: str,
        party_b: str,
        start: datetime,
        end: datetime,
        duration_minutes: int,
        require_all: bool | None = None,
        confirm_calendars: bool | None = None,
        margin: timedelta = ADJACENCY,
    ) -> _SearchResult:
        self._generator.validate(start, end, duration_minutes)

        members_a, members_b = await asyncio.gather(
            self._memberships.resolve_members(party_a),
            self._memberships.resolve_members(party_b),
        )
        prefs_a, prefs_b = await self._load_preferences(party_a, party_b)

        candidates = self._generator.generate(prefs_a, start, end, duration_minutes)
        if not candidates:
            raise UnavailableTimePeriod()

        candidates = self._filter.filter(candidates, prefs_b)
        if not candidates:
            raise PreferenceConflict()

        if confirm_calendars is None:
            confirm_calendars = prefs_a.use_external_calendars or prefs_b.use_external_calendars
        if not confirm_calendars:
            log.info("Found %d mutual slot(s) without calendar confirmation", len(candidates))
            return _SearchResult(slots=sorted(candidates), zone=prefs_a.zone)

        if require_all is None:
            require_all = prefs_a.require_all_members_free or prefs_b.require_all_members_free

        result = await self._confirm(members_a, members_b, candidates, require_all, margin)
        result.zone = prefs_a.zone
        return result

    async def _confirm(
        self,
        members_a: PartyMembership,
        members_b: PartyMembership,
        candidates: list[TimeSlot],
        require_all: bool,
        margin: timedelta,
    ) -> _SearchResult:
        try:
            # Margin covers busy blocks adjacent to the outermost candidates
            confirmation = await self._oracle.confirm_slots(
                [members_a, members_b], candidates, require_all, margin=margin
            )
        except (PermissionDenied, NetworkTimeout, CalendarSyncFailed):
            raise
        except Exception as exc:
            log.exception("Calendar confirmation failed")
            raise CalendarSyncFailed(str(exc)) from exc

        if not confirmation.slots:
            raise CalendarSyncFailed("No mutual availability found in calendars")

        return _SearchResult(slots=confirmation.slots, busy=confirmation.all_busy())

    async def _load_preferences(
        self, party_a: str, party_b: str
    ) -> tuple[AvailabilityPreferences, AvailabilityPreferences]:
        stored_a, stored_b = await asyncio.gather(
            self._preferences.load_preferences(party_a),
            self._preferences.load_preferences(party_b),
        )
        if stored_a is None:
            log.debug("No preferences stored for %s, using defaults", party_a)
        if stored_b is None:
            log.debug("No preferences stored for %s, using defaults", party_b)
        return (
            stored_a or AvailabilityPreferences.default(),
            stored_b or AvailabilityPreferences.default(),
        )

    async def _publish_failure(self, party_id: str, error: AvailabilityError) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.publish_failure(party_id, error)
        except Exception:
            log.exception("Failed to publish scheduling failure for %s", party_id)


# ── Free-range helpers ───────────────────────────────────────────


def _local_dates(start: datetime, end: datetime, zone: tzinfo) -> Iterator[date]:
    day = start.astimezone(zone).date()
    last = end.astimezone(zone).date()
    while day <= last:
        yield day
        day += timedelta(days=1)


def _window_spans(
    prefs: AvailabilityPreferences, start: datetime, end: datetime
) -> list[tuple[date, datetime, datetime]]:
    """Project the party's windows onto its local dates, clipped to the range."""
    zone = prefs.zone
    spans = []
    for day in _local_dates(start, end, zone):
        for window in prefs.windows_for(Weekday.from_date(day)):
            window_start, window_end = window.project(day, zone)
            window_start, window_end = max(window_start, start), min(window_end, end)
            if window_start < window_end:
                spans.append((day, window_start, window_end))
    return spans


def _shared_windows(
    prefs_a: AvailabilityPreferences,
    prefs_b: AvailabilityPreferences,
    start: datetime,
    end: datetime,
) -> list[tuple[date, datetime, datetime]]:
    spans_b = _window_spans(prefs_b, start, end)
    shared = []
    for day, a_start, a_end in _window_spans(prefs_a, start, end):
        for _, b_start, b_end in spans_b:
            overlap_start, overlap_end = max(a_start, b_start), min(a_end, b_end)
            if overlap_start < overlap_end:
                shared.append((day, overlap_start, overlap_end))
    return sorted(shared, key=lambda span: span[1])


def _commitment_blocks(
    prefs: AvailabilityPreferences, start: datetime, end: datetime
) -> list[BusyTimePeriod]:
    zone = prefs.zone
    blocks = []
    for day in _local_dates(start, end, zone):
        for commitment in prefs.commitments_for(Weekday.from_date(day)):
            block_start, block_end = commitment.project(day, zone)
            blocks.append(BusyTimePeriod(
                start=block_start,
                end=block_end,
                source_provider_id=COMMITMENT_SOURCE,
                title=commitment.title or None,
            ))
    return blocks
