"""Collaborator interfaces the engine depends on, with in-memory implementations.

The engine never talks to a database or push service directly; the
application layer passes in implementations of these ABCs.  The in-memory
versions back the test suite and local experiments.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable

from availability.errors import (
    AvailabilityError,
    ConcurrentUpdateConflict,
    RelationshipNotFound,
)
from availability.models.events import ConflictFlag
from availability.models.party import PartyMembership
from availability.models.preferences import AvailabilityPreferences, RecurringCommitment

log = logging.getLogger("availability.stores")


# ── Preferences ──────────────────────────────────────────────────


class PreferenceStore(ABC):
    @abstractmethod
    async def load_preferences(self, party_id: str) -> AvailabilityPreferences | None:
        """Return the party's stored record, or None if it never saved one."""

    @abstractmethod
    async def save_preferences(
        self,
        party_id: str,
        preferences: AvailabilityPreferences,
        expected_version: int,
    ) -> AvailabilityPreferences:
        """Replace the party's record if it is still at ``expected_version``.

        Returns:
            The stored record with its new version and timestamp.

        Raises:
            ConcurrentUpdateConflict: another write landed first.
        """


class InMemoryPreferenceStore(PreferenceStore):
    """Dict-backed store with compare-then-write under a lock."""

    def __init__(self, records: dict[str, AvailabilityPreferences] | None = None) -> None:
        self._records = dict(records or {})
        self._lock = asyncio.Lock()

    async def load_preferences(self, party_id: str) -> AvailabilityPreferences | None:
        async with self._lock:
            return self._records.get(party_id)

    async def save_preferences(
        self,
        party_id: str,
        preferences: AvailabilityPreferences,
        expected_version: int,
    ) -> AvailabilityPreferences:
        async with self._lock:
            current = self._records.get(party_id)
            current_version = current.version if current else 0
            if expected_version != current_version:
                log.info(
                    "Rejected stale preference write for %s (expected v%d, stored v%d)",
                    party_id, expected_version, current_version,
                )
                raise ConcurrentUpdateConflict()

            stored = preferences.model_copy(
                update={
                    "version": current_version + 1,
                    "updated_at": datetime.now(tz=timezone.utc),
                }
            )
            self._records[party_id] = stored
            return stored


async def add_commitment(
    store: PreferenceStore, party_id: str, commitment: RecurringCommitment
) -> AvailabilityPreferences:
    """Append a recurring commitment, saving the whole record."""
    current = await store.load_preferences(party_id)
    base = current or AvailabilityPreferences.default()
    updated = base.model_copy(update={"commitments": [*base.commitments, commitment]})
    return await store.save_preferences(party_id, updated, expected_version=base.version)


async def remove_commitment(
    store: PreferenceStore, party_id: str, commitment: RecurringCommitment
) -> AvailabilityPreferences:
    """Drop a recurring commitment, saving the whole record.

    Raises:
        AvailabilityError: the party has no such commitment.
    """
    current = await store.load_preferences(party_id)
    if current is None or commitment not in current.commitments:
        raise AvailabilityError("Commitment not found")
    remaining = [c for c in current.commitments if c != commitment]
    updated = current.model_copy(update={"commitments": remaining})
    return await store.save_preferences(party_id, updated, expected_version=current.version)


# ── Membership ───────────────────────────────────────────────────


class MembershipResolver(ABC):
    @abstractmethod
    async def resolve_members(self, party_id: str) -> PartyMembership:
        """Return the party's members.

        Raises:
            RelationshipNotFound: no active relationship/profile for ``party_id``.
        """


class InMemoryMembershipResolver(MembershipResolver):
    def __init__(self, parties: Iterable[PartyMembership] = ()) -> None:
        self._parties = {p.party_id: p for p in parties}

    def add(self, party: PartyMembership) -> None:
        self._parties[party.party_id] = party

    async def resolve_members(self, party_id: str) -> PartyMembership:
        try:
            return self._parties[party_id]
        except KeyError:
            raise RelationshipNotFound(
                f"No relationship found for party {party_id!r}"
            ) from None


# ── Notifications ────────────────────────────────────────────────


class Notifier(ABC):
    @abstractmethod
    async def publish_conflict_status(self, flag: ConflictFlag) -> None:
        """Deliver a conflict / no-conflict status update for one event."""

    @abstractmethod
    async def publish_failure(self, party_id: str, error: AvailabilityError) -> None:
        """Deliver a party-facing summary of a failed scheduling query."""


class LoggingNotifier(Notifier):
    """Notifier that only writes log lines."""

    async def publish_conflict_status(self, flag: ConflictFlag) -> None:
        if flag.has_conflict:
            log.warning(
                "Event %s conflicts with calendars of %d participant(s)",
                flag.event_id, len(flag.conflicting_users),
            )
        else:
            log.info("Event %s has no calendar conflict", flag.event_id)

    async def publish_failure(self, party_id: str, error: AvailabilityError) -> None:
        log.info("Scheduling failed for party %s: %s (%s)", party_id, error.title, error.message)
