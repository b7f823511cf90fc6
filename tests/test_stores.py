"""Tests for preference storage, membership resolution and notification."""

import asyncio
import logging
from datetime import time

import pytest

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from availability.errors import AvailabilityError, ConcurrentUpdateConflict, RelationshipNotFound, UnavailableTimePeriod
from availability.models.events import ConflictFlag
from availability.models.party import PartyMembership
from availability.models.preferences import AvailabilityPreferences, RecurringCommitment, Weekday
from availability.stores import (
    InMemoryMembershipResolver,
    InMemoryPreferenceStore,
    LoggingNotifier,
    PreferenceStore,
    add_commitment,
    remove_commitment,
)

YOGA = RecurringCommitment(weekday=Weekday.WEDNESDAY, start_time=time(18), end_time=time(19), title="Yoga")


# ── Preference store ───────────────────────────────────────────────


class TestInMemoryPreferenceStore:
    def test_is_a_preference_store(self):
        assert isinstance(InMemoryPreferenceStore(), PreferenceStore)

    @pytest.mark.asyncio
    async def test_missing_record(self):
        assert await InMemoryPreferenceStore().load_preferences("party-a") is None

    @pytest.mark.asyncio
    async def test_save_bumps_version_and_stamps(self):
        store = InMemoryPreferenceStore()
        stored = await store.save_preferences("party-a", AvailabilityPreferences(), expected_version=0)
        assert stored.version == 1
        assert stored.updated_at is not None
        assert await store.load_preferences("party-a") == stored

    @pytest.mark.asyncio
    async def test_stale_write_rejected(self):
        store = InMemoryPreferenceStore()
        first = await store.save_preferences("party-a", AvailabilityPreferences(), expected_version=0)
        await store.save_preferences("party-a", first, expected_version=first.version)

        with pytest.raises(ConcurrentUpdateConflict):
            await store.save_preferences("party-a", first, expected_version=first.version)

    @pytest.mark.asyncio
    async def test_racing_writers_one_wins(self):
        store = InMemoryPreferenceStore()
        results = await asyncio.gather(
            store.save_preferences("party-a", AvailabilityPreferences(), expected_version=0),
            store.save_preferences("party-a", AvailabilityPreferences(), expected_version=0),
            return_exceptions=True,
        )
        assert sum(isinstance(r, ConcurrentUpdateConflict) for r in results) == 1
        assert (await store.load_preferences("party-a")).version == 1

    @pytest.mark.asyncio
    async def test_add_and_remove_commitment(self):
        store = InMemoryPreferenceStore()
        added = await add_commitment(store, "party-a", YOGA)
        assert added.commitments == [YOGA]
        assert added.version == 1

        removed = await remove_commitment(store, "party-a", YOGA)
        assert removed.commitments == []
        assert removed.version == 2

    @pytest.mark.asyncio
    async def test_remove_unknown_commitment(self):
        with pytest.raises(AvailabilityError):
            await remove_commitment(InMemoryPreferenceStore(), "party-a", YOGA)


# ── Membership ─────────────────────────────────────────────────────


class TestMembership:
    @pytest.mark.asyncio
    async def test_resolves_known_party(self):
        couple = PartyMembership("party-b", ("bob", "carol"))
        resolver = InMemoryMembershipResolver([couple])
        assert await resolver.resolve_members("party-b") == couple

    @pytest.mark.asyncio
    async def test_unknown_party(self):
        with pytest.raises(RelationshipNotFound):
            await InMemoryMembershipResolver().resolve_members("party-x")

    @pytest.mark.asyncio
    async def test_add(self):
        resolver = InMemoryMembershipResolver()
        resolver.add(PartyMembership("party-a", ("alice",)))
        assert (await resolver.resolve_members("party-a")).members == ("alice",)


# ── Notifier ───────────────────────────────────────────────────────


class TestLoggingNotifier:
    @pytest.mark.asyncio
    async def test_conflict_logged_as_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="availability.stores"):
            await LoggingNotifier().publish_conflict_status(
                ConflictFlag("evt-1", True, conflicting_users=("bob",))
            )
        assert caplog.records[-1].levelno == logging.WARNING

    @pytest.mark.asyncio
    async def test_failure_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="availability.stores"):
            await LoggingNotifier().publish_failure("party-a", UnavailableTimePeriod())
        assert "No Available Time" in caplog.records[-1].getMessage()
