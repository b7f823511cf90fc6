"""Keep only the candidate slots that also suit a second party."""

from __future__ import annotations

import logging
from typing import Iterable

from availability.intervals import contains
from availability.models.preferences import AvailabilityPreferences, Weekday
from availability.models.slots import TimeSlot
from availability.slot_generator import conflicts_with_commitments

log = logging.getLogger("availability.preference_filter")


class PreferenceFilter:
    """Order-preserving filter against another party's windows and commitments."""

    def filter(
        self,
        slots: Iterable[TimeSlot],
        other_preferences: AvailabilityPreferences,
    ) -> list[TimeSlot]:
        kept: list[TimeSlot] = []
        total = 0
        for slot in slots:
            total += 1
            if self.accepts(slot, other_preferences):
                kept.append(slot)
        log.debug("Preference filter kept %d of %d slots", len(kept), total)
        return kept

    @staticmethod
    def accepts(slot: TimeSlot, preferences: AvailabilityPreferences) -> bool:
        """True when ``slot`` lies wholly inside one window and clears every commitment.

        The weekday is re-derived in the other party's own timezone.
        """
        zone = preferences.zone
        day = preferences.local_date(slot.start)
        windows = preferences.windows_for(Weekday.from_date(day))
        if not windows:
            return False

        if not any(contains(*window.project(day, zone), slot) for window in windows):
            return False

        return not conflicts_with_commitments(slot, preferences)
