"""Abstract base class for calendar providers.

Defines the capability interface the availability oracle consumes.  The set
of supported backends is closed: each implementation declares one
``ProviderKind`` and the oracle never dispatches on anything else.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from availability.models.slots import BusyTimePeriod


class ProviderKind(str, Enum):
    GOOGLE = "google"
    OUTLOOK = "outlook"


@dataclass
class CalendarEvent:
    """Represents a calendar event to be created."""

    summary: str
    start: datetime
    end: datetime
    description: str = ""
    attendees: list[str] = field(default_factory=list)  # email addresses
    location: str = ""


class CalendarProvider(ABC):
    """Abstract calendar backend.

    Implementations must be safe to call concurrently for different users.
    Transport failures should surface as ``PermissionDenied`` or
    ``NetworkTimeout`` where they can be recognised.
    """

    kind: ProviderKind

    @property
    def provider_id(self) -> str:
        return self.kind.value

    @abstractmethod
    async def get_busy_intervals(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyTimePeriod]:
        """Return the user's busy periods overlapping ``[start, end)``.

        Args:
            user_id: The user whose calendar is queried.
            start: Beginning of the search window.
            end: End of the search window.

        Returns:
            BusyTimePeriod objects tagged with this provider's id, in
            any order and possibly overlapping.
        """

    @abstractmethod
    async def create_event(self, event: CalendarEvent, user_id: str) -> str:
        """Create a calendar event on the user's calendar.

        Returns:
            The provider-specific event id.
        """

    @abstractmethod
    async def cancel_event(self, event_id: str, user_id: str) -> bool:
        """Cancel / delete a calendar event.

        Returns:
            True if the event was successfully cancelled.
        """
