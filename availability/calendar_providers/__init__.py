"""Calendar provider abstractions and implementations."""

from .base import CalendarEvent, CalendarProvider, ProviderKind

__all__ = ["CalendarProvider", "CalendarEvent", "ProviderKind"]
