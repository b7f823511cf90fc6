"""Error taxonomy for the availability engine.

Every failure the engine reports to its caller is an ``AvailabilityError``
subclass.  Callers can branch on the class, or read ``title``,
``recovery_suggestion`` and ``severity`` to present the failure:

  configuration problems  → InvalidTimeRange, InvalidDuration,
                            UnavailableTimePeriod, PreferenceConflict
  transient/data problems → CalendarSyncFailed, NetworkTimeout,
                            ConcurrentUpdateConflict
  access problems         → RelationshipNotFound, PermissionDenied
"""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AvailabilityError(Exception):
    """Base class for all availability failures."""

    title = "Error"
    default_message = "Availability could not be determined."
    recovery_suggestion = "Try again later or contact support if the issue persists."
    severity = Severity.ERROR

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTimeRange(AvailabilityError):
    title = "Invalid Time Selection"
    default_message = "The specified time range is invalid. End time must be after start time."
    recovery_suggestion = "Please ensure the end time is after the start time."
    severity = Severity.INFO


class InvalidDuration(AvailabilityError):
    title = "Invalid Time Selection"
    default_message = "Invalid duration specified. Duration must be between 15 minutes and 12 hours."
    recovery_suggestion = "Choose a duration between 15 minutes and 12 hours."
    severity = Severity.INFO


class RelationshipNotFound(AvailabilityError):
    title = "Relationship Not Found"
    default_message = "The specified relationship could not be found."
    recovery_suggestion = "Return to the relationships screen and try again."
    severity = Severity.ERROR


class UnavailableTimePeriod(AvailabilityError):
    title = "No Available Time"
    default_message = "The requested time period has no available slots based on your preferences."
    recovery_suggestion = "Try extending the date range or adjusting your weekly availability settings."
    severity = Severity.INFO


class PreferenceConflict(AvailabilityError):
    title = "Preference Conflict"
    default_message = "No candidate time satisfies the other party's availability preferences."
    recovery_suggestion = "Discuss and align on availability preferences with the other party."
    severity = Severity.WARNING


class CalendarSyncFailed(AvailabilityError):
    title = "Calendar Sync Failed"
    recovery_suggestion = "Check your calendar permissions or try again in a moment."
    severity = Severity.WARNING

    def __init__(self, reason: str = "unknown error") -> None:
        self.reason = reason
        super().__init__(f"Failed to sync with calendar: {reason}")


class ConcurrentUpdateConflict(AvailabilityError):
    title = "Update Conflict"
    default_message = "Another user updated these preferences. Please refresh and try again."
    recovery_suggestion = "Refresh to see the latest changes, then try again."
    severity = Severity.WARNING


class PermissionDenied(AvailabilityError):
    title = "Permission Denied"
    default_message = "Access to the calendar was denied."
    recovery_suggestion = "Reconnect the calendar account and grant access again."
    severity = Severity.WARNING


class NetworkTimeout(AvailabilityError):
    title = "Network Error"
    default_message = "Request timed out. Please check your network connection and try again."
    recovery_suggestion = "Check your internet connection and try again."
    severity = Severity.WARNING
