"""Busy time and event writes through Google Calendar v3.

Authenticates with a service account whose key file comes from
``GOOGLE_SERVICE_ACCOUNT_JSON`` unless a path is passed in.  Each user
maps to a calendar id, usually an email address; unmapped users are
queried by their own id.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Mapping

import httplib2
from google.oauth2.service_account import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from availability.config import settings
from availability.errors import NetworkTimeout, PermissionDenied
from availability.models.party import redact_id
from availability.models.slots import BusyTimePeriod

from .base import CalendarEvent, CalendarProvider, ProviderKind

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar"]


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Google Calendar API v3."""

    kind = ProviderKind.GOOGLE

    def __init__(
        self,
        service_account_path: str | None = None,
        calendar_ids: Mapping[str, str] | None = None,
    ) -> None:
        key_path = service_account_path or settings.google_service_account_json
        if not key_path:
            raise ValueError(
                "No Google service account key: pass service_account_path "
                "or set GOOGLE_SERVICE_ACCOUNT_JSON."
            )
        self._credentials = Credentials.from_service_account_file(key_path, scopes=SCOPES)
        self._service = build("calendar", "v3", credentials=self._credentials)
        self._calendar_ids = dict(calendar_ids or {})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool.

        HTTP 401/403 become PermissionDenied and socket timeouts become
        NetworkTimeout; other errors propagate unchanged.
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, partial(func, *args, **kwargs)
            )
        except HttpError as exc:
            if exc.resp is not None and exc.resp.status in (401, 403):
                raise PermissionDenied(
                    f"Google Calendar rejected the request ({exc.resp.status})"
                ) from exc
            raise
        except TimeoutError as exc:
            raise NetworkTimeout("Google Calendar request timed out") from exc

    def _authorized_http(self) -> AuthorizedHttp:
        """A fresh authorized transport, used by exactly one request."""
        return AuthorizedHttp(self._credentials, http=httplib2.Http())

    async def _execute(self, request) -> Any:
        return await self._run_in_executor(request.execute, http=self._authorized_http())

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()

    @staticmethod
    def _parse_rfc3339(value: str) -> datetime:
        # Python < 3.11 fromisoformat does not accept a trailing "Z"
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        return datetime.fromisoformat(value)

    def calendar_id_for(self, user_id: str) -> str:
        return self._calendar_ids.get(user_id, user_id)

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def get_busy_intervals(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyTimePeriod]:
        """Ask the freebusy endpoint for one calendar; per-calendar errors raise."""
        calendar_id = self.calendar_id_for(user_id)
        body = {
            "timeMin": self._to_rfc3339(start),
            "timeMax": self._to_rfc3339(end),
            "items": [{"id": calendar_id}],
        }

        response = await self._execute(self._service.freebusy().query(body=body))

        calendar = response.get("calendars", {}).get(calendar_id, {})
        errors = calendar.get("errors", [])
        if errors:
            reasons = ", ".join(e.get("reason", "unknown") for e in errors)
            if any(e.get("reason") in ("notFound", "forbidden") for e in errors):
                raise PermissionDenied(
                    f"Calendar {calendar_id} is not readable: {reasons}"
                )
            raise RuntimeError(f"Freebusy query failed for {calendar_id}: {reasons}")

        return [
            BusyTimePeriod(
                start=self._parse_rfc3339(block["start"]),
                end=self._parse_rfc3339(block["end"]),
                source_provider_id=self.provider_id,
            )
            for block in calendar.get("busy", [])
        ]

    @classmethod
    def _event_resource(cls, event: CalendarEvent) -> dict[str, Any]:
        resource: dict[str, Any] = {
            "summary": event.summary,
            "start": {"dateTime": cls._to_rfc3339(event.start)},
            "end": {"dateTime": cls._to_rfc3339(event.end)},
            "description": event.description or None,
            "location": event.location or None,
            "attendees": [{"email": email} for email in event.attendees] or None,
        }
        return {key: value for key, value in resource.items() if value is not None}

    async def create_event(self, event: CalendarEvent, user_id: str) -> str:
        """Insert the agreed slot into the user's calendar and invite attendees."""
        calendar_id = self.calendar_id_for(user_id)
        request = self._service.events().insert(
            calendarId=calendar_id,
            body=self._event_resource(event),
            sendUpdates="all",
        )
        created = await self._execute(request)

        logger.info("Created Google event %s for %s", created["id"], redact_id(user_id))
        return created["id"]

    async def cancel_event(self, event_id: str, user_id: str) -> bool:
        calendar_id = self.calendar_id_for(user_id)
        request = self._service.events().delete(calendarId=calendar_id, eventId=event_id)
        try:
            await self._execute(request)
        except Exception:
            logger.exception("Could not delete Google event %s for %s", event_id, redact_id(user_id))
            return False
        logger.info("Deleted Google event %s for %s", event_id, redact_id(user_id))
        return True
