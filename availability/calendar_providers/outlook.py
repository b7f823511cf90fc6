"""Outlook calendar provider backed by Microsoft Graph.

Uses delegated OAuth tokens, one per user, held in a ``TokenStore``.  Busy
time comes from the ``calendarView`` endpoint; any event whose ``showAs`` is
not ``free`` counts as busy.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from availability.config import settings
from availability.errors import NetworkTimeout, PermissionDenied
from availability.models.slots import BusyTimePeriod

from .base import CalendarEvent, CalendarProvider, ProviderKind
from .tokens import AuthorizationRejected, OAuthToken, TokenManager, TokenStore

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
SCOPES = "offline_access Calendars.ReadWrite"
FREE_STATUSES = {"free", "workingElsewhere"}


class OutlookCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Microsoft Graph v1.0."""

    kind = ProviderKind.OUTLOOK

    def __init__(
        self,
        token_store: TokenStore,
        client: httpx.AsyncClient | None = None,
        base_url: str = GRAPH_URL,
        refresh_attempts: int | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=settings.outlook_request_timeout)
        self._base_url = base_url.rstrip("/")
        self._tokens = TokenManager(
            token_store,
            ProviderKind.OUTLOOK,
            refresh=self._refresh_token,
            refresh_attempts=refresh_attempts,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self, method: str, path: str, user_id: str, **kwargs: Any
    ) -> httpx.Response:
        url = path if path.startswith("http") else f"{self._base_url}{path}"

        async def send(access_token: str) -> httpx.Response:
            headers = {
                "Authorization": f"Bearer {access_token}",
                "Prefer": 'outlook.timezone="UTC"',
            }
            try:
                resp = await self._client.request(method, url, headers=headers, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                raise NetworkTimeout("Microsoft Graph is unreachable") from exc
            if resp.status_code == 401:
                raise AuthorizationRejected(resp.text)
            if resp.status_code == 403:
                raise PermissionDenied("Microsoft Graph denied calendar access")
            resp.raise_for_status()
            return resp

        return await self._tokens.call_with_refresh(user_id, send)

    async def _refresh_token(self, token: OAuthToken) -> OAuthToken:
        """Exchange a refresh token for a new access token."""
        try:
            resp = await self._client.post(
                TOKEN_URL.format(tenant=settings.outlook_tenant),
                data={
                    "client_id": settings.outlook_client_id,
                    "client_secret": settings.outlook_client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": token.refresh_token,
                    "scope": SCOPES,
                },
            )
        except (httpx.TimeoutException, httpx.ConnectError) as exc:
            raise NetworkTimeout("Token endpoint is unreachable") from exc

        if resp.status_code != 200:
            raise PermissionDenied(
                f"Outlook token refresh failed (status {resp.status_code})"
            )

        data = resp.json()
        return OAuthToken(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", token.refresh_token),
            expires_at=datetime.now(tz=timezone.utc)
            + timedelta(seconds=int(data.get("expires_in", 3600))),
        )

    @staticmethod
    def _parse_graph_time(value: dict) -> datetime:
        """Parse a Graph ``dateTimeTimeZone`` returned in UTC."""
        # Graph sends 7 fractional digits; drop them, minute precision is enough
        raw = value["dateTime"].split(".")[0]
        return datetime.fromisoformat(raw).replace(tzinfo=timezone.utc)

    @staticmethod
    def _to_graph_time(dt: datetime) -> dict:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        utc = dt.astimezone(timezone.utc).replace(tzinfo=None)
        return {"dateTime": utc.isoformat(), "timeZone": "UTC"}

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def get_busy_intervals(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyTimePeriod]:
        """List calendar events in the window, following pagination links."""
        params: dict[str, str] | None = {
            "startDateTime": self._to_graph_time(start)["dateTime"],
            "endDateTime": self._to_graph_time(end)["dateTime"],
            "$select": "subject,start,end,showAs,isAllDay",
        }
        path = "/me/calendarView"
        busy: list[BusyTimePeriod] = []

        while path:
            resp = await self._request("GET", path, user_id, params=params)
            data = resp.json()
            for item in data.get("value", []):
                if item.get("showAs", "busy") in FREE_STATUSES:
                    continue
                busy.append(
                    BusyTimePeriod(
                        start=self._parse_graph_time(item["start"]),
                        end=self._parse_graph_time(item["end"]),
                        source_provider_id=self.provider_id,
                        title=item.get("subject"),
                        is_all_day=bool(item.get("isAllDay", False)),
                    )
                )
            # nextLink already carries the query string
            path = data.get("@odata.nextLink", "")
            params = None

        return busy

    async def create_event(self, event: CalendarEvent, user_id: str) -> str:
        body: dict[str, Any] = {
            "subject": event.summary,
            "start": self._to_graph_time(event.start),
            "end": self._to_graph_time(event.end),
        }
        if event.description:
            body["body"] = {"contentType": "text", "content": event.description}
        if event.location:
            body["location"] = {"displayName": event.location}
        if event.attendees:
            body["attendees"] = [
                {"emailAddress": {"address": addr}, "type": "required"}
                for addr in event.attendees
            ]

        resp = await self._request("POST", "/me/events", user_id, json=body)
        event_id = resp.json()["id"]
        logger.info("Created Outlook event %s", event_id)
        return event_id

    async def cancel_event(self, event_id: str, user_id: str) -> bool:
        try:
            await self._request("DELETE", f"/me/events/{event_id}", user_id)
            logger.info("Cancelled Outlook event %s", event_id)
            return True
        except Exception:
            logger.exception("Failed to cancel Outlook event %s", event_id)
            return False
