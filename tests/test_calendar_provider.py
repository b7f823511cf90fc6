"""Tests for CalendarProvider ABC and GoogleCalendarProvider."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from availability.calendar_providers.base import (
    CalendarEvent,
    CalendarProvider,
    ProviderKind,
)
from availability.errors import NetworkTimeout, PermissionDenied


# ── CalendarEvent dataclass tests ──────────────────────────────────


class TestDataclasses:
    def test_calendar_event_defaults(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(
            summary="Test",
            start=now,
            end=now + timedelta(minutes=30),
        )
        assert event.description == ""
        assert event.attendees == []
        assert event.location == ""

    def test_calendar_event_with_attendees(self):
        now = datetime.now(tz=timezone.utc)
        event = CalendarEvent(
            summary="Dinner",
            start=now,
            end=now + timedelta(hours=2),
            attendees=["a@test.com", "b@test.com"],
            location="Luigi's",
        )
        assert len(event.attendees) == 2
        assert event.location == "Luigi's"


# ── ABC contract tests ─────────────────────────────────────────────


class TestCalendarProviderABC:
    def test_cannot_instantiate(self):
        """CalendarProvider is abstract and can't be instantiated directly."""
        with pytest.raises(TypeError):
            CalendarProvider()

    def test_concrete_implementation(self):
        """A concrete subclass must implement all abstract methods."""
        class MockProvider(CalendarProvider):
            kind = ProviderKind.GOOGLE

            async def get_busy_intervals(self, user_id, start, end):
                return []
            async def create_event(self, event, user_id):
                return "evt"
            async def cancel_event(self, event_id, user_id):
                return True

        provider = MockProvider()
        assert isinstance(provider, CalendarProvider)
        assert provider.provider_id == "google"

    def test_missing_method_rejected(self):
        class Incomplete(CalendarProvider):
            kind = ProviderKind.OUTLOOK

            async def get_busy_intervals(self, user_id, start, end):
                return []

        with pytest.raises(TypeError):
            Incomplete()

    def test_closed_set_of_kinds(self):
        assert {k.value for k in ProviderKind} == {"google", "outlook"}


# ── GoogleCalendarProvider tests (mocked API) ──────────────────────


def http_error(status):
    resp = MagicMock(status=status, reason="error")
    return HttpError(resp, b'{"error": {"message": "denied"}}')


class TestGoogleCalendarProvider:
    @pytest.fixture
    def mock_provider(self):
        """Create a GoogleCalendarProvider with mocked Google APIs."""
        with patch(
            "availability.calendar_providers.google.Credentials"
        ) as mock_creds, patch(
            "availability.calendar_providers.google.build"
        ) as mock_build:
            mock_creds.from_service_account_file.return_value = MagicMock()

            from availability.calendar_providers.google import GoogleCalendarProvider

            provider = GoogleCalendarProvider(
                service_account_path="/fake/path.json",
                calendar_ids={"alice": "alice@example.com"},
            )
            provider._service = mock_build.return_value
            return provider

    def test_requires_service_account(self, monkeypatch):
        from availability.calendar_providers import google
        monkeypatch.setattr(google.settings, "google_service_account_json", "")
        with pytest.raises(ValueError):
            google.GoogleCalendarProvider()

    def test_calendar_id_mapping(self, mock_provider):
        assert mock_provider.calendar_id_for("alice") == "alice@example.com"
        assert mock_provider.calendar_id_for("bob@example.com") == "bob@example.com"

    @pytest.mark.asyncio
    async def test_busy_intervals_empty_calendar(self, mock_provider):
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 3, 15, 18, 0, tzinfo=timezone.utc)

        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "alice@example.com": {"busy": []}
            }
        }

        assert await mock_provider.get_busy_intervals("alice", start, end) == []

    @pytest.mark.asyncio
    async def test_busy_intervals(self, mock_provider):
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        end = datetime(2026, 3, 15, 18, 0, tzinfo=timezone.utc)

        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "alice@example.com": {
                    "busy": [
                        {
                            "start": "2026-03-15T10:00:00Z",
                            "end": "2026-03-15T11:00:00Z",
                        },
                        {
                            "start": "2026-03-15T14:00:00+00:00",
                            "end": "2026-03-15T15:00:00+00:00",
                        },
                    ]
                }
            }
        }

        busy = await mock_provider.get_busy_intervals("alice", start, end)

        assert [(b.start.hour, b.end.hour) for b in busy] == [(10, 11), (14, 15)]
        assert all(b.source_provider_id == "google" for b in busy)
        assert busy[0].start.tzinfo is not None

        body = mock_provider._service.freebusy.return_value.query.call_args.kwargs["body"]
        assert body["items"] == [{"id": "alice@example.com"}]
        assert body["timeMin"] == "2026-03-15T09:00:00+00:00"

    @pytest.mark.asyncio
    async def test_unreadable_calendar(self, mock_provider):
        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {
                "alice@example.com": {"errors": [{"domain": "global", "reason": "notFound"}]}
            }
        }
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        with pytest.raises(PermissionDenied):
            await mock_provider.get_busy_intervals("alice", start, start + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_forbidden_maps_to_permission_denied(self, mock_provider):
        mock_provider._service.freebusy.return_value.query.return_value.execute.side_effect = http_error(403)
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        with pytest.raises(PermissionDenied):
            await mock_provider.get_busy_intervals("alice", start, start + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_server_error_propagates(self, mock_provider):
        mock_provider._service.freebusy.return_value.query.return_value.execute.side_effect = http_error(500)
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        with pytest.raises(HttpError):
            await mock_provider.get_busy_intervals("alice", start, start + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_timeout_maps_to_network_timeout(self, mock_provider):
        mock_provider._service.freebusy.return_value.query.return_value.execute.side_effect = TimeoutError()
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        with pytest.raises(NetworkTimeout):
            await mock_provider.get_busy_intervals("alice", start, start + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_concurrent_requests_use_separate_transports(self, mock_provider):
        mock_provider._service.freebusy.return_value.query.return_value.execute.return_value = {
            "calendars": {}
        }
        start = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)

        with patch(
            "availability.calendar_providers.google.AuthorizedHttp",
            side_effect=lambda credentials, http: MagicMock(),
        ) as mock_authorized:
            await asyncio.gather(
                mock_provider.get_busy_intervals("alice", start, start + timedelta(hours=1)),
                mock_provider.get_busy_intervals("bob@example.com", start, start + timedelta(hours=1)),
            )

        execute = mock_provider._service.freebusy.return_value.query.return_value.execute
        transports = [c.kwargs["http"] for c in execute.call_args_list]
        assert len(transports) == 2
        assert transports[0] is not transports[1]
        assert mock_authorized.call_count == 2
        http_objects = [c.kwargs["http"] for c in mock_authorized.call_args_list]
        assert http_objects[0] is not http_objects[1]

    @pytest.mark.asyncio
    async def test_create_event(self, mock_provider):
        """create_event should call events().insert() and return the event id."""
        now = datetime(2026, 3, 15, 19, 0, tzinfo=timezone.utc)
        event = CalendarEvent(
            summary="Dinner",
            start=now,
            end=now + timedelta(hours=2),
            attendees=["bob@example.com"],
            location="Luigi's",
        )

        mock_provider._service.events.return_value.insert.return_value.execute.return_value = {
            "id": "evt_123",
            "htmlLink": "https://calendar.google.com/event/evt_123",
            "status": "confirmed",
        }

        result = await mock_provider.create_event(event, "alice")

        assert result == "evt_123"
        kwargs = mock_provider._service.events.return_value.insert.call_args.kwargs
        assert kwargs["calendarId"] == "alice@example.com"
        assert kwargs["body"]["attendees"] == [{"email": "bob@example.com"}]

    @pytest.mark.asyncio
    async def test_cancel_event(self, mock_provider):
        """cancel_event should call events().delete()."""
        mock_provider._service.events.return_value.delete.return_value.execute.return_value = None

        result = await mock_provider.cancel_event("evt_123", "alice")
        assert result is True

    @pytest.mark.asyncio
    async def test_cancel_event_failure(self, mock_provider):
        """cancel_event should return False on error."""
        mock_provider._service.events.return_value.delete.return_value.execute.side_effect = Exception(
            "Not found"
        )

        result = await mock_provider.cancel_event("evt_404", "alice")
        assert result is False
