"""Engine configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("availability.config")


class Settings(BaseSettings):
    # Slot generation
    calendar_timezone: str = "UTC"
    slot_step_minutes: int = 30
    min_duration_minutes: int = 15
    max_duration_minutes: int = 12 * 60

    # Fallback ladder
    fallback_horizon_days: int = 14
    fallback_floor_minutes: int = 30
    suggestions_per_strategy: int = 3

    # Provider fan-out
    provider_max_concurrency: int = 8
    token_refresh_attempts: int = 1
    token_expiry_skew_seconds: int = 300

    # Google Calendar
    google_service_account_json: str = ""

    # Outlook / Microsoft Graph
    outlook_client_id: str = ""
    outlook_client_secret: str = ""
    outlook_tenant: str = "common"
    outlook_request_timeout: float = 15.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"path/to/service-account.json", "your-client-id"}

        try:
            ZoneInfo(self.calendar_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"CALENDAR_TIMEZONE {self.calendar_timezone!r} is not a known IANA zone."
            )

        if self.min_duration_minutes <= 0 or self.min_duration_minutes > self.max_duration_minutes:
            raise ValueError(
                "MIN_DURATION_MINUTES must be positive and not exceed MAX_DURATION_MINUTES."
            )

        if self.slot_step_minutes <= 0:
            raise ValueError("SLOT_STEP_MINUTES must be positive.")

        if self.token_refresh_attempts < 0:
            raise ValueError("TOKEN_REFRESH_ATTEMPTS cannot be negative.")

        if not self.google_service_account_json and not self.outlook_client_id:
            warnings.append(
                "No calendar provider configured. Calendar confirmation will "
                "see no busy data."
            )

        if self.google_service_account_json in _placeholders:
            warnings.append(
                "GOOGLE_SERVICE_ACCOUNT_JSON is a placeholder; Google Calendar disabled."
            )

        if self.outlook_client_id and not self.outlook_client_secret:
            warnings.append(
                "OUTLOOK_CLIENT_SECRET not set. Outlook token refresh will fail."
            )

        return warnings


settings = Settings()
