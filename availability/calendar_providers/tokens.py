"""Per-user OAuth tokens for calendar providers.

``TokenManager.call_with_refresh`` runs a provider call with a valid access
token.  When the backend rejects the token, the manager refreshes it and
retries, at most ``token_refresh_attempts`` times, then gives up with
``PermissionDenied``.  The retry is an explicit loop so a refresh endpoint
that keeps failing can never recurse.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, TypeVar

from availability.config import settings
from availability.errors import PermissionDenied
from availability.models.party import redact_id

from .base import ProviderKind

log = logging.getLogger("availability.tokens")

T = TypeVar("T")


class AuthorizationRejected(Exception):
    """Raised by a provider call when the backend refuses the access token."""


@dataclass(frozen=True)
class OAuthToken:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def expires_within(self, skew: timedelta, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at - now < skew


class TokenStore(ABC):
    """Where provider tokens live.  Owned by the application layer."""

    @abstractmethod
    async def get_token(self, user_id: str, kind: ProviderKind) -> OAuthToken | None:
        ...

    @abstractmethod
    async def save_token(self, user_id: str, kind: ProviderKind, token: OAuthToken) -> None:
        ...


class InMemoryTokenStore(TokenStore):
    def __init__(self, tokens: dict[tuple[str, ProviderKind], OAuthToken] | None = None) -> None:
        self._tokens = dict(tokens or {})
        self._lock = asyncio.Lock()

    async def get_token(self, user_id: str, kind: ProviderKind) -> OAuthToken | None:
        async with self._lock:
            return self._tokens.get((user_id, kind))

    async def save_token(self, user_id: str, kind: ProviderKind, token: OAuthToken) -> None:
        async with self._lock:
            self._tokens[(user_id, kind)] = token


RefreshFn = Callable[[OAuthToken], Awaitable[OAuthToken]]


class TokenManager:
    """Loads, refreshes and persists one provider's tokens."""

    def __init__(
        self,
        store: TokenStore,
        kind: ProviderKind,
        refresh: RefreshFn,
        refresh_attempts: int | None = None,
        expiry_skew: timedelta | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._kind = kind
        self._refresh_fn = refresh
        self._attempts = (
            settings.token_refresh_attempts if refresh_attempts is None else refresh_attempts
        )
        self._skew = expiry_skew or timedelta(seconds=settings.token_expiry_skew_seconds)
        self._now = now or (lambda: datetime.now(tz=timezone.utc))

    async def valid_token(self, user_id: str) -> OAuthToken:
        """Return a stored token, refreshing it first if it is about to expire."""
        token = await self._store.get_token(user_id, self._kind)
        if token is None:
            raise PermissionDenied(
                f"No {self._kind.value} calendar connected for user {redact_id(user_id)}"
            )
        if token.expires_within(self._skew, self._now()):
            log.info("%s token for %s expiring, refreshing", self._kind.value, redact_id(user_id))
            token = await self.refresh(user_id, token)
        return token

    async def refresh(self, user_id: str, token: OAuthToken) -> OAuthToken:
        if not token.refresh_token:
            raise PermissionDenied(
                f"{self._kind.value} token for user {redact_id(user_id)} cannot be refreshed"
            )
        fresh = await self._refresh_fn(token)
        await self._store.save_token(user_id, self._kind, fresh)
        return fresh

    async def call_with_refresh(
        self, user_id: str, call: Callable[[str], Awaitable[T]]
    ) -> T:
        """Invoke ``call(access_token)``, refreshing on rejection within the bound."""
        token = await self.valid_token(user_id)
        refreshes = 0
        while True:
            try:
                return await call(token.access_token)
            except AuthorizationRejected as exc:
                if refreshes >= self._attempts:
                    raise PermissionDenied(
                        f"{self._kind.value} rejected the token for user "
                        f"{redact_id(user_id)} after {refreshes} refresh(es)"
                    ) from exc
                refreshes += 1
                log.info(
                    "%s rejected token for %s, refresh attempt %d/%d",
                    self._kind.value, redact_id(user_id), refreshes, self._attempts,
                )
                token = await self.refresh(user_id, token)
