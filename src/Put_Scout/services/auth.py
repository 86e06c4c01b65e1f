"""Lazily refreshed, shared access token.

Several concurrent workers may need the same bearer token. The cache
hands out the current token while it is valid; when it is missing or
about to expire, exactly one caller refreshes it under an
``asyncio.Lock`` and the rest reuse the result (double-checked).
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable
from typing import Final, NamedTuple

logger = logging.getLogger(__name__)

# Refresh this long before the reported expiry
EXPIRY_MARGIN: Final[datetime.timedelta] = datetime.timedelta(seconds=60)


class IssuedToken(NamedTuple):
    """A token and the moment it stops being valid."""

    value: str
    expires_at: datetime.datetime


TokenFetcher = Callable[[], Awaitable[IssuedToken]]


class TokenCache:
    """Shares one access token between concurrent callers."""

    def __init__(
        self,
        fetcher: TokenFetcher,
        *,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._clock = clock or (lambda: datetime.datetime.now(datetime.UTC))
        self._token: IssuedToken | None = None
        self._lock = asyncio.Lock()

    def _is_valid(self) -> bool:
        return self._token is not None and self._clock() < self._token.expires_at - EXPIRY_MARGIN

    async def get(self) -> str:
        """Return a valid token, refreshing it at most once per expiry."""
        if self._is_valid():
            assert self._token is not None  # noqa: S101
            return self._token.value
        async with self._lock:
            if not self._is_valid():
                logger.debug("Refreshing access token")
                self._token = await self._fetcher()
            assert self._token is not None  # noqa: S101
            return self._token.value

    def invalidate(self) -> None:
        """Drop the cached token (e.g. after a 401)."""
        self._token = None
