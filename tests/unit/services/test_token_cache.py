"""Tests for TokenCache: single refresh under concurrency, expiry, invalidate."""

from __future__ import annotations

import asyncio
import datetime

import pytest

from Put_Scout.services.auth import EXPIRY_MARGIN, IssuedToken, TokenCache

NOW = datetime.datetime(2026, 3, 2, 14, 0, tzinfo=datetime.UTC)


class CountingFetcher:
    """Issues token-1, token-2, ... and counts calls."""

    def __init__(self, lifetime: datetime.timedelta = datetime.timedelta(hours=1)) -> None:
        self.calls = 0
        self.lifetime = lifetime

    async def __call__(self) -> IssuedToken:
        self.calls += 1
        await asyncio.sleep(0.01)
        return IssuedToken(value=f"token-{self.calls}", expires_at=NOW + self.lifetime)


class TestTokenCache:
    """Tests for TokenCache.get() and invalidate()."""

    @pytest.mark.asyncio()
    async def test_concurrent_callers_share_one_refresh(self) -> None:
        fetcher = CountingFetcher()
        cache = TokenCache(fetcher, clock=lambda: NOW)

        tokens = await asyncio.gather(*(cache.get() for _ in range(20)))

        assert set(tokens) == {"token-1"}
        assert fetcher.calls == 1

    @pytest.mark.asyncio()
    async def test_valid_token_is_reused(self) -> None:
        fetcher = CountingFetcher()
        cache = TokenCache(fetcher, clock=lambda: NOW)
        assert await cache.get() == "token-1"
        assert await cache.get() == "token-1"
        assert fetcher.calls == 1

    @pytest.mark.asyncio()
    async def test_token_inside_margin_is_refreshed(self) -> None:
        fetcher = CountingFetcher()
        current = [NOW]
        cache = TokenCache(fetcher, clock=lambda: current[0])
        await cache.get()

        # Still before expiry, but within the refresh margin
        current[0] = NOW + datetime.timedelta(hours=1) - EXPIRY_MARGIN + datetime.timedelta(
            seconds=1
        )
        assert await cache.get() == "token-2"

    @pytest.mark.asyncio()
    async def test_invalidate_forces_refresh(self) -> None:
        fetcher = CountingFetcher()
        cache = TokenCache(fetcher, clock=lambda: NOW)
        await cache.get()
        cache.invalidate()
        assert await cache.get() == "token-2"

    @pytest.mark.asyncio()
    async def test_fetch_failure_propagates(self) -> None:
        async def broken() -> IssuedToken:
            raise RuntimeError("auth server down")

        cache = TokenCache(broken, clock=lambda: NOW)
        with pytest.raises(RuntimeError, match="auth server down"):
            await cache.get()
