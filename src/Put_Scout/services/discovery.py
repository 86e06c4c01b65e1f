"""Discovery of optionable underlyings.

``NullDiscovery`` is the configured default and always returns an empty
list, which makes the orchestrator fall through to the watchlist.
``BrokerOptionsDiscovery`` asks a broker's market-data REST API for the
instrument groups that list options and keeps the underlyings traded on
the configured exchanges.
"""

from __future__ import annotations

import datetime
import logging
from typing import Any, Final, Protocol

import httpx
import jwt

from Put_Scout.services.auth import IssuedToken, TokenCache
from Put_Scout.services.rate_limiter import RateLimiter
from Put_Scout.utils.exceptions import (
    AuthenticationError,
    DataSourceUnavailableError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

BROKER_SOURCE: Final[str] = "broker"
GROUPS_PATH: Final[str] = "/md/3.0/groups"
OPTION_TYPE: Final[str] = "OPTION"
TOKEN_ALGORITHM: Final[str] = "HS256"
TOKEN_AUDIENCE: Final[list[str]] = ["symbols", "feed"]
HTTP_OK: Final[int] = 200
HTTP_UNAUTHORIZED: Final[int] = 401
HTTP_TOO_MANY_REQUESTS: Final[int] = 429


class SymbolDiscovery(Protocol):
    """Source of the scan universe."""

    async def discover_underlying_symbols(self) -> list[str]: ...


class NullDiscovery:
    """Discovery that finds nothing; selects the watchlist path."""

    async def discover_underlying_symbols(self) -> list[str]:
        return []


class SignedTokenIssuer:
    """Signs short-lived broker API tokens locally with the shared key."""

    def __init__(
        self,
        *,
        client_id: str,
        application_id: str,
        shared_key: str,
        ttl: datetime.timedelta,
    ) -> None:
        self._client_id = client_id
        self._application_id = application_id
        self._shared_key = shared_key
        self._ttl = ttl

    async def __call__(self) -> IssuedToken:
        if not (self._client_id and self._application_id and self._shared_key):
            raise AuthenticationError(
                "Broker credentials are not configured",
                ticker="*",
                source=BROKER_SOURCE,
            )
        now = datetime.datetime.now(datetime.UTC)
        expires = now + self._ttl
        payload = {
            "iss": self._client_id,
            "sub": self._application_id,
            "iat": int(now.timestamp()),
            "exp": int(expires.timestamp()),
            "aud": TOKEN_AUDIENCE,
        }
        token = jwt.encode(payload, self._shared_key, algorithm=TOKEN_ALGORITHM)
        logger.info("Issued broker token valid until %s", expires.isoformat())
        return IssuedToken(value=token, expires_at=expires)


class BrokerOptionsDiscovery:
    """Lists underlyings that have listed options on the broker.

    Usage::

        tokens = TokenCache(SignedTokenIssuer(...))
        discovery = BrokerOptionsDiscovery(
            base_url="https://api-live.example.com",
            tokens=tokens,
            rate_limiter=limiter,
        )
        symbols = await discovery.discover_underlying_symbols()
    """

    def __init__(
        self,
        *,
        base_url: str,
        tokens: TokenCache,
        rate_limiter: RateLimiter,
        exchanges: list[str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = tokens
        self._rate_limiter = rate_limiter
        self._exchanges = {e.upper() for e in (exchanges or ["NASDAQ", "NYSE", "AMEX", "ARCA"])}
        self._transport = transport

    async def discover_underlying_symbols(self) -> list[str]:
        """Sorted, de-duplicated underlying tickers that list options.

        Raises:
            DataSourceUnavailableError: If the broker cannot be reached.
            AuthenticationError: If the broker rejects the token.
        """
        groups = await self._rate_limiter.execute(
            self._fetch_groups,
            ticker="*",
            source=BROKER_SOURCE,
        )
        symbols = parse_option_groups(groups, self._exchanges)
        logger.info(
            "Discovered %d optionable underlyings on %s",
            len(symbols),
            ", ".join(sorted(self._exchanges)),
        )
        return symbols

    async def _fetch_groups(self) -> list[dict[str, Any]]:
        token = await self._tokens.get()
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=5.0),
                transport=self._transport,
            ) as client:
                response = await client.get(
                    GROUPS_PATH,
                    headers={"Authorization": f"Bearer {token}"},
                )
        except httpx.HTTPError as exc:
            msg = f"Broker groups request failed: {exc}"
            logger.error(msg)
            raise DataSourceUnavailableError(msg, ticker="*", source=BROKER_SOURCE) from exc

        if response.status_code == HTTP_UNAUTHORIZED:
            self._tokens.invalidate()
            raise AuthenticationError(
                "Broker rejected the access token",
                ticker="*",
                source=BROKER_SOURCE,
                http_status=response.status_code,
            )
        if response.status_code == HTTP_TOO_MANY_REQUESTS:
            raise RateLimitExceededError(
                "Broker rate limit hit",
                ticker="*",
                source=BROKER_SOURCE,
                http_status=response.status_code,
            )
        if response.status_code != HTTP_OK:
            raise DataSourceUnavailableError(
                f"Broker returned HTTP {response.status_code} for {GROUPS_PATH}",
                ticker="*",
                source=BROKER_SOURCE,
                http_status=response.status_code,
            )

        payload = response.json()
        if not isinstance(payload, list):
            raise DataSourceUnavailableError(
                "Unexpected groups payload from broker",
                ticker="*",
                source=BROKER_SOURCE,
            )
        return payload


def parse_option_groups(groups: list[dict[str, Any]], exchanges: set[str]) -> list[str]:
    """Extract tickers from ``TICKER.EXCHANGE`` groups that list options."""
    symbols: set[str] = set()
    for group in groups:
        types = group.get("types") or []
        name = group.get("group") or ""
        if OPTION_TYPE not in types or "." not in name:
            continue
        ticker, _, exchange = name.partition(".")
        if ticker and exchange.upper() in exchanges:
            symbols.add(ticker.upper())
    return sorted(symbols)
