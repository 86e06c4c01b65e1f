"""Shared helpers for feed adapters.

Safe numeric conversions for pandas/yfinance values and the
retry-with-backoff wrapper used by the yfinance market data adapter.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Coroutine
from decimal import Decimal, InvalidOperation
from typing import Any, Final

from Put_Scout.services.rate_limiter import RateLimiter
from Put_Scout.utils.exceptions import (
    DataSourceUnavailableError,
    InsufficientDataError,
    TickerNotFoundError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------

YFINANCE_SOURCE: Final[str] = "yfinance"
EXTERNAL_CALL_TIMEOUT_SECONDS: Final[float] = 30.0

MAX_RETRIES: Final[int] = 3
BACKOFF_DELAYS: Final[tuple[float, ...]] = (1.0, 2.0, 4.0)

_NON_FINITE: Final[frozenset[str]] = frozenset({"nan", "inf", "-inf", "none", "nat", ""})


# ---------------------------------------------------------------------------
# Safe type conversions
# ---------------------------------------------------------------------------


def safe_decimal(value: object, default: Decimal = Decimal("0")) -> Decimal:
    """Convert a numeric value to Decimal via string to preserve precision.

    NaN, None, infinities and unparseable values map to *default*.
    """
    if value is None:
        return default
    text = str(value).strip()
    if text.lower() in _NON_FINITE:
        return default
    try:
        return Decimal(text)
    except (InvalidOperation, ValueError):
        return default


def optional_decimal(value: object, places: int = 2) -> Decimal | None:
    """Like :func:`safe_decimal` but ``None`` for missing values, rounded."""
    result = safe_decimal(value, default=Decimal("NaN"))
    if result.is_nan():
        return None
    return round(result, places)


def safe_float(value: object) -> float:
    """Convert a numeric value to float, treating NaN/None/inf as 0.0."""
    if value is None:
        return 0.0
    try:
        number = float(str(value))
    except (ValueError, TypeError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def optional_float(value: object) -> float | None:
    """Float conversion that keeps "missing" distinct from zero."""
    if value is None:
        return None
    try:
        number = float(str(value))
    except (ValueError, TypeError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def safe_int(value: object) -> int:
    """Convert a numeric value to int, treating NaN/None as 0."""
    return int(safe_float(value))


# ---------------------------------------------------------------------------
# Retry wrapper
# ---------------------------------------------------------------------------


async def fetch_with_retry[T](
    fetch_fn: Callable[[], Coroutine[Any, Any, T]],
    *,
    rate_limiter: RateLimiter,
    ticker: str,
    source: str,
    label: str,
    max_retries: int = MAX_RETRIES,
    backoff_delays: tuple[float, ...] = BACKOFF_DELAYS,
) -> T:
    """Retry a fetch coroutine with backoff, gated by the shared rate limiter.

    yfinance raises inconsistent exception types, so anything other than
    the domain errors is retried and finally surfaced as
    ``DataSourceUnavailableError``. ``TickerNotFoundError`` and
    ``InsufficientDataError`` are re-raised immediately.

    Raises:
        DataSourceUnavailableError: After exhausting all retries.
    """
    last_exc: Exception | None = None

    for attempt in range(max_retries):
        async with rate_limiter:
            try:
                return await fetch_fn()
            except (TickerNotFoundError, InsufficientDataError):
                raise
            except Exception as exc:  # noqa: BLE001
                last_exc = exc
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    label,
                    attempt + 1,
                    max_retries,
                    exc,
                )

        if attempt < max_retries - 1:
            await asyncio.sleep(backoff_delays[min(attempt, len(backoff_delays) - 1)])

    raise DataSourceUnavailableError(
        f"Failed to fetch {label} after {max_retries} retries: {last_exc}",
        ticker=ticker,
        source=source,
    )
