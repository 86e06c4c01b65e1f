"""Market data aggregator wrapping yfinance.

Builds the per-symbol ``AggregatedMarketData`` the strategies consume:
price/technical snapshot, 21-session trend, dividend profile and the
short-dated put slice. Also serves the live price used by the Z-Score.

All yfinance calls are synchronous and wrapped in ``asyncio.to_thread()``
to avoid blocking the event loop; each one goes through the shared
``RateLimiter`` via ``fetch_with_retry``.

Key rules:
- "No data" never raises: the affected sub-field is ``None`` or empty.
- Feed outages after retries raise ``DataSourceUnavailableError`` so the
  orchestrator can record a per-symbol error.
- Implied volatility from yfinance is already annualized -- DO NOT annualize.
- yfinance chains carry no Greeks; put delta/theta are computed with BSM.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from decimal import Decimal
from typing import Any, Final, Protocol

import pandas as pd
import yfinance as yf  # type: ignore[import-untyped]

from Put_Scout.analysis.greeks import put_greeks_or_none
from Put_Scout.indicators import linear_trend, macd, rsi, sma
from Put_Scout.models.enums import OptionType, TrendDirection
from Put_Scout.models.market_data import (
    AggregatedMarketData,
    DividendInfo,
    MarketSnapshot,
    TrendAnalysis,
)
from Put_Scout.models.options import OptionContract
from Put_Scout.services._helpers import (
    EXTERNAL_CALL_TIMEOUT_SECONDS,
    YFINANCE_SOURCE,
    fetch_with_retry,
    optional_decimal,
    optional_float,
    safe_decimal,
    safe_float,
    safe_int,
)
from Put_Scout.services.rate_limiter import RateLimiter
from Put_Scout.utils.exceptions import (
    InsufficientDataError,
    TickerNotFoundError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HISTORY_PERIOD: Final[str] = "1y"
MIN_HISTORY_ROWS: Final[int] = 30

TREND_WINDOW_DAYS: Final[int] = 21
TREND_PROJECTION_SESSIONS: Final[int] = 5
TREND_DIRECTION_THRESHOLD_PCT: Final[float] = 1.0
TREND_STRENGTH_SCALE_PCT: Final[float] = 10.0
TREND_R2_WEIGHT: Final[float] = 0.6
TREND_CONSISTENCY_WEIGHT: Final[float] = 0.4

DEFAULT_RISK_FREE_RATE: Final[float] = 0.045

MA_PERIODS: Final[tuple[int, int, int]] = (20, 50, 200)
RSI_PERIOD: Final[int] = 14


class MarketDataAggregator(Protocol):
    """Joins price, trend, options and dividend data for one symbol."""

    async def get_full_market_data(self, symbol: str) -> AggregatedMarketData: ...


class PriceProvider(Protocol):
    """Live price lookup used for the market value of equity."""

    async def get_current_price(self, symbol: str) -> Decimal | None: ...


class YFinanceMarketData:
    """Async market data adapter backed by yfinance.

    Usage::

        limiter = RateLimiter()
        feed = YFinanceMarketData(rate_limiter=limiter, expiry_window=(14, 21))

        data = await feed.get_full_market_data("AAPL")
        price = await feed.get_current_price("AAPL")
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        expiry_window: tuple[int, int] = (14, 21),
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
    ) -> None:
        self._rate_limiter = rate_limiter
        self._min_dte, self._max_dte = expiry_window
        self._risk_free_rate = risk_free_rate

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_full_market_data(self, symbol: str) -> AggregatedMarketData:
        """Fetch and join everything a strategy needs for *symbol*.

        Raises:
            DataSourceUnavailableError: If yfinance stays unreachable.
        """
        symbol = symbol.upper().strip()
        try:
            history = await self._fetch(symbol, "history", self._sync_history)
            info = await self._fetch(symbol, "info", self._sync_info)
        except (TickerNotFoundError, InsufficientDataError) as exc:
            logger.warning("No market data for %s: %s", symbol, exc)
            return AggregatedMarketData(symbol=symbol)

        snapshot = build_snapshot(symbol, history, info)
        if snapshot is None:
            return AggregatedMarketData(symbol=symbol)

        trend = analyze_trend(symbol, history["Close"])
        dividend = build_dividend_info(symbol, info)
        puts = await self._fetch_put_slice(symbol, float(snapshot.current_price))

        logger.info(
            "Aggregated %s: price=%s trend=%s puts=%d dividend=%.2f%%",
            symbol,
            snapshot.current_price,
            trend.direction.value if trend else "n/a",
            len(puts),
            dividend.dividend_yield if dividend else 0.0,
        )
        return AggregatedMarketData(
            symbol=symbol,
            snapshot=snapshot,
            trend=trend,
            put_options=puts,
            dividend=dividend,
        )

    async def get_current_price(self, symbol: str) -> Decimal | None:
        """Last traded price, or ``None`` when yfinance has none.

        Raises:
            DataSourceUnavailableError: If yfinance stays unreachable.
        """
        symbol = symbol.upper().strip()
        try:
            info = await self._fetch(symbol, "price", self._sync_fast_price)
        except (TickerNotFoundError, InsufficientDataError):
            return None
        price = optional_decimal(info)
        if price is None or price <= 0:
            return None
        return price

    # ------------------------------------------------------------------
    # Options slice
    # ------------------------------------------------------------------

    async def _fetch_put_slice(self, symbol: str, spot: float) -> list[OptionContract]:
        try:
            raw_expirations = await self._fetch(symbol, "expirations", self._sync_expirations)
        except (TickerNotFoundError, InsufficientDataError):
            return []

        today = datetime.date.today()
        in_window: list[datetime.date] = []
        for raw in raw_expirations:
            try:
                expiration = datetime.date.fromisoformat(str(raw))
            except ValueError:
                logger.warning("Skipping unparseable expiration for %s: %s", symbol, raw)
                continue
            if self._min_dte <= (expiration - today).days <= self._max_dte:
                in_window.append(expiration)

        contracts: list[OptionContract] = []
        for expiration in sorted(in_window):
            try:
                puts = await self._fetch(
                    symbol,
                    f"puts {expiration.isoformat()}",
                    lambda s, e=expiration.isoformat(): self._sync_puts(s, e),
                )
            except (TickerNotFoundError, InsufficientDataError):
                continue
            contracts.extend(
                chain_to_contracts(
                    puts,
                    symbol=symbol,
                    expiration=expiration,
                    spot=spot,
                    risk_free_rate=self._risk_free_rate,
                )
            )
        return contracts

    # ------------------------------------------------------------------
    # Raw yfinance calls (sync, wrapped in asyncio.to_thread)
    # ------------------------------------------------------------------

    async def _fetch[T](self, symbol: str, what: str, sync_fn: Any) -> T:
        async def _run() -> T:
            result: T = await asyncio.wait_for(
                asyncio.to_thread(sync_fn, symbol),
                timeout=EXTERNAL_CALL_TIMEOUT_SECONDS,
            )
            return result

        return await fetch_with_retry(
            _run,
            rate_limiter=self._rate_limiter,
            ticker=symbol,
            source=YFINANCE_SOURCE,
            label=f"{what}({symbol})",
        )

    @staticmethod
    def _sync_history(symbol: str) -> pd.DataFrame:
        frame: pd.DataFrame = yf.Ticker(symbol).history(period=HISTORY_PERIOD, auto_adjust=False)
        if frame is None or frame.empty:
            raise TickerNotFoundError(
                f"No price history for {symbol}", ticker=symbol, source=YFINANCE_SOURCE
            )
        if len(frame) < MIN_HISTORY_ROWS:
            raise InsufficientDataError(
                f"Only {len(frame)} bars of history for {symbol}",
                ticker=symbol,
                source=YFINANCE_SOURCE,
            )
        return frame

    @staticmethod
    def _sync_info(symbol: str) -> dict[str, Any]:
        info: dict[str, Any] = yf.Ticker(symbol).info or {}
        return info

    @staticmethod
    def _sync_fast_price(symbol: str) -> object:
        fast: Any = yf.Ticker(symbol).fast_info
        return getattr(fast, "last_price", None)

    @staticmethod
    def _sync_expirations(symbol: str) -> tuple[str, ...]:
        expirations: tuple[str, ...] = yf.Ticker(symbol).options
        return expirations

    @staticmethod
    def _sync_puts(symbol: str, expiration: str) -> pd.DataFrame:
        chain: Any = yf.Ticker(symbol).option_chain(expiration)
        puts: pd.DataFrame = chain.puts
        return puts


# ---------------------------------------------------------------------------
# Pure builders (DataFrame/dict in, models out)
# ---------------------------------------------------------------------------


def _price(value: object) -> Decimal:
    """Rounded Decimal price, 0 for missing values."""
    return optional_decimal(value) or Decimal("0")


def _last_value(series: pd.Series) -> float | None:
    cleaned = series.dropna()
    if cleaned.empty:
        return None
    return float(cleaned.iloc[-1])


def build_snapshot(
    symbol: str,
    history: pd.DataFrame,
    info: dict[str, Any],
) -> MarketSnapshot | None:
    """Compute the price/technical snapshot from daily OHLCV history.

    Indicators whose warmup exceeds the history length are left ``None``.
    """
    if history.empty or "Close" not in history.columns:
        return None
    close = history["Close"].astype(float)
    price = optional_decimal(close.iloc[-1])
    if price is None or price <= 0:
        return None

    averages: dict[int, Decimal | None] = {}
    for period in MA_PERIODS:
        try:
            value = _last_value(sma(close, period))
        except InsufficientDataError:
            value = None
        averages[period] = optional_decimal(value) if value is not None else None

    try:
        rsi_value = _last_value(rsi(close, RSI_PERIOD))
    except InsufficientDataError:
        rsi_value = None

    try:
        macd_frame = macd(close)
        macd_value = _last_value(macd_frame["macd"])
        signal_value = _last_value(macd_frame["signal"])
    except InsufficientDataError:
        macd_value = signal_value = None

    last_bar = history.iloc[-1]
    previous_close = history["Close"].iloc[-2] if len(history) > 1 else last_bar["Close"]
    return MarketSnapshot(
        symbol=symbol,
        current_price=price,
        open=_price(last_bar.get("Open")),
        high=_price(last_bar.get("High")),
        low=_price(last_bar.get("Low")),
        close=_price(previous_close),
        volume=safe_int(last_bar.get("Volume")),
        average_volume=safe_int(info.get("averageVolume")),
        high_52_week=_price(history["High"].max()),
        low_52_week=_price(history["Low"].min()),
        ma_20=averages[20],
        ma_50=averages[50],
        ma_200=averages[200],
        rsi=round(rsi_value, 2) if rsi_value is not None else None,
        macd=round(macd_value, 4) if macd_value is not None else None,
        macd_signal=round(signal_value, 4) if signal_value is not None else None,
    )


def analyze_trend(
    symbol: str,
    close: pd.Series,
    days: int = TREND_WINDOW_DAYS,
) -> TrendAnalysis | None:
    """Linear-regression trend over the last *days* sessions.

    Direction: change above +1% is up, below -1% is down, else sideways.
    Strength: |change| / 10%, capped at 1.
    Confidence: 0.6 x R^2 + 0.4 x share of sessions moving with the trend.
    Returns ``None`` when fewer than half the window is available.
    """
    recent = close.dropna().astype(float).tail(days)
    if len(recent) < max(2, days // 2):
        return None

    fit = linear_trend(recent)
    last = float(recent.iloc[-1])
    projected = fit.slope * (len(recent) - 1 + TREND_PROJECTION_SESSIONS) + fit.intercept
    growth = 0.0 if last == 0 else (projected - last) / last * 100.0

    if fit.percent_change > TREND_DIRECTION_THRESHOLD_PCT:
        direction = TrendDirection.UP
    elif fit.percent_change < -TREND_DIRECTION_THRESHOLD_PCT:
        direction = TrendDirection.DOWN
    else:
        direction = TrendDirection.SIDEWAYS

    rising_overall = recent.iloc[-1] >= recent.iloc[0]
    steps = recent.diff().dropna()
    with_trend = (steps >= 0) if rising_overall else (steps <= 0)
    consistency = float(with_trend.mean()) if len(steps) else 0.0

    confidence = TREND_R2_WEIGHT * fit.r_squared + TREND_CONSISTENCY_WEIGHT * consistency
    return TrendAnalysis(
        symbol=symbol,
        expected_growth_percent=round(growth, 2),
        trend_strength=round(min(1.0, abs(fit.percent_change) / TREND_STRENGTH_SCALE_PCT), 3),
        direction=direction,
        confidence=round(min(1.0, max(0.0, confidence)), 3),
        analysis_period_days=days,
    )


def _epoch_to_date(value: object) -> datetime.date | None:
    seconds = optional_float(value)
    if seconds is None or seconds <= 0:
        return None
    return datetime.datetime.fromtimestamp(seconds, tz=datetime.UTC).date()


def build_dividend_info(symbol: str, info: dict[str, Any]) -> DividendInfo | None:
    """Dividend profile from a yfinance ``info`` dict; ``None`` for non-payers."""
    rate = safe_decimal(info.get("trailingAnnualDividendRate"))
    yield_fraction = safe_float(info.get("trailingAnnualDividendYield"))
    ex_date = _epoch_to_date(info.get("exDividendDate"))
    if rate <= 0 and yield_fraction <= 0 and ex_date is None:
        return None
    return DividendInfo(
        symbol=symbol,
        dividend_yield=round(yield_fraction * 100.0, 4),
        annual_dividend=rate,
        ex_dividend_date=ex_date,
        payment_date=_epoch_to_date(info.get("dividendDate")),
    )


def chain_to_contracts(
    frame: pd.DataFrame,
    *,
    symbol: str,
    expiration: datetime.date,
    spot: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> list[OptionContract]:
    """Convert a yfinance puts DataFrame to ``OptionContract`` models.

    Contracts with neither bid nor ask are skipped as illiquid.
    """
    if frame is None or frame.empty:
        return []

    days_to_expiry = (expiration - datetime.date.today()).days
    contracts: list[OptionContract] = []
    for _, row in frame.iterrows():
        bid = safe_decimal(row.get("bid"))
        ask = safe_decimal(row.get("ask"))
        if bid <= 0 and ask <= 0:
            continue
        strike = safe_decimal(row.get("strike"))
        if strike <= 0:
            continue

        iv = safe_float(row.get("impliedVolatility"))
        greeks = (
            put_greeks_or_none(spot, float(strike), days_to_expiry, risk_free_rate, iv)
            if iv > 0 and days_to_expiry > 0
            else None
        )
        contracts.append(
            OptionContract(
                symbol=symbol,
                option_type=OptionType.PUT,
                strike=strike,
                expiration=expiration,
                bid=bid,
                ask=ask,
                last=safe_decimal(row.get("lastPrice")),
                volume=safe_int(row.get("volume")),
                open_interest=safe_int(row.get("openInterest")),
                implied_volatility=iv,
                greeks=greeks,
            )
        )
    return contracts
