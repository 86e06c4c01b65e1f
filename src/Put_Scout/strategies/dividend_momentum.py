"""Dividend-momentum conservative put seller.

Looks for dividend payers with a sustainable yield and positive price
momentum. The holding-period return counts the premium plus the
pro-rated dividend, and the selection is stricter than the other
variants: a higher confidence floor and a single pick per symbol.
"""

from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING, Final

from Put_Scout.models.enums import TrendDirection
from Put_Scout.strategies.base import (
    DAYS_PER_YEAR,
    Strategy,
    annualized_return,
    average_of_checks,
    clamp_confidence,
    days_since,
    macd_bullish,
    rsi_between,
    safety_margin,
)

if TYPE_CHECKING:
    from Put_Scout.models.market_data import (
        AggregatedMarketData,
        DividendInfo,
        MarketSnapshot,
        TrendAnalysis,
    )
    from Put_Scout.models.recommendation import Recommendation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

MIN_DIVIDEND_YIELD: Final[float] = 1.0
MAX_DIVIDEND_YIELD: Final[float] = 8.0
MAX_DAYS_SINCE_EX_DIVIDEND: Final[int] = 180
MIN_MOMENTUM_SCORE: Final[float] = 0.6
MIN_SAFETY_MARGIN: Final[float] = 0.03
MAX_SAFETY_MARGIN: Final[float] = 0.18
MIN_ANNUALIZED_RETURN: Final[float] = 0.08
EX_DIVIDEND_CONFLICT_DAYS: Final[int] = 5
EX_DIVIDEND_CONFLICT_PENALTY: Final[float] = 0.9
# Added to the global minimum confidence for the final pick
STRICTER_FLOOR: Final[float] = 0.05

# ---------------------------------------------------------------------------
# Confidence weights
# ---------------------------------------------------------------------------

WEIGHT_MOMENTUM: Final[float] = 0.20
WEIGHT_DIVIDEND: Final[float] = 0.25
WEIGHT_SAFETY: Final[float] = 0.20
WEIGHT_RETURN: Final[float] = 0.15
WEIGHT_VOLATILITY: Final[float] = 0.10
WEIGHT_TECHNICAL: Final[float] = 0.10

MAX_PICKS: Final[int] = 1


def meets_dividend_criteria(
    dividend: DividendInfo | None, today: datetime.date | None = None
) -> bool:
    """Yield within 1-8% and an ex-dividend date no more than 180 days back."""
    if dividend is None:
        return False
    if not MIN_DIVIDEND_YIELD <= dividend.dividend_yield <= MAX_DIVIDEND_YIELD:
        return False
    if dividend.ex_dividend_date is None:
        return False
    return days_since(dividend.ex_dividend_date, today) <= MAX_DAYS_SINCE_EX_DIVIDEND


def momentum_score(snapshot: MarketSnapshot, trend: TrendAnalysis) -> float:
    """Blend of MA position (40%), trend strength (30%), 52w range (20%), MACD (10%)."""
    ma_position = 0.0
    if snapshot.is_above(snapshot.ma_20):
        ma_position += 0.33
    if snapshot.is_above(snapshot.ma_50):
        ma_position += 0.33
    if snapshot.is_above(snapshot.ma_200):
        ma_position += 0.34
    score = ma_position * 0.4

    if trend.direction == TrendDirection.UP:
        score += trend.trend_strength * 0.3
    elif trend.direction == TrendDirection.SIDEWAYS:
        score += trend.trend_strength * 0.15

    position = snapshot.range_position_52w
    if position is not None:
        if position > 0.6:
            score += 0.2
        elif position > 0.4:
            score += 0.1

    if snapshot.macd is not None and snapshot.macd > 0:
        score += 0.1
    return score


def dividend_quality_score(dividend: DividendInfo, today: datetime.date | None = None) -> float:
    score = 0.0
    if 2.0 <= dividend.dividend_yield <= 4.0:
        score += 0.5
    elif 1.5 <= dividend.dividend_yield <= 5.0:
        score += 0.3
    else:
        score += 0.1

    if dividend.ex_dividend_date is not None:
        elapsed = days_since(dividend.ex_dividend_date, today)
        if elapsed <= 90:
            score += 0.3
        elif elapsed <= 120:
            score += 0.2
        else:
            score += 0.1

    if dividend.annual_dividend > 0:
        score += 0.2
    return min(1.0, score)


def safety_score(margin: float) -> float:
    if 0.10 <= margin <= 0.15:
        return 1.0
    if 0.08 <= margin <= 0.18:
        return 0.7
    return 0.3


def return_score(annualized: float) -> float:
    if annualized >= 0.15:
        return 1.0
    if annualized >= 0.12:
        return 0.8
    if annualized >= 0.10:
        return 0.6
    if annualized >= 0.08:
        return 0.4
    return 0.0


def volatility_score(implied_volatility: float) -> float:
    """Low IV preferred for dividend names."""
    if implied_volatility <= 0.25:
        return 1.0
    if implied_volatility <= 0.35:
        return 0.7
    return 0.3


def technical_health(snapshot: MarketSnapshot) -> float:
    return average_of_checks(
        rsi_between(snapshot, 40.0, 65.0, inclusive=True),
        snapshot.is_above(snapshot.ma_50),
        snapshot.is_above(snapshot.ma_200),
    )


def has_dividend_conflict(dividend: DividendInfo, expiration: datetime.date) -> bool:
    if dividend.ex_dividend_date is None:
        return False
    return abs((dividend.ex_dividend_date - expiration).days) <= EX_DIVIDEND_CONFLICT_DAYS


class DividendMomentumStrategy(Strategy):
    """Conservative puts on healthy dividend payers with positive momentum."""

    name = "DividendMomentum"
    description = (
        "Conservative PUT selling on financially healthy dividend stocks with positive momentum"
    )

    async def analyze(self, data: AggregatedMarketData) -> list[Recommendation]:
        candidate = await self._prepare(data)
        if candidate is None:
            return []

        dividend = data.dividend
        if dividend is None or not meets_dividend_criteria(dividend):
            logger.info("%s: skipping %s, dividend criteria not met", self.name, data.symbol)
            return []

        trend = data.trend
        assert trend is not None  # noqa: S101
        momentum = momentum_score(candidate.snapshot, trend)
        if momentum < MIN_MOMENTUM_SCORE:
            logger.info(
                "%s: skipping %s, momentum %.2f below %.2f",
                self.name,
                data.symbol,
                momentum,
                MIN_MOMENTUM_SCORE,
            )
            return []

        quality = dividend_quality_score(dividend)
        technical = technical_health(candidate.snapshot)
        price = candidate.snapshot.current_price
        floor = self.min_confidence + STRICTER_FLOOR

        picks: list[Recommendation] = []
        for option in candidate.puts:
            margin = safety_margin(price, option.strike)
            if not MIN_SAFETY_MARGIN <= margin <= MAX_SAFETY_MARGIN:
                continue

            dte = option.dte
            expected_dividend = dividend.annual_dividend * dte / DAYS_PER_YEAR
            annualized = annualized_return(option.mid + expected_dividend, option.strike, dte)
            if annualized < MIN_ANNUALIZED_RETURN:
                continue

            confidence = clamp_confidence(
                momentum * WEIGHT_MOMENTUM
                + quality * WEIGHT_DIVIDEND
                + safety_score(margin) * WEIGHT_SAFETY
                + return_score(annualized) * WEIGHT_RETURN
                + volatility_score(option.implied_volatility) * WEIGHT_VOLATILITY
                + technical * WEIGHT_TECHNICAL
            )
            if confidence < self.min_confidence:
                continue
            if has_dividend_conflict(dividend, option.expiration):
                confidence = clamp_confidence(confidence * EX_DIVIDEND_CONFLICT_PENALTY)
            if confidence < floor:
                continue
            picks.append(
                self._build(
                    data,
                    candidate,
                    option,
                    confidence=confidence,
                    margin=margin,
                    annualized=annualized,
                )
            )

        picks.sort(key=lambda rec: (-rec.confidence, rec.days_to_expiry))
        top = picks[:MAX_PICKS]
        if top:
            logger.info(
                "%s: %s pick at %.1f%% confidence (yield %.2f%%, momentum %.2f)",
                self.name,
                data.symbol,
                top[0].confidence * 100,
                dividend.dividend_yield,
                momentum,
            )
        return top
