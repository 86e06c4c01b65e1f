"""Trend-following short-dated put seller.

Sells 2-3 week puts on healthy companies that are trending up or
sideways. Confidence blends trend confidence, technicals, option
metrics, implied volatility, and the dividend profile.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from Put_Scout.models.enums import TrendDirection
from Put_Scout.strategies.base import (
    Strategy,
    annualized_return,
    average_of_checks,
    clamp_confidence,
    macd_bullish,
    rsi_between,
    safety_margin,
)

if TYPE_CHECKING:
    from Put_Scout.models.market_data import AggregatedMarketData, DividendInfo, MarketSnapshot
    from Put_Scout.models.options import OptionContract
    from Put_Scout.models.recommendation import Recommendation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

MIN_SAFETY_MARGIN: Final[float] = 0.05
MAX_SAFETY_MARGIN: Final[float] = 0.20
MAX_ABS_DELTA: Final[float] = 0.30
MIN_ANNUALIZED_RETURN: Final[float] = 0.10

# ---------------------------------------------------------------------------
# Confidence weights
# ---------------------------------------------------------------------------

WEIGHT_TREND: Final[float] = 0.30
WEIGHT_TECHNICAL: Final[float] = 0.25
WEIGHT_OPTION: Final[float] = 0.20
WEIGHT_VOLATILITY: Final[float] = 0.15
WEIGHT_DIVIDEND: Final[float] = 0.10

MAX_PICKS: Final[int] = 1


def technical_score(snapshot: MarketSnapshot) -> float:
    """Share of six bullish checks that hold."""
    range_position = snapshot.range_position_52w
    return average_of_checks(
        snapshot.is_above(snapshot.ma_20),
        snapshot.is_above(snapshot.ma_50),
        snapshot.is_above(snapshot.ma_200),
        rsi_between(snapshot, 30.0, 70.0, inclusive=True),
        macd_bullish(snapshot),
        range_position is not None and range_position > 0.5,
    )


def option_score(margin: float, annualized: float, delta: float | None) -> float:
    score = 0.0
    if 0.07 <= margin <= 0.15:
        score += 0.4
    elif 0.05 <= margin <= 0.20:
        score += 0.2

    if annualized >= 0.30:
        score += 0.3
    elif annualized >= 0.20:
        score += 0.25
    elif annualized >= 0.15:
        score += 0.2
    elif annualized >= 0.10:
        score += 0.1

    if delta is not None:
        abs_delta = abs(delta)
        if 0.20 <= abs_delta <= 0.35:
            score += 0.3
        elif 0.15 <= abs_delta <= 0.40:
            score += 0.15
    return min(1.0, score)


def volatility_score(implied_volatility: float) -> float:
    """Moderate IV (15-30%) scores best; very low IV pays too little."""
    if 0.15 <= implied_volatility <= 0.30:
        return 0.8
    if 0.10 <= implied_volatility <= 0.40:
        return 0.6
    if implied_volatility < 0.10:
        return 0.3
    return 0.4


def dividend_score(dividend: DividendInfo | None) -> float:
    if dividend is None or dividend.dividend_yield == 0:
        return 0.5
    if 1.0 <= dividend.dividend_yield <= 4.0:
        return 0.8
    if 0.0 < dividend.dividend_yield < 6.0:
        return 0.6
    return 0.3


class ShortTermPutStrategy(Strategy):
    """Sells 2-3 week puts on healthy stocks in an up or sideways trend."""

    name = "ShortTermPut"
    description = (
        "Sells PUT options 2-3 weeks out on financially healthy stocks with strong upward trends"
    )

    async def analyze(self, data: AggregatedMarketData) -> list[Recommendation]:
        candidate = await self._prepare(data)
        if candidate is None:
            return []

        trend = data.trend
        assert trend is not None  # noqa: S101
        if trend.direction == TrendDirection.DOWN or trend.confidence < self.min_confidence:
            logger.info(
                "%s: skipping %s, trend %s at confidence %.2f",
                self.name,
                data.symbol,
                trend.direction,
                trend.confidence,
            )
            return []

        technical = technical_score(candidate.snapshot)
        dividend = dividend_score(data.dividend)
        price = candidate.snapshot.current_price

        picks: list[Recommendation] = []
        for option in candidate.puts:
            margin = safety_margin(price, option.strike)
            if not MIN_SAFETY_MARGIN <= margin <= MAX_SAFETY_MARGIN:
                continue
            delta = option.delta
            if delta is None or abs(delta) > MAX_ABS_DELTA:
                continue
            annualized = annualized_return(option.mid, option.strike, option.dte)
            if annualized < MIN_ANNUALIZED_RETURN:
                continue

            confidence = clamp_confidence(
                trend.confidence * WEIGHT_TREND
                + technical * WEIGHT_TECHNICAL
                + option_score(margin, annualized, delta) * WEIGHT_OPTION
                + volatility_score(option.implied_volatility) * WEIGHT_VOLATILITY
                + dividend * WEIGHT_DIVIDEND
            )
            if confidence < self.min_confidence:
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
                "%s: %s best put %s strike at %.1f%% confidence",
                self.name,
                data.symbol,
                top[0].strike,
                top[0].confidence * 100,
            )
        return top
