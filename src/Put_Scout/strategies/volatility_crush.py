"""Volatility-premium seller.

Targets names whose put implied volatility is elevated but not extreme,
on the view that the premium overstates the risk and will contract.
Keeps up to three candidates per symbol.
"""

from __future__ import annotations

import logging
import math
from statistics import fmean
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
    from Put_Scout.models.market_data import AggregatedMarketData, MarketSnapshot, TrendAnalysis
    from Put_Scout.models.options import OptionContract
    from Put_Scout.models.recommendation import Recommendation

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

MIN_IMPLIED_VOLATILITY: Final[float] = 0.25
MAX_IMPLIED_VOLATILITY: Final[float] = 0.60
OPTIMAL_IV_MIN: Final[float] = 0.30
OPTIMAL_IV_MAX: Final[float] = 0.50
MIN_SAFETY_MARGIN: Final[float] = 0.04
MAX_SAFETY_MARGIN: Final[float] = 0.18
MIN_ANNUALIZED_RETURN: Final[float] = 0.15
# A down trend weaker than this still counts as stable
WEAK_TREND_STRENGTH: Final[float] = 0.3

# ---------------------------------------------------------------------------
# Confidence weights
# ---------------------------------------------------------------------------

WEIGHT_IV: Final[float] = 0.35
WEIGHT_OPTION: Final[float] = 0.25
WEIGHT_TECHNICAL: Final[float] = 0.20
WEIGHT_TREND: Final[float] = 0.15
WEIGHT_THETA: Final[float] = 0.05

MAX_PICKS: Final[int] = 3


def is_stable_trend(trend: TrendAnalysis) -> bool:
    return trend.direction != TrendDirection.DOWN or trend.trend_strength < WEAK_TREND_STRENGTH


def iv_score(implied_volatility: float) -> float:
    if OPTIMAL_IV_MIN <= implied_volatility <= OPTIMAL_IV_MAX:
        return 0.9
    if MIN_IMPLIED_VOLATILITY <= implied_volatility < OPTIMAL_IV_MIN:
        return 0.7
    if OPTIMAL_IV_MAX < implied_volatility <= MAX_IMPLIED_VOLATILITY:
        return 0.6
    return 0.4


def technical_score(snapshot: MarketSnapshot) -> float:
    return average_of_checks(
        snapshot.is_above(snapshot.ma_20),
        snapshot.is_above(snapshot.ma_50),
        rsi_between(snapshot, 35.0, 65.0, inclusive=False),
        macd_bullish(snapshot),
    )


def option_score(margin: float, annualized: float, delta: float | None) -> float:
    score = 0.0
    if 0.05 <= margin <= 0.12:
        score += 0.4
    elif 0.04 <= margin <= 0.18:
        score += 0.25

    if annualized >= 0.40:
        score += 0.35
    elif annualized >= 0.30:
        score += 0.30
    elif annualized >= 0.20:
        score += 0.25
    elif annualized >= 0.15:
        score += 0.15

    if delta is not None:
        abs_delta = abs(delta)
        if 0.25 <= abs_delta <= 0.40:
            score += 0.25
        elif 0.20 <= abs_delta <= 0.45:
            score += 0.15
    return min(1.0, score)


def trend_score(trend: TrendAnalysis) -> float:
    match trend.direction:
        case TrendDirection.UP:
            return 0.8 + trend.trend_strength * 0.2
        case TrendDirection.SIDEWAYS:
            return 0.6
        case _:
            return 0.4 if trend.trend_strength < WEAK_TREND_STRENGTH else 0.2


def theta_score(option: OptionContract) -> float:
    """Faster time decay (per share per day) scores higher."""
    theta = option.theta
    if theta is None or not math.isfinite(theta):
        return 0.3
    abs_theta = abs(theta)
    if abs_theta >= 0.05:
        return 0.9
    if abs_theta >= 0.03:
        return 0.7
    if abs_theta >= 0.02:
        return 0.5
    return 0.3


class VolatilityCrushStrategy(Strategy):
    """Sells elevated put premium expected to shrink as volatility contracts."""

    name = "VolatilityCrush"
    description = (
        "Targets stocks with elevated IV expected to decrease, "
        "capturing premium from volatility contraction"
    )

    async def analyze(self, data: AggregatedMarketData) -> list[Recommendation]:
        candidate = await self._prepare(data)
        if candidate is None:
            return []

        average_iv = fmean(option.implied_volatility for option in candidate.puts)
        if not MIN_IMPLIED_VOLATILITY <= average_iv <= MAX_IMPLIED_VOLATILITY:
            logger.info(
                "%s: skipping %s, average IV %.1f%% outside %.0f-%.0f%%",
                self.name,
                data.symbol,
                average_iv * 100,
                MIN_IMPLIED_VOLATILITY * 100,
                MAX_IMPLIED_VOLATILITY * 100,
            )
            return []

        trend = data.trend
        assert trend is not None  # noqa: S101
        if not is_stable_trend(trend):
            logger.info("%s: skipping %s, trend not stable enough", self.name, data.symbol)
            return []

        technical = technical_score(candidate.snapshot)
        trend_component = trend_score(trend)
        price = candidate.snapshot.current_price

        picks: list[Recommendation] = []
        for option in candidate.puts:
            margin = safety_margin(price, option.strike)
            if not MIN_SAFETY_MARGIN <= margin <= MAX_SAFETY_MARGIN:
                continue
            if not option.implied_volatility >= MIN_IMPLIED_VOLATILITY:
                continue
            annualized = annualized_return(option.mid, option.strike, option.dte)
            if annualized < MIN_ANNUALIZED_RETURN:
                continue

            confidence = clamp_confidence(
                iv_score(option.implied_volatility) * WEIGHT_IV
                + option_score(margin, annualized, option.delta) * WEIGHT_OPTION
                + technical * WEIGHT_TECHNICAL
                + trend_component * WEIGHT_TREND
                + theta_score(option) * WEIGHT_THETA
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

        picks.sort(key=lambda rec: (-rec.confidence, -rec.premium))
        top = picks[:MAX_PICKS]
        if top:
            logger.info(
                "%s: %d pick(s) for %s at average IV %.1f%%",
                self.name,
                len(top),
                data.symbol,
                average_iv * 100,
            )
        return top
