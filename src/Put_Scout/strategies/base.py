"""Strategy contract and the helpers every put-selling variant shares.

A strategy turns one symbol's :class:`AggregatedMarketData` into zero or
more :class:`Recommendation` objects. Missing data is never an error:
the strategy logs why it passed and returns an empty list. Every
variant enforces the same preconditions through :meth:`Strategy._prepare`:
snapshot, trend and puts present, health gate passed, and only puts
inside the strategy's expiry window.
"""

from __future__ import annotations

import datetime
import logging
import math
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Final, NamedTuple, Protocol

from Put_Scout.models.recommendation import Recommendation

if TYPE_CHECKING:
    from Put_Scout.models.fundamentals import FinancialHealthMetrics
    from Put_Scout.models.market_data import AggregatedMarketData, MarketSnapshot
    from Put_Scout.models.options import OptionContract

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DAYS_PER_YEAR: Final[int] = 365
CONFIDENCE_DECIMALS: Final[int] = 3
METRIC_DECIMALS: Final[int] = 4


class HealthGate(Protocol):
    """What a strategy needs from the financial health evaluator."""

    async def evaluate(self, symbol: str) -> FinancialHealthMetrics: ...

    def meets_requirements(self, metrics: FinancialHealthMetrics) -> bool: ...


class Candidate(NamedTuple):
    """Validated inputs shared by all variants for one symbol."""

    snapshot: MarketSnapshot
    puts: list[OptionContract]
    health: FinancialHealthMetrics


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def clamp_confidence(value: float) -> float:
    """Clamp to [0, 1] and round; non-finite input maps to 0."""
    if not math.isfinite(value):
        return 0.0
    return round(min(1.0, max(0.0, value)), CONFIDENCE_DECIMALS)


def safety_margin(price: Decimal, strike: Decimal) -> float:
    """Distance of the strike below the price, as a fraction of the price."""
    if price <= 0:
        return 0.0
    return float((price - strike) / price)


def annualized_return(amount: Decimal, strike: Decimal, days_to_expiry: int) -> float:
    """``amount / strike`` scaled to a 365-day year; 0 when undefined."""
    if strike <= 0 or days_to_expiry <= 0:
        return 0.0
    return float(amount / strike) * DAYS_PER_YEAR / days_to_expiry


def average_of_checks(*checks: bool) -> float:
    """Fraction of binary checks that passed."""
    if not checks:
        return 0.0
    return sum(1 for check in checks if check) / len(checks)


def macd_bullish(snapshot: MarketSnapshot) -> bool:
    return (
        snapshot.macd is not None
        and snapshot.macd_signal is not None
        and snapshot.macd > snapshot.macd_signal
    )


def rsi_between(snapshot: MarketSnapshot, low: float, high: float, *, inclusive: bool) -> bool:
    rsi = snapshot.rsi
    if rsi is None or not math.isfinite(rsi):
        return False
    if inclusive:
        return low <= rsi <= high
    return low < rsi < high


def days_since(value: datetime.date, today: datetime.date | None = None) -> int:
    return ((today or datetime.date.today()) - value).days


# ---------------------------------------------------------------------------
# Strategy contract
# ---------------------------------------------------------------------------


class Strategy(ABC):
    """Base class for put-selling strategies.

    Subclasses set ``name`` and ``description`` and implement
    :meth:`analyze`. The expiry window and the confidence floor come from
    the shared strategy settings.
    """

    name: str = ""
    description: str = ""

    def __init__(
        self,
        health_gate: HealthGate,
        *,
        min_expiry_days: int = 14,
        max_expiry_days: int = 21,
        min_confidence: float = 0.6,
    ) -> None:
        self._health_gate = health_gate
        self._min_expiry_days = min_expiry_days
        self._max_expiry_days = max_expiry_days
        self._min_confidence = min_confidence

    @property
    def target_expiry_min_days(self) -> int:
        return self._min_expiry_days

    @property
    def target_expiry_max_days(self) -> int:
        return self._max_expiry_days

    @property
    def min_confidence(self) -> float:
        return self._min_confidence

    @abstractmethod
    async def analyze(self, data: AggregatedMarketData) -> list[Recommendation]:
        """Score the symbol's puts and return the variant's picks."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    # ------------------------------------------------------------------
    # Shared guards
    # ------------------------------------------------------------------

    def in_window(self, option: OptionContract) -> bool:
        return self._min_expiry_days <= option.dte <= self._max_expiry_days

    async def _prepare(self, data: AggregatedMarketData) -> Candidate | None:
        """Apply the common preconditions; ``None`` means "nothing to do"."""
        symbol = data.symbol
        if data.snapshot is None or data.snapshot.current_price <= 0:
            logger.info("%s: no price data for %s", self.name, symbol)
            return None
        if data.trend is None:
            logger.info("%s: no trend analysis for %s", self.name, symbol)
            return None
        if not data.put_options:
            logger.info("%s: no put options for %s", self.name, symbol)
            return None

        health = data.health_metrics
        if health is None:
            health = await self._health_gate.evaluate(symbol)
        if not self._health_gate.meets_requirements(health):
            logger.info(
                "%s: skipping %s, health gate not met (F=%s, Z=%s)",
                self.name,
                symbol,
                health.f_score if health.f_score is not None else "n/a",
                health.z_score if health.z_score is not None else "n/a",
            )
            return None

        puts = [option for option in data.put_options if self.in_window(option)]
        if not puts:
            logger.info(
                "%s: no puts for %s between %d and %d days",
                self.name,
                symbol,
                self._min_expiry_days,
                self._max_expiry_days,
            )
            return None
        return Candidate(snapshot=data.snapshot, puts=puts, health=health)

    def _build(
        self,
        data: AggregatedMarketData,
        candidate: Candidate,
        option: OptionContract,
        *,
        confidence: float,
        margin: float,
        annualized: float,
    ) -> Recommendation:
        premium = option.mid
        trend = data.trend
        return Recommendation(
            symbol=data.symbol,
            strategy_name=self.name,
            strike=option.strike,
            expiration=option.expiration,
            days_to_expiry=option.dte,
            premium=premium,
            breakeven=option.strike - premium,
            current_price=candidate.snapshot.current_price,
            confidence=clamp_confidence(confidence),
            expected_growth_percent=trend.expected_growth_percent if trend is not None else 0.0,
            safety_margin=round(margin, METRIC_DECIMALS),
            annualized_return=round(annualized, METRIC_DECIMALS),
            f_score=candidate.health.f_score,
            z_score=candidate.health.z_score,
        )
