"""Tests for ShortTermPutStrategy (trend-following variant).

Reference picture: price $100, every MA below price, RSI 55, MACD above
signal, up trend at 0.8 confidence. A 92 strike put with a $1.05 mid and
17 days to expiry scores 0.85.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any

import pytest

from Put_Scout.models import (
    AggregatedMarketData,
    DividendInfo,
    MarketSnapshot,
    OptionContract,
    TrendAnalysis,
    TrendDirection,
)
from Put_Scout.strategies import ShortTermPutStrategy
from Put_Scout.strategies.short_term_put import (
    dividend_score,
    option_score,
    technical_score,
    volatility_score,
)

PutFactory = Callable[..., OptionContract]
MarketDataFactory = Callable[..., AggregatedMarketData]


@pytest.fixture()
def strategy(passing_gate: Any) -> ShortTermPutStrategy:
    return ShortTermPutStrategy(passing_gate)


class TestAnalyze:
    """Tests for ShortTermPutStrategy.analyze()."""

    @pytest.mark.asyncio()
    async def test_best_put_is_recommended(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        data = make_market_data([make_put("95"), make_put("92")])

        picks = await strategy.analyze(data)

        assert len(picks) == 1
        rec = picks[0]
        assert rec.strike == Decimal("92")
        assert rec.confidence == pytest.approx(0.85, abs=0.005)
        assert rec.strategy_name == "ShortTermPut"
        assert rec.premium == Decimal("1.05")
        assert rec.breakeven == Decimal("90.95")
        assert rec.safety_margin == pytest.approx(0.08)
        assert rec.annualized_return == pytest.approx(0.245, abs=0.001)
        assert rec.days_to_expiry == 17
        assert rec.f_score == 8
        assert rec.expected_growth_percent == pytest.approx(2.0)

    @pytest.mark.asyncio()
    async def test_higher_iv_lowers_confidence(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        picks = await strategy.analyze(make_market_data([make_put(iv=0.35)]))
        assert picks[0].confidence == pytest.approx(0.82, abs=0.005)

    @pytest.mark.asyncio()
    async def test_empty_option_list(
        self, strategy: ShortTermPutStrategy, make_market_data: MarketDataFactory
    ) -> None:
        assert await strategy.analyze(make_market_data([])) == []

    @pytest.mark.asyncio()
    async def test_unknown_delta_is_skipped(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        assert await strategy.analyze(make_market_data([make_put(delta=None)])) == []

    @pytest.mark.asyncio()
    async def test_filters(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        puts = [
            make_put("70"),  # too far out of the money
            make_put("98"),  # too close to the money
            make_put("92", delta=-0.45),  # delta too high
            make_put("92", dte=35),  # outside the expiry window
            make_put("92", bid="0.05", ask="0.07"),  # return too low
        ]
        assert await strategy.analyze(make_market_data(puts)) == []

    @pytest.mark.asyncio()
    async def test_down_trend_is_skipped(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        uptrend: TrendAnalysis,
    ) -> None:
        down = uptrend.model_copy(update={"direction": TrendDirection.DOWN})
        assert await strategy.analyze(make_market_data([make_put()], trend=down)) == []

    @pytest.mark.asyncio()
    async def test_low_trend_confidence_is_skipped(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        uptrend: TrendAnalysis,
    ) -> None:
        shaky = uptrend.model_copy(update={"confidence": 0.4})
        assert await strategy.analyze(make_market_data([make_put()], trend=shaky)) == []

    @pytest.mark.asyncio()
    async def test_failing_health_gate(
        self,
        failing_gate: Any,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        strategy = ShortTermPutStrategy(failing_gate)
        assert await strategy.analyze(make_market_data([make_put()])) == []

    @pytest.mark.asyncio()
    async def test_gate_evaluates_when_metrics_missing(
        self,
        passing_gate: Any,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        strategy = ShortTermPutStrategy(passing_gate)
        picks = await strategy.analyze(make_market_data([make_put()], health=None))
        assert len(picks) == 1
        assert passing_gate.evaluated == ["AAPL"]

    @pytest.mark.asyncio()
    async def test_missing_snapshot_or_trend(
        self,
        strategy: ShortTermPutStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        assert await strategy.analyze(make_market_data([make_put()], snapshot=None)) == []
        assert await strategy.analyze(make_market_data([make_put()], trend=None)) == []


class TestScoringComponents:
    """Tests for the individual confidence components."""

    def test_option_score_bands(self) -> None:
        assert option_score(0.08, 0.245, -0.25) == pytest.approx(0.95)
        assert option_score(0.05, 0.11, -0.17) == pytest.approx(0.45)
        assert option_score(0.25, 0.05, None) == pytest.approx(0.0)

    def test_volatility_score_bands(self) -> None:
        assert volatility_score(0.25) == pytest.approx(0.8)
        assert volatility_score(0.35) == pytest.approx(0.6)
        assert volatility_score(0.05) == pytest.approx(0.3)
        assert volatility_score(0.80) == pytest.approx(0.4)

    def test_dividend_score(self, dividend_payer: DividendInfo) -> None:
        assert dividend_score(None) == pytest.approx(0.5)
        assert dividend_score(dividend_payer) == pytest.approx(0.8)

    def test_technical_score_all_bullish(self, bullish_snapshot: MarketSnapshot) -> None:
        assert technical_score(bullish_snapshot) == pytest.approx(1.0)
