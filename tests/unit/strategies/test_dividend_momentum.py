"""Tests for DividendMomentumStrategy (conservative dividend variant).

With the 3% payer (ex-dividend 30 days ago) and the bullish reference
picture, an 88 strike put 17 days out scores 0.97.
"""

from __future__ import annotations

import datetime
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
)
from Put_Scout.strategies import DividendMomentumStrategy
from Put_Scout.strategies.dividend_momentum import (
    dividend_quality_score,
    has_dividend_conflict,
    meets_dividend_criteria,
    momentum_score,
)

PutFactory = Callable[..., OptionContract]
MarketDataFactory = Callable[..., AggregatedMarketData]

TODAY = datetime.date.today()


@pytest.fixture()
def strategy(passing_gate: Any) -> DividendMomentumStrategy:
    return DividendMomentumStrategy(passing_gate)


class TestAnalyze:
    """Tests for DividendMomentumStrategy.analyze()."""

    @pytest.mark.asyncio()
    async def test_dividend_payer_is_recommended(
        self,
        strategy: DividendMomentumStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
    ) -> None:
        data = make_market_data([make_put("88")], dividend=dividend_payer)

        picks = await strategy.analyze(data)

        assert len(picks) == 1
        rec = picks[0]
        assert rec.strategy_name == "DividendMomentum"
        assert rec.confidence == pytest.approx(0.97, abs=0.005)
        # Premium plus 17 days of a $3.00 annual dividend, annualized
        assert rec.annualized_return == pytest.approx(0.290, abs=0.002)

    @pytest.mark.asyncio()
    async def test_ex_dividend_near_expiry_is_penalized(
        self,
        strategy: DividendMomentumStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
    ) -> None:
        conflicting = dividend_payer.model_copy(
            update={"ex_dividend_date": TODAY + datetime.timedelta(days=17)}
        )
        data = make_market_data([make_put("88")], dividend=conflicting)

        picks = await strategy.analyze(data)

        assert len(picks) == 1
        assert picks[0].confidence == pytest.approx(0.873, abs=0.005)

    @pytest.mark.asyncio()
    async def test_non_payer_is_skipped(
        self,
        strategy: DividendMomentumStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
    ) -> None:
        assert await strategy.analyze(make_market_data([make_put("88")])) == []

    @pytest.mark.asyncio()
    async def test_weak_momentum_is_skipped(
        self,
        strategy: DividendMomentumStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
        bullish_snapshot: MarketSnapshot,
    ) -> None:
        below_averages = bullish_snapshot.model_copy(
            update={
                "ma_20": Decimal("105"),
                "ma_50": Decimal("106"),
                "ma_200": Decimal("107"),
                "macd": -0.5,
            }
        )
        data = make_market_data(
            [make_put("88")], dividend=dividend_payer, snapshot=below_averages
        )
        assert await strategy.analyze(data) == []

    @pytest.mark.asyncio()
    async def test_stricter_confidence_floor(
        self,
        passing_gate: Any,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
    ) -> None:
        # 0.97 clears the global minimum of 0.93 but not the 0.98 variant floor
        strategy = DividendMomentumStrategy(passing_gate, min_confidence=0.93)
        data = make_market_data([make_put("88")], dividend=dividend_payer)
        assert await strategy.analyze(data) == []

    @pytest.mark.asyncio()
    async def test_single_pick(
        self,
        strategy: DividendMomentumStrategy,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
    ) -> None:
        data = make_market_data(
            [make_put("88"), make_put("89"), make_put("90")], dividend=dividend_payer
        )
        assert len(await strategy.analyze(data)) == 1

    @pytest.mark.asyncio()
    async def test_empty_option_list(
        self,
        strategy: DividendMomentumStrategy,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
    ) -> None:
        assert await strategy.analyze(make_market_data([], dividend=dividend_payer)) == []

    @pytest.mark.asyncio()
    async def test_failing_health_gate(
        self,
        failing_gate: Any,
        make_put: PutFactory,
        make_market_data: MarketDataFactory,
        dividend_payer: DividendInfo,
    ) -> None:
        strategy = DividendMomentumStrategy(failing_gate)
        data = make_market_data([make_put("88")], dividend=dividend_payer)
        assert await strategy.analyze(data) == []


class TestDividendCriteria:
    """Tests for meets_dividend_criteria()."""

    def test_recent_payer(self, dividend_payer: DividendInfo) -> None:
        assert meets_dividend_criteria(dividend_payer)

    @pytest.mark.parametrize(
        ("dividend_yield", "days_ago", "expected"),
        [
            (0.5, 30, False),
            (9.0, 30, False),
            (3.0, 181, False),
            (3.0, 180, True),
            (1.0, 0, True),
        ],
    )
    def test_bounds(
        self,
        dividend_payer: DividendInfo,
        dividend_yield: float,
        days_ago: int,
        expected: bool,
    ) -> None:
        dividend = dividend_payer.model_copy(
            update={
                "dividend_yield": dividend_yield,
                "ex_dividend_date": TODAY - datetime.timedelta(days=days_ago),
            }
        )
        assert meets_dividend_criteria(dividend, TODAY) is expected

    def test_unknown_ex_date(self, dividend_payer: DividendInfo) -> None:
        assert not meets_dividend_criteria(
            dividend_payer.model_copy(update={"ex_dividend_date": None})
        )
        assert not meets_dividend_criteria(None)


class TestScoringComponents:
    """Tests for the individual confidence components."""

    def test_momentum_of_bullish_picture(
        self, bullish_snapshot: MarketSnapshot, uptrend: TrendAnalysis
    ) -> None:
        assert momentum_score(bullish_snapshot, uptrend) == pytest.approx(0.85)

    def test_quality_of_reference_payer(self, dividend_payer: DividendInfo) -> None:
        assert dividend_quality_score(dividend_payer, TODAY) == pytest.approx(1.0)

    def test_conflict_window(self, dividend_payer: DividendInfo) -> None:
        expiration = TODAY + datetime.timedelta(days=17)
        near = dividend_payer.model_copy(
            update={"ex_dividend_date": expiration - datetime.timedelta(days=5)}
        )
        far = dividend_payer.model_copy(
            update={"ex_dividend_date": expiration - datetime.timedelta(days=6)}
        )
        assert has_dividend_conflict(near, expiration)
        assert not has_dividend_conflict(far, expiration)
