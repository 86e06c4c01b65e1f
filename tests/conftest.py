"""Shared test fixtures for the Put Scout test suite.

Provides realistic sample instances of the core models plus small
factories, so tests don't need to inline large construction blocks.
The reference symbol trades at $100 with a bullish technical picture.
"""

import datetime
from collections.abc import AsyncGenerator, Callable
from decimal import Decimal

import pytest
import pytest_asyncio

from Put_Scout.data.database import Database
from Put_Scout.data.repository import Repository
from Put_Scout.models import (
    AggregatedMarketData,
    CompanyFundamentals,
    DividendInfo,
    FinancialHealthMetrics,
    FundamentalPeriod,
    MarketSnapshot,
    OptionContract,
    OptionGreeks,
    OptionType,
    Recommendation,
    TrendAnalysis,
    TrendDirection,
)

PutFactory = Callable[..., OptionContract]
MarketDataFactory = Callable[..., AggregatedMarketData]
RecommendationFactory = Callable[..., Recommendation]


class StaticHealthGate:
    """Health gate double that passes or fails every symbol."""

    def __init__(self, *, passes: bool = True) -> None:
        self.passes = passes
        self.evaluated: list[str] = []

    async def evaluate(self, symbol: str) -> FinancialHealthMetrics:
        self.evaluated.append(symbol)
        if self.passes:
            return FinancialHealthMetrics(symbol=symbol, f_score=8, z_score=3.2)
        return FinancialHealthMetrics(symbol=symbol, f_score=3, z_score=1.1)

    def meets_requirements(self, metrics: FinancialHealthMetrics) -> bool:
        return self.passes


@pytest.fixture()
def passing_gate() -> StaticHealthGate:
    """A health gate that lets every symbol through."""
    return StaticHealthGate(passes=True)


@pytest.fixture()
def failing_gate() -> StaticHealthGate:
    """A health gate that rejects every symbol."""
    return StaticHealthGate(passes=False)


@pytest.fixture()
def healthy_metrics() -> FinancialHealthMetrics:
    """Metrics comfortably above the default gate (F >= 7, Z >= 1.81)."""
    return FinancialHealthMetrics(
        symbol="AAPL",
        f_score=8,
        z_score=3.2,
        roa=0.08,
        debt_to_equity=0.6,
        current_ratio=1.4,
        market_cap_billions=2.5,
        report_date=datetime.date(2025, 9, 30),
    )


@pytest.fixture()
def improving_fundamentals() -> CompanyFundamentals:
    """Two periods where every Piotroski criterion improves (F-Score 9)."""
    previous = FundamentalPeriod(
        report_date=datetime.date(2024, 9, 30),
        total_assets=Decimal("1000000"),
        long_term_debt=Decimal("300000"),
        total_debt=Decimal("350000"),
        current_assets=Decimal("400000"),
        current_liabilities=Decimal("300000"),
        total_equity=Decimal("500000"),
        retained_earnings=Decimal("200000"),
        total_liabilities=Decimal("500000"),
        revenue=Decimal("800000"),
        operating_income=Decimal("80000"),
        net_income=Decimal("50000"),
        operating_cash_flow=Decimal("70000"),
        shares_outstanding=Decimal("10000"),
    )
    current = FundamentalPeriod(
        report_date=datetime.date(2025, 9, 30),
        total_assets=Decimal("1000000"),
        long_term_debt=Decimal("250000"),
        total_debt=Decimal("290000"),
        current_assets=Decimal("450000"),
        current_liabilities=Decimal("300000"),
        total_equity=Decimal("560000"),
        retained_earnings=Decimal("260000"),
        total_liabilities=Decimal("440000"),
        revenue=Decimal("900000"),
        operating_income=Decimal("110000"),
        net_income=Decimal("80000"),
        operating_cash_flow=Decimal("120000"),
        shares_outstanding=Decimal("9800"),
    )
    return CompanyFundamentals(symbol="AAPL", current=current, previous=previous)


@pytest.fixture()
def bullish_snapshot() -> MarketSnapshot:
    """Price above every moving average, neutral RSI, MACD above signal."""
    return MarketSnapshot(
        symbol="AAPL",
        current_price=Decimal("100.00"),
        open=Decimal("99.20"),
        high=Decimal("100.80"),
        low=Decimal("98.90"),
        close=Decimal("99.10"),
        volume=41_000_000,
        average_volume=52_000_000,
        high_52_week=Decimal("110.00"),
        low_52_week=Decimal("80.00"),
        ma_20=Decimal("98.00"),
        ma_50=Decimal("95.00"),
        ma_200=Decimal("90.00"),
        rsi=55.0,
        macd=1.2,
        macd_signal=0.8,
    )


@pytest.fixture()
def uptrend() -> TrendAnalysis:
    """A confident, moderately strong up trend."""
    return TrendAnalysis(
        symbol="AAPL",
        expected_growth_percent=2.0,
        trend_strength=0.5,
        direction=TrendDirection.UP,
        confidence=0.8,
    )


@pytest.fixture()
def dividend_payer() -> DividendInfo:
    """3% yield, ex-dividend a month ago."""
    return DividendInfo(
        symbol="AAPL",
        dividend_yield=3.0,
        annual_dividend=Decimal("3.00"),
        ex_dividend_date=datetime.date.today() - datetime.timedelta(days=30),
    )


@pytest.fixture()
def make_put() -> PutFactory:
    """Factory for put contracts expiring *dte* days from today."""

    def _make(
        strike: str = "92",
        *,
        bid: str = "1.00",
        ask: str = "1.10",
        dte: int = 17,
        iv: float = 0.25,
        delta: float | None = -0.25,
        theta: float = -0.05,
    ) -> OptionContract:
        greeks = None if delta is None else OptionGreeks(delta=delta, gamma=0.03, theta=theta)
        return OptionContract(
            symbol="AAPL",
            option_type=OptionType.PUT,
            strike=Decimal(strike),
            expiration=datetime.date.today() + datetime.timedelta(days=dte),
            bid=Decimal(bid),
            ask=Decimal(ask),
            volume=500,
            open_interest=2_000,
            implied_volatility=iv,
            greeks=greeks,
        )

    return _make


@pytest.fixture()
def make_market_data(
    bullish_snapshot: MarketSnapshot,
    uptrend: TrendAnalysis,
    healthy_metrics: FinancialHealthMetrics,
) -> MarketDataFactory:
    """Factory for aggregated data around the bullish reference symbol."""

    def _make(
        puts: list[OptionContract],
        *,
        dividend: DividendInfo | None = None,
        trend: TrendAnalysis | None = uptrend,
        snapshot: MarketSnapshot | None = bullish_snapshot,
        health: FinancialHealthMetrics | None = healthy_metrics,
    ) -> AggregatedMarketData:
        return AggregatedMarketData(
            symbol="AAPL",
            snapshot=snapshot,
            trend=trend,
            put_options=puts,
            dividend=dividend,
            health_metrics=health,
        )

    return _make


@pytest.fixture()
def make_recommendation() -> RecommendationFactory:
    """Factory for recommendations with sensible defaults."""

    def _make(
        symbol: str = "AAPL",
        *,
        strategy: str = "ShortTermPut",
        confidence: float = 0.75,
        dte: int = 17,
        strike: str = "92",
        scanned_at: datetime.datetime | None = None,
    ) -> Recommendation:
        return Recommendation(
            symbol=symbol,
            strategy_name=strategy,
            strike=Decimal(strike),
            expiration=datetime.date.today() + datetime.timedelta(days=dte),
            days_to_expiry=dte,
            premium=Decimal("1.05"),
            breakeven=Decimal(strike) - Decimal("1.05"),
            current_price=Decimal("100.00"),
            confidence=confidence,
            expected_growth_percent=2.0,
            safety_margin=0.08,
            annualized_return=0.245,
            f_score=8,
            z_score=3.2,
            scanned_at=scanned_at or datetime.datetime.now(datetime.UTC),
        )

    return _make


@pytest_asyncio.fixture()
async def db() -> AsyncGenerator[Database]:
    """A connected in-memory Database, closed after the test."""
    database = Database(db_path=":memory:")
    await database.connect()
    yield database
    await database.close()


@pytest_asyncio.fixture()
async def repo(db: Database) -> Repository:
    """A Repository backed by the in-memory Database."""
    return Repository(db)
