"""Market data models: price/technical snapshot, trend, dividends.

All price fields use Decimal with custom serializers to prevent silent
float conversion in JSON roundtrips. ``AggregatedMarketData`` is built
fresh per symbol per scan and never persisted.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer

from Put_Scout.models.enums import TrendDirection
from Put_Scout.models.fundamentals import FinancialHealthMetrics
from Put_Scout.models.options import OptionContract


class MarketSnapshot(BaseModel):
    """Latest price plus the technical indicators the strategies consume.

    Indicator fields are ``None`` when the price history was too short
    to compute them.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    current_price: Decimal
    open: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    close: Decimal = Decimal("0")
    volume: int = 0
    average_volume: int = 0
    high_52_week: Decimal = Decimal("0")
    low_52_week: Decimal = Decimal("0")
    ma_20: Decimal | None = None
    ma_50: Decimal | None = None
    ma_200: Decimal | None = None
    rsi: float | None = None
    macd: float | None = None
    macd_signal: float | None = None
    timestamp: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC)
    )

    @field_serializer(
        "current_price", "open", "high", "low", "close", "high_52_week", "low_52_week"
    )
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)

    @field_serializer("ma_20", "ma_50", "ma_200")
    def serialize_optional_decimal(self, value: Decimal | None) -> str | None:
        """Serialize optional Decimal fields as strings."""
        if value is None:
            return None
        return str(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def range_position_52w(self) -> float | None:
        """Position of the current price inside the 52-week range (0..1).

        ``None`` when the range is degenerate (high == low).
        """
        span = self.high_52_week - self.low_52_week
        if span <= 0:
            return None
        return float((self.current_price - self.low_52_week) / span)

    def is_above(self, average: Decimal | None) -> bool:
        """True when the current price is above a known moving average."""
        return average is not None and self.current_price > average


class TrendAnalysis(BaseModel):
    """Short-term trend estimate from a linear regression over recent closes."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    expected_growth_percent: float = 0.0
    trend_strength: float = Field(default=0.0, ge=0.0, le=1.0)
    direction: TrendDirection = TrendDirection.SIDEWAYS
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    analysis_period_days: int = 21


class DividendInfo(BaseModel):
    """Dividend profile. ``dividend_yield`` is in percent (2.5 means 2.5%)."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    dividend_yield: float = 0.0
    annual_dividend: Decimal = Decimal("0")
    ex_dividend_date: datetime.date | None = None
    payment_date: datetime.date | None = None

    @field_serializer("annual_dividend")
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class AggregatedMarketData(BaseModel):
    """One symbol's joined view of everything a strategy needs.

    Sub-fields are ``None`` (or empty) when the feed had no data;
    building this object never fails for missing data.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    snapshot: MarketSnapshot | None = None
    trend: TrendAnalysis | None = None
    put_options: list[OptionContract] = Field(default_factory=list)
    dividend: DividendInfo | None = None
    health_metrics: FinancialHealthMetrics | None = None

    def with_health(self, metrics: FinancialHealthMetrics) -> "AggregatedMarketData":
        """Return a copy with ``health_metrics`` replaced."""
        return self.model_copy(update={"health_metrics": metrics})
