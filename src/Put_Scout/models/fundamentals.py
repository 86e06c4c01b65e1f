"""Fundamentals and financial-health models.

``FundamentalPeriod`` carries one reporting period's raw figures;
``FinancialHealthMetrics`` is the immutable result of one health
evaluation. Absent scores mean "insufficient data", never zero.
"""

import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer

# --- Score bounds ---
F_SCORE_MIN: int = 0
F_SCORE_MAX: int = 9


class FundamentalPeriod(BaseModel):
    """Balance sheet, income and cash-flow figures for one reporting period.

    Missing figures default to zero; the scoring functions treat a zero
    denominator as "criterion cannot be evaluated".
    """

    model_config = ConfigDict(frozen=True)

    report_date: datetime.date | None = None
    total_assets: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    total_debt: Decimal = Decimal("0")
    long_term_debt: Decimal = Decimal("0")
    current_assets: Decimal = Decimal("0")
    current_liabilities: Decimal = Decimal("0")
    total_equity: Decimal = Decimal("0")
    retained_earnings: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    revenue: Decimal = Decimal("0")
    operating_income: Decimal = Decimal("0")
    net_income: Decimal = Decimal("0")
    operating_cash_flow: Decimal = Decimal("0")
    shares_outstanding: Decimal = Decimal("0")

    @field_serializer(
        "total_assets",
        "cash",
        "total_debt",
        "long_term_debt",
        "current_assets",
        "current_liabilities",
        "total_equity",
        "retained_earnings",
        "total_liabilities",
        "revenue",
        "operating_income",
        "net_income",
        "operating_cash_flow",
        "shares_outstanding",
    )
    def serialize_decimal(self, value: Decimal) -> str:
        """Serialize Decimal fields as strings to preserve precision."""
        return str(value)


class CompanyFundamentals(BaseModel):
    """Current and (optionally) previous period for one symbol.

    ``previous`` is ``None`` for new listings; year-over-year criteria
    are then skipped rather than failed.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    current: FundamentalPeriod
    previous: FundamentalPeriod | None = None


class FinancialHealthMetrics(BaseModel):
    """Health scores and supporting ratios for one symbol."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    f_score: int | None = Field(default=None, ge=F_SCORE_MIN, le=F_SCORE_MAX)
    z_score: float | None = None
    roa: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    market_cap_billions: float | None = None
    report_date: datetime.date | None = None
    evaluated_at: datetime.datetime = Field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC)
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_scores(self) -> bool:
        """True when both F-Score and Z-Score could be computed."""
        return self.f_score is not None and self.z_score is not None

    @classmethod
    def empty(cls, symbol: str) -> "FinancialHealthMetrics":
        """Metrics with both scores absent (insufficient data)."""
        return cls(symbol=symbol)


class HealthRecord(BaseModel):
    """A persisted health evaluation, keyed by symbol and report date."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    report_date: datetime.date
    fetched_at: datetime.datetime
    f_score: int | None = None
    z_score: float | None = None
    roa: float | None = None
    debt_to_equity: float | None = None
    current_ratio: float | None = None
    market_cap_billions: float | None = None

    def to_metrics(self) -> FinancialHealthMetrics:
        """Convert back to the in-memory metrics shape."""
        return FinancialHealthMetrics(
            symbol=self.symbol,
            f_score=self.f_score,
            z_score=self.z_score,
            roa=self.roa,
            debt_to_equity=self.debt_to_equity,
            current_ratio=self.current_ratio,
            market_cap_billions=self.market_cap_billions,
            report_date=self.report_date,
            evaluated_at=self.fetched_at,
        )
