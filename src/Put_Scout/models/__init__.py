"""Pydantic v2 models, enums, and type definitions.

Re-exports all public models so consumers can import directly:
    from Put_Scout.models import Recommendation, ScanRun, ScanStatus
"""

from Put_Scout.models.enums import OptionType, ScanStatus, SelectionPolicy, TrendDirection
from Put_Scout.models.fundamentals import (
    CompanyFundamentals,
    FinancialHealthMetrics,
    FundamentalPeriod,
    HealthRecord,
)
from Put_Scout.models.market_data import (
    AggregatedMarketData,
    DividendInfo,
    MarketSnapshot,
    TrendAnalysis,
)
from Put_Scout.models.options import OptionContract, OptionGreeks
from Put_Scout.models.recommendation import Recommendation
from Put_Scout.models.scan import BulkRefreshResult, ScanProgressUpdate, ScanRun

__all__ = [
    # Enums
    "OptionType",
    "ScanStatus",
    "SelectionPolicy",
    "TrendDirection",
    # Fundamentals
    "CompanyFundamentals",
    "FinancialHealthMetrics",
    "FundamentalPeriod",
    "HealthRecord",
    # Market data
    "AggregatedMarketData",
    "DividendInfo",
    "MarketSnapshot",
    "TrendAnalysis",
    # Options
    "OptionContract",
    "OptionGreeks",
    # Recommendations
    "Recommendation",
    # Scan
    "BulkRefreshResult",
    "ScanProgressUpdate",
    "ScanRun",
]
