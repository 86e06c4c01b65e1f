"""Data providers, health evaluation, bulk refresh, and supporting services.

Re-exports all public service classes so consumers can import directly:
    from Put_Scout.services import FinancialHealthEvaluator, YFinanceMarketData
"""

from Put_Scout.services.auth import IssuedToken, TokenCache
from Put_Scout.services.bulk_refresh import BulkFundamentalsRefresher, refresh_required
from Put_Scout.services.discovery import (
    BrokerOptionsDiscovery,
    NullDiscovery,
    SignedTokenIssuer,
    SymbolDiscovery,
)
from Put_Scout.services.financial_health import FinancialHealthEvaluator
from Put_Scout.services.fundamentals import FundamentalsProvider, SimFinBulkProvider
from Put_Scout.services.market_data import (
    MarketDataAggregator,
    PriceProvider,
    YFinanceMarketData,
)
from Put_Scout.services.notifier import (
    LoggingProgressNotifier,
    NullProgressNotifier,
    ScanProgressNotifier,
)
from Put_Scout.services.rate_limiter import RateLimiter

__all__ = [
    # Infrastructure
    "IssuedToken",
    "RateLimiter",
    "TokenCache",
    # Data providers
    "FundamentalsProvider",
    "MarketDataAggregator",
    "PriceProvider",
    "SimFinBulkProvider",
    "YFinanceMarketData",
    # Universe discovery
    "BrokerOptionsDiscovery",
    "NullDiscovery",
    "SignedTokenIssuer",
    "SymbolDiscovery",
    # Health
    "BulkFundamentalsRefresher",
    "FinancialHealthEvaluator",
    "refresh_required",
    # Progress
    "LoggingProgressNotifier",
    "NullProgressNotifier",
    "ScanProgressNotifier",
]
