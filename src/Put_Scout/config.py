"""Application settings with Pydantic validation and environment loading.

Every value can be overridden through ``PUT_SCOUT_``-prefixed environment
variables (or a ``.env`` file). Nested sections use ``__`` as delimiter::

    PUT_SCOUT_HEALTH__MIN_F_SCORE=6
    PUT_SCOUT_STRATEGY__MIN_CONFIDENCE=0.65
    PUT_SCOUT_WATCHLIST='["SPY", "IWM"]'
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from Put_Scout.models.enums import SelectionPolicy

DEFAULT_WATCHLIST: list[str] = ["SPY", "QQQ", "AAPL", "MSFT", "GOOGL", "NVDA"]


class StrategySettings(BaseModel):
    """Thresholds shared by every strategy variant."""

    min_expiry_days: int = Field(default=14, ge=1, description="Shortest option expiry considered")
    max_expiry_days: int = Field(default=21, ge=1, description="Longest option expiry considered")
    min_confidence: float = Field(
        default=0.6, ge=0.0, le=1.0, description="Global minimum recommendation confidence"
    )

    @model_validator(mode="after")
    def check_window(self) -> StrategySettings:
        if self.min_expiry_days > self.max_expiry_days:
            msg = (
                f"min_expiry_days ({self.min_expiry_days}) must not exceed "
                f"max_expiry_days ({self.max_expiry_days})"
            )
            raise ValueError(msg)
        return self


class HealthSettings(BaseModel):
    """Financial-health gate, pre-filter, and bulk refresh settings."""

    min_f_score: int = Field(default=7, ge=0, le=9, description="Minimum Piotroski F-Score")
    min_z_score: float = Field(default=1.81, description="Minimum Altman Z-Score")
    batch_concurrency: int = Field(
        default=5, ge=1, le=50, description="Concurrent evaluations in batch mode"
    )
    prefilter_enabled: bool = Field(
        default=True, description="Batch-evaluate the universe before the symbol loop"
    )
    bulk_refresh_enabled: bool = Field(
        default=True, description="Refresh stored health records when they are stale"
    )
    staleness_days: int = Field(
        default=7, ge=1, description="Refresh health records older than this many days"
    )
    batch_size: int = Field(default=100, ge=1, description="Symbols per bulk-refresh batch")
    batch_delay_seconds: float = Field(
        default=1.0, ge=0.0, description="Pause between bulk-refresh batches"
    )
    retention_days: int = Field(
        default=90, ge=1, description="Delete health records older than this after a refresh"
    )


class DiscoverySettings(BaseModel):
    """Broker-side discovery of optionable underlyings."""

    enabled: bool = Field(default=False, description="Use broker discovery for the universe")
    fallback_to_watchlist: bool = Field(
        default=True, description="Fall back to the watchlist when discovery fails"
    )
    base_url: str = Field(default="", description="Broker REST API base URL")
    client_id: str = Field(default="", description="Broker API client id (token issuer)")
    application_id: str = Field(default="", description="Broker API application id")
    shared_key: str = Field(default="", description="Key used to sign broker tokens")
    token_ttl_hours: int = Field(default=6, ge=1, le=24, description="Signed token lifetime")
    exchanges: list[str] = Field(
        default_factory=lambda: ["NASDAQ", "NYSE", "AMEX", "ARCA"],
        description="Underlying exchanges accepted from discovery",
    )


class FundamentalsSettings(BaseModel):
    """Location and freshness of the bulk fundamentals dataset."""

    data_dir: Path = Field(default=Path("data/simfin"), description="Dataset directory")
    market: str = Field(default="us", description="Dataset market prefix")
    variant: str = Field(default="annual", description="Reporting variant: annual or quarterly")
    max_age_days: int = Field(default=7, ge=1, description="Re-fetch dataset files older than this")


class ScanSettings(BaseModel):
    """Orchestrator behaviour."""

    symbol_delay_seconds: float = Field(
        default=0.5, ge=0.0, description="Pause between symbols to throttle the feeds"
    )
    selection_policy: SelectionPolicy = Field(
        default=SelectionPolicy.BEST_PER_SYMBOL,
        description="How recommendations are reduced before persistence",
    )
    max_summary_errors: int = Field(
        default=5, ge=1, description="Errors kept in the run's error summary"
    )
    db_path: str = Field(default="data/put_scout.db", description="SQLite database path")
    db_wal: bool = Field(
        default=True, description="Open file databases in WAL journal mode"
    )
    db_busy_timeout_ms: int = Field(
        default=5000, ge=0, description="How long a locked database is retried before failing"
    )


class AppSettings(BaseSettings):
    """Top-level settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PUT_SCOUT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    watchlist: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WATCHLIST),
        description="Static fallback universe",
    )
    requests_per_second: float = Field(
        default=2.0, gt=0.0, description="Shared rate limit for market data requests"
    )
    max_concurrent_requests: int = Field(
        default=5, ge=1, description="Shared concurrency cap for market data requests"
    )
    risk_free_rate: float = Field(
        default=0.045, ge=0.0, le=0.2, description="Rate used for computed Greeks"
    )

    strategy: StrategySettings = Field(default_factory=StrategySettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    fundamentals: FundamentalsSettings = Field(default_factory=FundamentalsSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)


@lru_cache
def get_settings() -> AppSettings:
    """Cached settings factory."""
    return AppSettings()
