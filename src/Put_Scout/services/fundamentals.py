"""Fundamentals provider backed by SimFin-style bulk CSV datasets.

The dataset is three semicolon-separated files per market and variant
(income statement, balance sheet, cash flow), e.g.
``us-income-annual.csv``. Files are loaded into pandas once and indexed
by ticker; lookups afterwards are in-memory.

Loading is guarded by an ``asyncio.Lock`` with a double check, so any
number of concurrent callers (batch workers, the bulk refresher's
warm-up) collapse into a single load or download. Fetching the files is
delegated to an optional injected downloader coroutine.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Final, Protocol

import pandas as pd

from Put_Scout.models.fundamentals import CompanyFundamentals, FundamentalPeriod
from Put_Scout.services._helpers import safe_decimal
from Put_Scout.utils.exceptions import FundamentalsUnavailableError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SIMFIN_SOURCE: Final[str] = "simfin"
DATASETS: Final[tuple[str, ...]] = ("income", "balance", "cashflow")
CSV_SEPARATOR: Final[str] = ";"
TICKER_COLUMN: Final[str] = "Ticker"
REPORT_DATE_COLUMN: Final[str] = "Report Date"

# FundamentalPeriod field -> (dataset, column)
COLUMN_MAP: Final[dict[str, tuple[str, str]]] = {
    "total_assets": ("balance", "Total Assets"),
    "cash": ("balance", "Cash, Cash Equivalents & Short Term Investments"),
    "long_term_debt": ("balance", "Long Term Debt"),
    "current_assets": ("balance", "Total Current Assets"),
    "current_liabilities": ("balance", "Total Current Liabilities"),
    "total_equity": ("balance", "Total Equity"),
    "retained_earnings": ("balance", "Retained Earnings"),
    "total_liabilities": ("balance", "Total Liabilities"),
    "shares_outstanding": ("balance", "Shares (Basic)"),
    "revenue": ("income", "Revenue"),
    "operating_income": ("income", "Operating Income (Loss)"),
    "net_income": ("income", "Net Income"),
    "operating_cash_flow": ("cashflow", "Net Cash from Operating Activities"),
}
SHORT_TERM_DEBT_COLUMN: Final[str] = "Short Term Debt"

Downloader = Callable[[str, Path], Awaitable[None]]


class FundamentalsProvider(Protocol):
    """Source of per-symbol fundamentals (current + previous period)."""

    async def ensure_loaded(self) -> None: ...

    async def list_symbols(self) -> list[str]: ...

    async def get_company_data(self, symbol: str) -> CompanyFundamentals | None: ...


class SimFinBulkProvider:
    """In-memory fundamentals from SimFin bulk CSVs.

    Usage::

        provider = SimFinBulkProvider(Path("data/simfin"), market="us")
        await provider.ensure_loaded()
        data = await provider.get_company_data("AAPL")
    """

    def __init__(
        self,
        data_dir: Path,
        *,
        market: str = "us",
        variant: str = "annual",
        max_age_days: int = 7,
        downloader: Downloader | None = None,
    ) -> None:
        self._data_dir = data_dir
        self._market = market
        self._variant = variant
        self._max_age = datetime.timedelta(days=max_age_days)
        self._downloader = downloader
        self._load_lock = asyncio.Lock()
        self._by_symbol: dict[str, pd.DataFrame] | None = None
        self._loaded_at: datetime.datetime | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ensure_loaded(self) -> None:
        """Load (and if needed re-fetch) the dataset exactly once per freshness window.

        Raises:
            FundamentalsUnavailableError: If the dataset cannot be obtained.
        """
        if self._is_fresh():
            return
        async with self._load_lock:
            # Another caller may have loaded while we waited.
            if self._is_fresh():
                return
            await self._refresh_stale_files()
            self._by_symbol = await asyncio.to_thread(self._read_dataset)
            self._loaded_at = datetime.datetime.now(datetime.UTC)
            logger.info(
                "Loaded fundamentals for %d symbols from %s",
                len(self._by_symbol),
                self._data_dir,
            )

    async def list_symbols(self) -> list[str]:
        """All tickers present in the dataset, sorted."""
        await self.ensure_loaded()
        assert self._by_symbol is not None  # noqa: S101
        return sorted(self._by_symbol)

    async def get_company_data(self, symbol: str) -> CompanyFundamentals | None:
        """Latest and prior reporting period for *symbol*, or ``None`` if unknown."""
        await self.ensure_loaded()
        assert self._by_symbol is not None  # noqa: S101
        symbol = symbol.upper().strip()
        rows = self._by_symbol.get(symbol)
        if rows is None or rows.empty:
            return None

        current = _row_to_period(rows.iloc[-1])
        previous = _row_to_period(rows.iloc[-2]) if len(rows) > 1 else None
        return CompanyFundamentals(symbol=symbol, current=current, previous=previous)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_fresh(self) -> bool:
        if self._by_symbol is None or self._loaded_at is None:
            return False
        return datetime.datetime.now(datetime.UTC) - self._loaded_at < self._max_age

    def _path_for(self, dataset: str) -> Path:
        return self._data_dir / f"{self._market}-{dataset}-{self._variant}.csv"

    def _file_is_stale(self, path: Path) -> bool:
        if not path.exists():
            return True
        modified = datetime.datetime.fromtimestamp(path.stat().st_mtime, tz=datetime.UTC)
        return datetime.datetime.now(datetime.UTC) - modified >= self._max_age

    async def _refresh_stale_files(self) -> None:
        for dataset in DATASETS:
            path = self._path_for(dataset)
            if not self._file_is_stale(path):
                continue
            if self._downloader is not None:
                logger.info("Fetching %s dataset into %s", dataset, path)
                try:
                    await self._downloader(dataset, path)
                except Exception as exc:
                    if not path.exists():
                        raise FundamentalsUnavailableError(
                            f"Could not fetch {dataset} dataset: {exc}",
                            ticker="*",
                            source=SIMFIN_SOURCE,
                        ) from exc
                    logger.warning("Refresh of %s failed, using stale file: %s", path, exc)
            if not path.exists():
                raise FundamentalsUnavailableError(
                    f"Fundamentals dataset missing: {path}",
                    ticker="*",
                    source=SIMFIN_SOURCE,
                )
            if self._file_is_stale(path):
                logger.warning("Using stale fundamentals file %s", path)

    def _read_dataset(self) -> dict[str, pd.DataFrame]:
        """Read and join the three statements (sync; run in a worker thread)."""
        frames: dict[str, pd.DataFrame] = {}
        for dataset in DATASETS:
            path = self._path_for(dataset)
            try:
                frame = pd.read_csv(path, sep=CSV_SEPARATOR, parse_dates=[REPORT_DATE_COLUMN])
            except (OSError, ValueError, pd.errors.ParserError) as exc:
                raise FundamentalsUnavailableError(
                    f"Unreadable fundamentals file {path}: {exc}",
                    ticker="*",
                    source=SIMFIN_SOURCE,
                ) from exc
            wanted = [col for ds, col in COLUMN_MAP.values() if ds == dataset]
            if dataset == "balance":
                wanted.append(SHORT_TERM_DEBT_COLUMN)
            keep = [TICKER_COLUMN, REPORT_DATE_COLUMN] + [c for c in wanted if c in frame.columns]
            frames[dataset] = frame[keep]

        merged = frames["balance"]
        for dataset in ("income", "cashflow"):
            merged = merged.merge(
                frames[dataset],
                on=[TICKER_COLUMN, REPORT_DATE_COLUMN],
                how="left",
                suffixes=("", f"_{dataset}"),
            )

        merged = merged.dropna(subset=[TICKER_COLUMN]).sort_values(
            [TICKER_COLUMN, REPORT_DATE_COLUMN]
        )
        return {str(ticker): group for ticker, group in merged.groupby(TICKER_COLUMN)}


def _row_to_period(row: pd.Series) -> FundamentalPeriod:
    """Map one joined dataset row to a FundamentalPeriod."""
    values = {field: safe_decimal(row.get(column)) for field, (_, column) in COLUMN_MAP.items()}
    values["total_debt"] = values["long_term_debt"] + safe_decimal(row.get(SHORT_TERM_DEBT_COLUMN))

    report_date = row.get(REPORT_DATE_COLUMN)
    parsed_date = pd.Timestamp(report_date).date() if pd.notna(report_date) else None
    return FundamentalPeriod(report_date=parsed_date, **values)
