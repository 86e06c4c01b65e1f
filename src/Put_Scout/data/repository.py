"""Repository layer for all database query operations.

Provides typed CRUD operations backed by a Database instance. All queries use
parameterized SQL (no string interpolation of values). Decimal prices are
stored as TEXT and timestamps as ISO-8601 UTC strings so that lexical order
matches chronological order.
"""

import datetime
import logging
import sqlite3
from collections.abc import Iterable
from decimal import Decimal

from Put_Scout.data.database import Database
from Put_Scout.models.fundamentals import FinancialHealthMetrics, HealthRecord
from Put_Scout.models.recommendation import Recommendation
from Put_Scout.models.scan import ScanRun

logger = logging.getLogger(__name__)

# Recommendations scanned this long before the expiry cut-off are retired too
DEFAULT_MAX_SCAN_AGE = datetime.timedelta(days=7)

_RECOMMENDATION_COLUMNS = (
    "symbol, strategy_name, strike, expiration, days_to_expiry, premium, breakeven, "
    "current_price, confidence, expected_growth_percent, safety_margin, "
    "annualized_return, f_score, z_score, scanned_at, is_active"
)
_HEALTH_COLUMNS = (
    "symbol, report_date, fetched_at, f_score, z_score, roa, debt_to_equity, "
    "current_ratio, market_cap_billions"
)
_SCAN_RUN_COLUMNS = (
    "id, started_at, completed_at, status, symbols_scanned, "
    "recommendations_generated, error_summary"
)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _utc_iso(value: datetime.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC).isoformat()


class Repository:
    """Query interface for the Put Scout persistence layer.

    All methods operate through the provided Database instance's connection.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def add_range(self, recommendations: Iterable[Recommendation]) -> int:
        """Insert recommendations and return how many were written.

        Earlier active rows for every symbol in the batch are deactivated
        first, so only this scan's picks stay active per symbol.
        """
        recs = list(recommendations)
        if not recs:
            return 0

        conn = self._db.connection
        symbols = sorted({rec.symbol for rec in recs})
        await conn.execute(
            "UPDATE recommendations SET is_active = 0 "
            f"WHERE is_active = 1 AND symbol IN ({_placeholders(len(symbols))})",
            symbols,
        )
        await conn.executemany(
            f"INSERT INTO recommendations ({_RECOMMENDATION_COLUMNS}) "
            f"VALUES ({_placeholders(16)})",
            [_recommendation_to_row(rec) for rec in recs],
        )
        await conn.commit()
        logger.debug("Stored %d recommendation(s) for %d symbol(s)", len(recs), len(symbols))
        return len(recs)

    async def deactivate_old(
        self,
        before: datetime.datetime,
        *,
        max_scan_age: datetime.timedelta = DEFAULT_MAX_SCAN_AGE,
    ) -> int:
        """Retire recommendations that expired before *before* or are stale.

        A row is stale when it was scanned more than *max_scan_age* before
        *before*. Returns the number of rows deactivated.
        """
        conn = self._db.connection
        cursor = await conn.execute(
            "UPDATE recommendations SET is_active = 0 "
            "WHERE is_active = 1 AND (expiration < ? OR scanned_at < ?)",
            (before.date().isoformat(), _utc_iso(before - max_scan_age)),
        )
        await conn.commit()
        count = cursor.rowcount
        if count:
            logger.info("Deactivated %d expired or stale recommendation(s)", count)
        return count

    async def deactivate_symbols(self, symbols: Iterable[str]) -> int:
        """Deactivate every active recommendation for *symbols*."""
        wanted = sorted(set(symbols))
        if not wanted:
            return 0
        conn = self._db.connection
        cursor = await conn.execute(
            "UPDATE recommendations SET is_active = 0 "
            f"WHERE is_active = 1 AND symbol IN ({_placeholders(len(wanted))})",
            wanted,
        )
        await conn.commit()
        return cursor.rowcount

    async def get_active_recommendations(self, limit: int = 50) -> list[Recommendation]:
        """Active recommendations, best confidence first."""
        conn = self._db.connection
        cursor = await conn.execute(
            f"SELECT {_RECOMMENDATION_COLUMNS} FROM recommendations "
            "WHERE is_active = 1 "
            "ORDER BY confidence DESC, symbol ASC, days_to_expiry ASC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return [_row_to_recommendation(row) for row in rows]

    async def get_recommendations_for_symbol(
        self, symbol: str, limit: int = 20
    ) -> list[Recommendation]:
        """Recommendation history for one symbol, newest first."""
        conn = self._db.connection
        cursor = await conn.execute(
            f"SELECT {_RECOMMENDATION_COLUMNS} FROM recommendations "
            "WHERE symbol = ? ORDER BY scanned_at DESC, confidence DESC LIMIT ?",
            (symbol.upper(), limit),
        )
        rows = await cursor.fetchall()
        return [_row_to_recommendation(row) for row in rows]

    # ------------------------------------------------------------------
    # Health records
    # ------------------------------------------------------------------

    async def upsert_health_record(
        self,
        symbol: str,
        metrics: FinancialHealthMetrics,
        *,
        report_date: datetime.date | None = None,
        fetched_at: datetime.datetime | None = None,
    ) -> None:
        """Insert or update the record for (symbol, report date)."""
        fetched = fetched_at or datetime.datetime.now(datetime.UTC)
        record = HealthRecord(
            symbol=symbol,
            report_date=report_date or metrics.report_date or fetched.date(),
            fetched_at=fetched,
            f_score=metrics.f_score,
            z_score=metrics.z_score,
            roa=metrics.roa,
            debt_to_equity=metrics.debt_to_equity,
            current_ratio=metrics.current_ratio,
            market_cap_billions=metrics.market_cap_billions,
        )
        await self.upsert_health_records([record])

    async def upsert_health_records(self, records: Iterable[HealthRecord]) -> int:
        """Bulk insert-or-update keyed by (symbol, report date)."""
        rows = [_health_record_to_row(record) for record in records]
        if not rows:
            return 0
        conn = self._db.connection
        await conn.executemany(
            f"INSERT INTO health_records ({_HEALTH_COLUMNS}) VALUES ({_placeholders(9)}) "
            "ON CONFLICT (symbol, report_date) DO UPDATE SET "
            "fetched_at = excluded.fetched_at, f_score = excluded.f_score, "
            "z_score = excluded.z_score, roa = excluded.roa, "
            "debt_to_equity = excluded.debt_to_equity, "
            "current_ratio = excluded.current_ratio, "
            "market_cap_billions = excluded.market_cap_billions",
            rows,
        )
        await conn.commit()
        return len(rows)

    async def get_by_symbol(self, symbol: str) -> HealthRecord | None:
        """Most recent health record for *symbol*, or None if never stored."""
        conn = self._db.connection
        cursor = await conn.execute(
            f"SELECT {_HEALTH_COLUMNS} FROM health_records WHERE symbol = ? "
            "ORDER BY report_date DESC, fetched_at DESC LIMIT 1",
            (symbol.upper(),),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_health_record(row)

    async def get_healthy_symbols(
        self, min_f_score: int, min_z_score: float | None = None
    ) -> list[str]:
        """Symbols whose latest record clears the F-Score (and optional Z-Score) bar."""
        conn = self._db.connection
        cursor = await conn.execute(
            "SELECT h.symbol, h.f_score, h.z_score FROM health_records h "
            "JOIN (SELECT symbol, MAX(report_date) AS report_date FROM health_records "
            "GROUP BY symbol) latest "
            "ON h.symbol = latest.symbol AND h.report_date = latest.report_date "
            "WHERE h.f_score IS NOT NULL AND h.f_score >= ? ORDER BY h.symbol",
            (min_f_score,),
        )
        rows = await cursor.fetchall()
        return [
            str(row[0])
            for row in rows
            if min_z_score is None or (row[2] is not None and row[2] >= min_z_score)
        ]

    async def delete_stale(self, max_age: datetime.timedelta) -> int:
        """Delete health records fetched more than *max_age* ago."""
        cutoff = datetime.datetime.now(datetime.UTC) - max_age
        conn = self._db.connection
        cursor = await conn.execute(
            "DELETE FROM health_records WHERE fetched_at < ?",
            (_utc_iso(cutoff),),
        )
        await conn.commit()
        if cursor.rowcount:
            logger.info("Deleted %d stale health record(s)", cursor.rowcount)
        return cursor.rowcount

    async def get_total_count(self) -> int:
        """Number of stored health records."""
        conn = self._db.connection
        cursor = await conn.execute("SELECT COUNT(*) FROM health_records")
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def get_latest_fetch_time(self) -> datetime.datetime | None:
        """Timestamp of the newest health record, or None when empty."""
        conn = self._db.connection
        cursor = await conn.execute("SELECT MAX(fetched_at) FROM health_records")
        row = await cursor.fetchone()
        if row is None or row[0] is None:
            return None
        return datetime.datetime.fromisoformat(row[0])

    # ------------------------------------------------------------------
    # Scan runs
    # ------------------------------------------------------------------

    async def save_scan_run(self, scan: ScanRun) -> None:
        """Persist a ScanRun record.

        Uses ``INSERT OR REPLACE`` so that the initial "running" row is
        overwritten by its terminal state without a separate update method.
        """
        conn = self._db.connection
        await conn.execute(
            f"INSERT OR REPLACE INTO scan_runs ({_SCAN_RUN_COLUMNS}) "
            f"VALUES ({_placeholders(7)})",
            (
                scan.id,
                _utc_iso(scan.started_at),
                _utc_iso(scan.completed_at) if scan.completed_at else None,
                scan.status.value,
                scan.symbols_scanned,
                scan.recommendations_generated,
                scan.error_summary,
            ),
        )
        await conn.commit()

    async def get_scan_run(self, scan_id: str) -> ScanRun | None:
        """Return a ScanRun by its ID, or None if not found."""
        conn = self._db.connection
        cursor = await conn.execute(
            f"SELECT {_SCAN_RUN_COLUMNS} FROM scan_runs WHERE id = ?",
            (scan_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return _row_to_scan_run(row)

    async def list_scan_runs(self, *, limit: int = 20, offset: int = 0) -> list[ScanRun]:
        """Return scan runs ordered by most recent, with pagination."""
        conn = self._db.connection
        cursor = await conn.execute(
            f"SELECT {_SCAN_RUN_COLUMNS} FROM scan_runs "
            "ORDER BY started_at DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        rows = await cursor.fetchall()
        return [_row_to_scan_run(row) for row in rows]

    # ------------------------------------------------------------------
    # Watchlist
    # ------------------------------------------------------------------

    async def get_active_watchlist(self) -> list[str]:
        """Active watchlist symbols, sorted alphabetically."""
        conn = self._db.connection
        cursor = await conn.execute(
            "SELECT symbol FROM watchlist WHERE is_active = 1 ORDER BY symbol"
        )
        rows = await cursor.fetchall()
        return [str(row[0]) for row in rows]

    async def add_watchlist_symbols(self, symbols: Iterable[str]) -> None:
        """Add symbols, reactivating any that were removed earlier."""
        added_at = datetime.datetime.now(datetime.UTC).isoformat()
        rows = [(symbol.upper().strip(), added_at) for symbol in symbols if symbol.strip()]
        if not rows:
            return
        conn = self._db.connection
        await conn.executemany(
            "INSERT INTO watchlist (symbol, is_active, added_at) VALUES (?, 1, ?) "
            "ON CONFLICT (symbol) DO UPDATE SET is_active = 1",
            rows,
        )
        await conn.commit()

    async def deactivate_watchlist_symbols(self, symbols: Iterable[str]) -> int:
        """Soft-remove symbols from the watchlist."""
        wanted = sorted({symbol.upper().strip() for symbol in symbols})
        if not wanted:
            return 0
        conn = self._db.connection
        cursor = await conn.execute(
            "UPDATE watchlist SET is_active = 0 "
            f"WHERE symbol IN ({_placeholders(len(wanted))})",
            wanted,
        )
        await conn.commit()
        return cursor.rowcount


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _recommendation_to_row(rec: Recommendation) -> tuple[object, ...]:
    return (
        rec.symbol,
        rec.strategy_name,
        str(rec.strike),
        rec.expiration.isoformat(),
        rec.days_to_expiry,
        str(rec.premium),
        str(rec.breakeven),
        str(rec.current_price),
        rec.confidence,
        rec.expected_growth_percent,
        rec.safety_margin,
        rec.annualized_return,
        rec.f_score,
        rec.z_score,
        _utc_iso(rec.scanned_at),
        int(rec.is_active),
    )


def _row_to_recommendation(row: sqlite3.Row) -> Recommendation:
    """Convert a database row tuple to a Recommendation model."""
    return Recommendation(
        symbol=row[0],
        strategy_name=row[1],
        strike=Decimal(row[2]),
        expiration=datetime.date.fromisoformat(row[3]),
        days_to_expiry=row[4],
        premium=Decimal(row[5]),
        breakeven=Decimal(row[6]),
        current_price=Decimal(row[7]),
        confidence=row[8],
        expected_growth_percent=row[9],
        safety_margin=row[10],
        annualized_return=row[11],
        f_score=row[12],
        z_score=row[13],
        scanned_at=datetime.datetime.fromisoformat(row[14]),
        is_active=bool(row[15]),
    )


def _health_record_to_row(record: HealthRecord) -> tuple[object, ...]:
    return (
        record.symbol.upper(),
        record.report_date.isoformat(),
        _utc_iso(record.fetched_at),
        record.f_score,
        record.z_score,
        record.roa,
        record.debt_to_equity,
        record.current_ratio,
        record.market_cap_billions,
    )


def _row_to_health_record(row: sqlite3.Row) -> HealthRecord:
    """Convert a database row tuple to a HealthRecord model."""
    return HealthRecord(
        symbol=row[0],
        report_date=datetime.date.fromisoformat(row[1]),
        fetched_at=datetime.datetime.fromisoformat(row[2]),
        f_score=row[3],
        z_score=row[4],
        roa=row[5],
        debt_to_equity=row[6],
        current_ratio=row[7],
        market_cap_billions=row[8],
    )


def _row_to_scan_run(row: sqlite3.Row) -> ScanRun:
    """Convert a database row tuple to a ScanRun model."""
    return ScanRun(
        id=row[0],
        started_at=datetime.datetime.fromisoformat(row[1]),
        completed_at=(datetime.datetime.fromisoformat(row[2]) if row[2] is not None else None),
        status=row[3],
        symbols_scanned=row[4],
        recommendations_generated=row[5],
        error_summary=row[6],
    )
