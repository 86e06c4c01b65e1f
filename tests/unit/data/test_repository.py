"""Tests for Repository: all CRUD operations against an in-memory SQLite database."""

import datetime
from collections.abc import Callable
from decimal import Decimal

import pytest

from Put_Scout.data.repository import Repository
from Put_Scout.models import (
    FinancialHealthMetrics,
    HealthRecord,
    Recommendation,
    ScanRun,
    ScanStatus,
)

RecommendationFactory = Callable[..., Recommendation]

NOW = datetime.datetime.now(datetime.UTC)


def _record(
    symbol: str,
    f_score: int | None,
    z_score: float | None = 3.0,
    *,
    report_date: datetime.date = datetime.date(2025, 9, 30),
    fetched_at: datetime.datetime = NOW,
) -> HealthRecord:
    return HealthRecord(
        symbol=symbol,
        report_date=report_date,
        fetched_at=fetched_at,
        f_score=f_score,
        z_score=z_score,
    )


class TestRecommendations:
    """Tests for recommendation storage and retirement."""

    @pytest.mark.asyncio()
    async def test_round_trip_preserves_decimals(
        self, repo: Repository, make_recommendation: RecommendationFactory
    ) -> None:
        rec = make_recommendation(strike="92.50")
        assert await repo.add_range([rec]) == 1

        stored = await repo.get_active_recommendations()
        assert len(stored) == 1
        assert stored[0].strike == Decimal("92.50")
        assert stored[0].breakeven == Decimal("91.45")
        assert stored[0].scanned_at == rec.scanned_at
        assert stored[0].is_active

    @pytest.mark.asyncio()
    async def test_empty_batch_writes_nothing(self, repo: Repository) -> None:
        assert await repo.add_range([]) == 0

    @pytest.mark.asyncio()
    async def test_new_batch_supersedes_active_rows_for_same_symbol(
        self, repo: Repository, make_recommendation: RecommendationFactory
    ) -> None:
        await repo.add_range([make_recommendation("AAPL", confidence=0.7)])
        await repo.add_range([make_recommendation("MSFT", confidence=0.6)])
        await repo.add_range([make_recommendation("AAPL", confidence=0.9)])

        active = await repo.get_active_recommendations()
        assert [(r.symbol, r.confidence) for r in active] == [("AAPL", 0.9), ("MSFT", 0.6)]

        history = await repo.get_recommendations_for_symbol("aapl")
        assert len(history) == 2
        assert sum(r.is_active for r in history) == 1

    @pytest.mark.asyncio()
    async def test_active_ordered_by_confidence_and_limited(
        self, repo: Repository, make_recommendation: RecommendationFactory
    ) -> None:
        await repo.add_range(
            [
                make_recommendation("KO", confidence=0.71),
                make_recommendation("JNJ", confidence=0.88),
                make_recommendation("PG", confidence=0.79),
            ]
        )
        active = await repo.get_active_recommendations(limit=2)
        assert [r.symbol for r in active] == ["JNJ", "PG"]

    @pytest.mark.asyncio()
    async def test_deactivate_old_retires_expired_and_stale(
        self, repo: Repository, make_recommendation: RecommendationFactory
    ) -> None:
        await repo.add_range(
            [
                make_recommendation("FRESH", dte=17),
                make_recommendation("EXPIRED", dte=-2),
                make_recommendation(
                    "STALE", dte=17, scanned_at=NOW - datetime.timedelta(days=10)
                ),
            ]
        )
        assert await repo.deactivate_old(NOW) == 2

        active = await repo.get_active_recommendations()
        assert [r.symbol for r in active] == ["FRESH"]

    @pytest.mark.asyncio()
    async def test_deactivate_symbols(
        self, repo: Repository, make_recommendation: RecommendationFactory
    ) -> None:
        await repo.add_range([make_recommendation("AAPL"), make_recommendation("KO")])
        assert await repo.deactivate_symbols(["KO"]) == 1
        assert await repo.deactivate_symbols([]) == 0
        assert [r.symbol for r in await repo.get_active_recommendations()] == ["AAPL"]


class TestHealthRecords:
    """Tests for the health record store."""

    @pytest.mark.asyncio()
    async def test_upsert_updates_same_report_date(self, repo: Repository) -> None:
        await repo.upsert_health_records([_record("AAPL", 6)])
        await repo.upsert_health_records([_record("AAPL", 8)])

        assert await repo.get_total_count() == 1
        record = await repo.get_by_symbol("aapl")
        assert record is not None
        assert record.f_score == 8

    @pytest.mark.asyncio()
    async def test_get_by_symbol_returns_latest_period(self, repo: Repository) -> None:
        await repo.upsert_health_records(
            [
                _record("AAPL", 5, report_date=datetime.date(2024, 9, 30)),
                _record("AAPL", 8, report_date=datetime.date(2025, 9, 30)),
            ]
        )
        record = await repo.get_by_symbol("AAPL")
        assert record is not None
        assert record.report_date == datetime.date(2025, 9, 30)
        assert await repo.get_by_symbol("ZZZZ") is None

    @pytest.mark.asyncio()
    async def test_upsert_from_metrics(self, repo: Repository) -> None:
        metrics = FinancialHealthMetrics(symbol="KO", f_score=7, z_score=2.4, roa=0.1)
        await repo.upsert_health_record(
            "KO", metrics, report_date=datetime.date(2025, 6, 30), fetched_at=NOW
        )
        record = await repo.get_by_symbol("KO")
        assert record is not None
        assert record.roa == pytest.approx(0.1)
        assert record.to_metrics().f_score == 7

    @pytest.mark.asyncio()
    async def test_healthy_symbols(self, repo: Repository) -> None:
        await repo.upsert_health_records(
            [
                _record("AAPL", 8, 3.1),
                _record("KO", 7, 1.5),
                _record("XOM", 4, 2.9),
                _record("NEWCO", None, None),
            ]
        )
        assert await repo.get_healthy_symbols(7) == ["AAPL", "KO"]
        assert await repo.get_healthy_symbols(7, 1.81) == ["AAPL"]

    @pytest.mark.asyncio()
    async def test_delete_stale_and_latest_fetch_time(self, repo: Repository) -> None:
        old = NOW - datetime.timedelta(days=40)
        await repo.upsert_health_records(
            [_record("AAPL", 8, fetched_at=NOW), _record("KO", 7, fetched_at=old)]
        )
        latest = await repo.get_latest_fetch_time()
        assert latest == NOW

        assert await repo.delete_stale(datetime.timedelta(days=30)) == 1
        assert await repo.get_total_count() == 1

    @pytest.mark.asyncio()
    async def test_empty_store(self, repo: Repository) -> None:
        assert await repo.get_total_count() == 0
        assert await repo.get_latest_fetch_time() is None
        assert await repo.upsert_health_records([]) == 0


class TestScanRuns:
    """Tests for scan run persistence."""

    @pytest.mark.asyncio()
    async def test_terminal_state_replaces_running_row(self, repo: Repository) -> None:
        run = ScanRun(id="run-1", started_at=NOW)
        await repo.save_scan_run(run)
        finished = run.finish(
            ScanStatus.COMPLETED_WITH_ERRORS,
            symbols_scanned=12,
            recommendations_generated=3,
            error_summary="KO: No market data",
        )
        await repo.save_scan_run(finished)

        stored = await repo.get_scan_run("run-1")
        assert stored is not None
        assert stored.status == ScanStatus.COMPLETED_WITH_ERRORS
        assert stored.symbols_scanned == 12
        assert stored.error_summary == "KO: No market data"
        assert stored.completed_at is not None

    @pytest.mark.asyncio()
    async def test_list_most_recent_first(self, repo: Repository) -> None:
        for offset in range(3):
            await repo.save_scan_run(
                ScanRun(id=f"run-{offset}", started_at=NOW + datetime.timedelta(minutes=offset))
            )
        runs = await repo.list_scan_runs(limit=2)
        assert [r.id for r in runs] == ["run-2", "run-1"]
        assert await repo.get_scan_run("missing") is None


class TestWatchlist:
    """Tests for the persisted watchlist."""

    @pytest.mark.asyncio()
    async def test_add_remove_and_reactivate(self, repo: Repository) -> None:
        await repo.add_watchlist_symbols(["ko", " aapl ", ""])
        assert await repo.get_active_watchlist() == ["AAPL", "KO"]

        assert await repo.deactivate_watchlist_symbols(["KO"]) == 1
        assert await repo.get_active_watchlist() == ["AAPL"]

        await repo.add_watchlist_symbols(["KO"])
        assert await repo.get_active_watchlist() == ["AAPL", "KO"]
