"""Tests for the CLI entry point (typer app).

Commands run against a temporary SQLite file selected through the
``PUT_SCOUT_SCAN__DB_PATH`` environment variable. Network adapters are
never built: the scan and health commands have their composition
helpers patched.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from Put_Scout.cli import app
from Put_Scout.config import get_settings
from Put_Scout.models import FinancialHealthMetrics, ScanRun, ScanStatus

runner = CliRunner()


@pytest.fixture(autouse=True)
def _temp_db(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    db_path = tmp_path / "nested" / "put_scout.db"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PUT_SCOUT_SCAN__DB_PATH", str(db_path))
    monkeypatch.setenv("PUT_SCOUT_WATCHLIST", '["SPY", "KO"]')
    get_settings.cache_clear()
    yield db_path
    get_settings.cache_clear()


def _finished_run(status: ScanStatus, **kwargs: object) -> ScanRun:
    run = ScanRun(id="abcdef123456", started_at=datetime.datetime.now(datetime.UTC))
    return run.finish(status, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Command registration
# ---------------------------------------------------------------------------


class TestCommandRegistration:
    """Every command answers --help."""

    @pytest.mark.parametrize(
        "command",
        [
            ["--help"],
            ["scan", "--help"],
            ["refresh-fundamentals", "--help"],
            ["health", "--help"],
            ["recommendations", "--help"],
            ["runs", "--help"],
            ["watchlist", "--help"],
        ],
    )
    def test_help(self, command: list[str]) -> None:
        result = runner.invoke(app, command)
        assert result.exit_code == 0

    def test_scan_help_lists_options(self) -> None:
        result = runner.invoke(app, ["scan", "--help"])
        assert "prefilter" in result.output
        assert "policy" in result.output

    def test_health_requires_symbol(self) -> None:
        result = runner.invoke(app, ["health"])
        assert result.exit_code != 0


# ---------------------------------------------------------------------------
# watchlist subcommands
# ---------------------------------------------------------------------------


class TestWatchlistCommands:
    def test_empty_watchlist_mentions_configured_list(self) -> None:
        result = runner.invoke(app, ["watchlist", "list"])
        assert result.exit_code == 0
        assert "Watchlist is empty" in result.output
        assert "SPY, KO" in result.output

    def test_add_list_remove(self, _temp_db: Path) -> None:
        added = runner.invoke(app, ["watchlist", "add", "aapl", " msft "])
        assert added.exit_code == 0
        assert "Added 2 symbol(s)" in added.output
        assert _temp_db.exists()

        listed = runner.invoke(app, ["watchlist", "list"])
        assert "AAPL" in listed.output
        assert "MSFT" in listed.output

        removed = runner.invoke(app, ["watchlist", "remove", "AAPL"])
        assert "Removed 1 symbol(s)" in removed.output

        listed = runner.invoke(app, ["watchlist", "list"])
        assert "AAPL" not in listed.output
        assert "MSFT" in listed.output


# ---------------------------------------------------------------------------
# recommendations / runs
# ---------------------------------------------------------------------------


class TestListingCommands:
    def test_no_recommendations(self) -> None:
        result = runner.invoke(app, ["recommendations"])
        assert result.exit_code == 0
        assert "No recommendations to display" in result.output

    def test_no_recommendations_for_symbol(self) -> None:
        result = runner.invoke(app, ["recommendations", "--symbol", "ko"])
        assert result.exit_code == 0
        assert "No recommendations to display" in result.output

    def test_no_runs(self) -> None:
        result = runner.invoke(app, ["runs"])
        assert result.exit_code == 0
        assert "No scan runs found" in result.output


# ---------------------------------------------------------------------------
# scan command
# ---------------------------------------------------------------------------


class TestScanCommand:
    def test_completed_scan(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(
            return_value=_finished_run(
                ScanStatus.COMPLETED, symbols_scanned=4, recommendations_generated=0
            )
        )
        with patch("Put_Scout.cli._build_orchestrator", return_value=orchestrator) as build:
            result = runner.invoke(app, ["scan", "--no-refresh", "--policy", "best_per_symbol"])

        assert result.exit_code == 0, result.output
        assert "completed" in result.output
        assert "4 symbol(s)" in result.output
        settings = build.call_args.args[0]
        assert settings.health.bulk_refresh_enabled is False
        assert settings.health.prefilter_enabled is True
        orchestrator.run.assert_awaited_once()

    def test_failed_scan_exits_nonzero(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(
            return_value=_finished_run(ScanStatus.FAILED, error_summary="dataset missing")
        )
        with patch("Put_Scout.cli._build_orchestrator", return_value=orchestrator):
            result = runner.invoke(app, ["scan"])

        assert result.exit_code == 1
        assert "dataset missing" in result.output

    def test_orchestrator_exception_exits_nonzero(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(side_effect=RuntimeError("boom"))
        with patch("Put_Scout.cli._build_orchestrator", return_value=orchestrator):
            result = runner.invoke(app, ["scan"])

        assert result.exit_code == 1
        assert "Scan failed: boom" in result.output


# ---------------------------------------------------------------------------
# health command
# ---------------------------------------------------------------------------


class TestHealthCommand:
    def test_renders_metrics_and_verdict(self, healthy_metrics: FinancialHealthMetrics) -> None:
        evaluator = MagicMock()
        evaluator.evaluate = AsyncMock(return_value=healthy_metrics)
        evaluator.meets_requirements.return_value = True
        services = MagicMock(evaluator=evaluator)

        with patch("Put_Scout.cli._build_health_services", return_value=services):
            result = runner.invoke(app, ["health", " aapl "])

        assert result.exit_code == 0
        evaluator.evaluate.assert_awaited_once_with("AAPL")
        assert "Piotroski F-Score" in result.output
        assert "PASSES" in result.output

    def test_missing_scores_render_placeholders(self) -> None:
        evaluator = MagicMock()
        evaluator.evaluate = AsyncMock(return_value=FinancialHealthMetrics.empty("NEWCO"))
        evaluator.meets_requirements.return_value = False
        services = MagicMock(evaluator=evaluator)

        with patch("Put_Scout.cli._build_health_services", return_value=services):
            result = runner.invoke(app, ["health", "NEWCO"])

        assert result.exit_code == 0
        assert "---" in result.output
        assert "FAILS" in result.output
