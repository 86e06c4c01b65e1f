"""CLI entry point for Put Scout, a cash-secured put scanner.

Provides the ``put-scout`` command with subcommands for running scans,
refreshing the stored financial-health records, inspecting one symbol's
health, listing recommendations and past runs, and managing the watchlist.

This is the ONLY module where console output is allowed. All other modules
use ``logging``. Async internals are bridged to typer's synchronous interface
via ``asyncio.run()``. It is also the composition root: the single shared
``RateLimiter`` and every adapter are built here.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import signal
from typing import TYPE_CHECKING, Annotated, NamedTuple

import typer
from rich.console import Console
from rich.table import Table

from Put_Scout.config import AppSettings, get_settings
from Put_Scout.logging_config import configure_logging
from Put_Scout.models import (
    FinancialHealthMetrics,
    Recommendation,
    ScanRun,
    ScanStatus,
    SelectionPolicy,
)
from Put_Scout.scan.cancel import CancelFlag

if TYPE_CHECKING:
    from Put_Scout.data import Repository
    from Put_Scout.scan import ScanOrchestrator
    from Put_Scout.services import (
        FinancialHealthEvaluator,
        SimFinBulkProvider,
        YFinanceMarketData,
    )

# ---------------------------------------------------------------------------
# Typer app and sub-apps
# ---------------------------------------------------------------------------

app = typer.Typer(name="put-scout", help="Cash-secured put scanner")
watchlist_app = typer.Typer(help="Manage the scan watchlist")
app.add_typer(watchlist_app, name="watchlist")

# Rich console for formatted output
console = Console()

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT: int = 20

_STATUS_STYLE: dict[ScanStatus, str] = {
    ScanStatus.RUNNING: "cyan",
    ScanStatus.COMPLETED: "green",
    ScanStatus.COMPLETED_WITH_ERRORS: "yellow",
    ScanStatus.COMPLETED_NO_HEALTHY_SYMBOLS: "yellow",
    ScanStatus.CANCELLED: "yellow",
    ScanStatus.FAILED: "red",
}

# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------


class HealthServices(NamedTuple):
    """Adapters needed to evaluate financial health."""

    fundamentals: SimFinBulkProvider
    market_data: YFinanceMarketData
    evaluator: FinancialHealthEvaluator


def _build_health_services(settings: AppSettings) -> HealthServices:
    """Build the fundamentals provider, price feed and evaluator.

    One ``RateLimiter`` is created here and shared by every network adapter.
    """
    from Put_Scout.services import (
        FinancialHealthEvaluator,
        RateLimiter,
        SimFinBulkProvider,
        YFinanceMarketData,
    )

    rate_limiter = RateLimiter(
        max_concurrent=settings.max_concurrent_requests,
        requests_per_second=settings.requests_per_second,
    )
    market_data = YFinanceMarketData(
        rate_limiter,
        expiry_window=(settings.strategy.min_expiry_days, settings.strategy.max_expiry_days),
        risk_free_rate=settings.risk_free_rate,
    )
    fundamentals = SimFinBulkProvider(
        settings.fundamentals.data_dir,
        market=settings.fundamentals.market,
        variant=settings.fundamentals.variant,
        max_age_days=settings.fundamentals.max_age_days,
    )
    evaluator = FinancialHealthEvaluator(
        fundamentals,
        market_data,
        min_f_score=settings.health.min_f_score,
        min_z_score=settings.health.min_z_score,
        concurrency=settings.health.batch_concurrency,
    )
    return HealthServices(fundamentals=fundamentals, market_data=market_data, evaluator=evaluator)


def _build_orchestrator(settings: AppSettings, repository: Repository) -> ScanOrchestrator:
    """Wire the scan orchestrator and its collaborators."""
    from Put_Scout.scan import ScanOrchestrator
    from Put_Scout.services import (
        BrokerOptionsDiscovery,
        BulkFundamentalsRefresher,
        LoggingProgressNotifier,
        NullDiscovery,
        RateLimiter,
        SignedTokenIssuer,
        TokenCache,
    )
    from Put_Scout.strategies import default_registry

    health = _build_health_services(settings)
    refresher = BulkFundamentalsRefresher(
        health.fundamentals,
        health.evaluator,
        repository,
        batch_size=settings.health.batch_size,
        batch_delay_seconds=settings.health.batch_delay_seconds,
        min_f_score=settings.health.min_f_score,
    )

    discovery_settings = settings.discovery
    if discovery_settings.enabled and discovery_settings.base_url:
        tokens = TokenCache(
            SignedTokenIssuer(
                client_id=discovery_settings.client_id,
                application_id=discovery_settings.application_id,
                shared_key=discovery_settings.shared_key,
                ttl=datetime.timedelta(hours=discovery_settings.token_ttl_hours),
            )
        )
        discovery = BrokerOptionsDiscovery(
            base_url=discovery_settings.base_url,
            tokens=tokens,
            rate_limiter=RateLimiter(max_concurrent=1, requests_per_second=1.0),
            exchanges=discovery_settings.exchanges,
        )
    else:
        discovery = NullDiscovery()

    return ScanOrchestrator(
        settings,
        repository=repository,
        evaluator=health.evaluator,
        refresher=refresher,
        registry=default_registry(settings.strategy, health.evaluator),
        market_data=health.market_data,
        discovery=discovery,
        notifier=LoggingProgressNotifier(),
    )


def _install_sigint(cancel: CancelFlag) -> object:
    """Route Ctrl+C to *cancel*; returns the previous handler."""
    loop = asyncio.get_running_loop()

    def _handle_sigint(signum: int, frame: object) -> None:
        console.print("\n[yellow]Cancellation requested. Finishing current symbol...[/yellow]")
        loop.call_soon_threadsafe(cancel.set)

    return signal.signal(signal.SIGINT, _handle_sigint)


# ---------------------------------------------------------------------------
# scan command
# ---------------------------------------------------------------------------


@app.command()
def scan(
    prefilter: Annotated[
        bool, typer.Option("--prefilter/--no-prefilter", help="Batch health pre-filter")
    ] = True,
    refresh: Annotated[
        bool, typer.Option("--refresh/--no-refresh", help="Refresh stale health records first")
    ] = True,
    policy: Annotated[
        SelectionPolicy | None, typer.Option(help="Recommendation selection policy")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Suppress info logging")] = False,
) -> None:
    """Run one scan over the universe and store the best put candidates."""
    configure_logging(verbose=verbose, quiet=quiet)
    settings = get_settings()
    settings = settings.model_copy(
        update={
            "health": settings.health.model_copy(
                update={"prefilter_enabled": prefilter, "bulk_refresh_enabled": refresh}
            ),
            "scan": settings.scan.model_copy(
                update={"selection_policy": policy or settings.scan.selection_policy}
            ),
        }
    )
    run = asyncio.run(_scan_async(settings))
    style = _STATUS_STYLE.get(run.status, "white")
    console.print(
        f"\n[{style}]Scan {run.id[:8]} {run.status}: {run.symbols_scanned} symbol(s), "
        f"{run.recommendations_generated} recommendation(s)[/{style}]"
    )
    if run.error_summary:
        console.print(f"[dim]{run.error_summary}[/dim]")
    if run.status == ScanStatus.FAILED:
        raise typer.Exit(code=1)


async def _scan_async(settings: AppSettings) -> ScanRun:
    from Put_Scout.data import Database, Repository

    cancel = CancelFlag()
    previous = _install_sigint(cancel)
    try:
        async with Database.from_settings(settings.scan) as db:
            repository = Repository(db)
            orchestrator = _build_orchestrator(settings, repository)
            try:
                run = await orchestrator.run(cancel)
            except Exception as exc:
                console.print(f"[red]Scan failed: {exc}[/red]")
                raise typer.Exit(code=1) from exc
            _render_recommendations(await repository.get_active_recommendations(limit=20))
            return run
    finally:
        signal.signal(signal.SIGINT, previous)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# refresh-fundamentals command
# ---------------------------------------------------------------------------


@app.command("refresh-fundamentals")
def refresh_fundamentals(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
) -> None:
    """Recompute and store health records for every symbol in the dataset."""
    configure_logging(verbose=verbose)
    asyncio.run(_refresh_async(get_settings()))


async def _refresh_async(settings: AppSettings) -> None:
    from Put_Scout.data import Database, Repository
    from Put_Scout.services import BulkFundamentalsRefresher
    from Put_Scout.utils.exceptions import FundamentalsUnavailableError

    health = _build_health_services(settings)
    async with Database.from_settings(settings.scan) as db:
        repository = Repository(db)
        refresher = BulkFundamentalsRefresher(
            health.fundamentals,
            health.evaluator,
            repository,
            batch_size=settings.health.batch_size,
            batch_delay_seconds=settings.health.batch_delay_seconds,
            min_f_score=settings.health.min_f_score,
        )
        try:
            result = await refresher.refresh_all()
        except FundamentalsUnavailableError as exc:
            console.print(f"[red]Fundamentals unavailable: {exc}[/red]")
            raise typer.Exit(code=1) from exc
        removed = await repository.delete_stale(
            datetime.timedelta(days=settings.health.retention_days)
        )

    console.print(
        f"[green]Refreshed {result.total_processed} symbol(s): {result.healthy} healthy, "
        f"{result.unhealthy} unhealthy, {result.failed} failed "
        f"in {result.elapsed_seconds:.1f}s[/green]"
    )
    if removed:
        console.print(f"[dim]Removed {removed} stale record(s)[/dim]")


# ---------------------------------------------------------------------------
# health command
# ---------------------------------------------------------------------------


@app.command()
def health(
    symbol: Annotated[str, typer.Argument(help="Ticker symbol to evaluate")],
) -> None:
    """Evaluate and print one symbol's financial health."""
    configure_logging(quiet=True)
    settings = get_settings()
    services = _build_health_services(settings)
    metrics = asyncio.run(services.evaluator.evaluate(symbol.upper().strip()))
    _render_health(metrics, passed=services.evaluator.meets_requirements(metrics))


def _render_health(metrics: FinancialHealthMetrics, *, passed: bool) -> None:
    def _fmt(value: float | int | None, spec: str = ".2f") -> str:
        return "---" if value is None else format(value, spec)

    table = Table(title=f"Financial health: {metrics.symbol}")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Piotroski F-Score", _fmt(metrics.f_score, "d"))
    table.add_row("Altman Z-Score", _fmt(metrics.z_score))
    table.add_row("ROA", _fmt(metrics.roa, ".2%"))
    table.add_row("Debt / Equity", _fmt(metrics.debt_to_equity))
    table.add_row("Current ratio", _fmt(metrics.current_ratio))
    table.add_row("Market cap ($B)", _fmt(metrics.market_cap_billions))
    table.add_row(
        "Report date",
        metrics.report_date.isoformat() if metrics.report_date else "---",
    )
    console.print(table)
    verdict = "[green]PASSES[/green]" if passed else "[red]FAILS[/red]"
    console.print(f"Health gate: {verdict}")


# ---------------------------------------------------------------------------
# recommendations / runs commands
# ---------------------------------------------------------------------------


@app.command()
def recommendations(
    limit: Annotated[int, typer.Option(help="Maximum rows to show")] = DEFAULT_LIST_LIMIT,
    symbol: Annotated[str | None, typer.Option(help="Show history for one symbol")] = None,
) -> None:
    """List active recommendations, or one symbol's history."""
    asyncio.run(_recommendations_async(get_settings(), limit=limit, symbol=symbol))


async def _recommendations_async(
    settings: AppSettings, *, limit: int, symbol: str | None
) -> None:
    from Put_Scout.data import Database, Repository

    async with Database.from_settings(settings.scan) as db:
        repo = Repository(db)
        if symbol:
            recs = await repo.get_recommendations_for_symbol(symbol.upper().strip(), limit=limit)
        else:
            recs = await repo.get_active_recommendations(limit=limit)
    _render_recommendations(recs)


def _render_recommendations(recs: list[Recommendation]) -> None:
    if not recs:
        console.print("[yellow]No recommendations to display.[/yellow]")
        return

    table = Table(title="Put Recommendations")
    table.add_column("Symbol", style="bold", width=8)
    table.add_column("Strategy", width=18)
    table.add_column("Strike", justify="right")
    table.add_column("Expiry", width=10)
    table.add_column("DTE", justify="right")
    table.add_column("Premium", justify="right")
    table.add_column("Margin", justify="right")
    table.add_column("Ann. return", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("F / Z", justify="right")

    for rec in recs:
        f_score = "---" if rec.f_score is None else str(rec.f_score)
        z_score = "---" if rec.z_score is None else f"{rec.z_score:.2f}"
        table.add_row(
            rec.symbol,
            rec.strategy_name,
            f"${rec.strike}",
            rec.expiration.isoformat(),
            str(rec.days_to_expiry),
            f"${rec.premium:.2f}",
            f"{rec.safety_margin:.1%}",
            f"{rec.annualized_return:.1%}",
            f"{rec.confidence:.1%}",
            f"{f_score} / {z_score}",
        )
    console.print(table)


@app.command()
def runs(
    limit: Annotated[int, typer.Option(help="Maximum rows to show")] = DEFAULT_LIST_LIMIT,
) -> None:
    """List recent scan runs."""
    asyncio.run(_runs_async(get_settings(), limit=limit))


async def _runs_async(settings: AppSettings, *, limit: int) -> None:
    from Put_Scout.data import Database, Repository

    async with Database.from_settings(settings.scan) as db:
        scan_runs = await Repository(db).list_scan_runs(limit=limit)

    if not scan_runs:
        console.print("[yellow]No scan runs found.[/yellow]")
        return

    table = Table(title="Scan Runs")
    table.add_column("ID", width=10)
    table.add_column("Started", width=20)
    table.add_column("Status", width=30)
    table.add_column("Symbols", justify="right")
    table.add_column("Recs", justify="right")
    table.add_column("Errors", width=40)
    for run in scan_runs:
        style = _STATUS_STYLE.get(run.status, "white")
        table.add_row(
            run.id[:8],
            run.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{run.status}[/{style}]",
            str(run.symbols_scanned),
            str(run.recommendations_generated),
            (run.error_summary or "")[:40],
        )
    console.print(table)


# ---------------------------------------------------------------------------
# watchlist subcommands
# ---------------------------------------------------------------------------


@watchlist_app.command("add")
def watchlist_add(
    symbols: Annotated[list[str], typer.Argument(help="Ticker symbols to add")],
) -> None:
    """Add symbols to the watchlist."""
    asyncio.run(_watchlist_add_async([s.upper().strip() for s in symbols]))


async def _watchlist_add_async(symbols: list[str]) -> None:
    from Put_Scout.data import Database, Repository

    async with Database.from_settings(get_settings().scan) as db:
        await Repository(db).add_watchlist_symbols(symbols)
    console.print(f"[green]Added {len(symbols)} symbol(s) to the watchlist[/green]")


@watchlist_app.command("remove")
def watchlist_remove(
    symbols: Annotated[list[str], typer.Argument(help="Ticker symbols to remove")],
) -> None:
    """Remove symbols from the watchlist."""
    asyncio.run(_watchlist_remove_async([s.upper().strip() for s in symbols]))


async def _watchlist_remove_async(symbols: list[str]) -> None:
    from Put_Scout.data import Database, Repository

    async with Database.from_settings(get_settings().scan) as db:
        removed = await Repository(db).deactivate_watchlist_symbols(symbols)
    console.print(f"[green]Removed {removed} symbol(s) from the watchlist[/green]")


@watchlist_app.command("list")
def watchlist_list() -> None:
    """Show the active watchlist."""
    asyncio.run(_watchlist_list_async())


async def _watchlist_list_async() -> None:
    from Put_Scout.data import Database, Repository

    settings = get_settings()
    async with Database.from_settings(settings.scan) as db:
        symbols = await Repository(db).get_active_watchlist()

    if not symbols:
        console.print(
            "[yellow]Watchlist is empty; scans use the configured list: "
            f"{', '.join(settings.watchlist)}[/yellow]"
        )
        return
    table = Table(title="Watchlist")
    table.add_column("#", justify="right", style="dim", width=4)
    table.add_column("Symbol", style="bold")
    for index, symbol in enumerate(symbols, start=1):
        table.add_row(str(index), symbol)
    console.print(table)
