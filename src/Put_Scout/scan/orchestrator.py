"""Scan orchestration: one end-to-end pass from universe to stored picks.

Sequence for :meth:`ScanOrchestrator.run`:

1. Persist a new ``ScanRun`` in ``RUNNING`` state.
2. Refresh stored health records when the staleness policy says so and
   wait for it to finish. A failing refresh fails the run.
3. Load the strategies; an empty registry fails the run.
4. Resolve the universe (discovery, then stored watchlist, then the
   configured list) and optionally pre-filter it by financial health.
5. Walk the symbols one at a time: health gate, market data, every
   strategy. Failures are isolated per strategy and per symbol and
   collected as soft errors. Cancellation is checked at the top of each
   iteration and breaks the loop.
6. Select and persist the recommendations.
7. Finish the run with its counts, status and a short error summary.

Anything that escapes steps 1-7 marks the run ``FAILED`` (best-effort
save) and is re-raised.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import TYPE_CHECKING, Final

from Put_Scout.analysis.selection import select_recommendations
from Put_Scout.models.enums import ScanStatus
from Put_Scout.models.scan import MAX_ERROR_SUMMARY_CHARS, ScanProgressUpdate, ScanRun
from Put_Scout.scan.cancel import CancelFlag
from Put_Scout.scan.state import ScanStateTracker
from Put_Scout.services.bulk_refresh import refresh_required
from Put_Scout.services.discovery import NullDiscovery
from Put_Scout.services.notifier import NullProgressNotifier
from Put_Scout.utils.exceptions import NoStrategiesError

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from Put_Scout.config import AppSettings
    from Put_Scout.data.repository import Repository
    from Put_Scout.models.recommendation import Recommendation
    from Put_Scout.services.bulk_refresh import BulkFundamentalsRefresher
    from Put_Scout.services.discovery import SymbolDiscovery
    from Put_Scout.services.financial_health import FinancialHealthEvaluator
    from Put_Scout.services.market_data import MarketDataAggregator
    from Put_Scout.services.notifier import ScanProgressNotifier
    from Put_Scout.strategies.base import Strategy
    from Put_Scout.strategies.registry import StrategyRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Recommendations expiring before now minus this are retired before saving
EXPIRY_GRACE: Final[datetime.timedelta] = datetime.timedelta(days=1)
ERROR_SEPARATOR: Final[str] = "; "
LOGGED_SYMBOLS: Final[int] = 20


class ScanOrchestrator:
    """Runs scans against injected collaborators.

    Usage::

        orchestrator = ScanOrchestrator(
            settings,
            repository=repository,
            evaluator=evaluator,
            refresher=refresher,
            registry=registry,
            market_data=market_data,
        )
        run = await orchestrator.run(cancel)
    """

    def __init__(
        self,
        settings: AppSettings,
        *,
        repository: Repository,
        evaluator: FinancialHealthEvaluator,
        refresher: BulkFundamentalsRefresher,
        registry: StrategyRegistry,
        market_data: MarketDataAggregator,
        discovery: SymbolDiscovery | None = None,
        notifier: ScanProgressNotifier | None = None,
        state: ScanStateTracker | None = None,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._evaluator = evaluator
        self._refresher = refresher
        self._registry = registry
        self._market_data = market_data
        self._discovery: SymbolDiscovery = discovery or NullDiscovery()
        self._notifier: ScanProgressNotifier = notifier or NullProgressNotifier()
        self._state = state or ScanStateTracker()

    @property
    def state(self) -> ScanStateTracker:
        return self._state

    async def run(self, cancel: CancelFlag | None = None) -> ScanRun:
        """Execute one scan and return its terminal ``ScanRun``.

        Raises:
            ScanInProgressError: If another scan is still running.
            Exception: Any run-level failure, after the run was saved as FAILED.
        """
        cancel = cancel or CancelFlag()
        run = ScanRun(id=str(uuid.uuid4()), started_at=datetime.datetime.now(datetime.UTC))
        self._state.begin(run.id)
        final: ScanRun | None = None
        try:
            logger.info("Starting scan %s", run.id)
            try:
                await self._repository.save_scan_run(run)
                final = await self._execute(run, cancel)
            except Exception as exc:
                logger.exception("Scan %s failed", run.id)
                final = run.finish(ScanStatus.FAILED, error_summary=str(exc) or type(exc).__name__)
                try:
                    await self._repository.save_scan_run(final)
                except Exception:
                    logger.exception("Could not record failure of scan %s", run.id)
                await self._notify_completed(final)
                raise
            await self._notify_completed(final)
            return final
        finally:
            self._state.finish(final)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _execute(self, run: ScanRun, cancel: CancelFlag) -> ScanRun:
        await self._refresh_if_stale(cancel)
        if cancel.is_set:
            return await self._finish_cancelled(run, "during the health refresh")

        strategies = self._registry.load_all()
        if not strategies:
            msg = "No strategies available for scanning"
            raise NoStrategiesError(msg)
        logger.info(
            "Loaded %d strateg(ies): %s",
            len(strategies),
            ", ".join(strategy.name for strategy in strategies),
        )

        universe = await self._resolve_universe()
        symbols = await self._prefilter(universe, cancel)
        if cancel.is_set:
            # Unevaluated symbols come back without scores; the gate result is meaningless.
            return await self._finish_cancelled(run, "during the health pre-filter")
        if not symbols:
            logger.warning("No symbols met the financial health requirements; scan ends")
            final = run.finish(
                ScanStatus.COMPLETED_NO_HEALTHY_SYMBOLS,
                symbols_scanned=0,
                recommendations_generated=0,
            )
            await self._repository.save_scan_run(final)
            return final

        logger.info(
            "Scanning %d symbol(s): %s%s",
            len(symbols),
            ", ".join(symbols[:LOGGED_SYMBOLS]),
            " ..." if len(symbols) > LOGGED_SYMBOLS else "",
        )
        await self._notify("scan started", self._notifier.notify_scan_started(run.id, len(symbols)))

        collected: list[Recommendation] = []
        errors: list[str] = []
        scanned, cancelled = await self._scan_symbols(
            run.id, symbols, strategies, cancel, collected, errors
        )

        saved = await self._persist(collected, errors)

        if cancelled:
            status = ScanStatus.CANCELLED
        elif errors:
            status = ScanStatus.COMPLETED_WITH_ERRORS
        else:
            status = ScanStatus.COMPLETED
        final = run.finish(
            status,
            symbols_scanned=scanned,
            recommendations_generated=saved,
            error_summary=self._summarize(errors),
        )
        await self._repository.save_scan_run(final)

        logger.info(
            "Scan %s %s: %d/%d symbol(s), %d recommendation(s), %d error(s)",
            run.id,
            final.status,
            scanned,
            len(symbols),
            saved,
            len(errors),
        )
        if errors:
            logger.warning("Scan %s soft errors:\n%s", run.id, "\n".join(errors))
        return final

    async def _finish_cancelled(self, run: ScanRun, phase: str) -> ScanRun:
        logger.info("Scan %s cancelled %s", run.id, phase)
        final = run.finish(ScanStatus.CANCELLED, symbols_scanned=0, recommendations_generated=0)
        await self._repository.save_scan_run(final)
        return final

    async def _refresh_if_stale(self, cancel: CancelFlag) -> None:
        health = self._settings.health
        if not health.bulk_refresh_enabled:
            return
        if not await refresh_required(self._repository, health.staleness_days):
            logger.debug("Health records are fresh; skipping bulk refresh")
            return
        logger.info("Refreshing stored health records before scanning")
        result = await self._refresher.refresh_all(cancel)
        await self._repository.delete_stale(datetime.timedelta(days=health.retention_days))
        logger.info(
            "Bulk refresh: %d processed, %d healthy, %d failed",
            result.total_processed,
            result.healthy,
            result.failed,
        )

    async def _resolve_universe(self) -> list[str]:
        """Discovery first, then the stored watchlist, then the configured list."""
        discovery = self._settings.discovery
        if discovery.enabled:
            try:
                discovered = await self._discovery.discover_underlying_symbols()
            except Exception:
                logger.exception("Symbol discovery failed")
                if not discovery.fallback_to_watchlist:
                    raise
                logger.warning("Falling back to the watchlist")
            else:
                if discovered:
                    return _unique(discovered)
                logger.warning("Symbol discovery returned no symbols")

        try:
            stored = await self._repository.get_active_watchlist()
        except Exception:
            logger.exception("Could not load the stored watchlist; using configuration")
            stored = []
        if stored:
            return _unique(stored)
        logger.info("Stored watchlist is empty; using the configured watchlist")
        return _unique(self._settings.watchlist)

    async def _prefilter(self, universe: list[str], cancel: CancelFlag) -> list[str]:
        """Keep healthy symbols plus those with no stored health record."""
        if not self._settings.health.prefilter_enabled or not universe:
            return universe

        metrics = await self._evaluator.evaluate_batch(universe, cancel)
        kept: list[str] = []
        unknown = 0
        for symbol in universe:
            if self._evaluator.meets_requirements(metrics[symbol]):
                kept.append(symbol)
            elif await self._repository.get_by_symbol(symbol) is None:
                unknown += 1
                kept.append(symbol)
        logger.info(
            "Pre-filter kept %d/%d symbol(s) (%d without a stored health record)",
            len(kept),
            len(universe),
            unknown,
        )
        return kept

    async def _scan_symbols(
        self,
        run_id: str,
        symbols: list[str],
        strategies: list[Strategy],
        cancel: CancelFlag,
        collected: list[Recommendation],
        errors: list[str],
    ) -> tuple[int, bool]:
        """The sequential symbol loop. Returns (symbols scanned, cancelled)."""
        total = len(symbols)
        scanned = 0
        for index, symbol in enumerate(symbols, start=1):
            if cancel.is_set:
                logger.info("Scan %s cancelled after %d symbol(s)", run_id, scanned)
                return scanned, True

            await self._notify(
                "symbol scanning",
                self._notifier.notify_symbol_scanning(
                    ScanProgressUpdate(
                        run_id=run_id,
                        symbol=symbol,
                        current_index=index,
                        total_symbols=total,
                        status="scanning",
                    )
                ),
            )

            try:
                produced = await self._scan_symbol(symbol, strategies, errors)
            except Exception as exc:
                logger.exception("Error processing %s", symbol)
                message = f"{symbol}: {exc}"
                errors.append(message)
                await self._notify_symbol_error(run_id, symbol, index, total, message)
            else:
                if produced is None:
                    message = f"{symbol}: No market data"
                    errors.append(message)
                    await self._notify_symbol_error(run_id, symbol, index, total, message)
                else:
                    collected.extend(produced)
                    scanned += 1
                    await self._notify(
                        "symbol completed",
                        self._notifier.notify_symbol_completed(
                            ScanProgressUpdate(
                                run_id=run_id,
                                symbol=symbol,
                                current_index=index,
                                total_symbols=total,
                                status="completed",
                                recommendations_count=len(produced),
                            )
                        ),
                    )

            if index < total:
                await cancel.sleep(self._settings.scan.symbol_delay_seconds)
        return scanned, False

    async def _scan_symbol(
        self,
        symbol: str,
        strategies: list[Strategy],
        errors: list[str],
    ) -> list[Recommendation] | None:
        """Scan one symbol; ``None`` means the market data feed had nothing."""
        metrics = await self._evaluator.evaluate(symbol)
        if not self._evaluator.meets_requirements(metrics):
            logger.info(
                "Skipping %s: health gate not met (F=%s, Z=%s)",
                symbol,
                metrics.f_score,
                metrics.z_score,
            )
            return []

        data = await self._market_data.get_full_market_data(symbol)
        if data.snapshot is None:
            logger.warning("No market data for %s", symbol)
            return None
        data = data.with_health(metrics)

        produced: list[Recommendation] = []
        for strategy in strategies:
            try:
                recommendations = await strategy.analyze(data)
            except Exception as exc:
                logger.exception("Error running %s on %s", strategy.name, symbol)
                errors.append(f"{symbol}/{strategy.name}: {exc}")
                continue
            if recommendations:
                logger.info(
                    "%s produced %d recommendation(s) for %s",
                    strategy.name,
                    len(recommendations),
                    symbol,
                )
                produced.extend(recommendations)
        return produced

    async def _persist(self, collected: list[Recommendation], errors: list[str]) -> int:
        """Select and store recommendations; a storage failure is a soft error."""
        scan = self._settings.scan
        selected = select_recommendations(
            collected,
            policy=scan.selection_policy,
            min_confidence=self._settings.strategy.min_confidence,
        )
        try:
            await self._repository.deactivate_old(
                datetime.datetime.now(datetime.UTC) - EXPIRY_GRACE
            )
            if not selected:
                if collected:
                    logger.warning(
                        "All %d recommendation(s) were below the confidence gate (%.2f)",
                        len(collected),
                        self._settings.strategy.min_confidence,
                    )
                else:
                    logger.info("No recommendations generated in this scan")
                return 0
            saved = await self._repository.add_range(selected)
        except Exception as exc:
            logger.exception("Error saving recommendations")
            errors.append(f"Database save: {exc}")
            return 0

        logger.info(
            "Saved %d of %d recommendation(s); top: %s",
            saved,
            len(collected),
            ", ".join(
                f"{rec.symbol} {rec.strike}P {rec.expiration:%m/%d} ({rec.confidence:.0%})"
                for rec in selected[:10]
            ),
        )
        return saved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _summarize(self, errors: list[str]) -> str | None:
        if not errors:
            return None
        summary = ERROR_SEPARATOR.join(errors[: self._settings.scan.max_summary_errors])
        return summary[:MAX_ERROR_SUMMARY_CHARS]

    async def _notify_symbol_error(
        self, run_id: str, symbol: str, index: int, total: int, message: str
    ) -> None:
        await self._notify(
            "symbol error",
            self._notifier.notify_symbol_error(
                ScanProgressUpdate(
                    run_id=run_id,
                    symbol=symbol,
                    current_index=index,
                    total_symbols=total,
                    status="error",
                    error_message=message,
                )
            ),
        )

    async def _notify_completed(self, run: ScanRun) -> None:
        await self._notify("scan completed", self._notifier.notify_scan_completed(run))

    @staticmethod
    async def _notify(event: str, notification: Awaitable[None]) -> None:
        """Await a notifier coroutine; failures are logged and dropped."""
        try:
            await notification
        except Exception:
            logger.warning("Progress notifier failed on %s", event, exc_info=True)


def _unique(symbols: list[str]) -> list[str]:
    """Upper-cased, de-duplicated, order-preserving."""
    return list(dict.fromkeys(s.upper().strip() for s in symbols if s and s.strip()))
