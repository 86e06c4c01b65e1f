"""Bulk refresh of stored health records from the fundamentals dataset.

Walks every ticker in the dataset in fixed-size batches, evaluates each
batch through :meth:`FinancialHealthEvaluator.evaluate_until_cancelled`,
and upserts one health record per scored symbol. Batches run one after
another with a short pause in between so the price feed behind the
evaluator is not flooded.

A failing batch is logged and counted as failed; the refresh carries on
with the next one. Failure to obtain the dataset at all is fatal and
propagates to the caller.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from typing import TYPE_CHECKING, Final

from Put_Scout.models.fundamentals import HealthRecord
from Put_Scout.models.scan import BulkRefreshResult

if TYPE_CHECKING:
    from Put_Scout.data.repository import Repository
    from Put_Scout.scan.cancel import CancelFlag
    from Put_Scout.services.financial_health import FinancialHealthEvaluator
    from Put_Scout.services.fundamentals import FundamentalsProvider

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_BATCH_SIZE: Final[int] = 100
DEFAULT_BATCH_DELAY_SECONDS: Final[float] = 1.0
# Report date assumed for symbols whose latest period carries none
FALLBACK_REPORT_AGE: Final[datetime.timedelta] = datetime.timedelta(days=90)


class BulkFundamentalsRefresher:
    """Recomputes and stores health records for the whole dataset."""

    def __init__(
        self,
        provider: FundamentalsProvider,
        evaluator: FinancialHealthEvaluator,
        repository: Repository,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay_seconds: float = DEFAULT_BATCH_DELAY_SECONDS,
        min_f_score: int = 7,
    ) -> None:
        self._provider = provider
        self._evaluator = evaluator
        self._repository = repository
        self._batch_size = max(1, batch_size)
        self._batch_delay = batch_delay_seconds
        self._min_f_score = min_f_score

    async def refresh_all(self, cancel: CancelFlag | None = None) -> BulkRefreshResult:
        """Evaluate and store every symbol in the fundamentals dataset.

        Raises:
            FundamentalsUnavailableError: If the dataset cannot be loaded.
        """
        started = time.monotonic()
        logger.info("Starting bulk fundamentals refresh")

        await self._provider.ensure_loaded()
        symbols = await self._provider.list_symbols()
        if not symbols:
            logger.warning("Fundamentals dataset lists no symbols; nothing to refresh")
            return BulkRefreshResult(elapsed_seconds=round(time.monotonic() - started, 3))

        batches = [
            symbols[i : i + self._batch_size] for i in range(0, len(symbols), self._batch_size)
        ]
        logger.info(
            "Refreshing %d symbols in %d batch(es) of up to %d",
            len(symbols),
            len(batches),
            self._batch_size,
        )

        healthy = unhealthy = failed = 0
        attempted = 0
        for number, batch in enumerate(batches, start=1):
            if cancel is not None and cancel.is_set:
                logger.info("Bulk refresh cancelled before batch %d/%d", number, len(batches))
                break

            try:
                counts = await self._process_batch(batch, cancel)
            except Exception:
                logger.exception("Batch %d/%d failed", number, len(batches))
                attempted += len(batch)
                failed += len(batch)
            else:
                attempted += counts[0]
                healthy += counts[1]
                unhealthy += counts[2]
                failed += counts[3]
                logger.info(
                    "Batch %d/%d stored (healthy=%d, unhealthy=%d, failed=%d so far)",
                    number,
                    len(batches),
                    healthy,
                    unhealthy,
                    failed,
                )

            if number < len(batches):
                if cancel is not None:
                    await cancel.sleep(self._batch_delay)
                elif self._batch_delay > 0:
                    await asyncio.sleep(self._batch_delay)

        result = BulkRefreshResult(
            total_processed=attempted - failed,
            healthy=healthy,
            unhealthy=unhealthy,
            failed=failed,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        logger.info(
            "Bulk refresh finished: %d processed, %d healthy (F-Score > %d, stricter than the "
            "scan gate's >=), %d unhealthy, %d failed in %.1fs",
            result.total_processed,
            result.healthy,
            self._min_f_score,
            result.unhealthy,
            result.failed,
            result.elapsed_seconds,
        )
        return result

    async def _process_batch(
        self,
        batch: list[str],
        cancel: CancelFlag | None,
    ) -> tuple[int, int, int, int]:
        """Evaluate and store one batch.

        Returns (evaluated, healthy, unhealthy, failed). Symbols the evaluator
        never reached because of cancellation are not counted at all, and
        metrics without any score are not stored so they cannot shadow an
        earlier scored record.
        """
        metrics_by_symbol = await self._evaluator.evaluate_until_cancelled(batch, cancel)
        if len(metrics_by_symbol) < len(batch):
            logger.info(
                "Cancelled mid-batch; %d of %d symbol(s) left unevaluated",
                len(batch) - len(metrics_by_symbol),
                len(batch),
            )
        fetched_at = datetime.datetime.now(datetime.UTC)
        fallback_date = (fetched_at - FALLBACK_REPORT_AGE).date()

        records: list[HealthRecord] = []
        healthy = unhealthy = failed = 0
        for symbol, metrics in metrics_by_symbol.items():
            if metrics.f_score is None and metrics.z_score is None:
                unhealthy += 1
                continue
            try:
                record = HealthRecord(
                    symbol=symbol,
                    report_date=metrics.report_date or fallback_date,
                    fetched_at=fetched_at,
                    f_score=metrics.f_score,
                    z_score=metrics.z_score,
                    roa=metrics.roa,
                    debt_to_equity=metrics.debt_to_equity,
                    current_ratio=metrics.current_ratio,
                    market_cap_billions=metrics.market_cap_billions,
                )
            except ValueError as exc:
                logger.warning("Could not map health metrics for %s: %s", symbol, exc)
                failed += 1
                continue
            records.append(record)
            if metrics.f_score is not None and metrics.f_score > self._min_f_score:
                healthy += 1
            else:
                unhealthy += 1

        if records:
            await self._repository.upsert_health_records(records)
        return len(metrics_by_symbol), healthy, unhealthy, failed


async def refresh_required(
    repository: Repository,
    staleness_days: int,
    now: datetime.datetime | None = None,
) -> bool:
    """Staleness policy: refresh when the store is empty or its newest record is too old."""
    if await repository.get_total_count() == 0:
        logger.info("Health record store is empty; refresh required")
        return True

    latest = await repository.get_latest_fetch_time()
    if latest is None:
        return True
    now = now or datetime.datetime.now(datetime.UTC)
    age = now - latest
    if age > datetime.timedelta(days=staleness_days):
        logger.info(
            "Newest health record is %.1f days old (limit %d); refresh required",
            age.total_seconds() / 86400,
            staleness_days,
        )
        return True
    return False
