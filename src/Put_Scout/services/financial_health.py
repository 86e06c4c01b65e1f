"""Financial health evaluation: Piotroski F-Score and Altman Z-Score.

Joins the fundamentals provider (current + previous period) with a live
price, computes both scores plus supporting ratios, and applies the
health gate. Missing fundamentals never raise: the result simply has no
scores. Only infrastructure failures propagate from :meth:`evaluate`.

Batch evaluation fans out over a semaphore so at most ``concurrency``
symbols are evaluated at once; every input symbol gets exactly one
entry in the result, with empty metrics for failures and cancellations.
:meth:`FinancialHealthEvaluator.evaluate_until_cancelled` instead drops the
symbols cancellation kept it from reaching, for callers that persist results.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Final

from Put_Scout.analysis.health_scores import (
    altman_z_score,
    current_ratio,
    debt_to_equity,
    market_cap_billions,
    piotroski_f_score,
    return_on_assets,
)
from Put_Scout.models.fundamentals import FinancialHealthMetrics
from Put_Scout.utils.exceptions import DataFetchError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from Put_Scout.scan.cancel import CancelFlag
    from Put_Scout.services.fundamentals import FundamentalsProvider
    from Put_Scout.services.market_data import PriceProvider

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_MIN_F_SCORE: Final[int] = 7
DEFAULT_MIN_Z_SCORE: Final[float] = 1.81
DEFAULT_BATCH_CONCURRENCY: Final[int] = 5
RATIO_DECIMALS: Final[int] = 4


def _rounded(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return round(float(value), RATIO_DECIMALS)


class FinancialHealthEvaluator:
    """Scores a company's financial health and applies the health gate.

    Usage::

        evaluator = FinancialHealthEvaluator(fundamentals, prices)
        metrics = await evaluator.evaluate("AAPL")
        if evaluator.meets_requirements(metrics):
            ...
    """

    def __init__(
        self,
        fundamentals: FundamentalsProvider,
        prices: PriceProvider,
        *,
        min_f_score: int = DEFAULT_MIN_F_SCORE,
        min_z_score: float = DEFAULT_MIN_Z_SCORE,
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> None:
        self._fundamentals = fundamentals
        self._prices = prices
        self._min_f_score = min_f_score
        self._min_z_score = min_z_score
        self._concurrency = max(1, concurrency)

    @property
    def min_f_score(self) -> int:
        return self._min_f_score

    @property
    def min_z_score(self) -> float:
        return self._min_z_score

    async def evaluate(self, symbol: str) -> FinancialHealthMetrics:
        """Evaluate one symbol.

        Returns metrics with both scores absent when the fundamentals
        provider has nothing for *symbol*. When the price feed fails,
        market value of equity falls back to book equity.

        Raises:
            FundamentalsUnavailableError: If the fundamentals dataset itself
                cannot be obtained.
        """
        company = await self._fundamentals.get_company_data(symbol)
        if company is None:
            logger.info("No fundamentals for %s; scores unavailable", symbol)
            return FinancialHealthMetrics.empty(symbol)

        price: Decimal | None
        try:
            price = await self._prices.get_current_price(symbol)
        except DataFetchError as exc:
            logger.warning("Price unavailable for %s, using book equity: %s", symbol, exc)
            price = None
        if price is None:
            logger.debug("No live price for %s; market value falls back to book equity", symbol)

        current = company.current
        f_score = piotroski_f_score(current, company.previous)
        z_score = altman_z_score(current, price)

        metrics = FinancialHealthMetrics(
            symbol=symbol,
            f_score=f_score,
            z_score=z_score,
            roa=_rounded(return_on_assets(current)),
            debt_to_equity=_rounded(debt_to_equity(current)),
            current_ratio=_rounded(current_ratio(current)),
            market_cap_billions=round(market_cap_billions(current, price), RATIO_DECIMALS),
            report_date=current.report_date,
        )
        logger.debug(
            "Health for %s: F=%s Z=%s (previous period %s)",
            symbol,
            metrics.f_score,
            metrics.z_score,
            "present" if company.previous is not None else "missing",
        )
        return metrics

    def meets_requirements(self, metrics: FinancialHealthMetrics) -> bool:
        """Health gate: both scores present and at or above the thresholds."""
        if metrics.f_score is None or metrics.z_score is None:
            return False
        return metrics.f_score >= self._min_f_score and metrics.z_score >= self._min_z_score

    async def evaluate_batch(
        self,
        symbols: Iterable[str],
        cancel: CancelFlag | None = None,
    ) -> dict[str, FinancialHealthMetrics]:
        """Evaluate many symbols with bounded concurrency.

        A failing or cancelled evaluation yields empty metrics for that
        symbol; the batch itself never aborts. The result has one entry per
        distinct input symbol, in input order.
        """
        unique = list(dict.fromkeys(symbols))
        evaluated = await self.evaluate_until_cancelled(unique, cancel)
        return {
            symbol: evaluated.get(symbol) or FinancialHealthMetrics.empty(symbol)
            for symbol in unique
        }

    async def evaluate_until_cancelled(
        self,
        symbols: Iterable[str],
        cancel: CancelFlag | None = None,
    ) -> dict[str, FinancialHealthMetrics]:
        """Like :meth:`evaluate_batch`, but symbols not reached before
        cancellation are left out of the result instead of reported empty.

        Failed evaluations still yield empty metrics.
        """
        unique = list(dict.fromkeys(symbols))
        if not unique:
            return {}

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _one(symbol: str) -> FinancialHealthMetrics | None:
            async with semaphore:
                if cancel is not None and cancel.is_set:
                    return None
                return await self.evaluate(symbol)

        outcomes = await asyncio.gather(*(_one(s) for s in unique), return_exceptions=True)

        results: dict[str, FinancialHealthMetrics] = {}
        failures = skipped = 0
        for symbol, outcome in zip(unique, outcomes, strict=True):
            if isinstance(outcome, FinancialHealthMetrics):
                results[symbol] = outcome
            elif outcome is None:
                skipped += 1
            else:
                failures += 1
                logger.warning("Health evaluation failed for %s: %s", symbol, outcome)
                results[symbol] = FinancialHealthMetrics.empty(symbol)

        logger.info(
            "Batch health evaluation: %d symbol(s), %d failure(s), %d skipped on cancel",
            len(unique),
            failures,
            skipped,
        )
        return results
