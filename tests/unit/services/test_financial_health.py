"""Tests for FinancialHealthEvaluator: single evaluation, the gate, and batches."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from Put_Scout.models import CompanyFundamentals, FinancialHealthMetrics
from Put_Scout.scan.cancel import CancelFlag
from Put_Scout.services.financial_health import FinancialHealthEvaluator
from Put_Scout.utils.exceptions import DataSourceUnavailableError, FundamentalsUnavailableError


def _evaluator(
    company: CompanyFundamentals | None,
    price: Decimal | None = Decimal("100"),
    **kwargs: int,
) -> tuple[FinancialHealthEvaluator, AsyncMock, AsyncMock]:
    fundamentals = AsyncMock()
    fundamentals.get_company_data.return_value = company
    prices = AsyncMock()
    prices.get_current_price.return_value = price
    return FinancialHealthEvaluator(fundamentals, prices, **kwargs), fundamentals, prices


class TestEvaluate:
    """Tests for evaluate()."""

    @pytest.mark.asyncio()
    async def test_improving_company_scores_nine(
        self, improving_fundamentals: CompanyFundamentals
    ) -> None:
        evaluator, _, _ = _evaluator(improving_fundamentals)
        metrics = await evaluator.evaluate("AAPL")

        assert metrics.f_score == 9
        assert metrics.z_score == pytest.approx(3.14, abs=0.01)
        assert metrics.roa == pytest.approx(0.08)
        assert metrics.current_ratio == pytest.approx(1.5)
        assert metrics.report_date is not None
        assert evaluator.meets_requirements(metrics)

    @pytest.mark.asyncio()
    async def test_missing_price_uses_book_equity(
        self, improving_fundamentals: CompanyFundamentals
    ) -> None:
        evaluator, _, _ = _evaluator(improving_fundamentals, price=None)
        metrics = await evaluator.evaluate("AAPL")
        assert metrics.z_score == pytest.approx(2.57, abs=0.01)

    @pytest.mark.asyncio()
    async def test_price_feed_failure_uses_book_equity(
        self, improving_fundamentals: CompanyFundamentals
    ) -> None:
        evaluator, _, prices = _evaluator(improving_fundamentals)
        prices.get_current_price.side_effect = DataSourceUnavailableError(
            "down", ticker="AAPL", source="yfinance"
        )
        metrics = await evaluator.evaluate("AAPL")
        assert metrics.f_score == 9
        assert metrics.z_score == pytest.approx(2.57, abs=0.01)

    @pytest.mark.asyncio()
    async def test_unknown_company_has_no_scores(self) -> None:
        evaluator, _, prices = _evaluator(None)
        metrics = await evaluator.evaluate("ZZZZ")
        assert metrics.f_score is None
        assert metrics.z_score is None
        assert not metrics.has_scores
        prices.get_current_price.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_dataset_failure_propagates(self) -> None:
        evaluator, fundamentals, _ = _evaluator(None)
        fundamentals.get_company_data.side_effect = FundamentalsUnavailableError(
            "missing", ticker="*", source="simfin"
        )
        with pytest.raises(FundamentalsUnavailableError):
            await evaluator.evaluate("AAPL")


class TestMeetsRequirements:
    """The gate needs both scores at or above the thresholds."""

    @pytest.mark.parametrize(
        ("f_score", "z_score", "expected"),
        [
            (7, 1.81, True),
            (9, 5.0, True),
            (6, 4.0, False),
            (8, 1.80, False),
            (None, 3.0, False),
            (8, None, False),
        ],
    )
    def test_default_thresholds(
        self, f_score: int | None, z_score: float | None, expected: bool
    ) -> None:
        evaluator, _, _ = _evaluator(None)
        metrics = FinancialHealthMetrics(symbol="AAPL", f_score=f_score, z_score=z_score)
        assert evaluator.meets_requirements(metrics) is expected

    def test_custom_thresholds(self) -> None:
        evaluator, _, _ = _evaluator(None, min_f_score=5)
        metrics = FinancialHealthMetrics(symbol="AAPL", f_score=5, z_score=2.0)
        assert evaluator.meets_requirements(metrics)
        assert evaluator.min_f_score == 5


class TestEvaluateBatch:
    """Tests for evaluate_batch()."""

    @pytest.mark.asyncio()
    async def test_one_entry_per_symbol_even_when_all_fail(self) -> None:
        evaluator, fundamentals, _ = _evaluator(None)
        fundamentals.get_company_data.side_effect = RuntimeError("boom")

        results = await evaluator.evaluate_batch(["AAPL", "KO", "MSFT"])

        assert list(results) == ["AAPL", "KO", "MSFT"]
        assert all(not m.has_scores for m in results.values())

    @pytest.mark.asyncio()
    async def test_mixed_outcomes_keep_input_order(
        self, improving_fundamentals: CompanyFundamentals
    ) -> None:
        async def lookup(symbol: str) -> CompanyFundamentals | None:
            if symbol == "BAD":
                raise RuntimeError("corrupt row")
            if symbol == "NONE":
                return None
            return improving_fundamentals

        evaluator, fundamentals, _ = _evaluator(None)
        fundamentals.get_company_data.side_effect = lookup

        results = await evaluator.evaluate_batch(["KO", "BAD", "NONE", "KO", "AAPL"])

        assert list(results) == ["KO", "BAD", "NONE", "AAPL"]
        assert results["KO"].f_score == 9
        assert results["BAD"].f_score is None
        assert results["NONE"].f_score is None

    @pytest.mark.asyncio()
    async def test_concurrency_is_bounded(
        self, improving_fundamentals: CompanyFundamentals
    ) -> None:
        in_flight = peak = 0

        async def slow_lookup(symbol: str) -> CompanyFundamentals:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return improving_fundamentals

        evaluator, fundamentals, _ = _evaluator(None, concurrency=2)
        fundamentals.get_company_data.side_effect = slow_lookup

        results = await evaluator.evaluate_batch([f"S{i}" for i in range(8)])

        assert len(results) == 8
        assert peak <= 2

    @pytest.mark.asyncio()
    async def test_cancelled_batch_yields_empty_metrics(self) -> None:
        evaluator, fundamentals, _ = _evaluator(None)
        cancel = CancelFlag()
        cancel.set()

        results = await evaluator.evaluate_batch(["AAPL", "KO"], cancel)

        assert list(results) == ["AAPL", "KO"]
        fundamentals.get_company_data.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_until_cancelled_leaves_out_unreached_symbols(
        self, improving_fundamentals: CompanyFundamentals
    ) -> None:
        evaluator, fundamentals, _ = _evaluator(improving_fundamentals, concurrency=1)
        cancel = CancelFlag()

        async def lookup_then_cancel(symbol: str) -> CompanyFundamentals:
            cancel.set()
            return improving_fundamentals

        fundamentals.get_company_data.side_effect = lookup_then_cancel

        results = await evaluator.evaluate_until_cancelled(["AAPL", "KO", "MSFT"], cancel)

        assert list(results) == ["AAPL"]
        assert results["AAPL"].f_score == 9

    @pytest.mark.asyncio()
    async def test_until_cancelled_keeps_failures_as_empty(self) -> None:
        evaluator, fundamentals, _ = _evaluator(None)
        fundamentals.get_company_data.side_effect = RuntimeError("disk")

        results = await evaluator.evaluate_until_cancelled(["AAPL"])

        assert results["AAPL"].has_scores is False

    @pytest.mark.asyncio()
    async def test_empty_input(self) -> None:
        evaluator, _, _ = _evaluator(None)
        assert await evaluator.evaluate_batch([]) == {}
