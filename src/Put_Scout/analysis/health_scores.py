"""Piotroski F-Score and Altman Z-Score from raw fundamentals.

Pure math module: Pydantic fundamentals in, plain numbers out.
No API calls, no I/O.

The F-Score here is a modified Piotroski variant: nine binary criteria,
six of which compare against the previous reporting period. When the
previous period is missing those six are skipped (no point, no penalty),
so a new listing scores at most 3. The health gate reads that as
"recent trend unknown", which is the intended behaviour.

References:
    Piotroski, J. (2000) "Value Investing: The Use of Historical Financial
    Statement Information to Separate Winners from Losers".
    Altman, E. (1968) "Financial Ratios, Discriminant Analysis and the
    Prediction of Corporate Bankruptcy".
"""

from decimal import Decimal
from typing import Final

from Put_Scout.models.fundamentals import F_SCORE_MAX, FundamentalPeriod


# --- Altman Z-Score coefficients (public manufacturing variant) ---
Z_WEIGHT_WORKING_CAPITAL: Final[float] = 1.2
Z_WEIGHT_RETAINED_EARNINGS: Final[float] = 1.4
Z_WEIGHT_EBIT: Final[float] = 3.3
Z_WEIGHT_EQUITY_TO_LIABILITIES: Final[float] = 0.6
Z_WEIGHT_ASSET_TURNOVER: Final[float] = 1.0

# X4 when a company reports no liabilities at all
Z_EQUITY_TO_LIABILITIES_CAP: Final[float] = 10.0
Z_SCORE_DECIMALS: Final[int] = 2

_ZERO: Final[Decimal] = Decimal("0")
_BILLION: Final[Decimal] = Decimal("1000000000")


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal | None:
    """Safe division; ``None`` when the denominator is zero."""
    if denominator == _ZERO:
        return None
    return numerator / denominator


def _increased(current: Decimal | None, previous: Decimal | None) -> bool:
    return current is not None and previous is not None and current > previous


def _decreased(current: Decimal | None, previous: Decimal | None) -> bool:
    return current is not None and previous is not None and current < previous


def return_on_assets(period: FundamentalPeriod) -> Decimal | None:
    """Net income / total assets."""
    return _ratio(period.net_income, period.total_assets)


def current_ratio(period: FundamentalPeriod) -> Decimal | None:
    """Current assets / current liabilities."""
    return _ratio(period.current_assets, period.current_liabilities)


def debt_to_equity(period: FundamentalPeriod) -> Decimal | None:
    """Total debt / equity; ``None`` for zero or negative equity."""
    if period.total_equity <= _ZERO:
        return None
    return period.total_debt / period.total_equity


def piotroski_f_score(
    current: FundamentalPeriod,
    previous: FundamentalPeriod | None,
) -> int:
    """Compute the modified Piotroski F-Score (0-9).

    Criteria, one point each:
        1. ROA > 0
        2. Operating cash flow > 0
        3. ROA increased (needs previous)
        4. Operating cash flow > net income
        5. Long-term debt / assets decreased (needs previous)
        6. Current ratio increased (needs previous)
        7. Shares outstanding did not increase (needs previous)
        8. Operating margin increased (needs previous)
        9. Asset turnover increased (needs previous)
    """
    roa_now = return_on_assets(current)
    score = 0

    if roa_now is not None and roa_now > _ZERO:
        score += 1
    if current.operating_cash_flow > _ZERO:
        score += 1
    if current.operating_cash_flow > current.net_income:
        score += 1

    if previous is not None:
        if _increased(roa_now, return_on_assets(previous)):
            score += 1

        leverage_now = _ratio(current.long_term_debt, current.total_assets)
        leverage_prev = _ratio(previous.long_term_debt, previous.total_assets)
        if _decreased(leverage_now, leverage_prev):
            score += 1

        if _increased(current_ratio(current), current_ratio(previous)):
            score += 1

        if (
            current.shares_outstanding > _ZERO
            and previous.shares_outstanding > _ZERO
            and current.shares_outstanding <= previous.shares_outstanding
        ):
            score += 1

        margin_now = _ratio(current.operating_income, current.revenue)
        margin_prev = _ratio(previous.operating_income, previous.revenue)
        if _increased(margin_now, margin_prev):
            score += 1

        turnover_now = _ratio(current.revenue, current.total_assets)
        turnover_prev = _ratio(previous.revenue, previous.total_assets)
        if _increased(turnover_now, turnover_prev):
            score += 1

    return min(score, F_SCORE_MAX)


def market_value_of_equity(period: FundamentalPeriod, price: Decimal | None) -> Decimal:
    """Price x shares outstanding, falling back to book equity without a price."""
    if price is not None and price > _ZERO and period.shares_outstanding > _ZERO:
        return price * period.shares_outstanding
    return period.total_equity


def market_cap_billions(period: FundamentalPeriod, price: Decimal | None) -> float:
    """Market value of equity expressed in billions."""
    return float(market_value_of_equity(period, price) / _BILLION)


def altman_z_score(period: FundamentalPeriod, price: Decimal | None) -> float | None:
    """Compute the Altman Z-Score, or ``None`` when total assets are zero.

    Formula:
        Z = 1.2*X1 + 1.4*X2 + 3.3*X3 + 0.6*X4 + 1.0*X5
        X1 = working capital / assets
        X2 = retained earnings / assets
        X3 = operating income / assets
        X4 = market value of equity / total liabilities (10 if no liabilities)
        X5 = revenue / assets
    """
    assets = period.total_assets
    if assets == _ZERO:
        return None

    x1 = float((period.current_assets - period.current_liabilities) / assets)
    x2 = float(period.retained_earnings / assets)
    x3 = float(period.operating_income / assets)
    if period.total_liabilities == _ZERO:
        x4 = Z_EQUITY_TO_LIABILITIES_CAP
    else:
        x4 = float(market_value_of_equity(period, price) / period.total_liabilities)
    x5 = float(period.revenue / assets)

    z_score = (
        Z_WEIGHT_WORKING_CAPITAL * x1
        + Z_WEIGHT_RETAINED_EARNINGS * x2
        + Z_WEIGHT_EBIT * x3
        + Z_WEIGHT_EQUITY_TO_LIABILITIES * x4
        + Z_WEIGHT_ASSET_TURNOVER * x5
    )
    return round(z_score, Z_SCORE_DECIMALS)
