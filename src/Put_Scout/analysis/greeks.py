"""Black-Scholes-Merton Greeks for contracts whose feed carries none.

yfinance option chains ship implied volatility but no Greeks. Strategies
filter on put delta and score on theta, so both are derived here from
the quoted IV.

Reference:
    Hull, J.C. "Options, Futures, and Other Derivatives" (11th ed.)
    Chapter 19: The Greek Letters
"""

import logging
import math

from scipy.stats import norm

from Put_Scout.models.enums import OptionType
from Put_Scout.models.options import OptionGreeks

logger = logging.getLogger(__name__)

DAYS_PER_YEAR: int = 365


def bsm_greeks(
    spot: float,
    strike: float,
    time_to_expiry: float,
    risk_free_rate: float,
    iv: float,
    option_type: OptionType,
) -> OptionGreeks:
    """Compute BSM Greeks for a European option.

    Args:
        spot: Current underlying price (S).
        strike: Option strike price (K).
        time_to_expiry: Time to expiration in years (T). Must be > 0.
        risk_free_rate: Annualized risk-free interest rate (r).
        iv: Implied volatility (sigma). Must be > 0.
        option_type: CALL or PUT.

    Returns:
        OptionGreeks with theta expressed per calendar day.

    Raises:
        ValueError: If any input is non-positive.
    """
    for label, value in (
        ("spot", spot),
        ("strike", strike),
        ("time_to_expiry", time_to_expiry),
        ("iv", iv),
    ):
        if value <= 0:
            msg = f"{label} must be positive, got {value}"
            raise ValueError(msg)

    sqrt_t = math.sqrt(time_to_expiry)
    d1 = (math.log(spot / strike) + (risk_free_rate + iv * iv / 2.0) * time_to_expiry) / (
        iv * sqrt_t
    )
    d2 = d1 - iv * sqrt_t
    discount = math.exp(-risk_free_rate * time_to_expiry)
    pdf_d1 = float(norm.pdf(d1))

    gamma = pdf_d1 / (spot * iv * sqrt_t)
    vega = spot * pdf_d1 * sqrt_t
    decay = -(spot * pdf_d1 * iv) / (2.0 * sqrt_t)

    if option_type == OptionType.CALL:
        delta = float(norm.cdf(d1))
        theta_annual = decay - risk_free_rate * strike * discount * float(norm.cdf(d2))
        rho = strike * time_to_expiry * discount * float(norm.cdf(d2))
    else:
        delta = float(norm.cdf(d1)) - 1.0
        theta_annual = decay + risk_free_rate * strike * discount * float(norm.cdf(-d2))
        rho = -strike * time_to_expiry * discount * float(norm.cdf(-d2))

    return OptionGreeks(
        delta=delta,
        gamma=gamma,
        theta=theta_annual / DAYS_PER_YEAR,
        vega=vega,
        rho=rho,
    )


def put_greeks_or_none(
    spot: float,
    strike: float,
    days_to_expiry: int,
    risk_free_rate: float,
    iv: float,
) -> OptionGreeks | None:
    """Put Greeks from calendar days, or ``None`` when inputs are unusable."""
    try:
        return bsm_greeks(
            spot,
            strike,
            days_to_expiry / DAYS_PER_YEAR,
            risk_free_rate,
            iv,
            OptionType.PUT,
        )
    except ValueError:
        logger.debug(
            "Cannot compute Greeks (spot=%s strike=%s dte=%d iv=%s)",
            spot,
            strike,
            days_to_expiry,
            iv,
        )
        return None
