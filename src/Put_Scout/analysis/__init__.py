"""Scoring math: health scores, Greeks, and recommendation selection.

Re-exports all public functions so consumers can import directly:
    from Put_Scout.analysis import piotroski_f_score, select_recommendations
"""

from Put_Scout.analysis.greeks import bsm_greeks, put_greeks_or_none
from Put_Scout.analysis.health_scores import (
    altman_z_score,
    current_ratio,
    debt_to_equity,
    market_cap_billions,
    piotroski_f_score,
    return_on_assets,
)
from Put_Scout.analysis.selection import ranking_key, select_recommendations

__all__ = [
    # Greeks
    "bsm_greeks",
    "put_greeks_or_none",
    # Health scores
    "altman_z_score",
    "current_ratio",
    "debt_to_equity",
    "market_cap_billions",
    "piotroski_f_score",
    "return_on_assets",
    # Selection
    "ranking_key",
    "select_recommendations",
]
