"""Trend indicators: least-squares linear trend over recent closes.

Pure math: a pandas Series in, a small result tuple out.
"""

from typing import NamedTuple

import numpy as np
import pandas as pd

from Put_Scout.utils.exceptions import InsufficientDataError


class LinearTrend(NamedTuple):
    """Least-squares fit of close against session index."""

    slope: float
    intercept: float
    r_squared: float
    percent_change: float


def linear_trend(close: pd.Series) -> LinearTrend:
    """Fit ``close ~ slope * i + intercept`` over the given window.

    ``percent_change`` is first-to-last close change in percent.
    ``r_squared`` is 0 when the series is flat.

    Raises:
        InsufficientDataError: If fewer than 2 data points.
    """
    values = close.dropna().to_numpy(dtype=float)
    if len(values) < 2:
        raise InsufficientDataError(
            f"Linear trend requires at least 2 data points, got {len(values)}",
            ticker="unknown",
            source="indicators",
        )

    x = np.arange(len(values), dtype=float)
    slope, intercept = np.polyfit(x, values, 1)
    fitted = slope * x + intercept

    ss_tot = float(np.sum((values - values.mean()) ** 2))
    ss_res = float(np.sum((values - fitted) ** 2))
    r_squared = 0.0 if ss_tot == 0.0 else max(0.0, 1.0 - ss_res / ss_tot)

    first = values[0]
    percent_change = 0.0 if first == 0.0 else (values[-1] - first) / first * 100.0
    return LinearTrend(
        slope=float(slope),
        intercept=float(intercept),
        r_squared=r_squared,
        percent_change=float(percent_change),
    )
