"""Oscillator indicators: RSI.

All functions take pandas Series in, return pandas Series out.
NaN for the warmup period; never filled or dropped.
"""

import numpy as np
import pandas as pd

from Put_Scout.utils.exceptions import InsufficientDataError


def rsi(
    close: pd.Series,
    period: int = 14,
) -> pd.Series:
    """Relative Strength Index using Wilder's smoothing.

    Formula:
        RSI = 100 - (100 / (1 + RS))
        RS  = avg_gain / avg_loss (Wilder's smoothing)

    When avg_loss = 0: RSI = 100.
    Warmup: first ``period`` values are NaN.

    Reference: Wilder (1978) "New Concepts in Technical Trading Systems".

    Raises:
        InsufficientDataError: If ``len(close) < period + 1``.
    """
    if len(close) < period + 1:
        raise InsufficientDataError(
            f"RSI requires at least {period + 1} data points, got {len(close)}",
            ticker="unknown",
            source="indicators",
        )

    delta = close.diff()
    gains = delta.clip(lower=0.0)
    losses = (-delta).clip(lower=0.0)

    avg_gain = gains.ewm(alpha=1.0 / period, adjust=False).mean()
    avg_loss = losses.ewm(alpha=1.0 / period, adjust=False).mean()

    rs = avg_gain / avg_loss.replace(0.0, np.nan)
    values = (100.0 - (100.0 / (1.0 + rs))).copy()
    # avg_loss == 0 means no down moves: RSI pinned at 100
    values[avg_loss.eq(0.0) & avg_gain.notna()] = 100.0
    values.iloc[:period] = np.nan

    result: pd.Series = values
    return result
