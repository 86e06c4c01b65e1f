"""Moving average indicators: SMA and MACD.

All functions take pandas Series in, return pandas Series out.
NaN for the warmup period; never filled or dropped.
"""

import pandas as pd

from Put_Scout.utils.exceptions import InsufficientDataError


def sma(
    close: pd.Series,
    period: int,
) -> pd.Series:
    """Simple moving average of closing prices.

    Warmup: first ``period - 1`` values are NaN.

    Raises:
        InsufficientDataError: If ``len(close) < period``.
    """
    if len(close) < period:
        raise InsufficientDataError(
            f"SMA({period}) requires at least {period} data points, got {len(close)}",
            ticker="unknown",
            source="indicators",
        )
    result: pd.Series = close.rolling(window=period).mean()
    return result


def macd(
    close: pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> pd.DataFrame:
    """Moving Average Convergence Divergence.

    Formula:
        macd   = EMA(fast) - EMA(slow)
        signal = EMA(macd, signal)

    Returns a DataFrame with ``macd`` and ``signal`` columns. The first
    ``slow - 1`` rows are NaN.

    Reference: Appel (2005) "Technical Analysis: Power Tools for Active Investors".

    Raises:
        InsufficientDataError: If ``len(close) < slow``.
    """
    if len(close) < slow:
        raise InsufficientDataError(
            f"MACD requires at least {slow} data points, got {len(close)}",
            ticker="unknown",
            source="indicators",
        )

    ema_fast = close.ewm(span=fast, adjust=False).mean()
    ema_slow = close.ewm(span=slow, adjust=False).mean()
    macd_line = ema_fast - ema_slow
    signal_line = macd_line.ewm(span=signal, adjust=False).mean()

    frame = pd.DataFrame({"macd": macd_line, "signal": signal_line})
    frame.iloc[: slow - 1] = float("nan")
    return frame
