"""Technical indicators feeding the market snapshot.

Pure math module: pandas Series in, pandas Series/DataFrames out.
No API calls, no Pydantic models, no I/O.
"""

from Put_Scout.indicators.moving_averages import macd, sma
from Put_Scout.indicators.oscillators import rsi
from Put_Scout.indicators.trend import LinearTrend, linear_trend

__all__ = [
    "LinearTrend",
    "linear_trend",
    "macd",
    "rsi",
    "sma",
]
