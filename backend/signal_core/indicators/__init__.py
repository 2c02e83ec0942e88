"""Technical indicators and price levels (pure math, no I/O)."""

from signal_core.indicators.indicators import (
    BollingerBands,
    MACDResult,
    atr,
    bollinger_bands,
    ema,
    last_atr,
    linear_slope,
    macd,
    pearson_correlation,
    percent_change,
    return_volatility,
    returns,
    rsi,
    sma,
    true_range,
)
from signal_core.indicators.levels import (
    FibExtension,
    FibRetracement,
    SwingPoint,
    SwingPoints,
    fibonacci_extension,
    fibonacci_retracement,
    find_swing_points,
)

__all__ = [
    "BollingerBands",
    "MACDResult",
    "atr",
    "bollinger_bands",
    "ema",
    "last_atr",
    "linear_slope",
    "macd",
    "pearson_correlation",
    "percent_change",
    "return_volatility",
    "returns",
    "rsi",
    "sma",
    "true_range",
    "FibExtension",
    "FibRetracement",
    "SwingPoint",
    "SwingPoints",
    "fibonacci_extension",
    "fibonacci_retracement",
    "find_swing_points",
]
