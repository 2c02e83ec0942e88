"""Technical indicators on float64 arrays (pure math, no I/O).

Moving averages are returned in compact form: the output starts at the first
bar where the indicator is defined, so `ema(values, p)` has
`len(values) - p + 1` entries and its last element lines up with the last
input bar.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

ArrayLike = Sequence[float] | np.ndarray


def _as_array(values: ArrayLike) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def ema(values: ArrayLike, period: int) -> np.ndarray:
    """
    Calculate Exponential Moving Average seeded with the SMA of the first
    `period` values.

    Args:
        values: Sequence of price values
        period: EMA period

    Returns:
        Array of length len(values) - period + 1 (empty if too short)
    """
    arr = _as_array(values)
    if period <= 0 or len(arr) < period:
        return np.empty(0, dtype=np.float64)

    k = 2.0 / (period + 1)
    result = np.empty(len(arr) - period + 1, dtype=np.float64)
    result[0] = np.mean(arr[:period])
    for i in range(1, len(result)):
        result[i] = arr[period - 1 + i] * k + result[i - 1] * (1 - k)
    return result


def sma(values: ArrayLike, period: int) -> np.ndarray:
    """Simple Moving Average, compact form (len(values) - period + 1)."""
    arr = _as_array(values)
    if period <= 0 or len(arr) < period:
        return np.empty(0, dtype=np.float64)
    csum = np.cumsum(np.insert(arr, 0, 0.0))
    return (csum[period:] - csum[:-period]) / period


def rsi(closes: ArrayLike, period: int = 14) -> np.ndarray:
    """
    Relative Strength Index with Wilder smoothing.

    The first `period` changes seed the average gain/loss; each later change
    produces one value. A zero average loss reads as 100.

    Args:
        closes: Close prices
        period: RSI period

    Returns:
        Array of RSI values in [0, 100], one per close after the first
        period + 1 (empty for period + 1 closes or fewer)
    """
    arr = _as_array(closes)
    if len(arr) < period + 1:
        return np.empty(0, dtype=np.float64)

    changes = np.diff(arr)
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    out = []
    for i in range(period, len(changes)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        if avg_loss == 0:
            out.append(100.0)
        else:
            rs = avg_gain / avg_loss
            out.append(100.0 - 100.0 / (1.0 + rs))
    return np.array(out, dtype=np.float64)


@dataclass(frozen=True)
class MACDResult:
    line: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


def macd(closes: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9) -> MACDResult:
    """Latest MACD line, signal line and histogram (zeros when too short)."""
    ema_fast = ema(closes, fast)
    ema_slow = ema(closes, slow)
    if len(ema_fast) == 0 or len(ema_slow) == 0:
        return MACDResult()

    # Both are right-aligned on the last bar
    line = ema_fast[-len(ema_slow):] - ema_slow
    signal_line = ema(line, signal)

    last_line = float(line[-1]) if len(line) else 0.0
    last_signal = float(signal_line[-1]) if len(signal_line) else 0.0
    return MACDResult(line=last_line, signal=last_signal, histogram=last_line - last_signal)


@dataclass(frozen=True)
class BollingerBands:
    upper: float = 0.0
    middle: float = 0.0
    lower: float = 0.0

    @property
    def bandwidth(self) -> float:
        if self.middle == 0:
            return 0.0
        return (self.upper - self.lower) / self.middle


def bollinger_bands(closes: ArrayLike, period: int = 20, std_dev: float = 2.0) -> BollingerBands:
    """Bands over the last `period` closes using population standard deviation."""
    arr = _as_array(closes)
    if len(arr) < period:
        return BollingerBands()
    window = arr[-period:]
    middle = float(np.mean(window))
    std = float(np.std(window))
    return BollingerBands(upper=middle + std * std_dev, middle=middle, lower=middle - std * std_dev)


def true_range(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike) -> np.ndarray:
    """
    True Range for bars 1..n-1.

    TR = max(high - low, abs(high - prev_close), abs(low - prev_close))
    """
    h, l, c = _as_array(highs), _as_array(lows), _as_array(closes)
    if len(h) < 2:
        return np.empty(0, dtype=np.float64)
    prev_close = c[:-1]
    return np.maximum.reduce([
        h[1:] - l[1:],
        np.abs(h[1:] - prev_close),
        np.abs(l[1:] - prev_close),
    ])


def atr(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14) -> np.ndarray:
    """
    Average True Range with Wilder smoothing.

    Args:
        highs: High prices
        lows: Low prices
        closes: Close prices
        period: ATR period

    Returns:
        Array of ATR values (empty if fewer than period + 1 bars)
    """
    tr = true_range(highs, lows, closes)
    if len(tr) < period:
        return np.empty(0, dtype=np.float64)

    result = np.empty(len(tr) - period + 1, dtype=np.float64)
    result[0] = np.mean(tr[:period])
    for i in range(1, len(result)):
        result[i] = (result[i - 1] * (period - 1) + tr[period - 1 + i]) / period
    return result


def last_atr(highs: ArrayLike, lows: ArrayLike, closes: ArrayLike, period: int = 14) -> float:
    values = atr(highs, lows, closes, period)
    return float(values[-1]) if len(values) else 0.0


def linear_slope(values: ArrayLike) -> float:
    """Least-squares slope of values against their index."""
    arr = _as_array(values)
    n = len(arr)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=np.float64)
    denom = n * np.sum(x * x) - np.sum(x) ** 2
    if denom == 0:
        return 0.0
    return float((n * np.sum(x * arr) - np.sum(x) * np.sum(arr)) / denom)


def pearson_correlation(a: ArrayLike, b: ArrayLike) -> float:
    """Pearson correlation of two equally long series (0.0 when undefined)."""
    x, y = _as_array(a), _as_array(b)
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    x, y = x[-n:], y[-n:]
    dx, dy = x - x.mean(), y - y.mean()
    denom = np.sqrt(np.sum(dx * dx) * np.sum(dy * dy))
    if denom == 0:
        return 0.0
    return float(np.sum(dx * dy) / denom)


def returns(closes: ArrayLike) -> np.ndarray:
    """Simple bar-to-bar returns."""
    arr = _as_array(closes)
    if len(arr) < 2:
        return np.empty(0, dtype=np.float64)
    prev = arr[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(prev != 0, (arr[1:] - prev) / prev, 0.0)
    return out


def return_volatility(closes: ArrayLike) -> float:
    """Population standard deviation of simple returns."""
    r = returns(closes)
    if len(r) == 0:
        return 0.0
    return float(np.std(r))


def percent_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    return (new - old) / old * 100
