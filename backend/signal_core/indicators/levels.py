"""Price levels: swing points and Fibonacci grids."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from signal_core.constants import FIB_EXTENSION_RATIOS, FIB_RETRACEMENT_RATIOS, GOLDEN_ZONE
from signal_core.models.analysis import Bias
from signal_core.models.candle import Candle


@dataclass(frozen=True)
class SwingPoint:
    price: float
    index: int
    timestamp: datetime | None = None


@dataclass(frozen=True)
class SwingPoints:
    highs: list[SwingPoint] = field(default_factory=list)
    lows: list[SwingPoint] = field(default_factory=list)

    @property
    def last_high(self) -> SwingPoint | None:
        return self.highs[-1] if self.highs else None

    @property
    def last_low(self) -> SwingPoint | None:
        return self.lows[-1] if self.lows else None

    def merged(self) -> list[tuple[str, SwingPoint]]:
        """All swings as ("high"|"low", point) ordered by bar index."""
        tagged = [("high", p) for p in self.highs] + [("low", p) for p in self.lows]
        return sorted(tagged, key=lambda item: item[1].index)


def find_swing_points(candles: Sequence[Candle], lookback: int = 5) -> SwingPoints:
    """
    Find swing highs and lows.

    A bar is a swing high when its high is strictly greater than the highs of
    the `lookback` bars on each side (swing low symmetric on lows). Bars within
    `lookback` of either end are never swings.
    """
    highs: list[SwingPoint] = []
    lows: list[SwingPoint] = []

    for i in range(lookback, len(candles) - lookback):
        curr = candles[i]
        is_high = True
        is_low = True
        for j in range(i - lookback, i + lookback + 1):
            if j == i:
                continue
            if candles[j].high >= curr.high:
                is_high = False
            if candles[j].low <= curr.low:
                is_low = False
            if not is_high and not is_low:
                break
        if is_high:
            highs.append(SwingPoint(price=curr.high, index=i, timestamp=curr.timestamp))
        if is_low:
            lows.append(SwingPoint(price=curr.low, index=i, timestamp=curr.timestamp))

    return SwingPoints(highs=highs, lows=lows)


def _level_key(ratio: float) -> str:
    return f"{round(ratio * 100, 1):g}%"


@dataclass(frozen=True)
class FibRetracement:
    swing_high: float
    swing_low: float
    direction: Bias
    levels: dict[str, float]
    golden_zone: tuple[float, float]  # (low, high)

    def in_golden_zone(self, price: float) -> bool:
        low, high = self.golden_zone
        return low <= price <= high


@dataclass(frozen=True)
class FibExtension:
    swing_high: float
    swing_low: float
    retrace_point: float
    direction: Bias
    levels: dict[str, float]
    targets: tuple[float, float, float]


def fibonacci_retracement(
    swing_high: float,
    swing_low: float,
    direction: Bias = Bias.BULLISH,
) -> FibRetracement:
    """
    Retracement levels of a swing leg.

    Bullish legs retrace down from the high, bearish legs retrace up from the
    low. Ratios: 0, 23.6, 38.2, 50, 61.8, 78.6, 100 percent.
    """
    diff = swing_high - swing_low
    if direction == Bias.BEARISH:
        levels = {_level_key(r): swing_low + diff * r for r in FIB_RETRACEMENT_RATIOS}
        a, b = (swing_low + diff * GOLDEN_ZONE[0], swing_low + diff * GOLDEN_ZONE[1])
    else:
        levels = {_level_key(r): swing_high - diff * r for r in FIB_RETRACEMENT_RATIOS}
        a, b = (swing_high - diff * GOLDEN_ZONE[0], swing_high - diff * GOLDEN_ZONE[1])
    return FibRetracement(
        swing_high=swing_high,
        swing_low=swing_low,
        direction=direction,
        levels=levels,
        golden_zone=(min(a, b), max(a, b)),
    )


def fibonacci_extension(
    swing_high: float,
    swing_low: float,
    retrace_point: float,
    direction: Bias = Bias.BULLISH,
) -> FibExtension:
    """Extension levels projected from `retrace_point` by multiples of the leg."""
    diff = swing_high - swing_low
    sign = -1 if direction == Bias.BEARISH else 1
    levels = {_level_key(r): retrace_point + sign * diff * r for r in FIB_EXTENSION_RATIOS}
    targets = tuple(retrace_point + sign * diff * r for r in (1.0, 1.618, 2.618))
    return FibExtension(
        swing_high=swing_high,
        swing_low=swing_low,
        retrace_point=retrace_point,
        direction=direction,
        levels=levels,
        targets=targets,
    )
