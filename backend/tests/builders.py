"""Candle and market-data builders shared by the test modules."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Sequence

from signal_core.models.candle import Candle
from signal_core.models.market import MarketContext, MultiTimeframeData

START = datetime(2024, 1, 2, 0, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


def ts(i: int, start: datetime = START, step: timedelta = HOUR) -> datetime:
    return start + step * i


def make_candle(
    i: int,
    close: float,
    open_: float | None = None,
    high: float | None = None,
    low: float | None = None,
    volume: float = 1000.0,
    wick: float = 0.0002,
) -> Candle:
    """Build one bar; high/low default to the body plus `wick`."""
    open_ = close if open_ is None else open_
    high = max(open_, close) + wick if high is None else high
    low = min(open_, close) - wick if low is None else low
    return Candle(timestamp=ts(i), open=open_, high=high, low=low, close=close, volume=volume)


def candles_from_closes(
    closes: Sequence[float],
    wick: float = 0.0002,
    volumes: Sequence[float] | None = None,
) -> list[Candle]:
    """Each bar opens at the previous close."""
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        volume = volumes[i] if volumes is not None else 1000.0
        candles.append(make_candle(i, close, open_=prev, volume=volume, wick=wick))
        prev = close
    return candles


def trending_candles(n: int, start: float = 1.1000, step: float = 0.0005, wick: float = 0.0002) -> list[Candle]:
    """Straight-line trend: positive `step` rises, negative falls."""
    return candles_from_closes([start + step * i for i in range(n)], wick=wick)


def flat_candles(n: int, price: float = 1.1000, wick: float = 0.0002) -> list[Candle]:
    return candles_from_closes([price] * n, wick=wick)


def oscillating_candles(n: int, center: float = 1.1000, amplitude: float = 0.0050, period: float = 12.0) -> list[Candle]:
    closes = [center + amplitude * math.sin(2 * math.pi * i / period) for i in range(n)]
    return candles_from_closes(closes)


def make_data(
    candles: list[Candle],
    symbol: str = "EURUSD",
    context: MarketContext | None = None,
    extra: dict[str, list[Candle]] | None = None,
) -> MultiTimeframeData:
    """Snapshot with `candles` as the H1 series."""
    series = {"H1": candles}
    series.update(extra or {})
    return MultiTimeframeData(symbol=symbol, series=series, context=context or MarketContext())
