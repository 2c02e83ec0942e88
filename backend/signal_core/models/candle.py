"""OHLCV candle models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, model_validator


class Candle(BaseModel):
    """One OHLCV bar. Immutable once built."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @model_validator(mode="after")
    def _check_ohlc(self):
        if self.high < max(self.open, self.close, self.low):
            raise ValueError(f"high {self.high} below open/close/low")
        if self.low > min(self.open, self.close, self.high):
            raise ValueError(f"low {self.low} above open/close/high")
        if self.volume < 0:
            raise ValueError(f"negative volume {self.volume}")
        return self

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body_size(self) -> float:
        return abs(self.close - self.open)

    @property
    def range_size(self) -> float:
        return self.high - self.low

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def mid_price(self) -> float:
        return (self.high + self.low) / 2

    @property
    def close_position(self) -> float:
        """Where the close sits inside the bar range (0 = low, 1 = high)."""
        if self.range_size == 0:
            return 0.5
        return (self.close - self.low) / self.range_size


@dataclass(frozen=True)
class OHLCVArrays:
    """Column view of a candle series for vectorised indicator math."""

    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    def __len__(self) -> int:
        return len(self.close)


def to_arrays(candles: Sequence[Candle]) -> OHLCVArrays:
    """Split candles into float64 columns."""
    return OHLCVArrays(
        open=np.array([c.open for c in candles], dtype=np.float64),
        high=np.array([c.high for c in candles], dtype=np.float64),
        low=np.array([c.low for c in candles], dtype=np.float64),
        close=np.array([c.close for c in candles], dtype=np.float64),
        volume=np.array([c.volume for c in candles], dtype=np.float64),
    )
