"""In-memory source for offline runs and tests."""

from __future__ import annotations

from typing import Mapping, Sequence

from signal_core.errors import DataFetchError
from signal_core.models.candle import Candle


class StaticSource:
    """Serves candles from a `{(symbol, timeframe): candles}` mapping."""

    def __init__(self, data: Mapping[tuple[str, str], Sequence[Candle]] | None = None, name: str = "static"):
        self.name = name
        self._data: dict[tuple[str, str], list[Candle]] = {k: list(v) for k, v in (data or {}).items()}
        self.calls = 0

    def add(self, symbol: str, timeframe: str, candles: Sequence[Candle]) -> None:
        self._data[(symbol, timeframe)] = list(candles)

    async def fetch_ohlcv(self, symbol: str, timeframe: str, bars: int = 500) -> list[Candle]:
        self.calls += 1
        candles = self._data.get((symbol, timeframe))
        if candles is None:
            raise DataFetchError(f"No static data for {symbol} {timeframe}", source=self.name)
        return candles[-bars:]

    async def close(self) -> None:
        return None
