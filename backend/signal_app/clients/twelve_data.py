"""Twelve Data time-series client (backup source)."""

from __future__ import annotations

from signal_app.clients.base import HTTPSource, to_candles
from signal_core.errors import DataFetchError, ErrorCode
from signal_core.models.candle import Candle

INTERVALS = {
    "M1": "1min",
    "M5": "5min",
    "M15": "15min",
    "M30": "30min",
    "H1": "1h",
    "H4": "4h",
    "D1": "1day",
    "W1": "1week",
}


def format_symbol(symbol: str) -> str:
    """EURUSD -> EUR/USD. Non-pair symbols pass through."""
    if len(symbol) == 6 and symbol.isalpha():
        return f"{symbol[:3]}/{symbol[3:]}"
    return symbol


class TwelveDataClient(HTTPSource):
    name = "twelve_data"
    BASE_URL = "https://api.twelvedata.com"

    def __init__(self, api_key: str = "", timeout: float = 30.0, calls_per_minute: int = 8, transport=None):
        super().__init__(api_key, timeout, calls_per_minute, transport)

    async def fetch_ohlcv(self, symbol: str, timeframe: str, bars: int = 500) -> list[Candle]:
        self._require_key()
        data = await self._request(
            "/time_series",
            {
                "symbol": format_symbol(symbol),
                "interval": INTERVALS.get(timeframe, "1h"),
                "outputsize": bars,
                "apikey": self.api_key,
            },
        )

        if data.get("status") == "error":
            code = ErrorCode.RATE_LIMITED if data.get("code") == 429 else ErrorCode.PARSE_ERROR
            raise DataFetchError(data.get("message", "Twelve Data error"), source=self.name, code=code)

        values = data.get("values")
        if not values:
            raise DataFetchError("No data returned from Twelve Data", source=self.name, code=ErrorCode.PARSE_ERROR)

        rows = [
            {
                "timestamp": v.get("datetime"),
                "open": v.get("open"),
                "high": v.get("high"),
                "low": v.get("low"),
                "close": v.get("close"),
                "volume": v.get("volume") or 0.0,
            }
            for v in values
        ]
        rows.reverse()
        return to_candles(rows, self.name)
