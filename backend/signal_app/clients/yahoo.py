"""Yahoo Finance chart client (backup source, no API key)."""

from __future__ import annotations

from signal_app.clients.base import HTTPSource, to_candles
from signal_core.errors import DataFetchError, ErrorCode
from signal_core.models.candle import Candle

SYMBOLS = {
    "XAUUSD": "GC=F",
    "XAGUSD": "SI=F",
    "US30": "YM=F",
    "US500": "ES=F",
    "US100": "NQ=F",
    "GER40": "^GDAXI",
    "UK100": "^FTSE",
}

# No 4h interval; hourly bars are returned instead
INTERVALS = {
    "M1": "1m",
    "M5": "5m",
    "M15": "15m",
    "M30": "30m",
    "H1": "1h",
    "H4": "1h",
    "D1": "1d",
    "W1": "1wk",
}

RANGES = {
    "M1": "7d",
    "M5": "60d",
    "M15": "60d",
    "M30": "60d",
    "H1": "2y",
    "H4": "2y",
    "D1": "10y",
    "W1": "10y",
}


def map_symbol(symbol: str) -> str:
    if symbol in SYMBOLS:
        return SYMBOLS[symbol]
    if len(symbol) == 6:
        return f"{symbol}=X"
    return symbol


class YahooFinanceClient(HTTPSource):
    name = "yahoo"
    BASE_URL = "https://query1.finance.yahoo.com"

    def __init__(self, api_key: str = "", timeout: float = 30.0, calls_per_minute: int = 60, transport=None):
        super().__init__(api_key, timeout, calls_per_minute, transport)

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": "Mozilla/5.0"}

    async def fetch_ohlcv(self, symbol: str, timeframe: str, bars: int = 500) -> list[Candle]:
        data = await self._request(
            f"/v8/finance/chart/{map_symbol(symbol)}",
            {"interval": INTERVALS.get(timeframe, "1h"), "range": RANGES.get(timeframe, "2y")},
        )

        chart = data.get("chart") or {}
        if chart.get("error"):
            raise DataFetchError(
                chart["error"].get("description", "Yahoo Finance error"),
                source=self.name,
                code=ErrorCode.PARSE_ERROR,
            )
        results = chart.get("result") or []
        if not results:
            raise DataFetchError("No data returned from Yahoo Finance", source=self.name, code=ErrorCode.PARSE_ERROR)

        result = results[0]
        timestamps = result.get("timestamp") or []
        quote = (result.get("indicators", {}).get("quote") or [{}])[0]
        rows = [
            {
                "timestamp": ts,
                "open": quote.get("open", [None] * len(timestamps))[i],
                "high": quote.get("high", [None] * len(timestamps))[i],
                "low": quote.get("low", [None] * len(timestamps))[i],
                "close": quote.get("close", [None] * len(timestamps))[i],
                "volume": quote.get("volume", [0] * len(timestamps))[i],
            }
            for i, ts in enumerate(timestamps)
        ]
        return to_candles(rows, self.name)[-bars:]
