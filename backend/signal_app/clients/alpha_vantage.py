"""Alpha Vantage FX client (primary source)."""

from __future__ import annotations

from typing import Any

from signal_app.clients.base import HTTPSource, to_candles
from signal_core.errors import DataFetchError, ErrorCode
from signal_core.models.candle import Candle

# H4 is not offered; hourly bars are returned instead
INTERVALS = {
    "M1": "1min",
    "M5": "5min",
    "M15": "15min",
    "M30": "30min",
    "H1": "60min",
    "H4": "60min",
    "D1": "Daily",
    "W1": "Weekly",
}

FUNCTIONS = {"D1": "FX_DAILY", "W1": "FX_WEEKLY"}


class AlphaVantageClient(HTTPSource):
    name = "alpha_vantage"
    BASE_URL = "https://www.alphavantage.co"

    def __init__(self, api_key: str = "", timeout: float = 30.0, calls_per_minute: int = 5, transport=None):
        super().__init__(api_key, timeout, calls_per_minute, transport)

    @staticmethod
    def params_for(symbol: str, timeframe: str, api_key: str) -> dict[str, Any]:
        interval = INTERVALS.get(timeframe, "60min")
        params = {
            "function": FUNCTIONS.get(timeframe, "FX_INTRADAY"),
            "from_symbol": symbol[:3],
            "to_symbol": symbol[3:6],
            "outputsize": "full",
            "apikey": api_key,
        }
        if params["function"] == "FX_INTRADAY":
            params["interval"] = interval
        return params

    async def fetch_ohlcv(self, symbol: str, timeframe: str, bars: int = 500) -> list[Candle]:
        """
        Fetch FX bars, oldest first.

        Raises:
            DataFetchError: RATE_LIMITED when the API answers with a usage note,
                PARSE_ERROR on an error message or a missing time series.
        """
        self._require_key()
        data = await self._request("/query", self.params_for(symbol, timeframe, self.api_key))

        if "Error Message" in data:
            raise DataFetchError(data["Error Message"], source=self.name, code=ErrorCode.PARSE_ERROR)
        note = data.get("Note") or data.get("Information")
        if note:
            raise DataFetchError(note, source=self.name, code=ErrorCode.RATE_LIMITED)

        series = next((v for k, v in data.items() if k.startswith("Time Series FX")), None)
        if not series:
            raise DataFetchError(
                "No data returned from Alpha Vantage",
                source=self.name,
                code=ErrorCode.PARSE_ERROR,
            )

        # Newest first in the payload
        rows = [
            {
                "timestamp": ts,
                "open": values.get("1. open"),
                "high": values.get("2. high"),
                "low": values.get("3. low"),
                "close": values.get("4. close"),
                "volume": 0.0,
            }
            for ts, values in list(series.items())[:bars]
        ]
        rows.reverse()
        return to_candles(rows, self.name)
