"""Shared HTTP plumbing for OHLCV data sources."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

import httpx
from pydantic import ValidationError

from signal_core.errors import DataFetchError, ErrorCode
from signal_core.models.candle import Candle

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 60):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


@runtime_checkable
class OHLCVSource(Protocol):
    """Anything that can return candles for a symbol and timeframe."""

    name: str

    async def fetch_ohlcv(self, symbol: str, timeframe: str, bars: int) -> list[Candle]:
        ...

    async def close(self) -> None:
        ...


def parse_timestamp(value: Any) -> datetime:
    """Parse epoch seconds or 'YYYY-MM-DD[ HH:MM:SS]' into an aware UTC datetime."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def to_candles(rows: Iterable[Mapping[str, Any]], source: str) -> list[Candle]:
    """Build candles from raw rows, skipping rows that are not valid OHLCV."""
    candles: list[Candle] = []
    skipped = 0
    for row in rows:
        try:
            candles.append(
                Candle(
                    timestamp=parse_timestamp(row["timestamp"]),
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=float(row.get("volume") or 0.0),
                )
            )
        except (KeyError, TypeError, ValueError, ValidationError):
            skipped += 1
    if skipped:
        logger.debug(f"{source}: skipped {skipped} malformed bars")
    return candles


class HTTPSource:
    """Base for httpx-backed sources: lazy client, rate limiting, error mapping."""

    name = "http"
    BASE_URL = ""

    def __init__(
        self,
        api_key: str = "",
        timeout: float = 30.0,
        calls_per_minute: int = 60,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limiter = RateLimiter(calls_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        return {}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.BASE_URL,
                headers=self._headers(),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """GET `endpoint` with rate limiting and return the decoded JSON body.

        Raises:
            DataFetchError: On transport errors, HTTP errors or a non-JSON body.
        """
        await self.rate_limiter.acquire()
        client = await self._get_client()
        try:
            response = await client.get(endpoint, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            code = ErrorCode.RATE_LIMITED if status == 429 else ErrorCode.SOURCE_UNAVAILABLE
            raise DataFetchError(f"{self.name} returned HTTP {status}", source=self.name, code=code) from e
        except httpx.RequestError as e:
            raise DataFetchError(f"{self.name} request failed: {e}", source=self.name) from e

        try:
            return response.json()
        except ValueError as e:
            raise DataFetchError(
                f"{self.name} returned a non-JSON body",
                source=self.name,
                code=ErrorCode.PARSE_ERROR,
            ) from e

    def _require_key(self) -> None:
        if not self.api_key:
            raise DataFetchError(
                f"{self.name} API key not configured",
                source=self.name,
                code=ErrorCode.CONFIG_MISSING,
            )
