"""Market data provider with source failover, retries and caching."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from signal_app.clients import AlphaVantageClient, OHLCVSource, TwelveDataClient, YahooFinanceClient
from signal_app.config import Settings
from signal_app.resilience import CircuitBreaker, retry_async, with_timeout
from signal_app.storage.cache import TTLCache
from signal_core.constants import ANALYSIS_TIMEFRAMES, SUPPORTED_INSTRUMENTS, Timeframe
from signal_core.errors import CircuitOpenError, DataFetchError, ErrorCode
from signal_core.models.candle import Candle
from signal_core.models.market import MarketContext, MultiTimeframeData

logger = logging.getLogger(__name__)

QUOTE_SPREAD = 0.0001


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: float
    bid: float
    ask: float
    timestamp: datetime


def _is_finite(candle: Candle) -> bool:
    return all(math.isfinite(v) for v in (candle.open, candle.high, candle.low, candle.close, candle.volume))


def validate_candles(candles: Iterable[Candle], source: str = "") -> list[Candle]:
    """Drop non-finite or malformed bars, sort ascending and dedupe timestamps.

    Raises:
        DataFetchError: PARSE_ERROR if nothing usable remains.
    """
    valid = [
        c
        for c in candles
        if isinstance(c, Candle) and _is_finite(c) and c.high >= c.low and c.high >= max(c.open, c.close)
        and c.low <= min(c.open, c.close)
    ]
    by_time = {c.timestamp: c for c in sorted(valid, key=lambda c: c.timestamp)}
    result = list(by_time.values())
    if not result:
        raise DataFetchError("Invalid data: no usable candles", source=source, code=ErrorCode.PARSE_ERROR)
    return result


def _key(timeframe: Timeframe | str) -> str:
    return timeframe.value if isinstance(timeframe, Timeframe) else timeframe


class MarketDataProvider:
    """Fetches OHLCV candles, trying the primary source then each backup.

    Every source is retried `retry_attempts` times with linear backoff, each
    attempt bounded by `request_timeout` and guarded by a circuit breaker.
    """

    def __init__(
        self,
        sources: Mapping[str, OHLCVSource],
        primary_source: str,
        backup_sources: Sequence[str] = (),
        request_timeout: float = 10.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        cache_timeout: float = 60.0,
        circuit_failure_threshold: int = 5,
        circuit_reset_timeout: float = 30.0,
        cache: TTLCache | None = None,
    ):
        self.sources = dict(sources)
        self.primary_source = primary_source
        self.backup_sources = list(backup_sources)
        self.request_timeout = request_timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.cache_timeout = cache_timeout
        self.cache = cache or TTLCache(max_size=500, default_ttl=cache_timeout)
        self.breakers = {
            name: CircuitBreaker(
                name,
                failure_threshold=circuit_failure_threshold,
                reset_timeout=circuit_reset_timeout,
            )
            for name in self.sources
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketDataProvider:
        sources: dict[str, OHLCVSource] = {
            "alpha_vantage": AlphaVantageClient(settings.alpha_vantage_api_key, timeout=settings.request_timeout),
            "twelve_data": TwelveDataClient(settings.twelve_data_api_key, timeout=settings.request_timeout),
            "yahoo": YahooFinanceClient(timeout=settings.request_timeout),
        }
        return cls(
            sources=sources,
            primary_source=settings.primary_source,
            backup_sources=settings.backup_sources,
            request_timeout=settings.request_timeout,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay,
            cache_timeout=settings.data_cache_timeout,
            circuit_failure_threshold=settings.circuit_failure_threshold,
            circuit_reset_timeout=settings.circuit_reset_timeout,
        )

    @property
    def source_order(self) -> list[str]:
        return [self.primary_source, *(s for s in self.backup_sources if s != self.primary_source)]

    async def _fetch_from_source(self, name: str, symbol: str, timeframe: str, bars: int) -> list[Candle]:
        source = self.sources.get(name)
        if source is None:
            raise DataFetchError(f"Unknown data source: {name}", source=name)
        breaker = self.breakers[name]

        async def attempt() -> list[Candle]:
            logger.debug(f"Fetching {symbol} {timeframe} x{bars} from {name}")
            return await breaker.call(
                lambda: with_timeout(
                    source.fetch_ohlcv(symbol, timeframe, bars),
                    self.request_timeout,
                    f"{name}.fetch_ohlcv",
                )
            )

        candles = await retry_async(
            attempt,
            max_retries=self.retry_attempts - 1,
            base_delay=self.retry_delay,
            max_delay=self.retry_delay * self.retry_attempts,
            backoff="linear",
            retry_on=lambda e: not isinstance(e, CircuitOpenError),
            operation=f"{name} {symbol} {timeframe}",
        )
        return validate_candles(candles, name)

    async def get_ohlcv(self, symbol: str, timeframe: Timeframe | str = Timeframe.H1, bars: int = 500) -> list[Candle]:
        """
        Fetch candles, oldest first.

        Raises:
            DataFetchError: SOURCE_UNAVAILABLE once every source has failed.
        """
        tf = _key(timeframe)
        cache_key = f"{symbol}_{tf}_{bars}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit: {cache_key}")
            return cached

        last_error: Exception | None = None
        for name in self.source_order:
            try:
                candles = await self._fetch_from_source(name, symbol, tf, bars)
            except Exception as e:
                last_error = e
                logger.warning(f"Source {name} failed for {symbol} {tf}: {e}")
                continue
            self.cache.set(cache_key, candles, self.cache_timeout)
            return candles

        raise DataFetchError(
            f"All data sources failed for {symbol}. Last error: {last_error}",
            source="all",
            code=ErrorCode.SOURCE_UNAVAILABLE,
            context={"timeframe": tf},
        )

    async def get_multi_timeframe(
        self,
        symbol: str,
        timeframes: Sequence[Timeframe | str] = ANALYSIS_TIMEFRAMES,
        bars: int = 500,
        context: MarketContext | None = None,
    ) -> MultiTimeframeData:
        """Fetch every timeframe concurrently. A failed timeframe comes back empty with its error."""
        keys = [_key(tf) for tf in timeframes]
        fetched = await asyncio.gather(
            *(self.get_ohlcv(symbol, tf, bars) for tf in keys),
            return_exceptions=True,
        )

        series: dict[str, list[Candle]] = {}
        errors: dict[str, str] = {}
        for tf, result in zip(keys, fetched):
            if isinstance(result, BaseException):
                logger.error(f"Failed to fetch {tf} data for {symbol}: {result}")
                series[tf] = []
                errors[tf] = str(result)
            else:
                series[tf] = result

        return MultiTimeframeData(
            symbol=symbol,
            series=series,
            errors=errors,
            context=context or MarketContext(),
        )

    async def get_current_price(self, symbol: str) -> PriceQuote | None:
        """Latest M1 close with an approximate bid/ask, or None if unavailable."""
        try:
            candles = await self.get_ohlcv(symbol, Timeframe.M1, 1)
        except DataFetchError as e:
            logger.error(f"Failed to get current price for {symbol}: {e}")
            return None
        last = candles[-1]
        return PriceQuote(
            symbol=symbol,
            price=last.close,
            bid=last.close - QUOTE_SPREAD,
            ask=last.close + QUOTE_SPREAD,
            timestamp=last.timestamp,
        )

    @staticmethod
    def get_supported_instruments() -> dict:
        return {k: (dict(v) if isinstance(v, dict) else list(v)) for k, v in SUPPORTED_INSTRUMENTS.items()}

    def source_status(self) -> dict[str, dict]:
        return {name: breaker.stats() for name, breaker in self.breakers.items()}

    def clear_cache(self) -> None:
        self.cache.clear()

    async def close(self) -> None:
        """Close all source clients."""
        await asyncio.gather(*(source.close() for source in self.sources.values()), return_exceptions=True)
