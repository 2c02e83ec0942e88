"""Tests for the failover market data provider."""

import asyncio
import math

import pytest

from signal_app.clients import StaticSource
from signal_app.services.market_data import MarketDataProvider, validate_candles
from signal_core.errors import DataFetchError, ErrorCode
from signal_core.models.candle import Candle
from tests.builders import flat_candles, make_candle, trending_candles, ts


class FailingSource:
    def __init__(self, name: str = "broken"):
        self.name = name
        self.calls = 0

    async def fetch_ohlcv(self, symbol, timeframe, bars=500):
        self.calls += 1
        raise DataFetchError("upstream down", source=self.name)

    async def close(self):
        return None


class SlowSource(FailingSource):
    async def fetch_ohlcv(self, symbol, timeframe, bars=500):
        self.calls += 1
        await asyncio.sleep(1)
        return []


def provider(sources: dict, order: list[str], **kwargs) -> MarketDataProvider:
    kwargs.setdefault("retry_delay", 0)
    return MarketDataProvider(sources, primary_source=order[0], backup_sources=order[1:], **kwargs)


class TestValidateCandles:
    def test_sorts_and_dedupes(self):
        candles = [make_candle(2, 1.3), make_candle(0, 1.1), make_candle(1, 1.2), make_candle(1, 1.25)]
        result = validate_candles(candles)
        assert [c.timestamp for c in result] == [ts(0), ts(1), ts(2)]
        assert result[1].close == 1.25

    def test_drops_non_finite(self):
        bad = Candle.model_construct(timestamp=ts(5), open=math.nan, high=1.0, low=1.0, close=1.0, volume=0.0)
        assert len(validate_candles([*flat_candles(3), bad])) == 3

    def test_nothing_usable(self):
        with pytest.raises(DataFetchError) as exc_info:
            validate_candles([], source="yahoo")
        assert exc_info.value.code == ErrorCode.PARSE_ERROR


class TestFailover:
    @pytest.mark.asyncio
    async def test_primary_success(self):
        primary = StaticSource({("EURUSD", "H1"): trending_candles(50)}, name="primary")
        candles = await provider({"primary": primary}, ["primary"]).get_ohlcv("EURUSD", "H1", 50)
        assert len(candles) == 50

    @pytest.mark.asyncio
    async def test_falls_back_after_retries(self):
        primary = FailingSource("primary")
        backup = StaticSource({("EURUSD", "H1"): trending_candles(50)}, name="backup")
        data = provider({"primary": primary, "backup": backup}, ["primary", "backup"], retry_attempts=3)
        candles = await data.get_ohlcv("EURUSD", "H1", 50)
        assert len(candles) == 50
        assert primary.calls == 3
        assert backup.calls == 1

    @pytest.mark.asyncio
    async def test_all_sources_failed(self):
        data = provider({"a": FailingSource("a"), "b": FailingSource("b")}, ["a", "b"], retry_attempts=1)
        with pytest.raises(DataFetchError, match="All data sources failed for EURUSD") as exc_info:
            await data.get_ohlcv("EURUSD", "H1")
        assert exc_info.value.code == ErrorCode.SOURCE_UNAVAILABLE
        assert exc_info.value.context["timeframe"] == "H1"

    @pytest.mark.asyncio
    async def test_unknown_backup_is_skipped(self):
        backup = StaticSource({("EURUSD", "H1"): flat_candles(10)})
        data = provider({"static": backup}, ["missing", "static"], retry_attempts=1)
        assert len(await data.get_ohlcv("EURUSD", "H1", 10)) == 10

    @pytest.mark.asyncio
    async def test_timeout_fails_over(self):
        slow = SlowSource("slow")
        backup = StaticSource({("EURUSD", "H1"): flat_candles(10)})
        data = provider({"slow": slow, "static": backup}, ["slow", "static"], retry_attempts=1, request_timeout=0.01)
        assert len(await data.get_ohlcv("EURUSD", "H1", 10)) == 10
        assert slow.calls == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_and_stops_retries(self):
        primary = FailingSource("primary")
        backup = StaticSource({("EURUSD", "H1"): flat_candles(10)})
        data = provider(
            {"primary": primary, "backup": backup},
            ["primary", "backup"],
            retry_attempts=3,
            circuit_failure_threshold=2,
        )
        await data.get_ohlcv("EURUSD", "H1", 10)
        assert primary.calls == 2
        assert data.source_status()["primary"]["state"] == "OPEN"


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_call_is_cached(self):
        source = StaticSource({("EURUSD", "H1"): flat_candles(10)})
        data = provider({"static": source}, ["static"])
        await data.get_ohlcv("EURUSD", "H1", 10)
        await data.get_ohlcv("EURUSD", "H1", 10)
        assert source.calls == 1
        data.clear_cache()
        await data.get_ohlcv("EURUSD", "H1", 10)
        assert source.calls == 2

    @pytest.mark.asyncio
    async def test_bar_count_is_part_of_key(self):
        source = StaticSource({("EURUSD", "H1"): flat_candles(10)})
        data = provider({"static": source}, ["static"])
        await data.get_ohlcv("EURUSD", "H1", 10)
        await data.get_ohlcv("EURUSD", "H1", 5)
        assert source.calls == 2


class TestMultiTimeframe:
    @pytest.mark.asyncio
    async def test_failed_timeframe_is_empty(self):
        source = StaticSource({("EURUSD", "H1"): flat_candles(10), ("EURUSD", "D1"): flat_candles(5)})
        data = provider({"static": source}, ["static"], retry_attempts=1)
        snapshot = await data.get_multi_timeframe("EURUSD", ["H1", "H4", "D1"], bars=10)
        assert snapshot.bar_count("H1") == 10
        assert snapshot.bar_count("D1") == 5
        assert snapshot.get("H4") == []
        assert "All data sources failed" in snapshot.errors["H4"]
        assert set(snapshot.errors) == {"H4"}


class TestQuotes:
    @pytest.mark.asyncio
    async def test_current_price(self):
        source = StaticSource({("EURUSD", "M1"): flat_candles(3, price=1.1)})
        quote = await provider({"static": source}, ["static"]).get_current_price("EURUSD")
        assert quote.price == pytest.approx(1.1)
        assert quote.bid == pytest.approx(1.0999)
        assert quote.ask == pytest.approx(1.1001)

    @pytest.mark.asyncio
    async def test_unavailable_price(self):
        data = provider({"a": FailingSource("a")}, ["a"], retry_attempts=1)
        assert await data.get_current_price("EURUSD") is None

    def test_supported_instruments(self):
        instruments = MarketDataProvider.get_supported_instruments()
        assert "EURUSD" in instruments["forex"]["major"]
        assert "XAUUSD" in instruments["metals"]
