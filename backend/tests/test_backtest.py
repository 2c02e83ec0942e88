"""Tests for the offline backtester: trade simulation, statistics, replay and loading."""

import math
from datetime import datetime, timedelta, timezone

import orjson
import pytest

from signal_app.engine_config import EngineConfig
from signal_backtest import (
    BacktestConfig,
    BacktestResult,
    Backtester,
    ExitReason,
    StatisticsCalculator,
    Trade,
    TradeSetup,
    max_drawdown,
    run_backtest,
    sharpe_ratio,
    simulate_trade,
)
from signal_backtest.loader import iter_csv_candles, load_candles_csv, parse_time
from signal_backtest.report import ReportFormatter
from signal_backtest.strategy import EngineStrategy
from signal_core.errors import ConfigurationError, DataFetchError, ErrorCode
from signal_core.models.signal import Direction
from tests.builders import START, flat_candles, make_candle, oscillating_candles, ts

LONG_SETUP = TradeSetup(Direction.LONG, stop_loss=1.0950, take_profits=(1.1050, 1.1100, 1.1200))


def bar(i, high, low, close=None):
    close = (high + low) / 2 if close is None else close
    return make_candle(i, close, open_=close, high=high, low=low)


def trade(pnl: float, hours: int = 2, reason: ExitReason = ExitReason.TP3, n: int = 1) -> Trade:
    return Trade(
        id=f"EURUSD-{n}",
        symbol="EURUSD",
        direction=Direction.LONG,
        entry_price=1.1,
        entry_time=START,
        exit_price=1.1,
        exit_time=START + timedelta(hours=hours),
        exit_reason=reason,
        stop_loss=1.095,
        tp1=1.105,
        tp2=1.11,
        tp3=1.12,
        tp1_hit=False,
        tp2_hit=False,
        position_size=20_000,
        pnl=pnl,
        pnl_percent=pnl / 100,
        bars_held=hours,
    )


# ---------------------------------------------------------------------------
# Trade simulation
# ---------------------------------------------------------------------------

class TestSimulateTrade:
    def test_long_hits_tp3(self):
        entry = make_candle(0, 1.1000)
        future = [bar(1, 1.1060, 1.0990), bar(2, 1.1210, 1.1000)]
        result = simulate_trade("t1", "EURUSD", LONG_SETUP, entry, future, balance=10_000)
        assert result.exit_reason is ExitReason.TP3
        assert result.exit_price == 1.1200
        assert result.tp1_hit and result.tp2_hit
        assert result.position_size == pytest.approx(20_000)
        assert result.pnl == pytest.approx(400.0)
        assert result.pnl_percent == pytest.approx(4.0)
        assert result.bars_held == 2
        assert result.exit_time == ts(2)
        assert result.holding_hours == 2

    def test_stop_wins_a_bar_that_touches_both(self):
        entry = make_candle(0, 1.1000)
        result = simulate_trade("t1", "EURUSD", LONG_SETUP, entry, [bar(1, 1.1250, 1.0940)], balance=10_000)
        assert result.exit_reason is ExitReason.STOP_LOSS
        assert result.exit_price == pytest.approx(1.09495)
        assert result.pnl == pytest.approx(-101.0)
        assert not result.is_win

    def test_short_stop_pays_slippage_upward(self):
        setup = TradeSetup(Direction.SHORT, stop_loss=1.1050, take_profits=(1.0950, 1.0900, 1.0800))
        entry = make_candle(0, 1.1000)
        result = simulate_trade("t1", "EURUSD", setup, entry, [bar(1, 1.1060, 1.0990)], balance=10_000, slippage_pips=1)
        assert result.exit_price == pytest.approx(1.1051)
        assert result.pnl == pytest.approx(-102.0)

    def test_timeout_exits_at_last_close(self):
        entry = make_candle(0, 1.1000)
        future = [bar(i, 1.1015, 1.1005, close=1.1010) for i in range(1, 4)]
        result = simulate_trade("t1", "EURUSD", LONG_SETUP, entry, future, balance=10_000, commission=5)
        assert result.exit_reason is ExitReason.TIMEOUT
        assert result.exit_price == 1.1010
        assert result.pnl == pytest.approx(10.0)
        assert result.bars_held == 3

    def test_default_levels(self):
        stop, (tp1, tp2, tp3) = TradeSetup(Direction.SHORT).levels(1.1)
        assert stop == pytest.approx(1.111)
        assert (tp1, tp2, tp3) == pytest.approx((1.0835, 1.0725, 1.056))

    def test_nothing_to_simulate(self):
        entry = make_candle(0, 1.1000)
        assert simulate_trade("t1", "EURUSD", LONG_SETUP, entry, [], balance=10_000) is None
        flat_stop = TradeSetup(Direction.LONG, stop_loss=1.1000)
        assert simulate_trade("t1", "EURUSD", flat_stop, entry, [bar(1, 1.11, 1.09)], balance=10_000) is None


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

class TestStatistics:
    def test_mixed_trades(self):
        trades = [trade(p, n=i) for i, p in enumerate([100, -50, 200, -50, -50])]
        trades[1] = trade(-50, reason=ExitReason.STOP_LOSS, n=1)
        stats = StatisticsCalculator().calculate(trades, 10_000, 10_150, [10_000, 10_100, 10_050, 10_250, 10_200, 10_150])
        assert (stats.total_trades, stats.winning_trades, stats.losing_trades) == (5, 2, 3)
        assert stats.win_rate == 40.0
        assert stats.avg_win == 150.0
        assert stats.avg_loss == 50.0
        assert stats.profit_factor == 2.0
        assert stats.expectancy == 30.0
        assert stats.max_consecutive_wins == 1
        assert stats.max_consecutive_losses == 2
        assert stats.total_pnl == 150.0
        assert stats.return_percent == 1.5
        assert stats.exit_reasons == {"tp3": 4, "stop_loss": 1}
        assert stats.avg_holding_hours == 2.0

    def test_no_losses(self):
        stats = StatisticsCalculator().calculate([trade(100), trade(50)], 10_000, 10_150)
        assert math.isinf(stats.profit_factor)

    def test_only_losses(self):
        stats = StatisticsCalculator().calculate([trade(-100)], 10_000, 9_900)
        assert stats.profit_factor == 0.0
        assert stats.win_rate == 0.0

    def test_no_trades(self):
        stats = StatisticsCalculator().calculate([], 10_000, 10_000)
        assert stats.total_trades == 0
        assert stats.sharpe_ratio == 0.0

    def test_max_drawdown(self):
        assert max_drawdown([100, 120, 90, 130]) == 25.0
        assert max_drawdown([100]) == 0.0

    @pytest.mark.parametrize(
        "returns,expected",
        [([], 0.0), ([1.0, 1.0], 0.0), ([1.0, -1.0], 0.0), ([2.0, 0.0], 15.87)],
    )
    def test_sharpe(self, returns, expected):
        assert sharpe_ratio(returns) == expected


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

class TestBacktester:
    def test_invalid_config(self):
        with pytest.raises(ConfigurationError):
            BacktestConfig(initial_balance=0)
        with pytest.raises(ConfigurationError):
            BacktestConfig(risk_percent=0)
        with pytest.raises(ConfigurationError):
            BacktestConfig(horizon=0)

    @pytest.mark.asyncio
    async def test_one_position_at_a_time(self):
        candles = flat_candles(20)
        seen = []

        def signal_fn(symbol, history):
            seen.append(len(history))
            if len(history) == 6:
                return TradeSetup(Direction.LONG, stop_loss=1.0990, take_profits=(1.1003, 1.1004, 1.1005))
            if len(history) == 11:
                raise RuntimeError("indicator blew up")
            return None

        result = await run_backtest("EURUSD", candles, signal_fn, BacktestConfig(warmup=5, horizon=3))
        assert len(result.trades) == 1
        only = result.trades[0]
        assert only.entry_time == ts(5)
        assert only.exit_time == ts(8)
        assert only.exit_reason is ExitReason.TIMEOUT
        assert seen == [6, 10, 11, 12, 13, 14, 15, 16, 17]
        assert result.signals_evaluated == 9
        assert result.signal_errors == 1
        assert len(result.equity_curve) == 2
        assert result.equity_curve[-1].trade_id == "EURUSD-1"
        assert result.start == ts(0)
        assert result.end == ts(19)

    @pytest.mark.asyncio
    async def test_async_callback_and_bad_return_type(self):
        async def signal_fn(symbol, history):
            return "BUY"

        result = await Backtester(BacktestConfig(warmup=5, horizon=3)).run("EURUSD", flat_candles(12), signal_fn)
        assert result.trades == []
        assert result.signal_errors == result.signals_evaluated == 4

    @pytest.mark.asyncio
    async def test_balance_compounds(self):
        candles = [make_candle(i, 1.1000) for i in range(6)] + [bar(6, 1.1300, 1.0995)] + [make_candle(i, 1.1000) for i in range(7, 12)]

        def signal_fn(symbol, history):
            return LONG_SETUP if len(history) == 6 else None

        result = await run_backtest("EURUSD", candles, signal_fn, BacktestConfig(warmup=5, horizon=3))
        assert result.final_balance == pytest.approx(10_400.0)
        assert result.return_percent == 4.0
        assert result.max_drawdown == 0.0

    @pytest.mark.asyncio
    async def test_no_candles(self):
        result = await run_backtest("EURUSD", [], lambda s, h: None)
        assert result.total_candles == 0
        assert result.start is None
        assert result.final_balance == 10_000


class TestEngineStrategy:
    @pytest.mark.asyncio
    async def test_signal_pinned_to_replay_time(self):
        config = EngineConfig(
            min_confluence_score=0,
            min_ai_confidence=0,
            min_validation_layers=1,
            critical_layers=[],
        )
        strategy = EngineStrategy(config=config, account_balance=5_000)
        history = oscillating_candles(220)
        signal = await strategy("EURUSD", history)
        await strategy.close()
        assert signal is not None
        assert signal.created_at == history[-1].timestamp
        assert strategy.rejections == {}

    @pytest.mark.asyncio
    async def test_rejections_counted_by_gate(self):
        strategy = EngineStrategy(config=EngineConfig(min_confluence_score=100))
        assert await strategy("EURUSD", oscillating_candles(220)) is None
        assert strategy.rejections == {"confluence": 1}
        assert not strategy.engine.config.enable_caching


# ---------------------------------------------------------------------------
# Loading and reports
# ---------------------------------------------------------------------------

class TestLoader:
    @pytest.mark.parametrize(
        "value",
        ["1704153600", "1704153600000", "2024-01-02T00:00:00Z", "2024-01-02 00:00:00", "2024-01-02T00:00:00+00:00"],
    )
    def test_parse_time(self, value):
        assert parse_time(value) == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_header_by_name(self):
        text = "Date,Open,High,Low,Close\n2024-01-02,1.1,1.2,1.0,1.15\n"
        candles = list(iter_csv_candles(text))
        assert len(candles) == 1
        assert candles[0].volume == 0.0

    def test_headerless_and_malformed(self):
        text = "\n".join(
            [
                "1704153600,1.1,1.2,1.0,1.15,500",
                "not-a-time,1.1,1.2,1.0,1.15,500",
                "1704157200,1.1,1.0,1.2,1.15,500",
                "1704160800,1.1",
                "1704164400,1.15,1.25,1.1,1.2,700",
            ]
        )
        candles = list(iter_csv_candles(text))
        assert [c.close for c in candles] == [1.15, 1.2]
        assert candles[1].volume == 700

    def test_load_sorts_and_dedupes(self, tmp_path):
        path = tmp_path / "eurusd.csv"
        path.write_text(
            "timestamp,open,high,low,close,volume\n"
            "2024-01-02T02:00:00Z,1.1,1.2,1.0,1.15,1\n"
            "2024-01-02T01:00:00Z,1.1,1.2,1.0,1.12,1\n"
            "2024-01-02T02:00:00Z,1.1,1.2,1.0,1.18,1\n"
        )
        candles = load_candles_csv(path)
        assert [c.close for c in candles] == [1.12, 1.18]

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataFetchError) as exc_info:
            load_candles_csv(tmp_path / "absent.csv")
        assert exc_info.value.code == ErrorCode.SOURCE_UNAVAILABLE

    def test_no_usable_rows(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("timestamp,open,high,low,close\n")
        with pytest.raises(DataFetchError) as exc_info:
            load_candles_csv(path)
        assert exc_info.value.code == ErrorCode.PARSE_ERROR


class TestReport:
    @pytest.mark.asyncio
    async def test_json_export(self, tmp_path, capsys):
        candles = [make_candle(i, 1.1000) for i in range(6)] + [bar(6, 1.1300, 1.0995)] + [make_candle(i, 1.1000) for i in range(7, 12)]
        result = await run_backtest(
            "EURUSD",
            candles,
            lambda s, h: LONG_SETUP if len(h) == 6 else None,
            BacktestConfig(warmup=5, horizon=3),
        )
        path = tmp_path / "report.json"
        ReportFormatter.save_json(result, path)
        data = orjson.loads(path.read_bytes())
        assert data["summary"]["profit_factor"] == "inf"
        assert data["summary"]["total_trades"] == 1
        assert data["trades"][0]["direction"] == "BUY"
        assert data["trades"][0]["take_profits"] == [1.105, 1.11, 1.12]
        assert data["trade_breakdown"]["exit_reasons"] == {"tp3": 1}
        assert "Results saved to" in capsys.readouterr().out

    def test_console_report(self, capsys):
        result = BacktestResult(
            symbol="EURUSD",
            start=START,
            end=START,
            total_candles=0,
            initial_balance=10_000,
            final_balance=10_000,
        )
        ReportFormatter.print_console(result)
        out = capsys.readouterr().out
        assert "BACKTEST RESULTS: EURUSD" in out
        assert "Win rate:" in out
