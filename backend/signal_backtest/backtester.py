"""Historical replay of a signal callback over one candle series.

No network and no persistence: the callback sees only the bars up to and
including the current one, and trades are resolved on the bars after it.
One position at a time; the next bar evaluated is the one after the exit.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence, Union

from signal_backtest.simulator import Trade, TradeSetup, simulate_trade
from signal_backtest.stats import BacktestStats, StatisticsCalculator
from signal_core.errors import ConfigurationError
from signal_core.models.candle import Candle
from signal_core.models.signal import Signal

logger = logging.getLogger(__name__)

SignalLike = Union[Signal, TradeSetup, None]
SignalCallback = Callable[[str, list[Candle]], Union[SignalLike, Awaitable[SignalLike]]]


@dataclass
class BacktestConfig:
    initial_balance: float = 10_000.0
    risk_percent: float = 1.0
    commission: float = 0.0  # per side
    slippage_pips: float = 0.5
    warmup: int = 100
    horizon: int = 20

    def __post_init__(self):
        if self.initial_balance <= 0:
            raise ConfigurationError("initial_balance must be positive", setting="initial_balance")
        if not 0 < self.risk_percent <= 100:
            raise ConfigurationError("risk_percent must be in (0, 100]", setting="risk_percent")
        if self.warmup < 1 or self.horizon < 1:
            raise ConfigurationError("warmup and horizon must be at least 1", setting="warmup")


@dataclass(frozen=True)
class EquityPoint:
    time: datetime
    equity: float
    trade_id: str | None = None


@dataclass
class BacktestResult:
    symbol: str
    start: datetime | None
    end: datetime | None
    total_candles: int
    initial_balance: float
    final_balance: float
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    stats: BacktestStats = field(default_factory=BacktestStats)
    signals_evaluated: int = 0
    signal_errors: int = 0

    @property
    def return_percent(self) -> float:
        return self.stats.return_percent

    @property
    def max_drawdown(self) -> float:
        return self.stats.max_drawdown


def _to_setup(value: Any) -> TradeSetup | None:
    if value is None:
        return None
    if isinstance(value, TradeSetup):
        return value
    if isinstance(value, Signal):
        return TradeSetup.from_signal(value)
    raise TypeError(f"Signal callback returned unsupported type {type(value).__name__}")


class Backtester:
    """Replays `signal_fn` bar by bar and simulates each resulting trade."""

    def __init__(self, config: BacktestConfig | None = None):
        self.config = config or BacktestConfig()
        self._stats = StatisticsCalculator()

    async def _evaluate(self, signal_fn: SignalCallback, symbol: str, history: list[Candle]) -> TradeSetup | None:
        result = signal_fn(symbol, history)
        if inspect.isawaitable(result):
            result = await result
        return _to_setup(result)

    async def run(self, symbol: str, candles: Sequence[Candle], signal_fn: SignalCallback) -> BacktestResult:
        """Run the replay.

        Args:
            symbol: Instrument traded (pip size for slippage).
            candles: Historical bars, oldest first.
            signal_fn: `(symbol, history) -> Signal | TradeSetup | None`, sync or async.

        Returns:
            Trades, equity curve and statistics.
        """
        cfg = self.config
        candles = list(candles)
        balance = cfg.initial_balance
        trades: list[Trade] = []
        equity = [EquityPoint(candles[0].timestamp, balance)] if candles else []
        evaluated = errors = 0

        logger.info(
            f"Backtest {symbol}: {len(candles)} candles, warmup={cfg.warmup}, horizon={cfg.horizon}"
        )

        i = cfg.warmup
        while i + cfg.horizon < len(candles):
            history = candles[: i + 1]
            evaluated += 1
            try:
                setup = await self._evaluate(signal_fn, symbol, history)
            except Exception:
                errors += 1
                logger.error(f"Signal generation failed at {candles[i].timestamp}", exc_info=True)
                setup = None

            trade = None
            if setup is not None:
                trade = simulate_trade(
                    trade_id=f"{symbol}-{len(trades) + 1}",
                    symbol=symbol,
                    setup=setup,
                    entry_candle=candles[i],
                    future=candles[i + 1 : i + 1 + cfg.horizon],
                    balance=balance,
                    risk_percent=cfg.risk_percent,
                    slippage_pips=cfg.slippage_pips,
                    commission=cfg.commission,
                )

            if trade is None:
                i += 1
                continue

            trades.append(trade)
            balance += trade.pnl
            equity.append(EquityPoint(trade.exit_time, balance, trade.id))
            logger.debug(
                f"{trade.id} {trade.direction.label} entry={trade.entry_price} "
                f"exit={trade.exit_price} ({trade.exit_reason.value}) pnl={trade.pnl}"
            )
            i += trade.bars_held + 1

        stats = self._stats.calculate(
            trades,
            cfg.initial_balance,
            balance,
            [p.equity for p in equity],
        )
        logger.info(
            f"Backtest {symbol} complete: {stats.total_trades} trades, win rate {stats.win_rate}%, "
            f"return {stats.return_percent}%"
        )
        return BacktestResult(
            symbol=symbol,
            start=candles[0].timestamp if candles else None,
            end=candles[-1].timestamp if candles else None,
            total_candles=len(candles),
            initial_balance=cfg.initial_balance,
            final_balance=round(balance, 2),
            trades=trades,
            equity_curve=equity,
            stats=stats,
            signals_evaluated=evaluated,
            signal_errors=errors,
        )


async def run_backtest(
    symbol: str,
    candles: Sequence[Candle],
    signal_fn: SignalCallback,
    config: BacktestConfig | None = None,
) -> BacktestResult:
    """Replay `signal_fn` over `candles` with a fresh Backtester."""
    return await Backtester(config).run(symbol, candles, signal_fn)
