"""Offline replay of the signal engine over historical candles."""

from signal_backtest.backtester import (
    BacktestConfig,
    BacktestResult,
    Backtester,
    EquityPoint,
    SignalCallback,
    run_backtest,
)
from signal_backtest.simulator import ExitReason, Trade, TradeSetup, simulate_trade
from signal_backtest.stats import BacktestStats, StatisticsCalculator, max_drawdown, sharpe_ratio

__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "Backtester",
    "EquityPoint",
    "SignalCallback",
    "run_backtest",
    "ExitReason",
    "Trade",
    "TradeSetup",
    "simulate_trade",
    "BacktestStats",
    "StatisticsCalculator",
    "max_drawdown",
    "sharpe_ratio",
]
