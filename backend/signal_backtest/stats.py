"""Statistics over simulated trades.

Win/loss split by sign of P&L. Sharpe uses per-trade percent returns,
population standard deviation, annualised with sqrt(252).
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from signal_backtest.simulator import Trade

TRADING_DAYS = 252


@dataclass
class BacktestStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    total_pnl: float = 0.0
    return_percent: float = 0.0
    exit_reasons: dict[str, int] = field(default_factory=dict)
    avg_holding_hours: float = 0.0


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough fall of an equity curve, in percent of the peak."""
    if len(equity) < 2:
        return 0.0
    curve = np.asarray(equity, dtype=float)
    peaks = np.maximum.accumulate(curve)
    drawdowns = np.where(peaks > 0, (peaks - curve) / peaks * 100, 0.0)
    return round(float(drawdowns.max()), 2)


def sharpe_ratio(returns: Sequence[float]) -> float:
    if len(returns) == 0:
        return 0.0
    values = np.asarray(returns, dtype=float)
    std = float(values.std())
    if std == 0:
        return 0.0
    return round(float(values.mean()) / std * math.sqrt(TRADING_DAYS), 2)


def _streaks(trades: Sequence[Trade]) -> tuple[int, int]:
    best_wins = best_losses = wins = losses = 0
    for trade in trades:
        if trade.is_win:
            wins, losses = wins + 1, 0
            best_wins = max(best_wins, wins)
        else:
            wins, losses = 0, losses + 1
            best_losses = max(best_losses, losses)
    return best_wins, best_losses


class StatisticsCalculator:
    """Calculate backtest statistics."""

    def calculate(
        self,
        trades: Sequence[Trade],
        initial_balance: float,
        final_balance: float,
        equity: Sequence[float] = (),
    ) -> BacktestStats:
        stats = BacktestStats(
            total_pnl=round(final_balance - initial_balance, 2),
            return_percent=round((final_balance - initial_balance) / initial_balance * 100, 2),
            max_drawdown=max_drawdown(equity),
        )
        if not trades:
            return stats

        wins = [t for t in trades if t.is_win]
        losses = [t for t in trades if not t.is_win]
        gross_profit = sum(t.pnl for t in wins)
        gross_loss = abs(sum(t.pnl for t in losses))

        stats.total_trades = len(trades)
        stats.winning_trades = len(wins)
        stats.losing_trades = len(losses)
        win_rate = len(wins) / len(trades) * 100
        avg_win = gross_profit / len(wins) if wins else 0.0
        avg_loss = gross_loss / len(losses) if losses else 0.0

        stats.win_rate = round(win_rate, 2)
        stats.avg_win = round(avg_win, 2)
        stats.avg_loss = round(avg_loss, 2)
        if gross_loss > 0:
            stats.profit_factor = round(gross_profit / gross_loss, 2)
        else:
            stats.profit_factor = float("inf") if wins else 0.0
        stats.expectancy = round(win_rate / 100 * avg_win - (100 - win_rate) / 100 * avg_loss, 2)
        stats.max_consecutive_wins, stats.max_consecutive_losses = _streaks(trades)
        stats.sharpe_ratio = sharpe_ratio([t.pnl_percent for t in trades])
        stats.exit_reasons = dict(Counter(t.exit_reason.value for t in trades))
        stats.avg_holding_hours = round(sum(t.holding_hours for t in trades) / len(trades), 1)
        return stats
