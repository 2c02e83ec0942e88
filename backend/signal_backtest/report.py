"""Report formatting for backtest results.

Outputs results to console (formatted tables) and JSON files.
"""

from __future__ import annotations

import math
from pathlib import Path

import orjson

from signal_backtest.backtester import BacktestResult

RECENT_TRADES = 10
EQUITY_POINTS = 100


def _finite(value: float) -> float | str:
    return value if math.isfinite(value) else "inf"


class ReportFormatter:
    """Format backtest results for display and export."""

    @staticmethod
    def print_console(result: BacktestResult) -> None:
        """Print formatted report to console."""
        s = result.stats

        print("\n" + "=" * 70)
        print(f"  BACKTEST RESULTS: {result.symbol}")
        print("=" * 70)
        if result.start and result.end:
            print(f"  Period: {result.start:%Y-%m-%d %H:%M} -> {result.end:%Y-%m-%d %H:%M}")
        print(f"  Candles: {result.total_candles}   Evaluated: {result.signals_evaluated}")
        if result.signal_errors:
            print(f"  Signal errors: {result.signal_errors}")

        print("\n" + "-" * 70)
        print("  PERFORMANCE")
        print("-" * 70)
        print(f"  Initial balance: {result.initial_balance:,.2f}")
        print(f"  Final balance:   {result.final_balance:,.2f}")
        print(f"  Total P&L:       {s.total_pnl:+,.2f} ({s.return_percent:+.2f}%)")
        print(f"  Trades:          {s.total_trades} ({s.winning_trades} W / {s.losing_trades} L)")
        print(f"  Win rate:        {s.win_rate:.1f}%")
        print(f"  Profit factor:   {s.profit_factor:.2f}")
        print(f"  Expectancy:      {s.expectancy:+.2f}")
        print(f"  Avg win / loss:  {s.avg_win:.2f} / {s.avg_loss:.2f}")

        print("\n" + "-" * 70)
        print("  RISK")
        print("-" * 70)
        print(f"  Max drawdown:    {s.max_drawdown:.2f}%")
        print(f"  Sharpe ratio:    {s.sharpe_ratio:.2f}")
        print(f"  Max consecutive losses: {s.max_consecutive_losses}")
        print(f"  Avg holding:     {s.avg_holding_hours:.1f} hours")

        if s.exit_reasons:
            print("\n" + "-" * 70)
            print("  EXIT REASONS")
            print("-" * 70)
            for reason, count in sorted(s.exit_reasons.items(), key=lambda kv: -kv[1]):
                print(f"  {reason:<12} {count:>6}")

        if result.trades:
            print("\n" + "-" * 70)
            print(f"  RECENT TRADES (last {RECENT_TRADES})")
            print("-" * 70)
            print(f"  {'ID':<14} {'Dir':<5} {'Entry':>11} {'Exit':>11} {'Reason':<10} {'P&L':>10}")
            for t in result.trades[-RECENT_TRADES:]:
                print(
                    f"  {t.id:<14} {t.direction.label:<5} {t.entry_price:>11.5f} {t.exit_price:>11.5f} "
                    f"{t.exit_reason.value:<10} {t.pnl:>+10.2f}"
                )

        print("\n" + "=" * 70)

    @staticmethod
    def to_dict(result: BacktestResult) -> dict:
        """Convert results to a JSON-serializable dict."""
        s = result.stats
        return {
            "summary": {
                "symbol": result.symbol,
                "start": result.start.isoformat() if result.start else None,
                "end": result.end.isoformat() if result.end else None,
                "total_candles": result.total_candles,
                "total_trades": s.total_trades,
                "win_rate": s.win_rate,
                "profit_factor": _finite(s.profit_factor),
                "return_percent": s.return_percent,
                "max_drawdown": s.max_drawdown,
                "sharpe_ratio": s.sharpe_ratio,
            },
            "performance": {
                "initial_balance": result.initial_balance,
                "final_balance": result.final_balance,
                "total_pnl": s.total_pnl,
                "avg_win": s.avg_win,
                "avg_loss": s.avg_loss,
                "expectancy": s.expectancy,
            },
            "risk": {
                "max_drawdown": s.max_drawdown,
                "max_consecutive_wins": s.max_consecutive_wins,
                "max_consecutive_losses": s.max_consecutive_losses,
                "avg_holding_hours": s.avg_holding_hours,
            },
            "trade_breakdown": {
                "wins": s.winning_trades,
                "losses": s.losing_trades,
                "exit_reasons": s.exit_reasons,
            },
            "equity_curve": [
                {"time": p.time.isoformat(), "equity": round(p.equity, 2), "trade": p.trade_id}
                for p in result.equity_curve[-EQUITY_POINTS:]
            ],
            "trades": [
                {
                    "id": t.id,
                    "direction": t.direction.label,
                    "entry_time": t.entry_time.isoformat(),
                    "entry_price": t.entry_price,
                    "exit_time": t.exit_time.isoformat(),
                    "exit_price": t.exit_price,
                    "exit_reason": t.exit_reason.value,
                    "stop_loss": t.stop_loss,
                    "take_profits": [t.tp1, t.tp2, t.tp3],
                    "tp1_hit": t.tp1_hit,
                    "tp2_hit": t.tp2_hit,
                    "pnl": t.pnl,
                    "pnl_percent": t.pnl_percent,
                    "confluence_score": t.confluence_score,
                }
                for t in result.trades
            ],
        }

    @staticmethod
    def save_json(result: BacktestResult, path: Path | str) -> None:
        Path(path).write_bytes(orjson.dumps(ReportFormatter.to_dict(result), option=orjson.OPT_INDENT_2))
        print(f"Results saved to {path}")
