"""CLI entry point for the backtesting system.

Usage:
    python -m signal_backtest --file candles.csv --symbol EURUSD
    python -m signal_backtest --file gold_h1.csv --symbol XAUUSD --risk 0.5 --horizon 48
    python -m signal_backtest --file candles.csv --symbol EURUSD --output report.json -v
"""

import argparse
import asyncio
import logging
import sys

from signal_app.context import load_market_context
from signal_app.engine_config import load_engine_config
from signal_backtest.backtester import BacktestConfig, Backtester
from signal_backtest.loader import load_candles_csv
from signal_backtest.report import ReportFormatter
from signal_backtest.strategy import EngineStrategy
from signal_core.constants import is_supported
from signal_core.errors import SignalEngineError

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Replay the signal engine over historical candles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m signal_backtest --file candles.csv --symbol EURUSD
  python -m signal_backtest --file gold.csv --symbol XAUUSD --risk 0.5 --horizon 48
        """,
    )
    parser.add_argument("--file", "-f", type=str, required=True, help="CSV of timestamp,open,high,low,close,volume")
    parser.add_argument("--symbol", "-s", type=str, required=True, help="Instrument, e.g. EURUSD")
    parser.add_argument("--initial-balance", type=float, default=10_000.0, help="Starting balance (default: 10000)")
    parser.add_argument("--risk", type=float, default=1.0, help="Risk per trade in percent (default: 1.0)")
    parser.add_argument("--warmup", type=int, default=100, help="Bars before the first evaluation (default: 100)")
    parser.add_argument("--horizon", type=int, default=20, help="Bars a trade may stay open (default: 20)")
    parser.add_argument("--commission", type=float, default=0.0, help="Commission per side (default: 0)")
    parser.add_argument("--slippage", type=float, default=0.5, help="Stop slippage in pips (default: 0.5)")
    parser.add_argument("--config", type=str, default=None, help="Path to engine.yaml")
    parser.add_argument("--context", type=str, default=None, help="YAML market context file")
    parser.add_argument("--output", "-o", type=str, default=None, help="Output file path for JSON results")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    symbol = args.symbol.upper()
    if not is_supported(symbol):
        print(f"Error: unsupported symbol {symbol}")
        return 1

    candles = load_candles_csv(args.file)
    config = BacktestConfig(
        initial_balance=args.initial_balance,
        risk_percent=args.risk,
        commission=args.commission,
        slippage_pips=args.slippage,
        warmup=args.warmup,
        horizon=args.horizon,
    )
    strategy = EngineStrategy(
        config=load_engine_config(args.config) if args.config else None,
        context=load_market_context(args.context) if args.context else None,
        account_balance=args.initial_balance,
        risk_percent=args.risk,
    )

    print(f"\nBacktest: {symbol} ({len(candles)} candles from {args.file})")
    try:
        result = await Backtester(config).run(symbol, candles, strategy)
    finally:
        await strategy.close()

    ReportFormatter.print_console(result)
    if strategy.rejections:
        logger.info(f"Rejections by gate: {strategy.rejections}")
    if args.output:
        ReportFormatter.save_json(result, args.output)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    try:
        return asyncio.run(run(args))
    except SignalEngineError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
