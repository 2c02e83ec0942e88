"""Command line entry point.

Usage:
    python -m signal_app analyze EURUSD
    python -m signal_app analyze XAUUSD --signal --balance 25000
    python -m signal_app analyze GBPUSD --config engine.yaml --context context.yaml -v
    python -m signal_app instruments
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import orjson

from signal_app.config import get_settings
from signal_app.context import FileContextProvider
from signal_app.engine_config import load_engine_config
from signal_app.services import MarketDataProvider, SignalEngine
from signal_core.constants import SUPPORTED_INSTRUMENTS
from signal_core.errors import format_error_response
from signal_core.report import AnalysisReport, SignalDecision

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def report_to_dict(report: AnalysisReport) -> dict[str, Any]:
    """Summary of an analysis pass without the raw candles."""
    return {
        "symbol": report.symbol,
        "timestamp": report.timestamp,
        "last_price": report.last_price,
        "proposed_direction": report.proposed_direction.label,
        "confluence": {
            "score": report.confluence.score,
            "quality": report.confluence.quality,
            "meets_minimum": report.confluence.meets_minimum,
            "kill_zone_penalty": report.confluence.kill_zone_penalty,
            "components": report.confluence.components,
        },
        "ai": {
            "confidence": report.ai.confidence,
            "direction": report.ai.direction.label if report.ai.direction else None,
            "meets_threshold": report.ai.meets_threshold,
            "reasoning": report.ai.reasoning,
        },
        "validation": {
            "is_valid": report.validation.is_valid,
            "passed": report.validation.passed_count,
            "total": report.validation.total_layers,
            "weighted_score": report.validation.weighted_score,
            "confidence": report.validation.confidence,
            "recommendation": report.validation.recommendation,
            "critical_failed": report.validation.critical_layers_failed,
            "layers": [
                {"name": layer.name, "passed": layer.passed, "score": layer.score, "reason": layer.reason}
                for layer in report.validation.layers
            ],
        },
        "kill_zone": {
            "active": report.kill_zone.is_active,
            "current": report.kill_zone.current_zone,
            "next": report.kill_zone.next_zone,
            "time_to_next": report.kill_zone.time_to_next_zone,
        },
        "analyzers": {
            domain.value: {"score": result.score, "bias": result.bias.value, "error": result.error}
            for domain, result in report.results.items()
        },
        "data_errors": report.market_data.errors,
    }


def decision_to_dict(decision: SignalDecision) -> dict[str, Any]:
    return {
        "accepted": decision.accepted,
        "reason": decision.reason,
        "checks": decision.checks,
        "signal": decision.signal.model_dump(mode="json") if decision.signal else None,
        "analysis": report_to_dict(decision.analysis),
    }


def dump(payload: Any) -> None:
    sys.stdout.buffer.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_NON_STR_KEYS))
    sys.stdout.buffer.write(b"\n")
    sys.stdout.flush()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="signal_app",
        description="Multi-layer market signal engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m signal_app analyze EURUSD
  python -m signal_app analyze XAUUSD --signal --balance 25000
  python -m signal_app instruments
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyze a symbol and print the report")
    analyze.add_argument("symbol", type=str, help="Instrument, e.g. EURUSD")
    analyze.add_argument(
        "--signal",
        action="store_true",
        help="Run the signal gates and build a trade signal if they pass",
    )
    analyze.add_argument(
        "--balance",
        type=float,
        default=None,
        help="Account balance for position sizing (default: from engine config)",
    )
    analyze.add_argument(
        "--risk",
        type=float,
        default=None,
        help="Risk per trade in percent (default: from engine config)",
    )
    analyze.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to engine.yaml (default: ENGINE_CONFIG_PATH setting)",
    )
    analyze.add_argument(
        "--context",
        type=str,
        default=None,
        help="YAML file with calendar events, news, sentiment and related series",
    )
    analyze.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    instruments = sub.add_parser("instruments", help="List supported instruments")
    instruments.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    return parser.parse_args(argv)


async def cmd_analyze(args: argparse.Namespace) -> int:
    settings = get_settings()
    config = load_engine_config(Path(args.config or settings.engine_config_path))
    context_provider = FileContextProvider(args.context) if args.context else None

    async with SignalEngine(
        MarketDataProvider.from_settings(settings),
        config=config,
        context_provider=context_provider,
    ) as engine:
        if args.signal:
            decision = await engine.generate_signal(args.symbol, args.balance, args.risk)
            dump(decision_to_dict(decision))
        else:
            report = await engine.analyze(args.symbol)
            dump(report_to_dict(report))
        logger.debug(f"Operation metrics: {engine.get_metrics()['operations']}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose, get_settings().log_level)

    if args.command == "instruments":
        dump(SUPPORTED_INSTRUMENTS)
        return 0

    try:
        return asyncio.run(cmd_analyze(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    except Exception as e:
        logger.error(f"Command failed: {e}")
        dump(format_error_response(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
