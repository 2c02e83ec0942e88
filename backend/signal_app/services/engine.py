"""Signal engine: data fetch, analyzer fan-out, scoring and signal gating.

Flow per symbol:
    fetch (retry) -> ten analyzers (concurrent, isolated) -> AI ensemble
    -> direction vote -> validation -> confluence -> kill-zone penalty
    -> optional signal generation behind the quality gates.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from signal_app.engine_config import EngineConfig
from signal_app.metrics import OperationMetrics
from signal_app.resilience import retry_async, safe_execute, with_timeout
from signal_app.services.market_data import MarketDataProvider
from signal_app.storage.cache import CacheKeys, CacheTTL, TTLCache
from signal_core.ai import AIAnalysis, AIEnsemble
from signal_core.analyzers import create_all_analyzers
from signal_core.confluence import ConfluenceCalculator
from signal_core.constants import is_supported
from signal_core.errors import AnalysisError, ConfigurationError, DataFetchError, ErrorCode
from signal_core.killzone import KillZoneManager
from signal_core.models.analysis import AnalyzerResult, Domain
from signal_core.models.market import MarketContext, MultiTimeframeData
from signal_core.report import AnalysisReport, SignalDecision
from signal_core.signal_generator import SignalGenerator
from signal_core.validation import MultiLayerValidator

logger = logging.getLogger(__name__)

ContextProvider = Callable[[str], Awaitable[MarketContext]]


async def _empty_context(symbol: str) -> MarketContext:
    return MarketContext()


class SignalEngine:
    """Runs the full analysis pipeline for one symbol at a time.

    Args:
        provider: Market data provider used for candle fetches.
        config: Engine gates, weights, risk and analyzer overrides.
        context_provider: Async callable returning cross-market inputs for a symbol.
        kill_zones: Kill zone manager (its clock drives the session penalty).
        cache: Report/signal cache; a private one is created if omitted.
        metrics: Operation timing collector.

    Raises:
        ConfigurationError: If analyzer overrides or weights are invalid.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        config: EngineConfig | None = None,
        context_provider: ContextProvider | None = None,
        kill_zones: KillZoneManager | None = None,
        cache: TTLCache | None = None,
        metrics: OperationMetrics | None = None,
    ):
        self.config = config or EngineConfig()
        self.provider = provider
        self.context_provider = context_provider or _empty_context
        self.cache = cache or TTLCache(
            max_size=self.config.cache.max_size,
            default_ttl=self.config.cache.default_ttl,
            sweep_interval=self.config.cache.sweep_interval,
        )
        self.metrics = metrics or OperationMetrics()

        try:
            self.analyzers = create_all_analyzers(self.config.lookbacks)
        except TypeError as e:
            raise ConfigurationError(f"Invalid analyzer override: {e}", setting="lookbacks") from e

        self.ai = AIEnsemble(
            min_confidence=self.config.min_ai_confidence,
            min_confluence=self.config.min_confluence_score,
        )
        self.validator = MultiLayerValidator(
            minimum_layers=self.config.min_validation_layers,
            critical_layers=self.config.critical_layers,
        )
        self.confluence = ConfluenceCalculator(
            self.config.confluence_weights,
            minimum=self.config.min_confluence_score,
        )
        self.generator = SignalGenerator(
            risk_manager=self.config.risk.to_manager(),
            expiration_hours=self.config.signal_expiration_hours,
        )
        self.kill_zones = kill_zones or KillZoneManager(penalty=self.config.kill_zone_penalty)

    async def __aenter__(self) -> SignalEngine:
        self.cache.start_sweeper()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # =========================================================================
    # Analysis
    # =========================================================================

    async def analyze(self, symbol: str) -> AnalysisReport:
        """Run every analyzer and score the result.

        Raises:
            AnalysisError: INVALID_SYMBOL for unsupported symbols, otherwise
                wrapping whatever stopped the pipeline (including the timeout).
        """
        symbol = symbol.upper()
        if not is_supported(symbol):
            raise AnalysisError(f"Unsupported symbol: {symbol}", analyzer="engine", code=ErrorCode.INVALID_SYMBOL)

        if self.config.enable_caching:
            cached = self.cache.get(CacheKeys.analysis(symbol))
            if cached is not None:
                logger.debug(f"Cache hit for {symbol} analysis")
                return cached

        with self.metrics.timer("analyze"):
            try:
                report = await with_timeout(
                    self._run_analysis(symbol),
                    self.config.analysis_timeout,
                    f"analyze:{symbol}",
                )
            except AnalysisError:
                raise
            except Exception as e:
                logger.error(f"Analysis failed for {symbol}: {e}")
                raise AnalysisError(
                    f"Analysis failed for {symbol}: {e}",
                    analyzer="engine",
                    context={"cause": type(e).__name__},
                ) from e

        if self.config.enable_caching:
            self.cache.set(CacheKeys.analysis(symbol), report, CacheTTL.SHORT)
        logger.info(
            f"Analysis {symbol}: confluence={report.confluence.score} ({report.confluence.quality}) "
            f"layers={report.validation.passed_count}/{report.validation.total_layers} "
            f"direction={report.proposed_direction.label}"
        )
        return report

    async def _load_context(self, symbol: str) -> MarketContext:
        return await safe_execute(
            lambda: self.context_provider(symbol),
            fallback=lambda e: MarketContext(),
            context={"symbol": symbol, "step": "context"},
        )

    async def _fetch(self, symbol: str, context: MarketContext) -> MultiTimeframeData:
        async def fetch() -> MultiTimeframeData:
            data = await self.provider.get_multi_timeframe(symbol, bars=self.config.bars, context=context)
            if not any(data.series.values()):
                raise DataFetchError(
                    f"No market data for {symbol}",
                    source="all",
                    code=ErrorCode.SOURCE_UNAVAILABLE,
                    context={"errors": data.errors},
                )
            return data

        with self.metrics.timer("fetch"):
            return await retry_async(
                fetch,
                max_retries=self.config.fetch_retries,
                base_delay=1.0,
                backoff="exponential",
                operation=f"fetch {symbol}",
            )

    async def _run_analyzers(self, data: MultiTimeframeData) -> dict[Domain, AnalyzerResult]:
        """Run all analyzers concurrently. A raising analyzer yields an empty result."""
        with self.metrics.timer("analyzers"):
            outcomes = await asyncio.gather(
                *(asyncio.to_thread(analyzer.analyze, data) for analyzer in self.analyzers),
                return_exceptions=True,
            )

        results: dict[Domain, AnalyzerResult] = {}
        for analyzer, outcome in zip(self.analyzers, outcomes):
            domain = analyzer.domain
            if isinstance(outcome, Exception):
                logger.warning(f"{domain.value} analysis failed for {data.symbol}: {type(outcome).__name__}: {outcome}")
                results[domain] = AnalyzerResult.empty(domain, error=f"{type(outcome).__name__}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results[domain] = outcome
        return results

    async def _run_analysis(self, symbol: str) -> AnalysisReport:
        context = await self._load_context(symbol)
        data = await self._fetch(symbol, context)
        return await self.analyze_data(data)

    async def analyze_data(self, data: MultiTimeframeData) -> AnalysisReport:
        """Score an already assembled snapshot (no fetch, no cache).

        Used directly for historical replay, where `data.context.now` pins
        the clock to the last replayed bar.
        """
        symbol = data.symbol
        results = await self._run_analyzers(data)

        now = data.context.now or datetime.now(timezone.utc)
        kill_zone = self.kill_zones.current(now)

        with self.metrics.timer("ai"):
            ai = await safe_execute(
                lambda: asyncio.to_thread(self.ai.analyze, data, results, kill_zone.is_active),
                fallback=lambda e: AIAnalysis.neutral(),
                context={"symbol": symbol, "step": "ai"},
            )

        direction = self.generator.determine_direction(results, ai)
        validation = self.validator.validate(results, direction)
        confluence = self.confluence.calculate(results, ai)
        if not kill_zone.is_active:
            confluence = self.confluence.apply_penalty(confluence, self.kill_zones.penalty_points)

        return AnalysisReport(
            symbol=symbol,
            timestamp=now,
            market_data=data,
            results=results,
            ai=ai,
            kill_zone=kill_zone,
            validation=validation,
            confluence=confluence,
            proposed_direction=direction,
        )

    # =========================================================================
    # Signal gating
    # =========================================================================

    def gate_checks(self, report: AnalysisReport) -> list[tuple[str, bool, str]]:
        """Ordered (name, passed, rejection reason) for every signal gate."""
        cfg = self.config
        validation = report.validation
        fundamental = report.findings(Domain.FUNDAMENTAL)
        blackout = fundamental.blackout if fundamental is not None else None
        blackout_label = ""
        if blackout is not None and blackout.active:
            blackout_label = blackout.event.title if blackout.event is not None else (blackout.reason or "")

        return [
            (
                "confluence",
                report.confluence.score >= cfg.min_confluence_score,
                f"Confluence score too low: {report.confluence.score} (minimum: {cfg.min_confluence_score})",
            ),
            (
                "ai_confidence",
                report.ai.confidence >= cfg.min_ai_confidence,
                f"AI confidence too low: {report.ai.confidence}% (minimum: {cfg.min_ai_confidence}%)",
            ),
            (
                "validation_layers",
                validation.passed_count >= cfg.min_validation_layers,
                f"Not enough validation layers passed: {validation.passed_count}/{validation.total_layers} "
                f"(minimum: {cfg.min_validation_layers})",
            ),
            (
                "critical_layers",
                not validation.critical_layers_failed,
                f"Critical layers failed: {', '.join(validation.critical_layers_failed)}",
            ),
            (
                "news_blackout",
                blackout is None or not blackout.active,
                f"News blackout period: {blackout_label}",
            ),
        ]

    async def generate_signal(
        self,
        symbol: str,
        account_balance: float | None = None,
        risk_percent: float | None = None,
    ) -> SignalDecision:
        """Analyze `symbol` and build a signal if every gate passes."""
        with self.metrics.timer("generate_signal"):
            report = await self.analyze(symbol)
            decision = self.decide(report, account_balance, risk_percent)
            if decision.accepted and self.config.enable_caching:
                self.cache.set(CacheKeys.signal(report.symbol), decision.signal, CacheTTL.LONG)
            return decision

    def decide(
        self,
        report: AnalysisReport,
        account_balance: float | None = None,
        risk_percent: float | None = None,
    ) -> SignalDecision:
        """Apply the gates to a report; build the signal when all of them pass."""
        checks = self.gate_checks(report)
        passed = {name: ok for name, ok, _ in checks}
        reason = next((r for _, ok, r in checks if not ok), None)
        if reason is not None:
            logger.info(f"Signal rejected for {report.symbol}: {reason}")
            return SignalDecision(analysis=report, reason=reason, checks=passed)

        signal = self.generator.generate(
            report,
            account_balance if account_balance is not None else self.config.risk.account_balance,
            risk_percent,
        )
        return SignalDecision(analysis=report, signal=signal, checks=passed)

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def get_supported_instruments(self) -> dict:
        return self.provider.get_supported_instruments()

    def get_cache_stats(self) -> dict[str, Any]:
        return self.cache.stats()

    def get_metrics(self) -> dict[str, Any]:
        return {
            "operations": self.metrics.snapshot(),
            "sources": self.provider.source_status(),
        }

    def clear_cache(self, symbol: str | None = None) -> None:
        if symbol:
            symbol = symbol.upper()
            self.cache.delete(CacheKeys.analysis(symbol))
            self.cache.delete(CacheKeys.signal(symbol))
        else:
            self.cache.clear()

    async def close(self) -> None:
        await self.cache.close()
        await self.provider.close()
