"""Outcome types of one analysis pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from signal_core.ai import AIAnalysis
from signal_core.confluence import ConfluenceResult
from signal_core.killzone import KillZoneStatus
from signal_core.models.analysis import AnalyzerResult, Domain
from signal_core.models.market import MultiTimeframeData
from signal_core.models.signal import Direction, Signal
from signal_core.validation import ValidationResult


@dataclass(frozen=True)
class AnalysisReport:
    symbol: str
    timestamp: datetime
    market_data: MultiTimeframeData
    results: dict[Domain, AnalyzerResult]
    ai: AIAnalysis
    kill_zone: KillZoneStatus
    validation: ValidationResult
    confluence: ConfluenceResult
    proposed_direction: Direction

    def findings(self, domain: Domain):
        result = self.results.get(domain)
        return result.findings if result is not None else None

    @property
    def last_price(self) -> float | None:
        return self.market_data.last_price

    @property
    def failed_analyzers(self) -> dict[str, str]:
        """Domains whose analyzer raised, with the recorded error."""
        return {d.value: r.error for d, r in self.results.items() if r.error}


@dataclass(frozen=True)
class SignalDecision:
    """A generated signal, or the reason none was generated."""

    analysis: AnalysisReport
    signal: Signal | None = None
    reason: str | None = None
    checks: dict[str, bool] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.signal is not None
