"""Common analyzer scaffolding."""

from __future__ import annotations

from dataclasses import dataclass

from signal_core.models.analysis import AnalyzerResult, Bias, Domain
from signal_core.models.market import MultiTimeframeData


class BaseAnalyzer:
    """Checks minimum history on the primary series before delegating.

    Subclasses set `domain` and `min_bars` and implement `_analyze`.
    """

    domain: Domain
    min_bars: int = 20

    def analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        if data.bar_count() < self.min_bars:
            return AnalyzerResult.empty(self.domain)
        return self._analyze(data)

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        raise NotImplementedError


@dataclass(frozen=True)
class SignalVote:
    """BUY / SELL / NEUTRAL call from weighted bullish and bearish points."""

    direction: str = "NEUTRAL"
    strength: float = 0.0
    confidence: float = 0.5

    @classmethod
    def from_scores(cls, bullish: float, bearish: float, margin: float) -> SignalVote:
        if bullish > bearish + margin:
            return cls("BUY", bullish, min(1.0, bullish / 100))
        if bearish > bullish + margin:
            return cls("SELL", bearish, min(1.0, bearish / 100))
        return cls()

    @property
    def bias(self) -> Bias:
        if self.direction == "BUY":
            return Bias.BULLISH
        if self.direction == "SELL":
            return Bias.BEARISH
        return Bias.NEUTRAL
