"""Analyzer result envelope shared by all ten analysis domains."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Bias(str, Enum):
    """Directional lean of an analysis."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    @classmethod
    def from_votes(cls, bullish: float, bearish: float, margin: float = 1) -> Bias:
        """Pick a side only when it leads by more than `margin`."""
        if bullish > bearish + margin:
            return cls.BULLISH
        if bearish > bullish + margin:
            return cls.BEARISH
        return cls.NEUTRAL


class Domain(str, Enum):
    """The ten analysis methodologies."""

    TECHNICAL = "technical"
    SMC = "smc"
    WYCKOFF = "wyckoff"
    ELLIOTT_WAVE = "elliott_wave"
    VSA = "vsa"
    MARKET_PROFILE = "market_profile"
    ORDER_FLOW = "order_flow"
    INTERMARKET = "intermarket"
    FUNDAMENTAL = "fundamental"
    SENTIMENT = "sentiment"


def clamp_score(value: float) -> int:
    """Round and clamp a score into [0, 100]."""
    return int(min(100, max(0, round(value))))


@dataclass(frozen=True)
class AnalyzerResult:
    """Tagged result of one analyzer run.

    `findings` holds the domain-specific dataclass (TechnicalFindings,
    SMCFindings, ...) or None for an empty result. `error` records why an
    analyzer was neutralised when it raised.
    """

    domain: Domain
    score: int
    bias: Bias
    findings: Any = None
    error: str | None = None

    @classmethod
    def empty(cls, domain: Domain, error: str | None = None) -> AnalyzerResult:
        return cls(domain=domain, score=0, bias=Bias.NEUTRAL, findings=None, error=error)

    @property
    def is_empty(self) -> bool:
        return self.findings is None

    @property
    def ok(self) -> bool:
        return self.error is None and self.findings is not None
