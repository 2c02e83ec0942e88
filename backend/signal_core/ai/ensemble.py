"""Heuristic AI ensemble: chart patterns, regime, probability and a vote."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Sequence

import numpy as np

from signal_core.constants import Timeframe
from signal_core.indicators import ema, linear_slope, return_volatility
from signal_core.models.analysis import AnalyzerResult, Bias, Domain
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData
from signal_core.models.signal import Direction

logger = logging.getLogger(__name__)

# Blend of the four component confidences
CONFIDENCE_WEIGHTS = {
    "pattern": 0.25,
    "regime": 0.20,
    "probability": 0.30,
    "prediction": 0.25,
}

# Analyzers whose bias feeds the direction vote
VOTING_DOMAINS = (Domain.TECHNICAL, Domain.SMC, Domain.WYCKOFF, Domain.VSA, Domain.ORDER_FLOW)

REGIME_RECOMMENDATIONS = {
    "trending_up": "Look for pullback entries in direction of trend",
    "trending_down": "Look for pullback entries in direction of trend",
    "ranging": "Trade range boundaries with tight stops",
    "volatile": "Reduce position size, widen stops",
    "low_volatility": "Expect breakout, prepare for momentum entry",
    "unknown": "Wait for clearer market conditions",
}


@dataclass(frozen=True)
class ChartPattern:
    kind: str
    bias: Bias
    confidence: float
    levels: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PatternRecognition:
    patterns: list[ChartPattern] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def dominant(self) -> ChartPattern | None:
        if not self.patterns:
            return None
        return max(self.patterns, key=lambda p: p.confidence)


@dataclass(frozen=True)
class MarketRegime:
    regime: str = "unknown"
    confidence: float = 0.0
    volatility: float = 0.0
    trend_strength: float = 0.0
    trend_direction: str = "neutral"
    momentum: float = 0.0

    @property
    def recommendation(self) -> str:
        return REGIME_RECOMMENDATIONS.get(self.regime, REGIME_RECOMMENDATIONS["unknown"])


@dataclass(frozen=True)
class ProbabilityEstimate:
    value: float = 0.5
    factors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Prediction:
    direction: Direction | None = None
    confidence: float = 0.5
    buy_votes: int = 0
    sell_votes: int = 0
    total_votes: int = 0


@dataclass(frozen=True)
class AIValidation:
    valid: bool = True
    issues: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AIAnalysis:
    """Combined ensemble output. `confidence` is a percentage in [0, 100]."""

    patterns: PatternRecognition = field(default_factory=PatternRecognition)
    regime: MarketRegime = field(default_factory=MarketRegime)
    probability: ProbabilityEstimate = field(default_factory=ProbabilityEstimate)
    prediction: Prediction = field(default_factory=Prediction)
    validation: AIValidation = field(default_factory=AIValidation)
    confidence: int = 0
    meets_threshold: bool = False
    reasoning: list[str] = field(default_factory=list)

    @property
    def direction(self) -> Direction | None:
        return self.prediction.direction

    @classmethod
    def neutral(cls) -> AIAnalysis:
        """Fallback used when the ensemble itself fails."""
        return cls(reasoning=["AI analysis unavailable"])


def _relative_slope(values: np.ndarray) -> float:
    mean = float(np.mean(values)) if len(values) else 0.0
    if mean == 0:
        return 0.0
    return linear_slope(values) / mean


def detect_head_and_shoulders(candles: Sequence[Candle]) -> ChartPattern | None:
    """Highest high in the middle third flanked by two shoulders within 3% of each other."""
    n = len(candles)
    if n < 30:
        return None
    highs = np.array([c.high for c in candles])
    lows = np.array([c.low for c in candles])

    middle_start, middle_end = n // 3, 2 * n // 3
    head_idx = middle_start + int(np.argmax(highs[middle_start:middle_end]))
    if head_idx - 5 <= 0 or head_idx + 5 >= n:
        return None
    left_idx = int(np.argmax(highs[: head_idx - 5]))
    right_idx = head_idx + 5 + int(np.argmax(highs[head_idx + 5:]))

    head, left, right = highs[head_idx], highs[left_idx], highs[right_idx]
    if not (head > left and head > right and abs(left - right) / head < 0.03):
        return None

    neckline = (lows[left_idx:head_idx].min() + lows[head_idx:right_idx + 1].min()) / 2
    return ChartPattern(
        "head_and_shoulders",
        Bias.BEARISH,
        0.75,
        {
            "head": float(head),
            "left_shoulder": float(left),
            "right_shoulder": float(right),
            "neckline": float(neckline),
            "target": float(neckline - (head - neckline)),
        },
    )


def detect_double_pattern(candles: Sequence[Candle]) -> ChartPattern | None:
    """Two touches within 2% of the extreme, at least ten bars apart."""
    if len(candles) < 20:
        return None
    highs = np.array([c.high for c in candles])
    lows = np.array([c.low for c in candles])

    max_high = highs.max()
    tops = np.flatnonzero(highs >= max_high * 0.98)
    if len(tops) >= 2 and tops[-1] - tops[0] >= 10:
        first, second = int(tops[0]), int(tops[-1])
        neckline = float(lows[first:second].min())
        return ChartPattern(
            "double_top",
            Bias.BEARISH,
            0.70,
            {"neckline": neckline, "target": neckline - (float(max_high) - neckline)},
        )

    min_low = lows.min()
    bottoms = np.flatnonzero(lows <= min_low * 1.02)
    if len(bottoms) >= 2 and bottoms[-1] - bottoms[0] >= 10:
        first, second = int(bottoms[0]), int(bottoms[-1])
        neckline = float(highs[first:second].max())
        return ChartPattern(
            "double_bottom",
            Bias.BULLISH,
            0.70,
            {"neckline": neckline, "target": neckline + (neckline - float(min_low))},
        )
    return None


def _recent_slopes(candles: Sequence[Candle], window: int = 20) -> tuple[np.ndarray, np.ndarray, float, float]:
    recent = candles[-window:]
    highs = np.array([c.high for c in recent])
    lows = np.array([c.low for c in recent])
    return highs, lows, _relative_slope(highs), _relative_slope(lows)


def detect_triangle(candles: Sequence[Candle], flat: float = 0.0001) -> ChartPattern | None:
    if len(candles) < 20:
        return None
    highs, lows, high_slope, low_slope = _recent_slopes(candles)
    if abs(high_slope) < flat and low_slope > flat:
        return ChartPattern(
            "ascending_triangle", Bias.BULLISH, 0.65,
            {"resistance": float(highs.max()), "support": float(lows[-1])},
        )
    if high_slope < -flat and abs(low_slope) < flat:
        return ChartPattern(
            "descending_triangle", Bias.BEARISH, 0.65,
            {"resistance": float(highs[-1]), "support": float(lows.min())},
        )
    if high_slope < -flat and low_slope > flat:
        return ChartPattern(
            "symmetrical_triangle", Bias.NEUTRAL, 0.60,
            {"resistance": float(highs[-1]), "support": float(lows[-1])},
        )
    return None


def detect_wedge(candles: Sequence[Candle]) -> ChartPattern | None:
    if len(candles) < 20:
        return None
    _, _, high_slope, low_slope = _recent_slopes(candles)
    if 0 < high_slope < low_slope:
        return ChartPattern("rising_wedge", Bias.BEARISH, 0.65)
    if low_slope < high_slope < 0:
        return ChartPattern("falling_wedge", Bias.BULLISH, 0.65)
    return None


def detect_channel(candles: Sequence[Candle], parallel: float = 0.0002, flat: float = 0.0001) -> ChartPattern | None:
    if len(candles) < 20:
        return None
    highs, lows, high_slope, low_slope = _recent_slopes(candles)
    if abs(high_slope - low_slope) >= parallel:
        return None
    if high_slope > flat:
        bias = Bias.BULLISH
    elif high_slope < -flat:
        bias = Bias.BEARISH
    else:
        bias = Bias.NEUTRAL
    return ChartPattern(
        "channel", bias, 0.60,
        {"upper_bound": float(highs.max()), "lower_bound": float(lows.min())},
    )


def recognize_patterns(candles: Sequence[Candle], min_bars: int = 50) -> PatternRecognition:
    if len(candles) < min_bars:
        return PatternRecognition()
    found = [
        p
        for p in (
            detect_head_and_shoulders(candles),
            detect_double_pattern(candles),
            detect_triangle(candles),
            detect_wedge(candles),
            detect_channel(candles),
        )
        if p is not None
    ]
    confidence = sum(p.confidence for p in found) / len(found) if found else 0.0
    return PatternRecognition(found, confidence)


def detect_regime(candles: Sequence[Candle], min_bars: int = 50) -> MarketRegime:
    """
    Classify the market from 20-bar trend strength and return volatility.

    Trend strength is min(|20-bar change| * 10, 1); above 0.6 the market is
    trending. Otherwise volatility above 2% is volatile, below 0.5% quiet.
    """
    if len(candles) < min_bars:
        return MarketRegime()
    closes = np.array([c.close for c in candles])
    volatility = return_volatility(closes)

    first, current = closes[-20], closes[-1]
    change = (current - first) / first if first else 0.0
    direction = "up" if change > 0.01 else "down" if change < -0.01 else "neutral"
    strength = min(abs(change) * 10, 1.0)
    past = closes[-14]
    momentum = float((current - past) / past) if past else 0.0

    if strength > 0.6 and direction == "up":
        regime, confidence = "trending_up", strength
    elif strength > 0.6 and direction == "down":
        regime, confidence = "trending_down", strength
    elif volatility > 0.02:
        regime, confidence = "volatile", min(volatility * 30, 0.9)
    elif volatility < 0.005:
        regime, confidence = "low_volatility", 0.7
    else:
        regime, confidence = "ranging", 0.5

    return MarketRegime(regime, float(confidence), volatility, float(strength), direction, momentum)


def _ema_trend(candles: Sequence[Candle], period: int = 20) -> Bias:
    if len(candles) < period:
        return Bias.NEUTRAL
    values = ema([c.close for c in candles], period)
    last = candles[-1].close
    if last > values[-1]:
        return Bias.BULLISH
    if last < values[-1]:
        return Bias.BEARISH
    return Bias.NEUTRAL


def timeframes_aligned(data: MultiTimeframeData) -> bool:
    """H1 and H4 closes sit on the same side of their 20-period EMA."""
    h1 = _ema_trend(data.get(Timeframe.H1))
    h4 = _ema_trend(data.get(Timeframe.H4))
    return h1 != Bias.NEUTRAL and h1 == h4


def _findings(results: Mapping[Domain, AnalyzerResult], domain: Domain):
    result = results.get(domain)
    return result.findings if result is not None else None


def estimate_probability(
    data: MultiTimeframeData,
    results: Mapping[Domain, AnalyzerResult],
    kill_zone_active: bool = False,
) -> ProbabilityEstimate:
    probability = 0.5
    factors: list[str] = []

    technical = _findings(results, Domain.TECHNICAL)
    smc = _findings(results, Domain.SMC)
    vsa = _findings(results, Domain.VSA)
    wyckoff = _findings(results, Domain.WYCKOFF)

    if technical is not None:
        factors.append(f"Technical trend: {technical.trend.direction.value}")
    if smc is not None:
        factors.append(f"SMC structure: {smc.structure.trend.value}")

    if technical is not None and smc is not None and technical.trend.direction == smc.structure.trend:
        probability += 0.1
    if timeframes_aligned(data):
        probability += 0.1
        factors.append("H1/H4 trend aligned")
    if vsa is not None and vsa.volume_confirmation:
        probability += 0.05
    if smc is not None and (smc.order_blocks or smc.fvgs):
        probability += 0.1
    if wyckoff is not None and wyckoff.phase.phase in ("accumulation", "distribution"):
        probability += 0.1
    if kill_zone_active:
        probability += 0.05
        factors.append("Active kill zone")

    return ProbabilityEstimate(min(0.95, probability), factors)


def predict_direction(results: Mapping[Domain, AnalyzerResult], min_votes: int = 3) -> Prediction:
    """Majority vote of analyzer biases; a side needs `min_votes` and a strict lead."""
    voters = [results[d] for d in VOTING_DOMAINS if d in results and results[d].ok]
    buy = sum(1 for r in voters if r.bias == Bias.BULLISH)
    sell = sum(1 for r in voters if r.bias == Bias.BEARISH)
    total = len(voters)

    if buy > sell and buy >= min_votes:
        return Prediction(Direction.LONG, 0.5 + buy / total * 0.4, buy, sell, total)
    if sell > buy and sell >= min_votes:
        return Prediction(Direction.SHORT, 0.5 + sell / total * 0.4, buy, sell, total)
    return Prediction(None, 0.5, buy, sell, total)


def _reasoning(results: Mapping[Domain, AnalyzerResult], direction: Direction | None) -> list[str]:
    if direction is None:
        return ["Insufficient confluence for clear direction"]
    reasons: list[str] = []
    smc = _findings(results, Domain.SMC)
    technical = _findings(results, Domain.TECHNICAL)
    if smc is not None and any(ob.bias == direction.bias for ob in smc.order_blocks):
        reasons.append(f"{direction.bias.value.capitalize()} order block present")
    if technical is not None and technical.trend.direction == direction.bias:
        reasons.append(f"Technical trend is {direction.bias.value}")
    return reasons or ["Insufficient confluence for clear direction"]


def blend_confidence(
    patterns: PatternRecognition,
    regime: MarketRegime,
    probability: ProbabilityEstimate,
    prediction: Prediction,
) -> int:
    """Weighted blend in percent; a missing (zero) component counts as 0.5."""
    blended = (
        (patterns.confidence or 0.5) * CONFIDENCE_WEIGHTS["pattern"]
        + (regime.confidence or 0.5) * CONFIDENCE_WEIGHTS["regime"]
        + (probability.value or 0.5) * CONFIDENCE_WEIGHTS["probability"]
        + (prediction.confidence or 0.5) * CONFIDENCE_WEIGHTS["prediction"]
    )
    return round(blended * 100)


class AIEnsemble:
    """Combines the heuristic models into one direction and confidence.

    Args:
        min_confidence: Percentage the blended confidence must reach.
        min_confluence: Confluence score below which validation flags an issue.
        min_votes: Analyzer biases that must agree for a directional prediction.
    """

    def __init__(self, min_confidence: int = 70, min_confluence: int = 80, min_votes: int = 3):
        self.min_confidence = min_confidence
        self.min_confluence = min_confluence
        self.min_votes = min_votes

    def analyze(
        self,
        data: MultiTimeframeData,
        results: Mapping[Domain, AnalyzerResult],
        kill_zone_active: bool = False,
        confluence_score: int | None = None,
    ) -> AIAnalysis:
        candles = data.primary
        patterns = recognize_patterns(candles)
        regime = detect_regime(candles)
        probability = estimate_probability(data, results, kill_zone_active)
        prediction = predict_direction(results, self.min_votes)
        confidence = blend_confidence(patterns, regime, probability, prediction)
        validation = self.validate(results, prediction, confluence_score)

        logger.debug(
            "AI ensemble %s: direction=%s confidence=%d regime=%s patterns=%d",
            data.symbol,
            prediction.direction.label if prediction.direction else "NEUTRAL",
            confidence,
            regime.regime,
            len(patterns.patterns),
        )
        return AIAnalysis(
            patterns=patterns,
            regime=regime,
            probability=probability,
            prediction=prediction,
            validation=validation,
            confidence=confidence,
            meets_threshold=confidence >= self.min_confidence,
            reasoning=_reasoning(results, prediction.direction),
        )

    def validate(
        self,
        results: Mapping[Domain, AnalyzerResult],
        prediction: Prediction,
        confluence_score: int | None = None,
    ) -> AIValidation:
        issues: list[str] = []
        if prediction.buy_votes > 0 and prediction.sell_votes > 0:
            if abs(prediction.buy_votes - prediction.sell_votes) < 2:
                issues.append("Conflicting signals detected")

        fundamental = _findings(results, Domain.FUNDAMENTAL)
        if fundamental is not None and fundamental.blackout.active:
            issues.append("News blackout period active")

        if confluence_score is not None and confluence_score < self.min_confluence:
            issues.append("Confluence score below minimum threshold")

        if prediction.confidence * 100 < self.min_confidence:
            issues.append("AI confidence below minimum threshold")

        return AIValidation(valid=not issues, issues=issues)
