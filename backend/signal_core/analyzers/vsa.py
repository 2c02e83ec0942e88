"""Volume Spread Analysis: no demand / no supply, stopping volume, climaxes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from signal_core.analyzers.base import BaseAnalyzer
from signal_core.analyzers.registry import register_analyzer
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData


@dataclass(frozen=True)
class VolumeMetrics:
    avg_volume: float
    max_volume: float
    min_volume: float
    current_volume: float
    trend: str
    relative_volume: float
    is_high_volume: bool
    is_low_volume: bool


@dataclass(frozen=True)
class VSABar:
    """One bar that matched a VSA pattern."""

    kind: str
    bias: Bias
    index: int
    timestamp: datetime
    price: float
    volume: float
    spread: float
    strength: int = 0


@dataclass(frozen=True)
class PatternSet:
    bars: list[VSABar] = field(default_factory=list)

    @property
    def detected(self) -> bool:
        return bool(self.bars)


@dataclass(frozen=True)
class EffortResult:
    absorption_bars: int = 0
    easy_movement_bars: int = 0

    @property
    def dominant(self) -> str:
        if self.absorption_bars > self.easy_movement_bars:
            return "absorption"
        if self.easy_movement_bars > self.absorption_bars:
            return "easy_movement"
        return "balanced"


@dataclass(frozen=True)
class VSAFindings:
    metrics: VolumeMetrics
    no_demand: PatternSet
    no_supply: PatternSet
    stopping_volume: PatternSet
    climactic_action: PatternSet
    tests: PatternSet
    effort_result: EffortResult
    volume_confirmation: bool = False


def _vol(candle: Candle) -> float:
    return candle.volume or 1.0


def _avg_spread(candles: Sequence[Candle], index: int, lookback: int = 20) -> float:
    window = candles[max(0, index - lookback):index]
    if not window:
        return 1.0
    avg = sum(c.range_size for c in window) / len(window)
    return avg or 1.0


def _avg_body(candles: Sequence[Candle], index: int, lookback: int = 20) -> float:
    window = candles[max(0, index - lookback):index]
    if not window:
        return 1.0
    avg = sum(c.body_size for c in window) / len(window)
    return avg or 1.0


def _pattern_strength(close_position: float) -> int:
    # Narrow spread and low volume are preconditions, each worth 20
    return min(100, round(50 + 20 + 20 + (1 - close_position) * 10))


def volume_metrics(
    candles: Sequence[Candle],
    lookback: int = 20,
    high_threshold: float = 1.5,
    low_threshold: float = 0.5,
) -> VolumeMetrics:
    volumes = [_vol(c) for c in candles[-lookback:]]
    avg = sum(volumes) / len(volumes)
    half = len(volumes) // 2
    first, second = volumes[:half] or volumes, volumes[half:]
    current = volumes[-1]
    return VolumeMetrics(
        avg_volume=avg,
        max_volume=max(volumes),
        min_volume=min(volumes),
        current_volume=current,
        trend="increasing" if sum(second) / len(second) > sum(first) / len(first) else "decreasing",
        relative_volume=current / avg,
        is_high_volume=current > avg * high_threshold,
        is_low_volume=current < avg * low_threshold,
    )


def detect_no_demand_supply(
    candles: Sequence[Candle],
    metrics: VolumeMetrics,
    bias: Bias,
    spread_threshold: float = 0.3,
    low_threshold: float = 0.5,
    lookback: int = 10,
) -> PatternSet:
    """
    Narrow-spread, low-volume bars in the last `lookback`.

    No demand (bearish): up bar closing in its lower half. No supply
    (bullish): down bar closing in its upper half.
    """
    bars: list[VSABar] = []
    for i in range(len(candles) - lookback, len(candles)):
        c = candles[i]
        narrow = c.range_size < _avg_spread(candles, i) * spread_threshold
        quiet = _vol(c) < metrics.avg_volume * low_threshold
        pos = c.close_position
        if bias == Bias.BEARISH:
            match = c.is_bullish and pos < 0.5
            strength = _pattern_strength(pos)
            kind = "no_demand"
        else:
            match = c.is_bearish and pos > 0.5
            strength = _pattern_strength(1 - pos)
            kind = "no_supply"
        if match and narrow and quiet:
            bars.append(VSABar(kind, bias, i, c.timestamp, c.close, _vol(c), c.range_size, strength))
    return PatternSet(bars)


def detect_stopping_volume(
    candles: Sequence[Candle],
    metrics: VolumeMetrics,
    high_threshold: float = 1.5,
    lookback: int = 10,
) -> PatternSet:
    """High-volume wide-spread bars that close against their own direction."""
    bars: list[VSABar] = []
    for i in range(len(candles) - lookback, len(candles)):
        c = candles[i]
        if _vol(c) <= metrics.avg_volume * high_threshold:
            continue
        if c.range_size <= _avg_spread(candles, i) * 1.5:
            continue
        pos = c.close_position
        if c.is_bearish and pos > 0.6:
            bars.append(VSABar("stopping_volume", Bias.BULLISH, i, c.timestamp, c.close, _vol(c), c.range_size))
        elif c.is_bullish and pos < 0.4:
            bars.append(VSABar("stopping_volume", Bias.BEARISH, i, c.timestamp, c.close, _vol(c), c.range_size))
    return PatternSet(bars)


def detect_climactic_action(candles: Sequence[Candle], metrics: VolumeMetrics, lookback: int = 20) -> PatternSet:
    """Ultra-high volume (>2x) on a very wide spread (>2x). Climaxes mark reversals."""
    bars: list[VSABar] = []
    for i in range(len(candles) - lookback, len(candles)):
        c = candles[i]
        if _vol(c) > metrics.avg_volume * 2 and c.range_size > _avg_spread(candles, i) * 2:
            if c.is_bullish:
                bars.append(VSABar("buying_climax", Bias.BEARISH, i, c.timestamp, c.close, _vol(c), c.range_size))
            else:
                bars.append(VSABar("selling_climax", Bias.BULLISH, i, c.timestamp, c.close, _vol(c), c.range_size))
    return PatternSet(bars)


def detect_tests(candles: Sequence[Candle], metrics: VolumeMetrics, lookback: int = 30) -> PatternSet:
    """Low-volume returns to the prior 30-bar extremes within the last five bars."""
    recent = list(candles[-lookback:])
    offset = len(candles) - len(recent)
    head = recent[:-5]
    low = min(c.low for c in head)
    high = max(c.high for c in head)
    tolerance = (high - low) * 0.02

    bars: list[VSABar] = []
    for i in range(len(recent) - 5, len(recent)):
        c = recent[i]
        if _vol(c) >= metrics.avg_volume * 0.7:
            continue
        if abs(c.low - low) < tolerance and c.is_bullish:
            bars.append(VSABar("support_test", Bias.BULLISH, offset + i, c.timestamp, low, _vol(c), c.range_size))
        if abs(c.high - high) < tolerance and c.is_bearish:
            bars.append(VSABar("resistance_test", Bias.BEARISH, offset + i, c.timestamp, high, _vol(c), c.range_size))
    return PatternSet(bars)


def effort_vs_result(candles: Sequence[Candle], metrics: VolumeMetrics, lookback: int = 10) -> EffortResult:
    """Volume ratio over body ratio: >2 is absorption, <0.5 easy movement."""
    absorption = 0
    easy = 0
    for i in range(len(candles) - lookback, len(candles)):
        c = candles[i]
        volume_ratio = _vol(c) / metrics.avg_volume
        price_ratio = c.body_size / _avg_body(candles, i)
        evr = volume_ratio / (price_ratio or 1)
        if evr > 2:
            absorption += 1
        elif evr < 0.5:
            easy += 1
    return EffortResult(absorption, easy)


def vsa_bias(findings: VSAFindings) -> Bias:
    bullish = 0
    bearish = 0
    if findings.no_supply.detected:
        bullish += 2
    if findings.no_demand.detected:
        bearish += 2
    for bar in findings.stopping_volume.bars:
        if bar.bias == Bias.BULLISH:
            bullish += 2
        else:
            bearish += 2
    for bar in findings.climactic_action.bars:
        if bar.bias == Bias.BULLISH:
            bullish += 1
        else:
            bearish += 1
    return Bias.from_votes(bullish, bearish)


def volume_confirms(candles: Sequence[Candle], metrics: VolumeMetrics, bias: Bias) -> bool:
    """Last bar trades at least average volume and closes in the bias direction."""
    last = candles[-1]
    if _vol(last) < metrics.avg_volume:
        return False
    if bias == Bias.BULLISH:
        return last.is_bullish
    if bias == Bias.BEARISH:
        return last.is_bearish
    return False


def vsa_score(findings: VSAFindings) -> int:
    score = 50
    if findings.no_demand.detected or findings.no_supply.detected:
        score += 15
    if findings.stopping_volume.detected:
        score += 20
    if findings.climactic_action.detected:
        score += 15
    if findings.effort_result.dominant != "balanced":
        score += 10
    return clamp_score(score)


@register_analyzer(Domain.VSA)
class VSAAnalyzer(BaseAnalyzer):
    domain = Domain.VSA

    def __init__(
        self,
        min_bars: int = 30,
        volume_lookback: int = 20,
        spread_threshold: float = 0.3,
        volume_high_threshold: float = 1.5,
        volume_low_threshold: float = 0.5,
    ):
        self.min_bars = min_bars
        self.volume_lookback = volume_lookback
        self.spread_threshold = spread_threshold
        self.volume_high_threshold = volume_high_threshold
        self.volume_low_threshold = volume_low_threshold

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary
        metrics = volume_metrics(
            candles, self.volume_lookback, self.volume_high_threshold, self.volume_low_threshold
        )
        draft = VSAFindings(
            metrics=metrics,
            no_demand=detect_no_demand_supply(
                candles, metrics, Bias.BEARISH, self.spread_threshold, self.volume_low_threshold
            ),
            no_supply=detect_no_demand_supply(
                candles, metrics, Bias.BULLISH, self.spread_threshold, self.volume_low_threshold
            ),
            stopping_volume=detect_stopping_volume(candles, metrics, self.volume_high_threshold),
            climactic_action=detect_climactic_action(candles, metrics),
            tests=detect_tests(candles, metrics),
            effort_result=effort_vs_result(candles, metrics),
        )
        bias = vsa_bias(draft)
        findings = VSAFindings(
            metrics=draft.metrics,
            no_demand=draft.no_demand,
            no_supply=draft.no_supply,
            stopping_volume=draft.stopping_volume,
            climactic_action=draft.climactic_action,
            tests=draft.tests,
            effort_result=draft.effort_result,
            volume_confirmation=volume_confirms(candles, metrics, bias),
        )
        return AnalyzerResult(domain=self.domain, score=vsa_score(findings), bias=bias, findings=findings)
