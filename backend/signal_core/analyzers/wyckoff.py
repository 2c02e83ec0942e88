"""Wyckoff method: range phases, springs and upthrusts, signs of strength."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from signal_core.analyzers.base import BaseAnalyzer
from signal_core.analyzers.registry import register_analyzer
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData

BULLISH_PHASES = ("accumulation", "markup")
BEARISH_PHASES = ("distribution", "markdown")


def _volumes(candles: Sequence[Candle]) -> list[float]:
    # Sources without volume report zeros; count each bar once
    return [c.volume or 1.0 for c in candles]


@dataclass(frozen=True)
class WyckoffPhase:
    phase: str = "unknown"
    sub_phase: str | None = None
    range_high: float = 0.0
    range_low: float = 0.0
    is_consolidating: bool = False
    volume_trend: str = "neutral"
    probability: int = 0


@dataclass(frozen=True)
class RangeTest:
    """Spring (false break below support) or upthrust (false break above resistance)."""

    detected: bool = False
    price: float = 0.0
    level: float = 0.0
    index: int = -1
    follow_through: bool = False

    @property
    def strength(self) -> str:
        if not self.detected:
            return "none"
        return "strong" if self.follow_through else "weak"


@dataclass(frozen=True)
class StrengthSign:
    """Sign of strength (bullish) or weakness (bearish) bars."""

    detected: bool = False
    events: list[tuple[int, float, float]] = field(default_factory=list)  # (index, close, volume)


@dataclass(frozen=True)
class WyckoffVolume:
    avg_volume: float = 0.0
    recent_avg_volume: float = 0.0
    trend: str = "neutral"
    has_climax: bool = False
    climax_index: int | None = None
    has_dry_up: bool = False
    ratio: float = 1.0


@dataclass(frozen=True)
class WyckoffFindings:
    phase: WyckoffPhase
    spring: RangeTest
    upthrust: RangeTest
    sos: StrengthSign
    sow: StrengthSign
    volume: WyckoffVolume


def _accumulation_sub_phase(candles: Sequence[Candle], range_low: float, range_high: float) -> str:
    last = candles[-1]
    rng = range_high - range_low
    recent = candles[-10:]
    if min(c.low for c in recent) < range_low and last.close > range_low:
        return "phase_c"
    if max(c.high for c in recent) > range_high * 0.98:
        return "phase_d"
    if last.close < range_low + rng * 0.2:
        return "phase_b"
    return "phase_a"


def _distribution_sub_phase(candles: Sequence[Candle], range_low: float, range_high: float) -> str:
    last = candles[-1]
    rng = range_high - range_low
    recent = candles[-10:]
    if max(c.high for c in recent) > range_high and last.close < range_high:
        return "phase_c"
    if min(c.low for c in recent) < range_low * 1.02:
        return "phase_d"
    if last.close > range_high - rng * 0.2:
        return "phase_b"
    return "phase_a"


def _phase_probability(phase: str, sub_phase: str | None, volume_decreasing: bool) -> int:
    base = {
        "accumulation": 60,
        "distribution": 60,
        "markup": 70,
        "markdown": 70,
        "ranging": 30,
    }.get(phase, 0)
    if phase in ("accumulation", "distribution"):
        if volume_decreasing:
            base += 15
        if sub_phase in ("phase_c", "phase_d"):
            base += 10
    return min(100, base)


def detect_phase(candles: Sequence[Candle], lookback: int = 100) -> WyckoffPhase:
    """
    Classify the last `lookback` bars.

    A range whose last 20 bars span less than half of the full range is a
    consolidation: accumulation near its bottom (<40%) or distribution near
    its top (>60%) when volume is drying up, ranging otherwise. Outside a
    consolidation, a 5% net move is markup or markdown.
    """
    recent = list(candles[-lookback:])
    range_high = max(c.high for c in recent)
    range_low = min(c.low for c in recent)
    rng = range_high - range_low

    last20 = recent[-20:]
    recent_range = max(c.high for c in last20) - min(c.low for c in last20)
    is_consolidating = recent_range < rng * 0.5

    volumes = _volumes(recent)
    avg_volume = sum(volumes) / len(volumes)
    recent_avg = sum(volumes[-20:]) / 20
    volume_decreasing = recent_avg < avg_volume * 0.8

    phase = "ranging"
    sub_phase = None
    if is_consolidating and rng > 0:
        position = (recent[-1].close - range_low) / rng
        if position < 0.4 and volume_decreasing:
            phase = "accumulation"
            sub_phase = _accumulation_sub_phase(recent, range_low, range_high)
        elif position > 0.6 and volume_decreasing:
            phase = "distribution"
            sub_phase = _distribution_sub_phase(recent, range_low, range_high)
    elif not is_consolidating:
        first, last = recent[0].close, recent[-1].close
        if last > first * 1.05:
            phase = "markup"
        elif last < first * 0.95:
            phase = "markdown"

    return WyckoffPhase(
        phase=phase,
        sub_phase=sub_phase,
        range_high=range_high,
        range_low=range_low,
        is_consolidating=is_consolidating,
        volume_trend="decreasing" if volume_decreasing else "increasing",
        probability=_phase_probability(phase, sub_phase, volume_decreasing),
    )


def detect_spring(candles: Sequence[Candle], lookback: int = 30) -> RangeTest:
    """False break more than 0.2% below the prior support, closing back above it."""
    recent = list(candles[-lookback:])
    support = min(c.low for c in recent[:-5])
    for i in range(len(recent) - 5, len(recent)):
        candle = recent[i]
        if candle.low < support * 0.998 and candle.close > support:
            follow = all(c.is_bullish for c in recent[i + 1:])
            return RangeTest(True, candle.low, support, i, follow)
    return RangeTest()


def detect_upthrust(candles: Sequence[Candle], lookback: int = 30) -> RangeTest:
    """False break more than 0.2% above the prior resistance, closing back below it."""
    recent = list(candles[-lookback:])
    resistance = max(c.high for c in recent[:-5])
    for i in range(len(recent) - 5, len(recent)):
        candle = recent[i]
        if candle.high > resistance * 1.002 and candle.close < resistance:
            follow = all(c.is_bearish for c in recent[i + 1:])
            return RangeTest(True, candle.high, resistance, i, follow)
    return RangeTest()


def detect_sign(candles: Sequence[Candle], bias: Bias, volume_threshold: float = 1.5, lookback: int = 20) -> StrengthSign:
    """High-volume bars in the last five that close through the prior range."""
    recent = list(candles[-lookback:])
    volumes = _volumes(recent)
    avg_volume = sum(volumes) / len(recent)
    head = recent[:-5]

    events = []
    if bias == Bias.BULLISH:
        level = max(c.high for c in head)
        for i in range(len(recent) - 5, len(recent)):
            c = recent[i]
            if c.is_bullish and volumes[i] > avg_volume * volume_threshold and c.close > level:
                events.append((i, c.close, c.volume))
    else:
        level = min(c.low for c in head)
        for i in range(len(recent) - 5, len(recent)):
            c = recent[i]
            if c.is_bearish and volumes[i] > avg_volume * volume_threshold and c.close < level:
                events.append((i, c.close, c.volume))
    return StrengthSign(detected=bool(events), events=events)


def analyze_volume(candles: Sequence[Candle], lookback: int = 50) -> WyckoffVolume:
    volumes = _volumes(candles[-lookback:])
    avg_volume = sum(volumes) / len(volumes)
    recent_avg = sum(volumes[-10:]) / len(volumes[-10:])
    max_volume = max(volumes)
    has_climax = max_volume > avg_volume * 2
    return WyckoffVolume(
        avg_volume=avg_volume,
        recent_avg_volume=recent_avg,
        trend="increasing" if recent_avg > avg_volume else "decreasing",
        has_climax=has_climax,
        climax_index=volumes.index(max_volume) if has_climax else None,
        has_dry_up=min(volumes[-10:]) < avg_volume * 0.5,
        ratio=recent_avg / avg_volume,
    )


def wyckoff_bias(
    phase: WyckoffPhase,
    spring: RangeTest,
    upthrust: RangeTest,
    sos: StrengthSign,
    sow: StrengthSign,
) -> Bias:
    bullish = 0
    bearish = 0
    if phase.phase == "accumulation":
        bullish += 2
    elif phase.phase == "distribution":
        bearish += 2
    elif phase.phase == "markup":
        bullish += 3
    elif phase.phase == "markdown":
        bearish += 3
    if spring.detected:
        bullish += 3 if spring.follow_through else 1
    if upthrust.detected:
        bearish += 3 if upthrust.follow_through else 1
    if sos.detected:
        bullish += 2
    if sow.detected:
        bearish += 2
    return Bias.from_votes(bullish, bearish)


def wyckoff_score(findings: WyckoffFindings) -> int:
    score = 50
    if findings.phase.phase not in ("unknown", "ranging"):
        score += 15
    for test in (findings.spring, findings.upthrust):
        if test.detected:
            score += 20 if test.follow_through else 10
    if findings.sos.detected:
        score += 10
    if findings.sow.detected:
        score += 10
    if findings.volume.has_climax:
        score += 5
    if findings.volume.has_dry_up and findings.phase.phase == "accumulation":
        score += 5
    return clamp_score(score)


@register_analyzer(Domain.WYCKOFF)
class WyckoffAnalyzer(BaseAnalyzer):
    domain = Domain.WYCKOFF

    def __init__(self, min_bars: int = 50, phase_lookback: int = 100, volume_threshold: float = 1.5):
        self.min_bars = min_bars
        self.phase_lookback = phase_lookback
        self.volume_threshold = volume_threshold

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary
        findings = WyckoffFindings(
            phase=detect_phase(candles, self.phase_lookback),
            spring=detect_spring(candles),
            upthrust=detect_upthrust(candles),
            sos=detect_sign(candles, Bias.BULLISH, self.volume_threshold),
            sow=detect_sign(candles, Bias.BEARISH, self.volume_threshold),
            volume=analyze_volume(candles),
        )
        return AnalyzerResult(
            domain=self.domain,
            score=wyckoff_score(findings),
            bias=wyckoff_bias(findings.phase, findings.spring, findings.upthrust, findings.sos, findings.sow),
            findings=findings,
        )
