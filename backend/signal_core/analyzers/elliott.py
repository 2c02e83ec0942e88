"""Elliott Wave counting on swing points."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from signal_core.analyzers.base import BaseAnalyzer
from signal_core.analyzers.registry import register_analyzer
from signal_core.indicators import SwingPoint, find_swing_points
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData

WAVE3_RATIOS = (1.618, 2.0, 2.618)
WAVE5_RATIOS = (0.618, 1.0, 1.618)


@dataclass(frozen=True)
class Wave:
    label: str
    price: float
    index: int


@dataclass(frozen=True)
class WaveStructure:
    kind: str = "unknown"  # impulse / corrective / unknown
    direction: Bias = Bias.NEUTRAL
    waves: list[Wave] = field(default_factory=list)
    degree: str = "minor"
    confidence: int = 0


@dataclass(frozen=True)
class CurrentWave:
    wave: str = "unknown"
    position: str = "unknown"


@dataclass(frozen=True)
class WaveTarget:
    label: str
    price: float


@dataclass(frozen=True)
class WaveValidation:
    valid: bool = False
    violations: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ElliottFindings:
    structure: WaveStructure
    current: CurrentWave
    targets: list[WaveTarget]
    validation: WaveValidation

    @property
    def validity(self) -> float:
        """Structure confidence in [0, 1], discounted 20% per rule violation."""
        base = self.structure.confidence / 100
        if self.validation.valid:
            return base
        return max(0.0, base * (1 - 0.2 * len(self.validation.violations)))

    @property
    def wave_bias(self) -> Bias:
        """Direction the market should be travelling in during the current wave."""
        s = self.structure
        wave = self.current.wave
        if s.kind == "impulse":
            if wave in ("1", "3", "5"):
                return s.direction
            if wave in ("2", "4"):
                return Bias.BULLISH if s.direction == Bias.BEARISH else Bias.BEARISH
        if s.kind == "corrective":
            if wave in ("A", "C"):
                return s.direction
            if wave == "B":
                return Bias.BULLISH if s.direction == Bias.BEARISH else Bias.BEARISH
        return Bias.NEUTRAL


def _swings(candles: Sequence[Candle], lookback: int) -> list[tuple[str, SwingPoint]]:
    return find_swing_points(candles, lookback).merged()


def _impulse_confidence(waves: list[Wave]) -> int:
    if len(waves) < 5:
        return 0
    confidence = 50
    w1 = abs(waves[1].price - waves[0].price)
    w3 = abs(waves[3].price - waves[2].price)
    w5 = abs(waves[5].price - waves[4].price) if len(waves) > 5 else 0.0

    if w3 > w1 and w3 > w5:
        confidence += 20
    if w1 > 0 and 0.382 <= abs(waves[2].price - waves[1].price) / w1 <= 0.786:
        confidence += 15
    if w3 > 0 and 0.236 <= abs(waves[4].price - waves[3].price) / w3 <= 0.5:
        confidence += 15
    return min(100, confidence)


def _try_impulse(swings: list[tuple[str, SwingPoint]], bias: Bias) -> tuple[list[Wave], int]:
    """
    Walk alternating swings for waves 0-5.

    Bullish: wave 2 stays above wave 0, wave 3 exceeds wave 1, wave 4 stays
    above wave 1. Bearish mirrors this.
    """
    start_kind, next_kind = ("low", "high") if bias == Bias.BULLISH else ("high", "low")
    starts = [p for k, p in swings if k == start_kind]
    nexts = [p for k, p in swings if k == next_kind]
    if len(starts) < 3 or len(nexts) < 2:
        return [], 0

    def beyond(a: float, b: float) -> bool:
        return a > b if bias == Bias.BULLISH else a < b

    def first(points, after: int, cond=lambda p: True):
        return next((p for p in points if p.index > after and cond(p)), None)

    w0 = starts[0]
    w1 = first(nexts, w0.index)
    if w1 is None:
        return [], 0
    w2 = first(starts, w1.index, lambda p: beyond(p.price, w0.price))
    if w2 is None:
        return [], 0
    w3 = first(nexts, w2.index, lambda p: beyond(p.price, w1.price))
    if w3 is None:
        return [], 0
    w4 = first(starts, w3.index, lambda p: beyond(p.price, w1.price))
    if w4 is None:
        return [], 0
    w5 = first(nexts, w4.index)

    points = [w0, w1, w2, w3, w4] + ([w5] if w5 is not None else [])
    waves = [Wave(str(i), p.price, p.index) for i, p in enumerate(points)]
    return waves, _impulse_confidence(waves)


def _corrective_confidence(waves: list[Wave]) -> int:
    if len(waves) < 4:
        return 0
    confidence = 40
    a = abs(waves[1].price - waves[0].price)
    b = abs(waves[2].price - waves[1].price)
    c = abs(waves[3].price - waves[2].price)
    if a > 0:
        if 0.382 <= b / a <= 0.786:
            confidence += 20
        ratio = c / a
        if abs(ratio - 1) < 0.1 or abs(ratio - 1.618) < 0.1:
            confidence += 20
    return min(100, confidence)


def _try_corrective(swings: list[tuple[str, SwingPoint]]) -> tuple[list[Wave], int]:
    """Bearish ABC: A down from a high, B up to a lower high, C down."""
    highs = [p for k, p in swings if k == "high"]
    lows = [p for k, p in swings if k == "low"]
    if len(swings) < 4 or len(highs) < 2 or len(lows) < 2:
        return [], 0

    a_start = highs[-3] if len(highs) >= 3 else highs[0]
    a_end = next((p for p in lows if p.index > a_start.index), None)
    if a_end is None:
        return [], 0
    b_end = next((p for p in highs if p.index > a_end.index and p.price < a_start.price), None)
    if b_end is None:
        return [], 0
    c_end = next((p for p in lows if p.index > b_end.index), None)
    if c_end is None:
        return [], 0

    waves = [
        Wave("A_start", a_start.price, a_start.index),
        Wave("A", a_end.price, a_end.index),
        Wave("B", b_end.price, b_end.index),
        Wave("C", c_end.price, c_end.index),
    ]
    return waves, _corrective_confidence(waves)


def wave_degree(waves: list[Wave], last_price: float) -> str:
    if len(waves) < 2 or last_price == 0:
        return "minor"
    move = abs(waves[-1].price - waves[0].price) / last_price * 100
    if move > 10:
        return "primary"
    if move > 5:
        return "intermediate"
    if move > 2:
        return "minor"
    return "minute"


def identify_structure(candles: Sequence[Candle], lookback: int = 5) -> WaveStructure:
    swings = _swings(candles, lookback)
    if len(swings) < 5:
        return WaveStructure()

    bull_waves, bull_conf = _try_impulse(swings, Bias.BULLISH)
    bear_waves, bear_conf = _try_impulse(swings, Bias.BEARISH)
    if bull_conf > bear_conf:
        impulse_waves, impulse_conf, impulse_dir = bull_waves, bull_conf, Bias.BULLISH
    else:
        impulse_waves, impulse_conf, impulse_dir = bear_waves, bear_conf, Bias.BEARISH

    corr_waves, corr_conf = _try_corrective(swings)
    last_price = candles[-1].close

    if impulse_conf > corr_conf:
        return WaveStructure("impulse", impulse_dir, impulse_waves, wave_degree(impulse_waves, last_price), impulse_conf)
    if corr_conf > 0:
        return WaveStructure("corrective", Bias.BEARISH, corr_waves, wave_degree(corr_waves, last_price), corr_conf)
    return WaveStructure()


def current_wave(structure: WaveStructure) -> CurrentWave:
    """Wave in progress after the last confirmed pivot."""
    n = len(structure.waves)
    if structure.kind == "impulse":
        if n <= 2:
            return CurrentWave("1", "early")
        if n == 3:
            return CurrentWave("2", "correction")
        if n == 4:
            return CurrentWave("3", "impulse")
        if n == 5:
            return CurrentWave("4", "correction")
        return CurrentWave("5", "final")
    if structure.kind == "corrective":
        if n <= 2:
            return CurrentWave("A", "early")
        if n == 3:
            return CurrentWave("B", "retracement")
        return CurrentWave("C", "final")
    return CurrentWave()


def wave_targets(structure: WaveStructure, wave: CurrentWave, last_price: float) -> list[WaveTarget]:
    """Wave 3 and wave 5 projections as multiples of wave 1."""
    waves = structure.waves
    if structure.kind != "impulse" or len(waves) < 2:
        return []

    sign = 1 if structure.direction == Bias.BULLISH else -1
    w1 = abs(waves[1].price - waves[0].price)
    targets: list[WaveTarget] = []
    if wave.wave in ("2", "3"):
        base = waves[2].price if len(waves) > 2 else last_price
        targets += [WaveTarget(f"Wave 3 ({r}x)", base + sign * w1 * r) for r in WAVE3_RATIOS]
    if wave.wave in ("4", "5"):
        base = waves[4].price if len(waves) > 4 else last_price
        targets += [WaveTarget(f"Wave 5 ({r}x)", base + sign * w1 * r) for r in WAVE5_RATIOS]
    return targets


def validate_rules(structure: WaveStructure) -> WaveValidation:
    """Check the three hard impulse rules."""
    waves = structure.waves
    if structure.kind != "impulse" or len(waves) < 5:
        return WaveValidation(False, ["Incomplete wave structure"])

    bullish = structure.direction == Bias.BULLISH
    violations: list[str] = []

    if (waves[2].price < waves[0].price) if bullish else (waves[2].price > waves[0].price):
        violations.append("Wave 2 retraced beyond wave 0 start")

    w1 = abs(waves[1].price - waves[0].price)
    w3 = abs(waves[3].price - waves[2].price)
    w5 = abs(waves[5].price - waves[4].price) if len(waves) > 5 else float("inf")
    if w3 < w1 and w3 < w5:
        violations.append("Wave 3 is the shortest wave")

    if (waves[4].price < waves[1].price) if bullish else (waves[4].price > waves[1].price):
        violations.append("Wave 4 overlaps wave 1")

    return WaveValidation(not violations, violations)


def elliott_bias(structure: WaveStructure, wave: CurrentWave) -> Bias:
    if structure.kind == "impulse":
        return structure.direction if wave.wave in ("1", "3", "5") else Bias.NEUTRAL
    if structure.kind == "corrective":
        # A finished bearish correction resumes the larger uptrend
        return Bias.BULLISH if structure.direction == Bias.BEARISH else Bias.BEARISH
    return Bias.NEUTRAL


def elliott_score(structure: WaveStructure, validation: WaveValidation, wave: CurrentWave) -> int:
    score = 30.0
    if structure.kind != "unknown":
        score += 20
    score += structure.confidence * 0.3
    if validation.valid:
        score += 20
    else:
        score -= len(validation.violations) * 5
    if wave.position == "impulse":
        score += 10
    if wave.wave == "3":
        score += 10
    return clamp_score(score)


@register_analyzer(Domain.ELLIOTT_WAVE)
class ElliottWaveAnalyzer(BaseAnalyzer):
    domain = Domain.ELLIOTT_WAVE

    def __init__(self, min_bars: int = 50, lookback: int = 100, swing_lookback: int = 5):
        self.min_bars = min_bars
        self.lookback = lookback
        self.swing_lookback = swing_lookback

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary[-self.lookback:]
        structure = identify_structure(candles, self.swing_lookback)
        wave = current_wave(structure)
        validation = validate_rules(structure)
        findings = ElliottFindings(
            structure=structure,
            current=wave,
            targets=wave_targets(structure, wave, candles[-1].close),
            validation=validation,
        )
        return AnalyzerResult(
            domain=self.domain,
            score=elliott_score(structure, validation, wave),
            bias=elliott_bias(structure, wave),
            findings=findings,
        )
