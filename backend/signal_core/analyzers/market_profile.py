"""Market Profile: volume-at-price, point of control and the 70% value area."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from signal_core.analyzers.base import BaseAnalyzer
from signal_core.analyzers.registry import register_analyzer
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData

_EPS = 1e-9


@dataclass(frozen=True)
class ProfileLevel:
    price: float
    tpo_count: int
    volume: float


@dataclass(frozen=True)
class VolumeProfile:
    levels: list[ProfileLevel] = field(default_factory=list)
    range_high: float = 0.0
    range_low: float = 0.0
    tick_size: float = 0.0001

    @property
    def total_volume(self) -> float:
        return sum(level.volume for level in self.levels)


@dataclass(frozen=True)
class ValueArea:
    vah: float
    val: float
    poc: float
    poc_volume: float
    volume_in_area: float

    @property
    def width(self) -> float:
        return self.vah - self.val


@dataclass(frozen=True)
class PricePosition:
    current_price: float
    position: str
    signal: str
    nearest_level: str
    nearest_distance_pct: float


@dataclass(frozen=True)
class MarketProfileFindings:
    profile: VolumeProfile
    value_area: ValueArea | None
    shape: str
    position: PricePosition | None
    single_prints: list[float] = field(default_factory=list)

    @property
    def poc(self) -> float | None:
        return self.value_area.poc if self.value_area else None


def tick_size_for(avg_price: float, default: float = 0.0001) -> float:
    if avg_price > 100:
        return 0.01
    if avg_price > 10:
        return 0.001
    return default


def build_profile(candles: Sequence[Candle], tick_size: float | None = None) -> VolumeProfile:
    """
    Distribute each bar's volume evenly over the price ticks it spans.

    Levels are tick-wide buckets keyed by their lower edge; a bar spanning
    `ceil(range / tick)` buckets puts that fraction of its volume in each.
    Zero volume counts as 1.
    """
    range_high = max(c.high for c in candles)
    range_low = min(c.low for c in candles)
    tick = tick_size or tick_size_for((range_high + range_low) / 2)

    base = math.floor(range_low / tick + _EPS)
    top = max(base + 1, math.ceil(range_high / tick - _EPS))
    volumes = np.zeros(top - base, dtype=np.float64)
    tpo = np.zeros(top - base, dtype=np.int64)

    for c in candles:
        lo = math.floor(c.low / tick + _EPS) - base
        hi = max(lo + 1, math.ceil(c.high / tick - _EPS) - base)
        hi = min(hi, len(volumes))
        lo = min(lo, hi - 1)
        volumes[lo:hi] += (c.volume or 1.0) / (hi - lo)
        tpo[lo:hi] += 1

    levels = [
        ProfileLevel(price=(base + k) * tick, tpo_count=int(tpo[k]), volume=float(volumes[k]))
        for k in range(len(volumes))
        if tpo[k] > 0
    ]
    return VolumeProfile(levels=levels, range_high=range_high, range_low=range_low, tick_size=tick)


def value_area(profile: VolumeProfile, percent: float = 0.70) -> ValueArea | None:
    """
    Expand from the POC toward the heavier neighbour (ties go up) until the
    accumulated volume reaches `percent` of the total.
    """
    levels = profile.levels
    if not levels:
        return None

    poc_index = max(range(len(levels)), key=lambda i: (levels[i].volume, -i))
    target = profile.total_volume * percent
    accumulated = levels[poc_index].volume
    upper = lower = poc_index
    last = len(levels) - 1

    while (accumulated < target or upper == lower) and (upper < last or lower > 0):
        up_vol = levels[upper + 1].volume if upper < last else 0.0
        down_vol = levels[lower - 1].volume if lower > 0 else 0.0
        if upper < last and (up_vol >= down_vol or lower == 0):
            upper += 1
            accumulated += levels[upper].volume
        else:
            lower -= 1
            accumulated += levels[lower].volume

    return ValueArea(
        vah=levels[upper].price,
        val=levels[lower].price,
        poc=levels[poc_index].price,
        poc_volume=levels[poc_index].volume,
        volume_in_area=accumulated,
    )


def profile_shape(profile: VolumeProfile, area: ValueArea | None) -> str:
    if area is None or len(profile.levels) < 5:
        return "unknown"

    rng = profile.range_high - profile.range_low
    if rng <= 0:
        return "unknown"
    middle = (profile.range_high + profile.range_low) / 2
    poc_position = (area.poc - profile.range_low) / rng
    percent_of_range = area.width / rng * 100

    upper = sum(l.volume for l in profile.levels if l.price > middle)
    lower = sum(l.volume for l in profile.levels if l.price <= middle)
    skew = upper / (lower or 1)

    if poc_position > 0.7:
        return "p_shape"
    if poc_position < 0.3:
        return "b_shape"
    if percent_of_range < 30:
        return "narrow"
    if percent_of_range > 70:
        return "wide"
    if skew > 1.5:
        return "skewed_up"
    if skew < 0.67:
        return "skewed_down"
    return "normal"


def single_prints(profile: VolumeProfile) -> list[float]:
    """Levels inside the profile range that only one bar traded through."""
    return [
        level.price
        for level in profile.levels[1:-1]
        if level.tpo_count == 1
    ]


def price_position(price: float, area: ValueArea) -> PricePosition:
    if price > area.vah:
        position, signal = "above_value_area", "bullish"
    elif price < area.val:
        position, signal = "below_value_area", "bearish"
    elif area.poc and abs(price - area.poc) / area.poc < 0.001:
        position, signal = "at_poc", "neutral"
    elif price > area.poc:
        position, signal = "above_poc", "slight_bullish"
    else:
        position, signal = "below_poc", "slight_bearish"

    name, level = min(
        (("POC", area.poc), ("VAH", area.vah), ("VAL", area.val)),
        key=lambda item: abs(price - item[1]),
    )
    distance_pct = abs(price - level) / price * 100 if price else 0.0
    return PricePosition(price, position, signal, name, distance_pct)


def profile_bias(position: PricePosition | None, shape: str) -> Bias:
    bullish = 0
    bearish = 0
    if position is not None:
        bullish += {"bullish": 2, "slight_bullish": 1}.get(position.signal, 0)
        bearish += {"bearish": 2, "slight_bearish": 1}.get(position.signal, 0)
    if shape in ("b_shape", "skewed_up"):
        bullish += 1
    elif shape in ("p_shape", "skewed_down"):
        bearish += 1
    return Bias.from_votes(bullish, bearish, margin=0)


def profile_score(shape: str, position: PricePosition | None) -> int:
    score = 50
    if shape != "unknown":
        score += 15
    if position is not None:
        if position.signal in ("bullish", "bearish"):
            score += 20
        elif position.signal in ("slight_bullish", "slight_bearish"):
            score += 10
        if position.nearest_distance_pct < 0.5:
            score += 15
    return clamp_score(score)


@register_analyzer(Domain.MARKET_PROFILE)
class MarketProfileAnalyzer(BaseAnalyzer):
    domain = Domain.MARKET_PROFILE

    def __init__(
        self,
        min_bars: int = 20,
        lookback: int = 20,
        value_area_percent: float = 0.70,
        tick_size: float | None = None,
    ):
        self.min_bars = min_bars
        self.lookback = lookback
        self.value_area_percent = value_area_percent
        self.tick_size = tick_size

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary[-self.lookback:]
        profile = build_profile(candles, self.tick_size)
        area = value_area(profile, self.value_area_percent)
        shape = profile_shape(profile, area)
        position = price_position(candles[-1].close, area) if area else None

        findings = MarketProfileFindings(
            profile=profile,
            value_area=area,
            shape=shape,
            position=position,
            single_prints=single_prints(profile),
        )
        return AnalyzerResult(
            domain=self.domain,
            score=profile_score(shape, position),
            bias=profile_bias(position, shape),
            findings=findings,
        )
