"""Order flow estimated from OHLCV: delta, absorption, exhaustion, imbalances."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from signal_core.analyzers.base import BaseAnalyzer, SignalVote
from signal_core.analyzers.registry import register_analyzer
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData


def bar_delta(candle: Candle) -> tuple[float, float]:
    """Split a bar's volume into (buy, sell) by where it closed in its range."""
    buy_share = candle.close_position
    return candle.volume * buy_share, candle.volume * (1 - buy_share)


def _trend(candles: Sequence[Candle], threshold: float = 0.001) -> str:
    if len(candles) < 2 or candles[0].close == 0:
        return "neutral"
    change = (candles[-1].close - candles[0].close) / candles[0].close
    if change > threshold:
        return "up"
    if change < -threshold:
        return "down"
    return "neutral"


@dataclass(frozen=True)
class Delta:
    value: float = 0.0  # (buy - sell) / total, in [-1, 1]
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    bias: Bias = Bias.NEUTRAL


@dataclass(frozen=True)
class CumulativeDelta:
    current: float = 0.0
    history: list[float] = field(default_factory=list)
    trend: str = "neutral"


@dataclass(frozen=True)
class FlowEvent:
    kind: str
    bias: Bias
    index: int
    timestamp: datetime
    price: float
    strength: float


@dataclass(frozen=True)
class FlowPatterns:
    events: list[FlowEvent] = field(default_factory=list)

    @property
    def detected(self) -> bool:
        return bool(self.events)

    @property
    def latest(self) -> FlowEvent | None:
        return self.events[-1] if self.events else None


@dataclass(frozen=True)
class OrderFlowFindings:
    delta: Delta
    cumulative_delta: CumulativeDelta
    absorption: FlowPatterns
    exhaustion: FlowPatterns
    imbalances: FlowPatterns
    signal: SignalVote
    delta_confirmation: bool = False


def calculate_delta(candles: Sequence[Candle], threshold: float = 0.6, lookback: int = 20) -> Delta:
    buy = 0.0
    sell = 0.0
    for c in candles[-lookback:]:
        b, s = bar_delta(c)
        buy += b
        sell += s
    total = buy + sell
    value = (buy - sell) / total if total > 0 else 0.0
    if value > threshold:
        bias = Bias.BULLISH
    elif value < -threshold:
        bias = Bias.BEARISH
    else:
        bias = Bias.NEUTRAL
    return Delta(value, buy, sell, bias)


def cumulative_delta(candles: Sequence[Candle], keep: int = 50) -> CumulativeDelta:
    running = 0.0
    history: list[float] = []
    deltas: list[float] = []
    for c in candles:
        b, s = bar_delta(c)
        deltas.append(b - s)
        running += b - s
        history.append(running)

    trend = "neutral"
    if len(history) >= 10:
        change = history[-1] - history[-10]
        avg = sum(abs(d) for d in deltas[-10:]) / 10
        if change > avg * 2:
            trend = "rising"
        elif change < -avg * 2:
            trend = "falling"
    return CumulativeDelta(current=running, history=history[-keep:], trend=trend)


def _avg_volume(candles: Sequence[Candle]) -> float:
    if not candles:
        return 0.0
    return sum(c.volume for c in candles) / len(candles)


def detect_absorption(candles: Sequence[Candle], min_volume: float = 1.5, keep: int = 5) -> FlowPatterns:
    """
    Heavy volume that fails to move price (body under 30% of range).

    After an up-move the absorbed side is the sellers' (bullish), and vice
    versa.
    """
    avg = _avg_volume(candles)
    events: list[FlowEvent] = []
    if avg <= 0:
        return FlowPatterns()
    for i in range(5, len(candles)):
        c = candles[i]
        body_ratio = c.body_size / c.range_size if c.range_size > 0 else 0.0
        if c.volume > avg * min_volume and body_ratio < 0.3:
            prior = _trend(candles[i - 5:i])
            if prior == "up":
                events.append(FlowEvent("selling_absorbed", Bias.BULLISH, i, c.timestamp, c.close, c.volume / avg))
            else:
                events.append(FlowEvent("buying_absorbed", Bias.BEARISH, i, c.timestamp, c.close, c.volume / avg))
    return FlowPatterns(events[-keep:])


def detect_exhaustion(candles: Sequence[Candle], threshold: float = 2.0, keep: int = 3) -> FlowPatterns:
    """Climactic volume on a bar that reverses the prior ten-bar move."""
    avg = _avg_volume(candles)
    events: list[FlowEvent] = []
    if avg <= 0:
        return FlowPatterns()
    for i in range(10, len(candles)):
        c = candles[i]
        if c.volume <= avg * threshold:
            continue
        prior = _trend(candles[i - 10:i])
        if prior == "up" and c.is_bearish:
            events.append(FlowEvent("buying_exhaustion", Bias.BEARISH, i, c.timestamp, c.close, c.volume / avg))
        elif prior == "down" and c.is_bullish:
            events.append(FlowEvent("selling_exhaustion", Bias.BULLISH, i, c.timestamp, c.close, c.volume / avg))
    return FlowPatterns(events[-keep:])


def detect_imbalances(candles: Sequence[Candle], ratio: float = 3.0, lookback: int = 20, keep: int = 5) -> FlowPatterns:
    """Bars whose estimated buy volume outweighs sell volume `ratio` to one (or the reverse)."""
    events: list[FlowEvent] = []
    start = max(0, len(candles) - lookback)
    for i in range(start, len(candles)):
        c = candles[i]
        if c.volume <= 0:
            continue
        buy, sell = bar_delta(c)
        if buy > sell * ratio:
            events.append(FlowEvent("buy_imbalance", Bias.BULLISH, i, c.timestamp, c.close, buy / (sell or 1)))
        elif sell > buy * ratio:
            events.append(FlowEvent("sell_imbalance", Bias.BEARISH, i, c.timestamp, c.close, sell / (buy or 1)))
    return FlowPatterns(events[-keep:])


def flow_signal(delta: Delta, absorption: FlowPatterns, exhaustion: FlowPatterns, imbalances: FlowPatterns) -> SignalVote:
    bullish = 0
    bearish = 0
    for bias, weight in (
        (delta.bias, 30),
        (absorption.latest.bias if absorption.latest else None, 25),
        (exhaustion.latest.bias if exhaustion.latest else None, 25),
        (imbalances.latest.bias if imbalances.latest else None, 20),
    ):
        if bias == Bias.BULLISH:
            bullish += weight
        elif bias == Bias.BEARISH:
            bearish += weight

    return SignalVote.from_scores(bullish, bearish, margin=20)


def delta_confirms(delta: Delta, candles: Sequence[Candle], lookback: int = 20) -> bool:
    """Delta bias agrees with the net price move over the same window."""
    price = _trend(candles[-lookback:])
    return (delta.bias == Bias.BULLISH and price == "up") or (delta.bias == Bias.BEARISH and price == "down")


def order_flow_score(delta: Delta, absorption: FlowPatterns, exhaustion: FlowPatterns, imbalances: FlowPatterns) -> int:
    score = 50 + abs(delta.value) * 20
    score += len(absorption.events) * 5
    score += len(exhaustion.events) * 10
    score += len(imbalances.events) * 5
    return clamp_score(score)


@register_analyzer(Domain.ORDER_FLOW)
class OrderFlowAnalyzer(BaseAnalyzer):
    domain = Domain.ORDER_FLOW

    def __init__(
        self,
        min_bars: int = 20,
        delta_threshold: float = 0.6,
        absorption_min_volume: float = 1.5,
        exhaustion_threshold: float = 2.0,
        imbalance_ratio: float = 3.0,
    ):
        self.min_bars = min_bars
        self.delta_threshold = delta_threshold
        self.absorption_min_volume = absorption_min_volume
        self.exhaustion_threshold = exhaustion_threshold
        self.imbalance_ratio = imbalance_ratio

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary
        delta = calculate_delta(candles, self.delta_threshold)
        absorption = detect_absorption(candles, self.absorption_min_volume)
        exhaustion = detect_exhaustion(candles, self.exhaustion_threshold)
        imbalances = detect_imbalances(candles, self.imbalance_ratio)
        signal = flow_signal(delta, absorption, exhaustion, imbalances)

        findings = OrderFlowFindings(
            delta=delta,
            cumulative_delta=cumulative_delta(candles),
            absorption=absorption,
            exhaustion=exhaustion,
            imbalances=imbalances,
            signal=signal,
            delta_confirmation=delta_confirms(delta, candles),
        )
        return AnalyzerResult(
            domain=self.domain,
            score=order_flow_score(delta, absorption, exhaustion, imbalances),
            bias=signal.bias,
            findings=findings,
        )
