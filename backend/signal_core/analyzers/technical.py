"""Technical analysis: moving averages, oscillators, candle patterns, Fibonacci."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from signal_core.analyzers.base import BaseAnalyzer
from signal_core.analyzers.registry import register_analyzer
from signal_core.indicators import (
    BollingerBands,
    FibExtension,
    FibRetracement,
    MACDResult,
    atr,
    bollinger_bands,
    ema,
    fibonacci_extension,
    fibonacci_retracement,
    find_swing_points,
    macd,
    rsi,
)
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle, to_arrays
from signal_core.models.market import MultiTimeframeData

EMA_PERIODS = (9, 21, 50, 100, 200)
SQUEEZE_BANDWIDTH = 0.02


@dataclass(frozen=True)
class TrendInfo:
    direction: Bias = Bias.NEUTRAL
    strength: int = 0
    htf_alignment: bool = False
    ema_stack: Bias = Bias.NEUTRAL  # 9 > 21 > 50 bullish, 9 < 21 < 50 bearish


@dataclass(frozen=True)
class Momentum:
    rsi: float = 50.0
    macd: MACDResult = field(default_factory=MACDResult)
    aligned: bool = False

    @property
    def macd_bias(self) -> Bias:
        if self.macd.histogram > 0:
            return Bias.BULLISH
        if self.macd.histogram < 0:
            return Bias.BEARISH
        return Bias.NEUTRAL


@dataclass(frozen=True)
class Volatility:
    atr: float = 0.0
    bands: BollingerBands = field(default_factory=BollingerBands)
    squeeze: bool = False


@dataclass(frozen=True)
class CandlePattern:
    name: str
    bias: Bias
    reliability: int


@dataclass(frozen=True)
class Divergence:
    bias: Bias
    indicator: str
    description: str


@dataclass(frozen=True)
class SupportResistance:
    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class FibonacciAnalysis:
    retracement: FibRetracement
    extension: FibExtension
    current_price: float
    nearest_level: str
    nearest_price: float
    nearest_distance: float
    in_golden_zone: bool


@dataclass(frozen=True)
class TechnicalFindings:
    trend: TrendInfo
    momentum: Momentum
    volatility: Volatility
    emas: dict[int, float]
    patterns: list[CandlePattern]
    divergences: list[Divergence]
    levels: SupportResistance
    fibonacci: FibonacciAnalysis | None = None


# -- candle patterns ---------------------------------------------------------


def is_engulfing(prev: Candle, curr: Candle) -> bool:
    if curr.body_size <= prev.body_size:
        return False
    if prev.is_bearish and curr.is_bullish:
        return curr.open <= prev.close and curr.close >= prev.open
    if prev.is_bullish and curr.is_bearish:
        return curr.open >= prev.close and curr.close <= prev.open
    return False


def is_doji(candle: Candle) -> bool:
    return candle.range_size > 0 and candle.body_size / candle.range_size < 0.1


def is_hammer(candle: Candle) -> bool:
    body = candle.body_size
    return candle.lower_wick > body * 2 and candle.upper_wick < body * 0.5


def is_shooting_star(candle: Candle) -> bool:
    body = candle.body_size
    return candle.upper_wick > body * 2 and candle.lower_wick < body * 0.5


def is_pin_bar(candle: Candle) -> bool:
    rng = candle.range_size
    long_wick = max(candle.upper_wick, candle.lower_wick)
    return long_wick > rng * 0.6 and candle.body_size < rng * 0.3


def is_morning_star(first: Candle, second: Candle, third: Candle) -> bool:
    first_body = first.body_size
    first_bearish = first.is_bearish and first_body > first.range_size * 0.5
    second_small = second.body_size < first_body * 0.3
    third_bullish = third.is_bullish and third.body_size > first_body * 0.5
    closes_above_mid = third.close > (first.open + first.close) / 2
    return first_bearish and second_small and third_bullish and closes_above_mid


def is_evening_star(first: Candle, second: Candle, third: Candle) -> bool:
    first_body = first.body_size
    first_bullish = first.is_bullish and first_body > first.range_size * 0.5
    second_small = second.body_size < first_body * 0.3
    third_bearish = third.is_bearish and third.body_size > first_body * 0.5
    closes_below_mid = third.close < (first.open + first.close) / 2
    return first_bullish and second_small and third_bearish and closes_below_mid


def is_inside_bar(prev: Candle, curr: Candle) -> bool:
    return curr.high < prev.high and curr.low > prev.low


def detect_candle_patterns(candles: Sequence[Candle]) -> list[CandlePattern]:
    """Patterns formed by the last one to three bars."""
    if len(candles) < 3:
        return []

    prev2, prev, last = candles[-3], candles[-2], candles[-1]
    last_bias = Bias.BULLISH if last.is_bullish else Bias.BEARISH
    patterns: list[CandlePattern] = []

    if is_engulfing(prev, last):
        label = "Bullish Engulfing" if last.is_bullish else "Bearish Engulfing"
        patterns.append(CandlePattern(label, last_bias, 4))
    if is_doji(last):
        patterns.append(CandlePattern("Doji", Bias.NEUTRAL, 3))
    if is_hammer(last):
        patterns.append(CandlePattern("Hammer", Bias.BULLISH, 3))
    if is_shooting_star(last):
        patterns.append(CandlePattern("Shooting Star", Bias.BEARISH, 3))
    if is_pin_bar(last):
        patterns.append(CandlePattern("Pin Bar", last_bias, 4))
    if is_morning_star(prev2, prev, last):
        patterns.append(CandlePattern("Morning Star", Bias.BULLISH, 5))
    if is_evening_star(prev2, prev, last):
        patterns.append(CandlePattern("Evening Star", Bias.BEARISH, 5))
    if is_inside_bar(prev, last):
        patterns.append(CandlePattern("Inside Bar", Bias.NEUTRAL, 3))

    return patterns


# -- analysis pieces -----------------------------------------------------------


def analyze_trend(price: float, emas: dict[int, float]) -> TrendInfo:
    """Vote price against EMAs 9/21/50/200 plus the 9/21/50 stack (+2)."""
    bullish = 0
    bearish = 0
    for period in (9, 21, 50, 200):
        if price > emas[period]:
            bullish += 1
        else:
            bearish += 1

    ema_stack = Bias.NEUTRAL
    if emas[9] > emas[21] > emas[50]:
        bullish += 2
        ema_stack = Bias.BULLISH
    elif emas[9] < emas[21] < emas[50]:
        bearish += 2
        ema_stack = Bias.BEARISH

    direction = Bias.from_votes(bullish, bearish)
    return TrendInfo(
        direction=direction,
        strength=round(abs(bullish - bearish) / 6 * 100),
        htf_alignment=direction != Bias.NEUTRAL,
        ema_stack=ema_stack,
    )


def detect_divergences(candles: Sequence[Candle], rsi_values: np.ndarray) -> list[Divergence]:
    """Compare the last 10 bars against the 10 before them."""
    if len(candles) < 20 or len(rsi_values) < 20:
        return []

    recent, prior = candles[-10:], candles[-20:-10]
    rsi_recent, rsi_prior = rsi_values[-10:], rsi_values[-20:-10]
    divergences: list[Divergence] = []

    if max(c.high for c in recent) > max(c.high for c in prior) and rsi_recent.max() < rsi_prior.max():
        divergences.append(Divergence(
            Bias.BEARISH,
            "RSI",
            "Bearish divergence - price making higher highs while RSI making lower highs",
        ))
    if min(c.low for c in recent) < min(c.low for c in prior) and rsi_recent.min() > rsi_prior.min():
        divergences.append(Divergence(
            Bias.BULLISH,
            "RSI",
            "Bullish divergence - price making lower lows while RSI making higher lows",
        ))
    return divergences


def momentum_aligned(rsi_value: float, macd_result: MACDResult, direction: Bias) -> bool:
    if direction == Bias.BULLISH:
        return rsi_value > 50 and macd_result.histogram > 0
    if direction == Bias.BEARISH:
        return rsi_value < 50 and macd_result.histogram < 0
    return False


def support_resistance(candles: Sequence[Candle], max_levels: int = 3) -> SupportResistance:
    """Nearest swing lows below and swing highs above the last close."""
    swings = find_swing_points(candles)
    price = candles[-1].close
    support = sorted((p.price for p in swings.lows if p.price < price), reverse=True)
    resistance = sorted(p.price for p in swings.highs if p.price > price)
    return SupportResistance(support=support[:max_levels], resistance=resistance[:max_levels])


def auto_fibonacci(candles: Sequence[Candle], lookback: int = 50) -> FibonacciAnalysis | None:
    """Fibonacci grid over the extreme high and low of the last `lookback` bars."""
    if len(candles) < lookback:
        return None

    recent = candles[-lookback:]
    high_idx = max(range(len(recent)), key=lambda i: (recent[i].high, -i))
    low_idx = min(range(len(recent)), key=lambda i: (recent[i].low, i))
    swing_high = recent[high_idx].high
    swing_low = recent[low_idx].low

    direction = Bias.BULLISH if low_idx < high_idx else Bias.BEARISH
    price = recent[-1].close
    retracement = fibonacci_retracement(swing_high, swing_low, direction)
    extension = fibonacci_extension(swing_high, swing_low, price, direction)

    level, level_price = min(retracement.levels.items(), key=lambda kv: abs(price - kv[1]))
    return FibonacciAnalysis(
        retracement=retracement,
        extension=extension,
        current_price=price,
        nearest_level=level,
        nearest_price=level_price,
        nearest_distance=abs(price - level_price),
        in_golden_zone=retracement.in_golden_zone(price),
    )


def technical_bias(trend: TrendInfo, rsi_value: float, macd_result: MACDResult) -> Bias:
    bullish = 0
    bearish = 0
    if trend.direction == Bias.BULLISH:
        bullish += 2
    elif trend.direction == Bias.BEARISH:
        bearish += 2
    if rsi_value > 50:
        bullish += 1
    elif rsi_value < 50:
        bearish += 1
    if macd_result.histogram > 0:
        bullish += 1
    elif macd_result.histogram < 0:
        bearish += 1
    return Bias.from_votes(bullish, bearish)


def technical_score(
    trend: TrendInfo,
    rsi_value: float,
    macd_result: MACDResult,
    patterns: list[CandlePattern],
) -> int:
    score = 50 + trend.strength * 0.3
    if 30 < rsi_value < 70:
        score += 10
    if macd_result.histogram != 0:
        score += 10
    score += len(patterns) * 5
    return clamp_score(score)


@register_analyzer(Domain.TECHNICAL)
class TechnicalAnalyzer(BaseAnalyzer):
    """EMA trend, RSI, MACD, Bollinger, ATR, candle patterns and Fibonacci on H1."""

    domain = Domain.TECHNICAL

    def __init__(
        self,
        min_bars: int = 200,
        rsi_period: int = 14,
        atr_period: int = 14,
        bb_period: int = 20,
        bb_std_dev: float = 2.0,
        fib_lookback: int = 50,
    ):
        self.min_bars = min_bars
        self.rsi_period = rsi_period
        self.atr_period = atr_period
        self.bb_period = bb_period
        self.bb_std_dev = bb_std_dev
        self.fib_lookback = fib_lookback

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary
        arrays = to_arrays(candles)
        closes = arrays.close

        emas = {}
        for period in EMA_PERIODS:
            values = ema(closes, period)
            emas[period] = float(values[-1]) if len(values) else float(closes[-1])

        rsi_values = rsi(closes, self.rsi_period)
        last_rsi = float(rsi_values[-1]) if len(rsi_values) else 50.0
        macd_result = macd(closes)
        bands = bollinger_bands(closes, self.bb_period, self.bb_std_dev)
        atr_values = atr(arrays.high, arrays.low, closes, self.atr_period)
        last_atr = float(atr_values[-1]) if len(atr_values) else 0.0

        trend = analyze_trend(float(closes[-1]), emas)
        patterns = detect_candle_patterns(candles)

        findings = TechnicalFindings(
            trend=trend,
            momentum=Momentum(
                rsi=last_rsi,
                macd=macd_result,
                aligned=momentum_aligned(last_rsi, macd_result, trend.direction),
            ),
            volatility=Volatility(
                atr=last_atr,
                bands=bands,
                squeeze=bands.middle != 0 and bands.bandwidth < SQUEEZE_BANDWIDTH,
            ),
            emas=emas,
            patterns=patterns,
            divergences=detect_divergences(candles, rsi_values),
            levels=support_resistance(candles),
            fibonacci=auto_fibonacci(candles, self.fib_lookback),
        )
        return AnalyzerResult(
            domain=self.domain,
            score=technical_score(trend, last_rsi, macd_result, patterns),
            bias=technical_bias(trend, last_rsi, macd_result),
            findings=findings,
        )
