"""Smart Money Concepts: order blocks, fair value gaps, liquidity, structure."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from signal_core.analyzers.base import BaseAnalyzer
from signal_core.analyzers.registry import register_analyzer
from signal_core.indicators import SwingPoint, SwingPoints, find_swing_points
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MultiTimeframeData

EQUAL_LEVEL_TOLERANCE = 0.0002  # relative, roughly 2 pips on majors


@dataclass(frozen=True)
class OrderBlock:
    bias: Bias
    high: float
    low: float
    open: float
    close: float
    index: int
    timestamp: datetime
    strength: int
    mitigated: bool = False

    @property
    def midpoint(self) -> float:
        return (self.high + self.low) / 2


@dataclass(frozen=True)
class FairValueGap:
    bias: Bias
    high: float
    low: float
    index: int
    timestamp: datetime
    filled: bool = False

    @property
    def size(self) -> float:
        return self.high - self.low

    @property
    def midpoint(self) -> float:
        return (self.high + self.low) / 2


@dataclass(frozen=True)
class LiquidityLevel:
    price: float
    touches: int
    kind: str  # "buy_stops" above equal highs, "sell_stops" below equal lows


@dataclass(frozen=True)
class StopHunt:
    bias: Bias
    sweep_price: float
    close_price: float
    index: int


@dataclass(frozen=True)
class LiquidityZones:
    equal_highs: list[LiquidityLevel] = field(default_factory=list)
    equal_lows: list[LiquidityLevel] = field(default_factory=list)
    stop_hunts: list[StopHunt] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.equal_highs) + len(self.equal_lows)


@dataclass(frozen=True)
class StructureBreak:
    kind: str  # "BOS" or "CHoCH"
    bias: Bias
    broken_level: float
    break_price: float
    index: int


@dataclass(frozen=True)
class MarketStructure:
    swings: SwingPoints = field(default_factory=SwingPoints)
    bos: list[StructureBreak] = field(default_factory=list)
    choch: list[StructureBreak] = field(default_factory=list)
    trend: Bias = Bias.NEUTRAL

    @property
    def last_swing_high(self) -> SwingPoint | None:
        return self.swings.last_high

    @property
    def last_swing_low(self) -> SwingPoint | None:
        return self.swings.last_low

    @property
    def swing_count(self) -> int:
        return len(self.swings.highs) + len(self.swings.lows)

    @property
    def last_break(self) -> StructureBreak | None:
        breaks = sorted(self.bos + self.choch, key=lambda b: b.index)
        return breaks[-1] if breaks else None


@dataclass(frozen=True)
class PremiumDiscount:
    range_high: float
    range_low: float
    equilibrium: float
    current_price: float
    position: int  # percent of range
    zone: str


@dataclass(frozen=True)
class OTEZone:
    bias: Bias
    high: float
    low: float
    swing_high: float
    swing_low: float
    in_zone: bool

    @property
    def midpoint(self) -> float:
        return (self.high + self.low) / 2


@dataclass(frozen=True)
class SMCFindings:
    order_blocks: list[OrderBlock]
    fvgs: list[FairValueGap]
    liquidity: LiquidityZones
    structure: MarketStructure
    premium_discount: PremiumDiscount | None
    ote_zone: OTEZone | None = None


def _ob_strength(ob: Candle, next1: Candle, next2: Candle) -> int:
    move = next1.body_size + next2.body_size
    ratio = move / (ob.body_size or 1)
    return min(100, round(ratio * 20))


def _ob_mitigated(candles: Sequence[Candle], index: int, bias: Bias) -> bool:
    level = candles[index]
    for later in candles[index + 3:]:
        if bias == Bias.BULLISH and later.low < level.low:
            return True
        if bias == Bias.BEARISH and later.high > level.high:
            return True
    return False


def detect_order_blocks(candles: Sequence[Candle], lookback: int = 50, limit: int = 5) -> list[OrderBlock]:
    """
    Last opposite candle before a strong two-bar move.

    The two following bodies must exceed twice the candle's body. Returns the
    strongest unmitigated blocks, at most `limit`.
    """
    lookback = min(lookback, len(candles) - 3)
    blocks: list[OrderBlock] = []

    for i in range(len(candles) - lookback, len(candles) - 2):
        curr, next1, next2 = candles[i], candles[i + 1], candles[i + 2]
        significant = (next1.body_size + next2.body_size) > curr.body_size * 2
        if not significant:
            continue

        bias = None
        if curr.is_bearish and next1.is_bullish and next2.is_bullish:
            bias = Bias.BULLISH
        elif curr.is_bullish and next1.is_bearish and next2.is_bearish:
            bias = Bias.BEARISH
        if bias is None:
            continue

        blocks.append(OrderBlock(
            bias=bias,
            high=curr.high,
            low=curr.low,
            open=curr.open,
            close=curr.close,
            index=i,
            timestamp=curr.timestamp,
            strength=_ob_strength(curr, next1, next2),
            mitigated=_ob_mitigated(candles, i, bias),
        ))

    active = [ob for ob in blocks if not ob.mitigated]
    active.sort(key=lambda ob: ob.strength, reverse=True)
    return active[:limit]


def detect_fvgs(candles: Sequence[Candle], min_size: float = 0.0005, limit: int = 10) -> list[FairValueGap]:
    """
    Three-bar imbalances whose gap is at least `min_size` of the middle bar's
    mid price. A gap is filled once any later bar trades back to its far edge.
    Returns unfilled gaps, newest first.
    """
    gaps: list[FairValueGap] = []

    for i in range(2, len(candles)):
        c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
        min_gap = c2.mid_price * min_size

        if c3.low > c1.high and c3.low - c1.high >= min_gap:
            low = c1.high
            filled = any(later.low <= low for later in candles[i + 1:])
            gaps.append(FairValueGap(Bias.BULLISH, c3.low, low, i, c3.timestamp, filled))

        if c1.low > c3.high and c1.low - c3.high >= min_gap:
            high = c1.low
            filled = any(later.high >= high for later in candles[i + 1:])
            gaps.append(FairValueGap(Bias.BEARISH, high, c3.high, i, c3.timestamp, filled))

    unfilled = [g for g in gaps if not g.filled]
    return list(reversed(unfilled[-limit:]))


def _equal_levels(prices: list[float], kind: str) -> list[LiquidityLevel]:
    levels: list[LiquidityLevel] = []
    for price in prices:
        if price == 0:
            continue
        touches = sum(1 for p in prices if abs(p - price) / price < EQUAL_LEVEL_TOLERANCE)
        if touches < 2:
            continue
        if any(abs(z.price - price) / price < EQUAL_LEVEL_TOLERANCE for z in levels):
            continue
        levels.append(LiquidityLevel(price=price, touches=touches, kind=kind))
    return levels


def detect_liquidity(candles: Sequence[Candle], lookback: int = 100) -> LiquidityZones:
    """Equal highs/lows (resting stops) and sweep-and-reverse stop hunts."""
    recent = list(candles[-lookback:])

    hunts: list[StopHunt] = []
    for i in range(2, len(recent)):
        prev, curr = recent[i - 1], recent[i]
        window = recent[max(0, i - 10):i]
        if curr.low < min(c.low for c in window) and curr.close > prev.close:
            hunts.append(StopHunt(Bias.BULLISH, curr.low, curr.close, i))
        if curr.high > max(c.high for c in window) and curr.close < prev.close:
            hunts.append(StopHunt(Bias.BEARISH, curr.high, curr.close, i))

    return LiquidityZones(
        equal_highs=_equal_levels([c.high for c in recent], "buy_stops"),
        equal_lows=_equal_levels([c.low for c in recent], "sell_stops"),
        stop_hunts=hunts,
    )


def detect_bos(swings: SwingPoints) -> list[StructureBreak]:
    """Successive higher swing highs (bullish) or lower swing lows (bearish)."""
    events: list[StructureBreak] = []
    for prev, curr in zip(swings.highs, swings.highs[1:]):
        if curr.price > prev.price:
            events.append(StructureBreak("BOS", Bias.BULLISH, prev.price, curr.price, curr.index))
    for prev, curr in zip(swings.lows, swings.lows[1:]):
        if curr.price < prev.price:
            events.append(StructureBreak("BOS", Bias.BEARISH, prev.price, curr.price, curr.index))
    events.sort(key=lambda e: e.index)
    return events


def detect_choch(swings: SwingPoints) -> list[StructureBreak]:
    """
    Four alternating swings where the trend flips.

    low, high, lower low, higher high -> bullish; high, low, higher high,
    lower low -> bearish.
    """
    if len(swings.highs) < 2 or len(swings.lows) < 2:
        return []

    merged = swings.merged()
    events: list[StructureBreak] = []
    for i in range(3, len(merged)):
        (k1, s1), (k2, s2), (k3, s3), (k4, s4) = merged[i - 3:i + 1]
        if (k1, k2, k3, k4) == ("low", "high", "low", "high"):
            if s3.price < s1.price and s4.price > s2.price:
                events.append(StructureBreak("CHoCH", Bias.BULLISH, s2.price, s4.price, s4.index))
        elif (k1, k2, k3, k4) == ("high", "low", "high", "low"):
            if s3.price > s1.price and s4.price < s2.price:
                events.append(StructureBreak("CHoCH", Bias.BEARISH, s2.price, s4.price, s4.index))
    return events


def analyze_structure(candles: Sequence[Candle], lookback: int = 5) -> MarketStructure:
    """Swings, BOS and CHoCH; the trend follows the last BOS unless a CHoCH exists."""
    swings = find_swing_points(candles, lookback)
    bos = detect_bos(swings)
    choch = detect_choch(swings)

    trend = Bias.NEUTRAL
    if bos:
        trend = bos[-1].bias
    if choch:
        trend = choch[-1].bias
    return MarketStructure(swings=swings, bos=bos, choch=choch, trend=trend)


def premium_discount(candles: Sequence[Candle], lookback: int = 50) -> PremiumDiscount | None:
    recent = candles[-lookback:]
    range_high = max(c.high for c in recent)
    range_low = min(c.low for c in recent)
    rng = range_high - range_low
    price = candles[-1].close
    if rng <= 0:
        return None

    position = (price - range_low) / rng
    if position > 0.7:
        zone = "premium"
    elif position > 0.5:
        zone = "slight_premium"
    elif position < 0.3:
        zone = "discount"
    elif position < 0.5:
        zone = "slight_discount"
    else:
        zone = "equilibrium"

    return PremiumDiscount(
        range_high=range_high,
        range_low=range_low,
        equilibrium=(range_high + range_low) / 2,
        current_price=price,
        position=round(position * 100),
        zone=zone,
    )


def ote_zone(candles: Sequence[Candle], structure: MarketStructure) -> OTEZone | None:
    """61.8%-78.6% retracement of the leg between the last swing high and low."""
    high, low = structure.last_swing_high, structure.last_swing_low
    if high is None or low is None:
        return None

    rng = high.price - low.price
    if high.index > low.index:
        bias = Bias.BULLISH
        a, b = high.price - rng * 0.618, high.price - rng * 0.786
    else:
        bias = Bias.BEARISH
        a, b = low.price + rng * 0.618, low.price + rng * 0.786

    zone_low, zone_high = min(a, b), max(a, b)
    price = candles[-1].close
    return OTEZone(
        bias=bias,
        high=zone_high,
        low=zone_low,
        swing_high=high.price,
        swing_low=low.price,
        in_zone=zone_low <= price <= zone_high,
    )


def smc_score(
    order_blocks: list[OrderBlock],
    fvgs: list[FairValueGap],
    liquidity: LiquidityZones,
    structure: MarketStructure,
    zone: PremiumDiscount | None,
) -> int:
    score = 50
    score += min(20, 5 * sum(1 for ob in order_blocks if ob.strength > 60))
    score += min(15, 3 * len(fvgs))
    score += min(15, 3 * liquidity.count)
    if structure.bos:
        score += 5
    if structure.choch:
        score += 10
    if zone is not None:
        if zone.zone in ("premium", "discount"):
            score += 10
        elif zone.zone in ("slight_premium", "slight_discount"):
            score += 5
    return clamp_score(score)


@register_analyzer(Domain.SMC)
class SMCAnalyzer(BaseAnalyzer):
    """Institutional footprints on the H1 series."""

    domain = Domain.SMC

    def __init__(
        self,
        min_bars: int = 50,
        order_block_lookback: int = 50,
        fvg_min_size: float = 0.0005,
        liquidity_lookback: int = 100,
        structure_lookback: int = 50,
        swing_lookback: int = 5,
    ):
        self.min_bars = min_bars
        self.order_block_lookback = order_block_lookback
        self.fvg_min_size = fvg_min_size
        self.liquidity_lookback = liquidity_lookback
        self.structure_lookback = structure_lookback
        self.swing_lookback = swing_lookback

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        candles = data.primary

        order_blocks = detect_order_blocks(candles, self.order_block_lookback)
        fvgs = detect_fvgs(candles, self.fvg_min_size)
        liquidity = detect_liquidity(candles, self.liquidity_lookback)
        structure = analyze_structure(candles, self.swing_lookback)
        zone = premium_discount(candles, self.structure_lookback)

        findings = SMCFindings(
            order_blocks=order_blocks,
            fvgs=fvgs,
            liquidity=liquidity,
            structure=structure,
            premium_discount=zone,
            ote_zone=ote_zone(candles, structure),
        )
        return AnalyzerResult(
            domain=self.domain,
            score=smc_score(order_blocks, fvgs, liquidity, structure, zone),
            bias=structure.trend,
            findings=findings,
        )
