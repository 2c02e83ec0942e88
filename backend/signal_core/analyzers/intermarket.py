"""Intermarket relationships: dollar index, treasury yields, risk sentiment."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from signal_core.analyzers.base import BaseAnalyzer, SignalVote
from signal_core.analyzers.registry import register_analyzer
from signal_core.indicators import pearson_correlation, percent_change
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle
from signal_core.models.market import MarketContext, MultiTimeframeData

# Expected correlation of each instrument with DXY, the 10Y yield and gold
CORRELATION_MAP: dict[str, dict[str, float]] = {
    "EURUSD": {"DXY": -0.95, "US10Y": -0.3, "GOLD": 0.4},
    "GBPUSD": {"DXY": -0.85, "US10Y": -0.25, "GOLD": 0.3},
    "USDJPY": {"DXY": 0.7, "US10Y": 0.6, "GOLD": -0.4},
    "USDCHF": {"DXY": 0.9, "US10Y": 0.3, "GOLD": -0.5},
    "AUDUSD": {"DXY": -0.8, "US10Y": -0.2, "GOLD": 0.5},
    "NZDUSD": {"DXY": -0.75, "US10Y": -0.2, "GOLD": 0.4},
    "USDCAD": {"DXY": 0.6, "US10Y": 0.2, "GOLD": -0.3},
    "XAUUSD": {"DXY": -0.85, "US10Y": -0.5, "GOLD": 1.0},
    "XAGUSD": {"DXY": -0.75, "US10Y": -0.4, "GOLD": 0.9},
}

RISK_CURRENCIES = ("AUD", "NZD", "CAD")
SAFE_CURRENCIES = ("JPY", "CHF")


def price_trend(candles: Sequence[Candle], window: int = 10, threshold: float = 0.002) -> str:
    if len(candles) < 5:
        return "sideways"
    recent = candles[-window:]
    first, last = recent[0].close, recent[-1].close
    if first == 0:
        return "sideways"
    change = (last - first) / first
    if change > threshold:
        return "up"
    if change < -threshold:
        return "down"
    return "sideways"


@dataclass(frozen=True)
class DXYImpact:
    current: float | None = None
    change: float = 0.0  # percent over the window
    trend: str = "unknown"
    impact: Bias = Bias.NEUTRAL
    expected_correlation: float = 0.0


@dataclass(frozen=True)
class YieldsImpact:
    us10y: float | None = None
    us2y: float | None = None
    change: float = 0.0  # percentage points over the window
    trend: str = "unknown"
    impact: Bias = Bias.NEUTRAL
    expected_correlation: float = 0.0

    @property
    def spread(self) -> float | None:
        if self.us10y is None:
            return None
        return self.us10y - (self.us2y or 0.0)

    @property
    def curve(self) -> str | None:
        spread = self.spread
        if spread is None:
            return None
        return "normal" if spread > 0 else "inverted"


@dataclass(frozen=True)
class IntermarketDivergence:
    kind: str
    expected: str
    actual: str
    significance: float
    implication: Bias


@dataclass(frozen=True)
class RiskSentiment:
    sentiment: str = "neutral"  # risk_on / risk_off / neutral
    risk_on_score: int = 0
    risk_off_score: int = 0
    vix: float | None = None


@dataclass(frozen=True)
class IntermarketFindings:
    dxy: DXYImpact
    yields: YieldsImpact
    correlations: dict[str, float]
    divergences: list[IntermarketDivergence]
    risk: RiskSentiment
    signal: SignalVote = field(default_factory=SignalVote)

    @property
    def has_divergence(self) -> bool:
        return bool(self.divergences)


def _window_change(candles: Sequence[Candle], window: int) -> tuple[float, float]:
    recent = candles[-window:]
    return recent[0].close, recent[-1].close


def analyze_dxy(symbol: str, dxy: Sequence[Candle], window: int = 10) -> DXYImpact:
    expected = CORRELATION_MAP.get(symbol, {}).get("DXY", 0.0)
    if not dxy:
        return DXYImpact(expected_correlation=expected)

    first, last = _window_change(dxy, window)
    change = percent_change(first, last)
    trend = "up" if change > 0.1 else "down" if change < -0.1 else "sideways"

    impact = Bias.NEUTRAL
    if trend != "sideways":
        dxy_up = trend == "up"
        if expected < -0.5:
            impact = Bias.BEARISH if dxy_up else Bias.BULLISH
        elif expected > 0.5:
            impact = Bias.BULLISH if dxy_up else Bias.BEARISH
    return DXYImpact(last, change, trend, impact, expected)


def analyze_yields(symbol: str, us10y: Sequence[Candle], us2y: Sequence[Candle], window: int = 10) -> YieldsImpact:
    expected = CORRELATION_MAP.get(symbol, {}).get("US10Y", 0.0)
    if not us10y:
        return YieldsImpact(expected_correlation=expected)

    first, last = _window_change(us10y, window)
    change = last - first
    trend = "rising" if change > 0.02 else "falling" if change < -0.02 else "stable"

    impact = Bias.NEUTRAL
    if trend != "stable":
        rising = trend == "rising"
        if expected > 0.3:
            impact = Bias.BULLISH if rising else Bias.BEARISH
        elif expected < -0.3:
            impact = Bias.BEARISH if rising else Bias.BULLISH
    return YieldsImpact(
        us10y=last,
        us2y=us2y[-1].close if us2y else None,
        change=change,
        trend=trend,
        impact=impact,
        expected_correlation=expected,
    )


def live_correlations(
    symbol: str,
    candles: Sequence[Candle],
    related: dict[str, list[Candle]],
    period: int = 20,
) -> dict[str, float]:
    """Pearson correlation of the last `period` closes; the expected map when data is short."""
    if len(candles) < period:
        return dict(CORRELATION_MAP.get(symbol, {}))
    own = [c.close for c in candles[-period:]]
    correlations: dict[str, float] = {}
    for name in ("DXY", "GOLD"):
        other = related.get(name, [])
        if len(other) >= period:
            correlations[name] = pearson_correlation(own, [c.close for c in other[-period:]])
    return correlations


def detect_divergences(
    symbol: str,
    candles: Sequence[Candle],
    dxy: DXYImpact,
    yields: YieldsImpact,
) -> list[IntermarketDivergence]:
    """Instrument moving against the direction its DXY / yields correlation implies."""
    expected = CORRELATION_MAP.get(symbol, {})
    actual = price_trend(candles)
    if actual == "sideways":
        return []

    divergences: list[IntermarketDivergence] = []
    dxy_corr = expected.get("DXY", 0.0)
    if dxy_corr and dxy.trend in ("up", "down"):
        if dxy_corr < 0:
            want = "down" if dxy.trend == "up" else "up"
        else:
            want = dxy.trend
        if actual != want:
            divergences.append(
                IntermarketDivergence(
                    kind="DXY_DIVERGENCE",
                    expected=want,
                    actual=actual,
                    significance=abs(dxy_corr),
                    implication=Bias.BEARISH if actual == "up" else Bias.BULLISH,
                )
            )

    yields_corr = expected.get("US10Y", 0.0)
    if "USD" in symbol and abs(yields_corr) > 0.3 and yields.trend in ("rising", "falling"):
        rising = yields.trend == "rising"
        want = "up" if (yields_corr > 0) == rising else "down"
        if actual != want:
            divergences.append(
                IntermarketDivergence(
                    kind="YIELDS_DIVERGENCE",
                    expected=want,
                    actual=actual,
                    significance=abs(yields_corr),
                    implication=Bias.NEUTRAL,
                )
            )
    return divergences


def risk_sentiment(related: dict[str, list[Candle]]) -> RiskSentiment:
    risk_on = 0
    risk_off = 0

    vix_series = related.get("VIX", [])
    vix = vix_series[-1].close if vix_series else None
    if vix is not None:
        if vix < 15:
            risk_on += 30
        elif vix > 25:
            risk_off += 30
        else:
            risk_on += 15

    trends = {name: price_trend(related.get(name, [])) for name in ("SP500", "GOLD", "USDJPY", "USDCHF")}
    if trends["SP500"] == "up":
        risk_on += 25
    elif trends["SP500"] == "down":
        risk_off += 25
    # Gold, JPY and CHF are safe havens
    if trends["GOLD"] == "up":
        risk_off += 20
    elif trends["GOLD"] == "down":
        risk_on += 20
    if trends["USDJPY"] == "up":
        risk_on += 15
    elif trends["USDJPY"] == "down":
        risk_off += 15
    if trends["USDCHF"] == "up":
        risk_on += 10
    elif trends["USDCHF"] == "down":
        risk_off += 10

    if risk_on > risk_off + 20:
        sentiment = "risk_on"
    elif risk_off > risk_on + 20:
        sentiment = "risk_off"
    else:
        sentiment = "neutral"
    return RiskSentiment(sentiment, risk_on, risk_off, vix)


def intermarket_signal(
    symbol: str,
    dxy: DXYImpact,
    yields: YieldsImpact,
    divergences: list[IntermarketDivergence],
    risk: RiskSentiment,
) -> SignalVote:
    bullish = 0
    bearish = 0
    for bias, weight in ((dxy.impact, 30), (yields.impact, 20)):
        if bias == Bias.BULLISH:
            bullish += weight
        elif bias == Bias.BEARISH:
            bearish += weight

    for d in divergences:
        if d.implication == Bias.BULLISH:
            bullish += 15
        elif d.implication == Bias.BEARISH:
            bearish += 15

    if risk.sentiment != "neutral":
        risk_on = risk.sentiment == "risk_on"
        usd_base = symbol.startswith("USD")
        if any(c in symbol for c in RISK_CURRENCIES):
            # Risk currencies strengthen when risk is on; inverted for USD-based pairs
            if risk_on != usd_base:
                bullish += 15
            else:
                bearish += 15
        if any(c in symbol for c in SAFE_CURRENCIES):
            if risk_on == usd_base:
                bullish += 15
            else:
                bearish += 15

    return SignalVote.from_scores(bullish, bearish, margin=15)


def intermarket_score(
    dxy: DXYImpact,
    yields: YieldsImpact,
    divergences: list[IntermarketDivergence],
    risk: RiskSentiment,
) -> int:
    score = 50
    if dxy.impact != Bias.NEUTRAL:
        score += 15
    if yields.impact != Bias.NEUTRAL:
        score += 10
    score -= len(divergences) * 5
    if risk.sentiment != "neutral":
        score += 15
    if dxy.impact == yields.impact and dxy.impact != Bias.NEUTRAL:
        score += 10
    return clamp_score(score)


def analyze_context(symbol: str, candles: Sequence[Candle], context: MarketContext, period: int = 20) -> IntermarketFindings:
    related = context.related
    dxy = analyze_dxy(symbol, related.get("DXY", []))
    yields = analyze_yields(symbol, related.get("US10Y", []), related.get("US2Y", []))
    divergences = detect_divergences(symbol, candles, dxy, yields)
    risk = risk_sentiment(related)
    return IntermarketFindings(
        dxy=dxy,
        yields=yields,
        correlations=live_correlations(symbol, candles, related, period),
        divergences=divergences,
        risk=risk,
        signal=intermarket_signal(symbol, dxy, yields, divergences, risk),
    )


@register_analyzer(Domain.INTERMARKET)
class IntermarketAnalyzer(BaseAnalyzer):
    domain = Domain.INTERMARKET

    def __init__(self, min_bars: int = 20, correlation_period: int = 20):
        self.min_bars = min_bars
        self.correlation_period = correlation_period

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        findings = analyze_context(data.symbol, data.primary, data.context, self.correlation_period)
        return AnalyzerResult(
            domain=self.domain,
            score=intermarket_score(findings.dxy, findings.yields, findings.divergences, findings.risk),
            bias=findings.signal.bias,
            findings=findings,
        )
