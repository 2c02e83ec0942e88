"""Crowd sentiment: retail positioning, fear & greed, social mood and COT."""

from __future__ import annotations

from dataclasses import dataclass, field

from signal_core.analyzers.base import BaseAnalyzer, SignalVote
from signal_core.analyzers.registry import register_analyzer
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.market import (
    CotGroup,
    CotReport,
    FearGreedReading,
    MultiTimeframeData,
    RetailPositioning,
    SentimentSnapshot,
    SocialSentiment,
)


@dataclass(frozen=True)
class RetailAnalysis:
    long_percent: float = 50.0
    short_percent: float = 50.0
    bias: str = "neutral"  # extremely_long / extremely_short / long / short / neutral
    extreme: bool = False
    contrarian_signal: str | None = None  # BUY / SELL
    source: str = "unknown"


@dataclass(frozen=True)
class FearGreedAnalysis:
    value: float = 50.0
    label: str = "neutral"
    extreme: bool = False
    implication: str = "no_clear_signal"
    change: float = 0.0


@dataclass(frozen=True)
class SocialAnalysis:
    score: float = 50.0
    sentiment: str = "neutral"
    volume: int = 0
    trending: bool = False
    mentions: int = 0

    @property
    def direction(self) -> str | None:
        if "bullish" in self.sentiment:
            return "BUY"
        if "bearish" in self.sentiment:
            return "SELL"
        return None


@dataclass(frozen=True)
class CotGroupAnalysis:
    net: float = 0.0
    change: float = 0.0
    percentile: float = 50.0
    bias: Bias = Bias.NEUTRAL


@dataclass(frozen=True)
class CotAnalysis:
    commercials: CotGroupAnalysis = field(default_factory=CotGroupAnalysis)
    non_commercials: CotGroupAnalysis = field(default_factory=CotGroupAnalysis)
    retailers: CotGroupAnalysis = field(default_factory=CotGroupAnalysis)
    signal: str | None = None


@dataclass(frozen=True)
class ContrarianSignal:
    active: bool = False
    signal: str | None = None
    strength: int = 0
    reason: str = "No extreme sentiment"


@dataclass(frozen=True)
class SentimentFindings:
    retail: RetailAnalysis
    fear_greed: FearGreedAnalysis
    social: SocialAnalysis
    cot: CotAnalysis
    contrarian: ContrarianSignal
    signal: SignalVote

    @property
    def is_contrarian(self) -> bool:
        return self.contrarian.active and self.contrarian.signal == self.signal.direction


def analyze_retail(data: RetailPositioning | None, extreme_threshold: float = 70) -> RetailAnalysis:
    if data is None:
        return RetailAnalysis()
    long_pct = data.long_percent
    short_pct = 100 - long_pct
    if long_pct >= extreme_threshold:
        return RetailAnalysis(long_pct, short_pct, "extremely_long", True, "SELL", data.source)
    if short_pct >= extreme_threshold:
        return RetailAnalysis(long_pct, short_pct, "extremely_short", True, "BUY", data.source)
    if long_pct > 55:
        bias = "long"
    elif short_pct > 55:
        bias = "short"
    else:
        bias = "neutral"
    return RetailAnalysis(long_pct, short_pct, bias, False, None, data.source)


def analyze_fear_greed(
    data: FearGreedReading | None,
    extreme_high: float = 80,
    extreme_low: float = 20,
) -> FearGreedAnalysis:
    if data is None:
        return FearGreedAnalysis()
    value = data.value
    change = value - data.previous_value if data.previous_value is not None else 0.0
    if value >= extreme_high:
        return FearGreedAnalysis(value, "extreme_greed", True, "potential_top", change)
    if value >= 60:
        return FearGreedAnalysis(value, "greed", False, "bullish_sentiment", change)
    if value <= extreme_low:
        return FearGreedAnalysis(value, "extreme_fear", True, "potential_bottom", change)
    if value <= 40:
        return FearGreedAnalysis(value, "fear", False, "bearish_sentiment", change)
    return FearGreedAnalysis(value=value, change=change)


def analyze_social(data: SocialSentiment | None) -> SocialAnalysis:
    if data is None:
        return SocialAnalysis()
    score = data.score
    if score >= 70:
        sentiment = "very_bullish"
    elif score >= 55:
        sentiment = "bullish"
    elif score <= 30:
        sentiment = "very_bearish"
    elif score <= 45:
        sentiment = "bearish"
    else:
        sentiment = "neutral"
    return SocialAnalysis(score, sentiment, data.volume, data.trending, data.mentions)


def analyze_cot_group(group: CotGroup | None) -> CotGroupAnalysis:
    if group is None:
        return CotGroupAnalysis()
    net = group.long - group.short
    if group.percentile >= 80:
        bias = Bias.BULLISH
    elif group.percentile <= 20:
        bias = Bias.BEARISH
    elif net > 0 and group.change > 0:
        bias = Bias.BULLISH
    elif net < 0 and group.change < 0:
        bias = Bias.BEARISH
    else:
        bias = Bias.NEUTRAL
    return CotGroupAnalysis(net, group.change, group.percentile, bias)


def analyze_cot(report: CotReport | None) -> CotAnalysis:
    """Commercials and large speculators agreeing gives the smart-money call."""
    if report is None:
        return CotAnalysis()
    commercials = analyze_cot_group(report.commercials)
    non_commercials = analyze_cot_group(report.non_commercials)
    signal = None
    if commercials.bias == non_commercials.bias == Bias.BULLISH:
        signal = "BUY"
    elif commercials.bias == non_commercials.bias == Bias.BEARISH:
        signal = "SELL"
    return CotAnalysis(commercials, non_commercials, analyze_cot_group(report.retailers), signal)


def contrarian_signal(retail: RetailAnalysis, fear_greed: FearGreedAnalysis) -> ContrarianSignal:
    bullish = 0
    bearish = 0
    if retail.contrarian_signal == "BUY":
        bullish += 40
    elif retail.contrarian_signal == "SELL":
        bearish += 40
    if fear_greed.implication == "potential_bottom":
        bullish += 30
    elif fear_greed.implication == "potential_top":
        bearish += 30

    reasons = []
    if retail.extreme:
        reasons.append(f"Retail {retail.bias}")
    if fear_greed.extreme:
        reasons.append(fear_greed.label)
    reason = ", ".join(reasons) or "No extreme sentiment"

    active = bullish >= 40 or bearish >= 40
    if bullish > bearish and bullish >= 40:
        return ContrarianSignal(active, "BUY", bullish, reason)
    if bearish > bullish and bearish >= 40:
        return ContrarianSignal(active, "SELL", bearish, reason)
    return ContrarianSignal(active, None, 0, reason)


def sentiment_signal(
    fear_greed: FearGreedAnalysis,
    social: SocialAnalysis,
    cot: CotAnalysis,
    contrarian: ContrarianSignal,
) -> SignalVote:
    bullish = 0
    bearish = 0
    if contrarian.signal == "BUY":
        bullish += 35
    elif contrarian.signal == "SELL":
        bearish += 35
    if cot.signal == "BUY":
        bullish += 25
    elif cot.signal == "SELL":
        bearish += 25

    social_points = {"very_bullish": 15, "bullish": 10, "very_bearish": -15, "bearish": -10}.get(social.sentiment, 0)
    if social_points > 0:
        bullish += social_points
    else:
        bearish -= social_points

    if not fear_greed.extreme:
        if fear_greed.label == "greed":
            bullish += 10
        elif fear_greed.label == "fear":
            bearish += 10

    return SignalVote.from_scores(bullish, bearish, margin=15)


def sentiment_score(retail: RetailAnalysis, fear_greed: FearGreedAnalysis, social: SocialAnalysis, cot: CotAnalysis) -> int:
    score = 50
    if retail.extreme:
        score += 15
    if fear_greed.extreme:
        score += 15
    if cot.signal:
        score += 10
    if social.trending:
        score += 5
    if social.volume > 1000:
        score += 5

    calls = [s for s in (retail.contrarian_signal, cot.signal, social.direction) if s]
    if len(calls) >= 2 and len(set(calls)) == 1:
        score += 10
    return clamp_score(score)


def analyze_snapshot(
    snapshot: SentimentSnapshot | None,
    extreme_retail_threshold: float = 70,
    fear_greed_extreme_high: float = 80,
    fear_greed_extreme_low: float = 20,
) -> SentimentFindings:
    snapshot = snapshot or SentimentSnapshot()
    retail = analyze_retail(snapshot.retail, extreme_retail_threshold)
    fear_greed = analyze_fear_greed(snapshot.fear_greed, fear_greed_extreme_high, fear_greed_extreme_low)
    social = analyze_social(snapshot.social)
    cot = analyze_cot(snapshot.cot)
    contrarian = contrarian_signal(retail, fear_greed)
    return SentimentFindings(
        retail=retail,
        fear_greed=fear_greed,
        social=social,
        cot=cot,
        contrarian=contrarian,
        signal=sentiment_signal(fear_greed, social, cot, contrarian),
    )


@register_analyzer(Domain.SENTIMENT)
class SentimentAnalyzer(BaseAnalyzer):
    domain = Domain.SENTIMENT

    def __init__(
        self,
        min_bars: int = 20,
        extreme_retail_threshold: float = 70,
        fear_greed_extreme_high: float = 80,
        fear_greed_extreme_low: float = 20,
    ):
        self.min_bars = min_bars
        self.extreme_retail_threshold = extreme_retail_threshold
        self.fear_greed_extreme_high = fear_greed_extreme_high
        self.fear_greed_extreme_low = fear_greed_extreme_low

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        findings = analyze_snapshot(
            data.context.sentiment,
            self.extreme_retail_threshold,
            self.fear_greed_extreme_high,
            self.fear_greed_extreme_low,
        )
        return AnalyzerResult(
            domain=self.domain,
            score=sentiment_score(findings.retail, findings.fear_greed, findings.social, findings.cot),
            bias=findings.signal.bias,
            findings=findings,
        )
