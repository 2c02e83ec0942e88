"""Fundamentals: economic calendar blackouts, news tone, central bank stance."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Sequence

from signal_core.analyzers.base import BaseAnalyzer, SignalVote
from signal_core.analyzers.registry import register_analyzer
from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.market import EconomicEvent, MultiTimeframeData, NewsItem

KNOWN_CURRENCIES = ("USD", "EUR", "GBP", "JPY", "CHF", "AUD", "NZD", "CAD", "XAU", "XAG")

CURRENCY_COUNTRIES: dict[str, tuple[str, ...]] = {
    "USD": ("US", "United States"),
    "EUR": ("EU", "Eurozone", "Germany", "France"),
    "GBP": ("UK", "United Kingdom", "Britain"),
    "JPY": ("JP", "Japan"),
    "CHF": ("CH", "Switzerland"),
    "AUD": ("AU", "Australia"),
    "NZD": ("NZ", "New Zealand"),
    "CAD": ("CA", "Canada"),
}

HIGH_IMPACT_KEYWORDS = (
    "NFP", "Non-Farm Payrolls", "Interest Rate Decision",
    "FOMC", "ECB", "BOE", "BOJ", "RBA", "RBNZ", "BOC", "SNB",
    "GDP", "CPI", "Inflation", "Employment Change",
    "Retail Sales", "PMI", "Trade Balance",
)

BULLISH_KEYWORDS = (
    "surge", "rally", "gain", "rise", "jump", "soar", "bullish",
    "strong", "beat", "exceed", "growth", "recovery", "hawkish",
    "rate hike", "tightening", "positive", "optimism",
)
BEARISH_KEYWORDS = (
    "fall", "drop", "decline", "plunge", "crash", "bearish",
    "weak", "miss", "below", "contraction", "recession", "dovish",
    "rate cut", "easing", "negative", "pessimism", "concern",
)


@dataclass(frozen=True)
class CentralBankStance:
    bias: str = "neutral"  # hawkish / dovish / neutral
    rate: float | None = None
    next_move: str = "unknown"


# Static policy stance per currency; there is no live central bank feed
DEFAULT_CENTRAL_BANKS: dict[str, CentralBankStance] = {
    "USD": CentralBankStance("hawkish", 5.25, "hold"),
    "EUR": CentralBankStance("hawkish", 4.50, "hold"),
    "GBP": CentralBankStance("hawkish", 5.25, "hold"),
    "JPY": CentralBankStance("dovish", -0.10, "hold"),
    "CHF": CentralBankStance("neutral", 1.75, "hold"),
    "AUD": CentralBankStance("hawkish", 4.35, "hold"),
    "NZD": CentralBankStance("hawkish", 5.50, "cut"),
    "CAD": CentralBankStance("neutral", 5.00, "cut"),
}


@dataclass(frozen=True)
class NewsBlackout:
    active: bool = False
    until: datetime | None = None
    reason: str | None = None
    event: EconomicEvent | None = None
    minutes_remaining: int = 0


@dataclass(frozen=True)
class NewsSentiment:
    sentiment: Bias = Bias.NEUTRAL
    bullish_count: int = 0
    bearish_count: int = 0
    neutral_count: int = 0
    recent: list[NewsItem] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.bullish_count + self.bearish_count + self.neutral_count


@dataclass(frozen=True)
class FundamentalFindings:
    currencies: list[str]
    events: list[EconomicEvent]
    upcoming_high_impact: list[EconomicEvent]
    blackout: NewsBlackout
    news: NewsSentiment
    central_banks: dict[str, CentralBankStance]
    signal: SignalVote

    @property
    def trading_allowed(self) -> bool:
        return not self.blackout.active


def extract_currencies(symbol: str) -> list[str]:
    """Currencies named in the symbol; metals imply USD."""
    symbol = symbol.upper()
    currencies = [c for c in KNOWN_CURRENCIES if c in symbol]
    if ("XAU" in symbol or "GOLD" in symbol) and "XAU" not in currencies:
        currencies.append("XAU")
    if ("XAG" in symbol or "SILVER" in symbol) and "XAG" not in currencies:
        currencies.append("XAG")
    if {"XAU", "XAG"} & set(currencies) and "USD" not in currencies:
        currencies.append("USD")
    return currencies


def relevant_events(events: Iterable[EconomicEvent], currencies: Sequence[str]) -> list[EconomicEvent]:
    def matches(event: EconomicEvent) -> bool:
        where = (event.country or event.currency).upper()
        for currency in currencies:
            if any(name.upper() in where for name in CURRENCY_COUNTRIES.get(currency, (currency,))):
                return True
        return False

    return sorted((e for e in events if matches(e)), key=lambda e: e.scheduled_at)


def is_high_impact(event: EconomicEvent) -> bool:
    if event.impact.lower() in ("high", "3", "red"):
        return True
    title = event.title.upper()
    return any(keyword.upper() in title for keyword in HIGH_IMPACT_KEYWORDS)


def upcoming_high_impact(
    events: Iterable[EconomicEvent],
    now: datetime,
    look_ahead_hours: float = 24,
) -> list[EconomicEvent]:
    horizon = now + timedelta(hours=look_ahead_hours)
    return [e for e in events if now < e.scheduled_at < horizon and is_high_impact(e)]


def news_blackout(
    events: Iterable[EconomicEvent],
    now: datetime,
    high_impact_minutes: int = 30,
    other_minutes: int = 15,
) -> NewsBlackout:
    """
    Active when `now` falls within +/- the blackout window of any event.

    The window is 30 minutes around high-impact events and 15 around the
    rest. When several overlap, the one ending last wins.
    """
    chosen: NewsBlackout = NewsBlackout()
    for event in events:
        minutes = high_impact_minutes if is_high_impact(event) else other_minutes
        window = timedelta(minutes=minutes)
        start, end = event.scheduled_at - window, event.scheduled_at + window
        if start <= now <= end and (chosen.until is None or end > chosen.until):
            remaining = -(-(end - now).total_seconds() // 60)
            chosen = NewsBlackout(True, end, event.title, event, int(remaining))
    return chosen


def classify_news(item: NewsItem) -> Bias:
    text = f"{item.title} {item.description}".lower()
    bullish = sum(1 for kw in BULLISH_KEYWORDS if kw in text)
    bearish = sum(1 for kw in BEARISH_KEYWORDS if kw in text)
    if bullish > bearish:
        return Bias.BULLISH
    if bearish > bullish:
        return Bias.BEARISH
    return Bias.NEUTRAL


def analyze_news(news: Iterable[NewsItem], currencies: Sequence[str]) -> NewsSentiment:
    relevant = [
        item
        for item in news
        if any(c in f"{item.title} {item.description}".upper() for c in currencies)
    ]
    counts = {Bias.BULLISH: 0, Bias.BEARISH: 0, Bias.NEUTRAL: 0}
    for item in relevant:
        counts[classify_news(item)] += 1

    net = counts[Bias.BULLISH] - counts[Bias.BEARISH]
    sentiment = Bias.BULLISH if net > 2 else Bias.BEARISH if net < -2 else Bias.NEUTRAL
    return NewsSentiment(
        sentiment=sentiment,
        bullish_count=counts[Bias.BULLISH],
        bearish_count=counts[Bias.BEARISH],
        neutral_count=counts[Bias.NEUTRAL],
        recent=relevant[:5],
    )


def central_bank_stances(currencies: Sequence[str]) -> dict[str, CentralBankStance]:
    return {c: DEFAULT_CENTRAL_BANKS.get(c, CentralBankStance()) for c in currencies}


def fundamental_signal(
    news: NewsSentiment,
    central_banks: dict[str, CentralBankStance],
    blackout: NewsBlackout,
) -> SignalVote:
    if blackout.active:
        return SignalVote(confidence=0.0)

    bullish = 0
    bearish = 0
    if news.sentiment == Bias.BULLISH:
        bullish += 30
    elif news.sentiment == Bias.BEARISH:
        bearish += 30

    hawkish = sum(1 for s in central_banks.values() if s.bias == "hawkish")
    dovish = sum(1 for s in central_banks.values() if s.bias == "dovish")
    if hawkish > dovish:
        bullish += 20
    elif dovish > hawkish:
        bearish += 20

    return SignalVote.from_scores(bullish, bearish, margin=15)


def fundamental_score(events: Sequence[EconomicEvent], news: NewsSentiment, blackout: NewsBlackout) -> int:
    score = 50
    if blackout.active:
        score -= 30
    if news.sentiment != Bias.NEUTRAL:
        score += 15
    score -= sum(1 for e in events if is_high_impact(e)) * 5
    if news.total > 5:
        score += 10
    return clamp_score(score)


def analyze_fundamentals(
    symbol: str,
    events: Sequence[EconomicEvent],
    news: Sequence[NewsItem],
    now: datetime,
    high_impact_minutes: int = 30,
    other_minutes: int = 15,
    look_ahead_hours: float = 24,
) -> FundamentalFindings:
    currencies = extract_currencies(symbol)
    relevant = relevant_events(events, currencies)
    blackout = news_blackout(relevant, now, high_impact_minutes, other_minutes)
    news_sentiment = analyze_news(news, currencies)
    banks = central_bank_stances(currencies)
    return FundamentalFindings(
        currencies=currencies,
        events=relevant[:10],
        upcoming_high_impact=upcoming_high_impact(relevant, now, look_ahead_hours),
        blackout=blackout,
        news=news_sentiment,
        central_banks=banks,
        signal=fundamental_signal(news_sentiment, banks, blackout),
    )


def is_trading_allowed(symbol: str, events: Sequence[EconomicEvent], now: datetime) -> bool:
    """False while a relevant calendar event's blackout window is open."""
    relevant = relevant_events(events, extract_currencies(symbol))
    return not news_blackout(relevant, now).active


@register_analyzer(Domain.FUNDAMENTAL)
class FundamentalAnalyzer(BaseAnalyzer):
    domain = Domain.FUNDAMENTAL

    def __init__(
        self,
        min_bars: int = 20,
        high_impact_blackout_minutes: int = 30,
        medium_impact_blackout_minutes: int = 15,
        news_look_ahead_hours: float = 24,
    ):
        self.min_bars = min_bars
        self.high_impact_blackout_minutes = high_impact_blackout_minutes
        self.medium_impact_blackout_minutes = medium_impact_blackout_minutes
        self.news_look_ahead_hours = news_look_ahead_hours

    def _analyze(self, data: MultiTimeframeData) -> AnalyzerResult:
        context = data.context
        now = context.clock()
        relevant = relevant_events(context.events, extract_currencies(data.symbol))
        findings = analyze_fundamentals(
            data.symbol,
            context.events,
            context.news,
            now,
            self.high_impact_blackout_minutes,
            self.medium_impact_blackout_minutes,
            self.news_look_ahead_hours,
        )
        return AnalyzerResult(
            domain=self.domain,
            score=fundamental_score(relevant, findings.news, findings.blackout),
            bias=findings.signal.bias,
            findings=findings,
        )
