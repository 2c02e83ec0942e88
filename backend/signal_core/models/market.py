"""Per-invocation market snapshot handed to the analyzers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from signal_core.constants import PRIMARY_TIMEFRAME, Timeframe
from signal_core.models.candle import Candle


class EconomicEvent(BaseModel):
    """Calendar entry (e.g. NFP, CPI) for a country or currency."""

    model_config = ConfigDict(frozen=True)

    title: str
    scheduled_at: datetime
    country: str = ""
    currency: str = ""
    impact: str = ""  # "high" / "medium" / "low" (or 3 / 2 / 1, "red")


class NewsItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str = ""
    published_at: datetime | None = None
    source: str = ""


class RetailPositioning(BaseModel):
    long_percent: float = 50.0
    source: str = "unknown"


class FearGreedReading(BaseModel):
    value: float = 50.0
    previous_value: float | None = None


class SocialSentiment(BaseModel):
    score: float = 50.0
    volume: int = 0
    trending: bool = False
    mentions: int = 0


class CotGroup(BaseModel):
    long: float = 0.0
    short: float = 0.0
    change: float = 0.0
    percentile: float = 50.0


class CotReport(BaseModel):
    commercials: CotGroup | None = None
    non_commercials: CotGroup | None = None
    retailers: CotGroup | None = None
    report_date: datetime | None = None


class SentimentSnapshot(BaseModel):
    """Positioning and crowd-mood inputs for the sentiment analyzer."""

    retail: RetailPositioning | None = None
    fear_greed: FearGreedReading | None = None
    social: SocialSentiment | None = None
    cot: CotReport | None = None


@dataclass(frozen=True)
class MarketContext:
    """Cross-market inputs supplied alongside the instrument's own candles.

    `related` holds series for DXY, US10Y, US2Y, GOLD, VIX, SP500, USDJPY
    and USDCHF when available. `now` pins the evaluation clock (blackout
    windows, kill zones); None means wall-clock time.
    """

    related: dict[str, list[Candle]] = field(default_factory=dict)
    events: list[EconomicEvent] = field(default_factory=list)
    news: list[NewsItem] = field(default_factory=list)
    sentiment: SentimentSnapshot | None = None
    now: datetime | None = None

    def clock(self) -> datetime:
        return self.now or datetime.now(timezone.utc)


@dataclass(frozen=True)
class MultiTimeframeData:
    """Candles for one symbol across timeframes, assembled once per analysis."""

    symbol: str
    series: dict[str, list[Candle]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)
    context: MarketContext = field(default_factory=MarketContext)

    def get(self, timeframe: Timeframe | str) -> list[Candle]:
        key = timeframe.value if isinstance(timeframe, Timeframe) else timeframe
        return self.series.get(key, [])

    @property
    def primary(self) -> list[Candle]:
        return self.get(PRIMARY_TIMEFRAME)

    def bar_count(self, timeframe: Timeframe | str = PRIMARY_TIMEFRAME) -> int:
        return len(self.get(timeframe))

    @property
    def last_price(self) -> float | None:
        candles = self.primary
        return candles[-1].close if candles else None

    def with_primary(self, candles: list[Candle]) -> MultiTimeframeData:
        """Copy with the primary series replaced (used for historical replay)."""
        series = dict(self.series)
        series[PRIMARY_TIMEFRAME.value] = candles
        return MultiTimeframeData(
            symbol=self.symbol,
            series=series,
            errors=dict(self.errors),
            context=self.context,
        )
