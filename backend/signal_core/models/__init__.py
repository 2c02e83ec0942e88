"""Domain models."""

from signal_core.models.analysis import AnalyzerResult, Bias, Domain, clamp_score
from signal_core.models.candle import Candle, OHLCVArrays, to_arrays
from signal_core.models.market import (
    CotGroup,
    CotReport,
    EconomicEvent,
    FearGreedReading,
    MarketContext,
    MultiTimeframeData,
    NewsItem,
    RetailPositioning,
    SentimentSnapshot,
    SocialSentiment,
)
from signal_core.models.signal import Direction, LayerOutcome, Signal, SignalStatus

__all__ = [
    "AnalyzerResult",
    "Bias",
    "Domain",
    "clamp_score",
    "Candle",
    "OHLCVArrays",
    "to_arrays",
    "CotGroup",
    "CotReport",
    "EconomicEvent",
    "FearGreedReading",
    "MarketContext",
    "MultiTimeframeData",
    "NewsItem",
    "RetailPositioning",
    "SentimentSnapshot",
    "SocialSentiment",
    "Direction",
    "LayerOutcome",
    "Signal",
    "SignalStatus",
]
