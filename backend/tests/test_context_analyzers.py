"""Tests for the context-driven analyzers: intermarket, fundamental, sentiment."""

from datetime import datetime, timedelta, timezone

import pytest

from signal_core.analyzers import FundamentalAnalyzer, IntermarketAnalyzer, SentimentAnalyzer, is_trading_allowed
from signal_core.analyzers.fundamental import (
    analyze_news,
    classify_news,
    extract_currencies,
    is_high_impact,
    news_blackout,
)
from signal_core.analyzers.intermarket import (
    CORRELATION_MAP,
    analyze_dxy,
    analyze_yields,
    detect_divergences,
    live_correlations,
    risk_sentiment,
)
from signal_core.analyzers.sentiment import analyze_cot, analyze_fear_greed, analyze_retail, contrarian_signal
from signal_core.models.analysis import Bias
from signal_core.models.market import (
    CotGroup,
    CotReport,
    EconomicEvent,
    FearGreedReading,
    MarketContext,
    NewsItem,
    RetailPositioning,
    SentimentSnapshot,
)
from tests.builders import candles_from_closes, flat_candles, make_data, trending_candles

NFP_TIME = datetime(2024, 1, 5, 13, 30, tzinfo=timezone.utc)


def rising(n: int = 20, start: float = 104.0, step: float = 0.1):
    return candles_from_closes([start + step * i for i in range(n)])


def falling(n: int = 20, start: float = 104.0, step: float = 0.1):
    return candles_from_closes([start - step * i for i in range(n)])


# ---------------------------------------------------------------------------
# Intermarket
# ---------------------------------------------------------------------------

class TestDollarAndYields:
    def test_rising_dxy_weighs_on_eurusd(self):
        impact = analyze_dxy("EURUSD", rising())
        assert impact.trend == "up"
        assert impact.impact == Bias.BEARISH
        assert impact.expected_correlation == -0.95

    def test_rising_dxy_lifts_usdchf(self):
        assert analyze_dxy("USDCHF", rising()).impact == Bias.BULLISH

    def test_missing_dxy(self):
        impact = analyze_dxy("EURUSD", [])
        assert impact.trend == "unknown"
        assert impact.impact == Bias.NEUTRAL

    def test_rising_yields_lift_usdjpy(self):
        us10y = candles_from_closes([4.0 + 0.01 * i for i in range(20)])
        us2y = candles_from_closes([4.5] * 20)
        yields = analyze_yields("USDJPY", us10y, us2y)
        assert yields.trend == "rising"
        assert yields.impact == Bias.BULLISH
        assert yields.curve == "inverted"


class TestRiskAndDivergence:
    def test_risk_on(self):
        risk = risk_sentiment({"VIX": flat_candles(20, 12.0), "SP500": rising(20, 4800, 5)})
        assert risk.sentiment == "risk_on"
        assert risk.vix == 12.0

    def test_risk_off(self):
        risk = risk_sentiment({"VIX": flat_candles(20, 30.0), "GOLD": rising(20, 2000, 5)})
        assert risk.sentiment == "risk_off"

    def test_eurusd_rising_with_dollar_diverges(self):
        eurusd = trending_candles(20, start=1.08, step=0.001)
        dxy = analyze_dxy("EURUSD", rising())
        divergences = detect_divergences("EURUSD", eurusd, dxy, analyze_yields("EURUSD", [], []))
        assert [d.kind for d in divergences] == ["DXY_DIVERGENCE"]
        assert divergences[0].implication == Bias.BEARISH

    def test_short_history_uses_expected_map(self):
        assert live_correlations("EURUSD", flat_candles(5), {}) == CORRELATION_MAP["EURUSD"]

    def test_live_correlation_with_dxy(self):
        own = trending_candles(20, start=1.08, step=0.001)
        correlations = live_correlations("EURUSD", own, {"DXY": falling()})
        assert correlations["DXY"] == pytest.approx(-1.0)


class TestIntermarketAnalyzer:
    def test_falling_dollar_is_bullish_for_eurusd(self):
        context = MarketContext(related={"DXY": falling()})
        result = IntermarketAnalyzer().analyze(make_data(flat_candles(30), context=context))
        assert result.bias == Bias.BULLISH
        assert result.score == 65
        assert not result.findings.has_divergence

    def test_no_related_data_is_neutral(self):
        result = IntermarketAnalyzer().analyze(make_data(flat_candles(30)))
        assert result.bias == Bias.NEUTRAL
        assert result.score == 50


# ---------------------------------------------------------------------------
# Fundamental
# ---------------------------------------------------------------------------

def nfp(**kwargs) -> EconomicEvent:
    values = {"title": "Non-Farm Payrolls", "scheduled_at": NFP_TIME, "country": "US", "impact": "high"}
    values.update(kwargs)
    return EconomicEvent(**values)


class TestCalendar:
    def test_extract_currencies(self):
        assert set(extract_currencies("EURUSD")) == {"EUR", "USD"}
        assert set(extract_currencies("XAUUSD")) == {"XAU", "USD"}

    def test_high_impact_by_keyword(self):
        assert is_high_impact(EconomicEvent(title="CPI y/y", scheduled_at=NFP_TIME))
        assert not is_high_impact(EconomicEvent(title="Housing Starts", scheduled_at=NFP_TIME, impact="medium"))

    def test_blackout_around_high_impact(self):
        blackout = news_blackout([nfp()], NFP_TIME - timedelta(minutes=15))
        assert blackout.active
        assert blackout.until == NFP_TIME + timedelta(minutes=30)
        assert blackout.minutes_remaining == 45
        assert blackout.reason == "Non-Farm Payrolls"

    def test_medium_impact_window_is_shorter(self):
        event = EconomicEvent(title="Housing Starts", scheduled_at=NFP_TIME, country="US", impact="medium")
        assert not news_blackout([event], NFP_TIME - timedelta(minutes=20)).active
        assert news_blackout([event], NFP_TIME - timedelta(minutes=10)).active

    def test_trading_allowed_ignores_other_countries(self):
        now = NFP_TIME - timedelta(minutes=5)
        assert not is_trading_allowed("EURUSD", [nfp()], now)
        assert is_trading_allowed("EURUSD", [nfp(country="Japan")], now)
        assert is_trading_allowed("EURUSD", [nfp()], NFP_TIME + timedelta(hours=2))


class TestNews:
    def test_classify(self):
        assert classify_news(NewsItem(title="Dollar rally as payrolls beat forecasts")) == Bias.BULLISH
        assert classify_news(NewsItem(title="Euro falls on recession fears")) == Bias.BEARISH
        assert classify_news(NewsItem(title="Markets await data")) == Bias.NEUTRAL

    def test_net_bullish_news(self):
        news = [NewsItem(title=f"USD gains strongly, story {i}") for i in range(4)]
        sentiment = analyze_news(news, ["USD", "EUR"])
        assert sentiment.bullish_count == 4
        assert sentiment.sentiment == Bias.BULLISH

    def test_irrelevant_news_ignored(self):
        sentiment = analyze_news([NewsItem(title="AUD surges")], ["USD", "EUR"])
        assert sentiment.total == 0


class TestFundamentalAnalyzer:
    def test_blackout_neutralises_signal(self):
        context = MarketContext(events=[nfp()], now=NFP_TIME)
        result = FundamentalAnalyzer().analyze(make_data(flat_candles(30), context=context))
        assert result.findings.blackout.active
        assert not result.findings.trading_allowed
        assert result.bias == Bias.NEUTRAL
        assert result.score == 15

    def test_hawkish_banks_without_events(self):
        context = MarketContext(now=NFP_TIME)
        result = FundamentalAnalyzer().analyze(make_data(flat_candles(30), context=context))
        assert result.findings.trading_allowed
        assert result.bias == Bias.BULLISH
        assert result.score == 50


# ---------------------------------------------------------------------------
# Sentiment
# ---------------------------------------------------------------------------

class TestSentimentPieces:
    def test_retail_extreme_long_is_contrarian_sell(self):
        retail = analyze_retail(RetailPositioning(long_percent=75, source="broker"))
        assert retail.bias == "extremely_long"
        assert retail.contrarian_signal == "SELL"

    def test_retail_mild(self):
        assert analyze_retail(RetailPositioning(long_percent=40)).bias == "short"

    def test_fear_greed(self):
        assert analyze_fear_greed(FearGreedReading(value=85)).implication == "potential_top"
        assert analyze_fear_greed(FearGreedReading(value=15)).label == "extreme_fear"
        reading = analyze_fear_greed(FearGreedReading(value=65, previous_value=55))
        assert reading.label == "greed"
        assert reading.change == 10

    def test_contrarian_combines_sources(self):
        signal = contrarian_signal(
            analyze_retail(RetailPositioning(long_percent=75)),
            analyze_fear_greed(FearGreedReading(value=85)),
        )
        assert signal.active
        assert signal.signal == "SELL"
        assert signal.strength == 70

    def test_cot_agreement(self):
        report = CotReport(
            commercials=CotGroup(long=100, short=50, percentile=85),
            non_commercials=CotGroup(long=80, short=40, change=5),
        )
        assert analyze_cot(report).signal == "BUY"


class TestSentimentAnalyzer:
    def test_crowded_longs_are_bearish(self):
        snapshot = SentimentSnapshot(
            retail=RetailPositioning(long_percent=75),
            fear_greed=FearGreedReading(value=85),
        )
        result = SentimentAnalyzer().analyze(make_data(flat_candles(30), context=MarketContext(sentiment=snapshot)))
        assert result.bias == Bias.BEARISH
        assert result.score == 80
        assert result.findings.is_contrarian

    def test_no_snapshot_is_neutral(self):
        result = SentimentAnalyzer().analyze(make_data(flat_candles(30)))
        assert result.bias == Bias.NEUTRAL
        assert result.score == 50
