"""Tests for the heuristic AI ensemble."""

from types import SimpleNamespace as ns

import pytest

from signal_core.ai import AIAnalysis, AIEnsemble, MarketRegime, PatternRecognition, Prediction, ProbabilityEstimate
from signal_core.ai.ensemble import (
    blend_confidence,
    detect_double_pattern,
    detect_regime,
    estimate_probability,
    predict_direction,
    recognize_patterns,
    timeframes_aligned,
)
from signal_core.models.analysis import AnalyzerResult, Bias, Domain
from signal_core.models.candle import Candle
from signal_core.models.signal import Direction
from tests.builders import candles_from_closes, flat_candles, make_data, trending_candles, ts


def bar(i: int, o: float, h: float, l: float, c: float) -> Candle:
    return Candle(timestamp=ts(i), open=o, high=h, low=l, close=c, volume=1000)


def vote(domain: Domain, bias: Bias) -> AnalyzerResult:
    return AnalyzerResult(domain, 60, bias, findings=ns())


class TestPatterns:
    def test_double_top(self):
        candles = [bar(i, 100, 110 if i in (5, 20) else 101, 99, 100) for i in range(30)]
        pattern = detect_double_pattern(candles)
        assert pattern.kind == "double_top"
        assert pattern.bias == Bias.BEARISH
        assert pattern.levels["neckline"] == 99
        assert pattern.levels["target"] == 88

    def test_touches_too_close_together(self):
        candles = [bar(i, 100, 110 if i in (5, 8) else 101, 99, 100) for i in range(30)]
        pattern = detect_double_pattern(candles)
        assert pattern is None or pattern.kind != "double_top"

    def test_needs_fifty_bars(self):
        recognition = recognize_patterns(flat_candles(40))
        assert recognition.patterns == []
        assert recognition.confidence == 0.0
        assert recognition.dominant is None


class TestRegime:
    def test_strong_uptrend(self):
        regime = detect_regime(candles_from_closes([100 * 1.01 ** i for i in range(60)]))
        assert regime.regime == "trending_up"
        assert regime.trend_direction == "up"
        assert regime.confidence == pytest.approx(1.0)
        assert regime.momentum > 0

    def test_strong_downtrend(self):
        regime = detect_regime(candles_from_closes([100 * 0.99 ** i for i in range(60)]))
        assert regime.regime == "trending_down"

    def test_quiet_market(self):
        regime = detect_regime(flat_candles(60))
        assert regime.regime == "low_volatility"
        assert regime.confidence == pytest.approx(0.7)
        assert regime.recommendation.startswith("Expect breakout")

    def test_short_history_is_unknown(self):
        regime = detect_regime(flat_candles(20))
        assert regime.regime == "unknown"
        assert regime.recommendation == "Wait for clearer market conditions"


class TestPrediction:
    def test_three_bullish_votes(self):
        results = {
            Domain.TECHNICAL: vote(Domain.TECHNICAL, Bias.BULLISH),
            Domain.SMC: vote(Domain.SMC, Bias.BULLISH),
            Domain.WYCKOFF: vote(Domain.WYCKOFF, Bias.BULLISH),
            Domain.VSA: vote(Domain.VSA, Bias.NEUTRAL),
        }
        prediction = predict_direction(results)
        assert prediction.direction == Direction.LONG
        assert (prediction.buy_votes, prediction.sell_votes, prediction.total_votes) == (3, 0, 4)
        assert prediction.confidence == pytest.approx(0.8)

    def test_two_votes_are_not_enough(self):
        results = {
            Domain.SMC: vote(Domain.SMC, Bias.BEARISH),
            Domain.VSA: vote(Domain.VSA, Bias.BEARISH),
        }
        prediction = predict_direction(results)
        assert prediction.direction is None
        assert prediction.confidence == 0.5

    def test_non_voting_domains_and_failures_ignored(self):
        results = {
            Domain.SENTIMENT: vote(Domain.SENTIMENT, Bias.BULLISH),
            Domain.SMC: AnalyzerResult.empty(Domain.SMC, error="boom"),
        }
        assert predict_direction(results).total_votes == 0


class TestProbability:
    def test_kill_zone_bonus(self):
        estimate = estimate_probability(make_data(flat_candles(30)), {}, kill_zone_active=True)
        assert estimate.value == pytest.approx(0.55)
        assert "Active kill zone" in estimate.factors

    def test_timeframe_alignment(self):
        rising = trending_candles(30)
        assert timeframes_aligned(make_data(rising, extra={"H4": trending_candles(30)}))
        falling = trending_candles(30, start=1.2, step=-0.0005)
        assert not timeframes_aligned(make_data(rising, extra={"H4": falling}))
        assert not timeframes_aligned(make_data(rising))

    def test_blend_defaults_missing_components(self):
        confidence = blend_confidence(PatternRecognition(), MarketRegime(), ProbabilityEstimate(0.0), Prediction(confidence=0.0))
        assert confidence == 50


class TestEnsemble:
    def test_no_votes_no_direction(self):
        analysis = AIEnsemble().analyze(make_data(trending_candles(60)), {})
        assert isinstance(analysis, AIAnalysis)
        assert analysis.direction is None
        assert 0 <= analysis.confidence <= 100
        assert analysis.reasoning == ["Insufficient confluence for clear direction"]
        assert "AI confidence below minimum threshold" in analysis.validation.issues

    def test_validation_issues(self):
        ensemble = AIEnsemble()
        prediction = Prediction(Direction.LONG, 0.9, buy_votes=2, sell_votes=1, total_votes=3)
        fundamental = AnalyzerResult(Domain.FUNDAMENTAL, 15, Bias.NEUTRAL, ns(blackout=ns(active=True)))
        validation = ensemble.validate({Domain.FUNDAMENTAL: fundamental}, prediction, confluence_score=70)
        assert not validation.valid
        assert validation.issues == [
            "Conflicting signals detected",
            "News blackout period active",
            "Confluence score below minimum threshold",
        ]

    def test_clean_validation(self):
        prediction = Prediction(Direction.SHORT, 0.9, buy_votes=0, sell_votes=4, total_votes=4)
        assert AIEnsemble().validate({}, prediction, confluence_score=85).valid

    def test_neutral_fallback(self):
        analysis = AIAnalysis.neutral()
        assert analysis.confidence == 0
        assert analysis.direction is None
        assert not analysis.meets_threshold
