"""Tests for the ten-layer validator."""

from types import SimpleNamespace as ns

import pytest

from signal_core.models.analysis import AnalyzerResult, Bias, Domain
from signal_core.models.signal import Direction
from signal_core.validation import LAYER_ORDER, MultiLayerValidator


def bullish_findings() -> dict[Domain, object]:
    """Findings that pass every layer for a long."""
    return {
        Domain.SMC: ns(
            structure=ns(trend=Bias.BULLISH),
            order_blocks=[ns(bias=Bias.BULLISH)],
            fvgs=[],
            liquidity=ns(count=0),
            premium_discount=None,
        ),
        Domain.WYCKOFF: ns(
            phase=ns(phase="accumulation"),
            spring=ns(detected=True),
            sos=ns(detected=False),
            upthrust=ns(detected=False),
            sow=ns(detected=False),
        ),
        Domain.ELLIOTT_WAVE: ns(wave_bias=Bias.BULLISH, current=ns(wave="3"), targets=[1.12], validity=0.8),
        Domain.VSA: ns(
            volume_confirmation=True,
            no_supply=ns(detected=True),
            no_demand=ns(detected=False),
            stopping_volume=ns(detected=False),
            climactic_action=ns(detected=False),
        ),
        Domain.MARKET_PROFILE: ns(
            value_area=ns(val=1.09, vah=1.11),
            position=ns(current_price=1.085),
            poc=1.10,
            shape="normal",
            single_prints=[],
        ),
        Domain.ORDER_FLOW: ns(
            delta=ns(bias=Bias.BULLISH),
            absorption=ns(detected=True),
            exhaustion=ns(detected=False),
            imbalances=ns(detected=False),
        ),
        Domain.INTERMARKET: ns(
            dxy=ns(impact=Bias.BULLISH),
            yields=ns(impact=Bias.NEUTRAL),
            divergences=[],
            risk=ns(sentiment="neutral"),
        ),
        Domain.TECHNICAL: ns(
            trend=ns(direction=Bias.BULLISH, ema_stack=Bias.BULLISH),
            momentum=ns(rsi=55.0, macd_bias=Bias.BULLISH),
            patterns=[],
        ),
        Domain.FUNDAMENTAL: ns(
            blackout=ns(active=False, reason="", minutes_remaining=0),
            news=ns(sentiment=Bias.NEUTRAL),
            upcoming_high_impact=[],
        ),
        Domain.SENTIMENT: ns(
            contrarian=ns(active=True, signal="BUY"),
            cot=ns(signal=None),
            retail=ns(extreme=False, contrarian_signal=None),
            fear_greed=ns(label="fear"),
        ),
    }


def as_results(findings: dict[Domain, object]) -> dict[Domain, AnalyzerResult]:
    return {d: AnalyzerResult(d, 60, Bias.BULLISH, f) for d, f in findings.items()}


class TestAllLayersPass:
    def test_strong_signal(self):
        result = MultiLayerValidator().validate(as_results(bullish_findings()), Direction.LONG)
        assert result.is_valid
        assert result.passed_count == 10
        assert result.total_layers == 10
        assert result.critical_layers_passed
        assert result.recommendation == "STRONG_SIGNAL"
        assert [layer.name for layer in result.layers] == [d.value for d in LAYER_ORDER]

    def test_scores(self):
        result = MultiLayerValidator().validate(as_results(bullish_findings()), Direction.LONG)
        assert result.layer("smc").score == 55
        assert result.layer("market_profile").score == 80
        assert result.layer("fundamental").score == 85
        assert result.weighted_score == 70
        assert result.confidence == 88

    def test_pass_reason_lists_checks(self):
        result = MultiLayerValidator().validate(as_results(bullish_findings()), Direction.LONG)
        assert result.layer("smc").reason == "Market structure aligned, Order block present"
        assert result.layer("smc").display_name == "Smart Money Concepts"

    def test_layer_outcome(self):
        result = MultiLayerValidator().validate(as_results(bullish_findings()), Direction.LONG)
        outcome = result.layer("technical").outcome()
        assert outcome.passed
        assert outcome.score == 80


class TestFailures:
    def test_blackout_fails_critical_layer(self):
        findings = bullish_findings()
        findings[Domain.FUNDAMENTAL].blackout = ns(active=True, reason="Non-Farm Payrolls", minutes_remaining=20)
        result = MultiLayerValidator().validate(as_results(findings), Direction.LONG)
        fundamental = result.layer("fundamental")
        assert not fundamental.passed
        assert fundamental.score == 0
        assert fundamental.reason == "News blackout active - trading not allowed"
        assert fundamental.details["minutes_remaining"] == 20
        assert result.passed_count == 9
        assert not result.is_valid
        assert result.critical_layers_failed == ["fundamental"]
        assert result.recommendation == "CRITICAL_LAYERS_FAILED"

    def test_nothing_to_validate(self):
        result = MultiLayerValidator().validate({}, Direction.LONG)
        assert result.passed_count == 0
        assert result.critical_layers_failed == ["smc", "technical", "fundamental"]
        assert result.layer("vsa").reason == "No Volume Spread Analysis available"
        assert result.weighted_score == 0
        assert result.recommendation == "CRITICAL_LAYERS_FAILED"

    def test_failed_analyzer_reason(self):
        results = {Domain.SMC: AnalyzerResult.empty(Domain.SMC, error="boom")}
        layer = MultiLayerValidator().validate(results, Direction.LONG).layer("smc")
        assert layer.reason == "No Smart Money Concepts available: boom"

    def test_fail_reason_replaces_checks(self):
        result = MultiLayerValidator().validate(as_results(bullish_findings()), Direction.SHORT)
        smc = result.layer("smc")
        assert not smc.passed
        assert smc.score == 0
        assert smc.reason == "Insufficient SMC confluence"
        assert not result.is_valid

    def test_weak_signal(self):
        findings = bullish_findings()
        for domain in (Domain.WYCKOFF, Domain.ELLIOTT_WAVE, Domain.VSA):
            del findings[domain]
        result = MultiLayerValidator().validate(as_results(findings), Direction.LONG)
        assert result.passed_count == 7
        assert result.critical_layers_passed
        assert result.recommendation == "WEAK_SIGNAL"

    def test_lower_minimum(self):
        findings = bullish_findings()
        for domain in (Domain.WYCKOFF, Domain.ELLIOTT_WAVE, Domain.VSA):
            del findings[domain]
        result = MultiLayerValidator(minimum_layers=7).validate(as_results(findings), Direction.LONG)
        assert result.is_valid
        assert result.recommendation == "VALID_SIGNAL"


@pytest.mark.parametrize(
    "is_valid,passed,critical_ok,expected",
    [
        (True, 10, True, "STRONG_SIGNAL"),
        (True, 8, True, "VALID_SIGNAL"),
        (False, 9, False, "CRITICAL_LAYERS_FAILED"),
        (False, 6, True, "WEAK_SIGNAL"),
        (False, 5, True, "NO_TRADE"),
    ],
)
def test_recommendation(is_valid, passed, critical_ok, expected):
    assert MultiLayerValidator.recommendation(is_valid, passed, critical_ok) == expected
