"""Weighted confluence score across the analysis components."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Mapping

from signal_core.ai import AIAnalysis
from signal_core.constants import CONFLUENCE_WEIGHTS, QUALITY_THRESHOLDS, quality_label
from signal_core.errors import ConfigurationError
from signal_core.models.analysis import AnalyzerResult, Bias, Domain

WEIGHT_TOLERANCE = 0.001


@dataclass(frozen=True)
class ConfluenceComponent:
    component: str
    score: int
    weight: float  # percent
    contribution: float


@dataclass(frozen=True)
class ConfluenceResult:
    score: int
    quality: str
    components: dict[str, int]
    breakdown: list[ConfluenceComponent] = field(default_factory=list)
    meets_minimum: bool = False
    kill_zone_penalty: bool = False


def _findings(results: Mapping[Domain, AnalyzerResult], domain: Domain):
    result = results.get(domain)
    return result.findings if result is not None else None


def smc_component(smc) -> int:
    if smc is None:
        return 0
    score = 0
    if smc.order_blocks:
        score += 30 if any(ob.strength > 70 for ob in smc.order_blocks) else 20
    if smc.fvgs:
        score += 25 if any(not g.filled for g in smc.fvgs) else 15
    if smc.liquidity.count > 0:
        score += 20
    pd = smc.premium_discount
    if pd is not None:
        trend = smc.structure.trend
        if (pd.zone == "discount" and trend == Bias.BULLISH) or (pd.zone == "premium" and trend == Bias.BEARISH):
            score += 25
        else:
            score += 10
    return min(100, score)


def structure_component(smc, technical) -> int:
    if smc is None:
        return 0
    score = 0
    if technical is not None:
        if technical.trend.htf_alignment:
            score += 40
        elif technical.trend.direction != Bias.NEUTRAL:
            score += 20
    if smc.structure.bos:
        score += 30
    elif smc.structure.choch:
        score += 20
    if smc.structure.swing_count >= 4:
        score += 30
    elif smc.structure.swing_count >= 2:
        score += 15
    return min(100, score)


def wyckoff_component(wyckoff) -> int:
    if wyckoff is None:
        return 0
    score = 0
    if wyckoff.phase.phase != "unknown":
        score += round(wyckoff.phase.probability * 0.4)
    if wyckoff.spring.detected or wyckoff.upthrust.detected:
        score += 30
    if wyckoff.sos.detected or wyckoff.sow.detected:
        score += 30
    return min(100, score)


def vsa_component(vsa) -> int:
    if vsa is None:
        return 0
    score = 0
    if vsa.volume_confirmation:
        score += 40
    if vsa.stopping_volume.detected:
        score += 30
    if vsa.no_demand.detected or vsa.no_supply.detected:
        score += 30
    return min(100, score)


def order_flow_component(order_flow) -> int:
    if order_flow is None:
        return 0
    score = 0
    if order_flow.delta_confirmation:
        score += 40
    if order_flow.absorption.detected:
        score += 30
    if order_flow.exhaustion.detected:
        score += 30
    return min(100, score)


def technical_component(technical) -> int:
    if technical is None:
        return 0
    score = round(technical.trend.strength * 0.3)
    if technical.momentum.aligned:
        score += 25
    if technical.divergences:
        score += 25
    if technical.patterns:
        score += 20
    return min(100, score)


def intermarket_component(intermarket) -> int:
    """
    Live DXY correlation agreeing in sign with the expected one (50), DXY
    impact confirming the intermarket call (30), a clear risk regime (20).
    """
    if intermarket is None:
        return 0
    score = 0
    live = intermarket.correlations.get("DXY")
    expected = intermarket.dxy.expected_correlation
    if live is not None and expected and live * expected > 0:
        score += 50
    if intermarket.dxy.impact != Bias.NEUTRAL and intermarket.dxy.impact == intermarket.signal.bias:
        score += 30
    if intermarket.risk.sentiment != "neutral":
        score += 20
    return min(100, score)


def fundamental_component(fundamental, sentiment=None) -> int:
    if fundamental is None:
        return 0
    if fundamental.blackout.active:
        return 0
    score = 50
    if fundamental.signal.bias != Bias.NEUTRAL:
        score += 30
    if sentiment is not None and sentiment.cot.signal and sentiment.cot.signal == fundamental.signal.direction:
        score += 20
    return min(100, score)


def sentiment_component(result: AnalyzerResult | None) -> int:
    if result is None or result.findings is None:
        return 0
    findings = result.findings
    score = 50
    if result.score > 80:
        score += 30
    elif result.score > 50:
        score += 20
    implication = findings.fear_greed.implication
    direction = findings.signal.direction
    if (direction == "BUY" and implication in ("potential_bottom", "bullish_sentiment")) or (
        direction == "SELL" and implication in ("potential_top", "bearish_sentiment")
    ):
        score += 20
    return min(100, score)


def ai_component(ai: AIAnalysis | None) -> int:
    if ai is None:
        return 0
    return round(ai.confidence)


class ConfluenceCalculator:
    """Combines component scores into one 0-100 confluence score.

    Raises:
        ConfigurationError: If the weights do not name exactly the ten
            components or do not sum to 1.0 (+/- 0.001).
    """

    def __init__(self, weights: Mapping[str, float] | None = None, minimum: int = QUALITY_THRESHOLDS["minimum"]):
        self.weights = dict(weights if weights is not None else CONFLUENCE_WEIGHTS)
        self.minimum = minimum
        missing = sorted(set(CONFLUENCE_WEIGHTS) - set(self.weights))
        unknown = sorted(set(self.weights) - set(CONFLUENCE_WEIGHTS))
        if missing or unknown:
            raise ConfigurationError(
                f"Confluence weights must cover exactly {sorted(CONFLUENCE_WEIGHTS)}; "
                f"missing {missing}, unknown {unknown}",
                setting="confluence_weights",
            )
        total = sum(self.weights.values())
        if abs(total - 1) > WEIGHT_TOLERANCE:
            raise ConfigurationError(
                f"Confluence weights must sum to 1, got {total}",
                setting="confluence_weights",
            )

    def component_scores(
        self,
        results: Mapping[Domain, AnalyzerResult],
        ai: AIAnalysis | None,
    ) -> dict[str, int]:
        smc = _findings(results, Domain.SMC)
        technical = _findings(results, Domain.TECHNICAL)
        return {
            "smc": smc_component(smc),
            "structure": structure_component(smc, technical),
            "wyckoff": wyckoff_component(_findings(results, Domain.WYCKOFF)),
            "vsa": vsa_component(_findings(results, Domain.VSA)),
            "order_flow": order_flow_component(_findings(results, Domain.ORDER_FLOW)),
            "technical": technical_component(technical),
            "intermarket": intermarket_component(_findings(results, Domain.INTERMARKET)),
            "fundamental": fundamental_component(
                _findings(results, Domain.FUNDAMENTAL), _findings(results, Domain.SENTIMENT)
            ),
            "sentiment": sentiment_component(results.get(Domain.SENTIMENT)),
            "ai": ai_component(ai),
        }

    def calculate(
        self,
        results: Mapping[Domain, AnalyzerResult],
        ai: AIAnalysis | None = None,
    ) -> ConfluenceResult:
        components = self.component_scores(results, ai)
        weighted = 0.0
        breakdown: list[ConfluenceComponent] = []
        for name, weight in self.weights.items():
            score = components.get(name, 0)
            contribution = score * weight
            weighted += contribution
            breakdown.append(ConfluenceComponent(name, score, weight * 100, contribution))

        final = round(min(100, max(0, weighted)))
        return ConfluenceResult(
            score=final,
            quality=quality_label(final),
            components=components,
            breakdown=breakdown,
            meets_minimum=final >= self.minimum,
        )

    def apply_penalty(self, result: ConfluenceResult, points: int) -> ConfluenceResult:
        """Copy of `result` with `points` taken off the score (floor 0)."""
        score = max(0, result.score - points)
        return dataclasses.replace(
            result,
            score=score,
            quality=quality_label(score),
            meets_minimum=score >= self.minimum,
            kill_zone_penalty=True,
        )
