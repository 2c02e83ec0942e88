"""Ten-layer validation of a proposed trade direction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Sequence

from signal_core.analyzers.wyckoff import BEARISH_PHASES, BULLISH_PHASES
from signal_core.models.analysis import AnalyzerResult, Bias, Domain
from signal_core.models.signal import Direction, LayerOutcome

DEFAULT_CRITICAL_LAYERS = ("smc", "technical", "fundamental")

LAYER_WEIGHTS: dict[str, float] = {
    "smc": 1.5,
    "wyckoff": 1.0,
    "elliott_wave": 0.8,
    "vsa": 1.0,
    "market_profile": 0.9,
    "order_flow": 1.0,
    "intermarket": 0.8,
    "technical": 1.2,
    "fundamental": 1.0,
    "sentiment": 0.8,
}

# Score a layer needs to pass (default 50)
PASS_THRESHOLDS: dict[str, int] = {
    "elliott_wave": 40,
    "market_profile": 40,
    "sentiment": 40,
}

DISPLAY_NAMES: dict[str, str] = {
    "smc": "Smart Money Concepts",
    "wyckoff": "Wyckoff Analysis",
    "elliott_wave": "Elliott Wave",
    "vsa": "Volume Spread Analysis",
    "market_profile": "Market Profile",
    "order_flow": "Order Flow",
    "intermarket": "Intermarket Analysis",
    "technical": "Technical Analysis",
    "fundamental": "Fundamental Analysis",
    "sentiment": "Sentiment Analysis",
}

FAIL_REASONS: dict[str, str] = {
    "smc": "Insufficient SMC confluence",
    "wyckoff": "Wyckoff phase not aligned",
    "elliott_wave": "Elliott Wave not supportive",
    "vsa": "VSA not confirming",
    "market_profile": "Market Profile not supportive",
    "order_flow": "Order flow not confirming",
    "intermarket": "Intermarket not aligned",
    "technical": "Technical indicators not aligned",
    "fundamental": "Fundamental conditions unfavorable",
    "sentiment": "Sentiment not supportive",
}

# Layer evaluation order
LAYER_ORDER: tuple[Domain, ...] = (
    Domain.SMC,
    Domain.WYCKOFF,
    Domain.ELLIOTT_WAVE,
    Domain.VSA,
    Domain.MARKET_PROFILE,
    Domain.ORDER_FLOW,
    Domain.INTERMARKET,
    Domain.TECHNICAL,
    Domain.FUNDAMENTAL,
    Domain.SENTIMENT,
)


@dataclass(frozen=True)
class ValidationLayerResult:
    name: str
    passed: bool
    score: int
    reason: str
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return DISPLAY_NAMES.get(self.name, self.name)

    def outcome(self) -> LayerOutcome:
        return LayerOutcome(name=self.name, passed=self.passed, score=self.score, reason=self.reason)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    passed_count: int
    total_layers: int
    minimum_required: int
    critical_layers_passed: bool
    critical_layers_failed: list[str]
    layers: list[ValidationLayerResult]
    weighted_score: int
    confidence: int
    recommendation: str

    @property
    def passed_layers(self) -> list[str]:
        return [layer.name for layer in self.layers if layer.passed]

    @property
    def failed_layers(self) -> list[ValidationLayerResult]:
        return [layer for layer in self.layers if not layer.passed]

    def layer(self, name: str) -> ValidationLayerResult | None:
        return next((l for l in self.layers if l.name == name), None)


# Each check returns (score, checks) for the proposed direction
Check = Callable[[Any, Direction], tuple[int, list[str]]]


def _smc(smc, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if smc.structure.trend == direction.bias:
        score += 30
        checks.append("Market structure aligned")
    if any(ob.bias == direction.bias for ob in smc.order_blocks):
        score += 25
        checks.append("Order block present")
    if smc.fvgs:
        score += 20
        checks.append("Fair Value Gap identified")
    if smc.liquidity.count > 0:
        score += 15
        checks.append("Liquidity zone mapped")
    pd = smc.premium_discount
    if pd is not None:
        wanted = "discount" if direction is Direction.LONG else "premium"
        if pd.zone == wanted:
            score += 10
            checks.append(f"Price in {pd.zone} zone")
    return score, checks


def _wyckoff(wyckoff, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    phases = BULLISH_PHASES if direction is Direction.LONG else BEARISH_PHASES
    if wyckoff.phase.phase in phases:
        score += 50
        checks.append(f"Wyckoff phase: {wyckoff.phase.phase}")
    if direction is Direction.LONG:
        if wyckoff.spring.detected:
            score += 30
            checks.append("Spring pattern detected")
        if wyckoff.sos.detected:
            score += 20
            checks.append("Sign of Strength detected")
    else:
        if wyckoff.upthrust.detected:
            score += 30
            checks.append("Upthrust pattern detected")
        if wyckoff.sow.detected:
            score += 20
            checks.append("Sign of Weakness detected")
    return score, checks


def _elliott(elliott, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if elliott.wave_bias == direction.bias:
        score += 40
        checks.append(f"Wave {elliott.current.wave} in progress")
    if elliott.targets:
        score += 30
        checks.append("Wave targets calculated")
    if elliott.validity > 0.6:
        score += 30
        checks.append(f"Wave validity: {round(elliott.validity * 100)}%")
    return score, checks


def _vsa(vsa, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if vsa.volume_confirmation:
        score += 30
        checks.append("Volume confirms move")
    if direction is Direction.LONG and vsa.no_supply.detected:
        score += 35
        checks.append("Accumulation detected")
    elif direction is Direction.SHORT and vsa.no_demand.detected:
        score += 35
        checks.append("Distribution detected")
    if vsa.stopping_volume.detected:
        score += 20
        checks.append("Stopping volume present")
    if vsa.climactic_action.detected:
        score += 15
        checks.append("Climactic action detected")
    return score, checks


def _market_profile(profile, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    area = profile.value_area
    if area is not None and profile.position is not None:
        price = profile.position.current_price
        if direction is Direction.LONG and price <= area.val:
            score += 40
            checks.append("Price at/below VAL")
        elif direction is Direction.SHORT and price >= area.vah:
            score += 40
            checks.append("Price at/above VAH")
    if profile.poc is not None:
        score += 20
        checks.append("POC identified")
    if profile.shape != "unknown":
        score += 20
        checks.append(f"Profile: {profile.shape}")
    if profile.single_prints:
        score += 20
        checks.append("Single prints present")
    return score, checks


def _order_flow(flow, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if flow.delta.bias == direction.bias:
        score += 35
        checks.append(f"Delta {flow.delta.bias.value}")
    if flow.absorption.detected:
        score += 25
        checks.append("Absorption detected")
    if flow.exhaustion.detected:
        score += 25
        checks.append("Exhaustion detected")
    if flow.imbalances.detected:
        score += 15
        checks.append("Imbalances present")
    return score, checks


def _intermarket(intermarket, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if intermarket.dxy.impact == direction.bias:
        score += 30
        checks.append("DXY correlation aligned")
    if intermarket.yields.impact == direction.bias:
        score += 25
        checks.append("Yields correlation aligned")
    if not intermarket.divergences:
        score += 25
        checks.append("No divergences detected")
    if intermarket.risk.sentiment != "neutral":
        score += 20
        checks.append(f"Risk sentiment: {intermarket.risk.sentiment}")
    return score, checks


def _technical(technical, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if technical.trend.direction == direction.bias:
        score += 25
        checks.append(f"Trend: {technical.trend.direction.value}")
    if technical.trend.ema_stack == direction.bias:
        score += 20
        checks.append("EMAs aligned")
    rsi = technical.momentum.rsi
    if (direction is Direction.LONG and rsi < 70) or (direction is Direction.SHORT and rsi > 30):
        score += 15
        checks.append(f"RSI: {round(rsi)}")
    if technical.momentum.macd_bias == direction.bias:
        score += 20
        checks.append("MACD aligned")
    if technical.patterns:
        score += 20
        checks.append(f"Pattern: {technical.patterns[0].name}")
    return score, checks


def _fundamental(fundamental, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 40, ["No news blackout"]
    sentiment = fundamental.news.sentiment
    if sentiment == direction.bias:
        score += 30
        checks.append(f"News sentiment: {sentiment.value}")
    elif sentiment == Bias.NEUTRAL:
        score += 15
        checks.append("Neutral news environment")
    if not fundamental.upcoming_high_impact:
        score += 30
        checks.append("No imminent high-impact news")
    return score, checks


def _sentiment(sentiment, direction: Direction) -> tuple[int, list[str]]:
    score, checks = 0, []
    if sentiment.contrarian.active and sentiment.contrarian.signal == direction.label:
        score += 40
        checks.append(f"Contrarian signal: {sentiment.contrarian.signal}")
    if sentiment.cot.signal == direction.label:
        score += 30
        checks.append("COT data aligned")
    if sentiment.retail.extreme and sentiment.retail.contrarian_signal == direction.label:
        score += 20
        checks.append("Retail positioning extreme (contrarian)")
    score += 10
    checks.append(f"Fear & Greed: {sentiment.fear_greed.label}")
    return score, checks


LAYER_CHECKS: dict[Domain, Check] = {
    Domain.SMC: _smc,
    Domain.WYCKOFF: _wyckoff,
    Domain.ELLIOTT_WAVE: _elliott,
    Domain.VSA: _vsa,
    Domain.MARKET_PROFILE: _market_profile,
    Domain.ORDER_FLOW: _order_flow,
    Domain.INTERMARKET: _intermarket,
    Domain.TECHNICAL: _technical,
    Domain.FUNDAMENTAL: _fundamental,
    Domain.SENTIMENT: _sentiment,
}


class MultiLayerValidator:
    """Re-checks every analysis domain against a proposed direction.

    A signal is valid when at least `minimum_layers` layers pass and every
    critical layer passes on its own.
    """

    def __init__(
        self,
        minimum_layers: int = 8,
        critical_layers: Sequence[str] = DEFAULT_CRITICAL_LAYERS,
        layer_weights: Mapping[str, float] | None = None,
    ):
        self.minimum_layers = minimum_layers
        self.critical_layers = tuple(critical_layers)
        self.layer_weights = dict(layer_weights or LAYER_WEIGHTS)
        self.total_layers = len(LAYER_ORDER)

    def validate_layer(self, domain: Domain, result: AnalyzerResult | None, direction: Direction) -> ValidationLayerResult:
        name = domain.value
        findings = result.findings if result is not None else None
        if findings is None:
            reason = f"No {DISPLAY_NAMES[name]} available"
            if result is not None and result.error:
                reason = f"{reason}: {result.error}"
            return ValidationLayerResult(name, False, 0, reason)

        if domain is Domain.FUNDAMENTAL and findings.blackout.active:
            return ValidationLayerResult(
                name,
                False,
                0,
                "News blackout active - trading not allowed",
                {"blackout_reason": findings.blackout.reason, "minutes_remaining": findings.blackout.minutes_remaining},
            )

        score, checks = LAYER_CHECKS[domain](findings, direction)
        score = min(100, score)
        passed = score >= PASS_THRESHOLDS.get(name, 50)
        reason = ", ".join(checks) if passed else FAIL_REASONS[name]
        return ValidationLayerResult(name, passed, score, reason, {"checks": checks, "score": score})

    def validate(self, results: Mapping[Domain, AnalyzerResult], direction: Direction) -> ValidationResult:
        layers = [self.validate_layer(d, results.get(d), direction) for d in LAYER_ORDER]
        passed = sum(1 for layer in layers if layer.passed)
        critical_failed = [
            name
            for name in self.critical_layers
            if not any(layer.name == name and layer.passed for layer in layers)
        ]
        critical_ok = not critical_failed
        is_valid = passed >= self.minimum_layers and critical_ok

        return ValidationResult(
            is_valid=is_valid,
            passed_count=passed,
            total_layers=self.total_layers,
            minimum_required=self.minimum_layers,
            critical_layers_passed=critical_ok,
            critical_layers_failed=critical_failed,
            layers=layers,
            weighted_score=self.weighted_score(layers),
            confidence=self.confidence(layers, passed),
            recommendation=self.recommendation(is_valid, passed, critical_ok),
        )

    def weighted_score(self, layers: Sequence[ValidationLayerResult]) -> int:
        total_weight = 0.0
        weighted = 0.0
        for layer in layers:
            weight = self.layer_weights.get(layer.name, 1.0)
            total_weight += weight
            weighted += layer.score / 100 * weight
        if total_weight == 0:
            return 0
        return round(weighted / total_weight * 100)

    def confidence(self, layers: Sequence[ValidationLayerResult], passed: int) -> int:
        base = passed / self.total_layers
        avg = sum(layer.score for layer in layers) / self.total_layers
        return round((base * 0.6 + avg / 100 * 0.4) * 100)

    @staticmethod
    def recommendation(is_valid: bool, passed: int, critical_ok: bool) -> str:
        if is_valid:
            return "STRONG_SIGNAL" if passed >= 9 else "VALID_SIGNAL"
        if not critical_ok:
            return "CRITICAL_LAYERS_FAILED"
        if passed >= 6:
            return "WEAK_SIGNAL"
        return "NO_TRADE"
