"""Turns a validated analysis report into a trade signal.

This module is pure business logic with no I/O dependencies. Direction,
entry and reasoning come from the analyzer findings; stop, targets and
position size come from the RiskManager.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Mapping

from signal_core.ai import AIAnalysis
from signal_core.constants import quality_label
from signal_core.errors import AnalysisError, ErrorCode
from signal_core.indicators import last_atr
from signal_core.models.analysis import AnalyzerResult, Bias, Domain
from signal_core.models.candle import to_arrays
from signal_core.models.signal import Direction, Signal
from signal_core.report import AnalysisReport
from signal_core.risk import PriceZone, RiskManager, RiskParams

logger = logging.getLogger(__name__)

# Vote weight per input when proposing a direction
DIRECTION_WEIGHTS: dict[str, int] = {
    "smc": 30,
    "technical": 25,
    "wyckoff": 20,
    "ai": 25,
}

# Max distance from price (as a ratio) for an order block to be used as entry
ORDER_BLOCK_ENTRY_DISTANCE = 0.005


class SignalGenerator:
    """
    Build a Signal from an AnalysisReport.

    - Direction: weighted vote of SMC, Technical, Wyckoff and AI. Ties go short.
    - Entry: nearby same-side order block, else OTE zone edge, else last close.
    - Risk: stop, three targets and lot size from the RiskManager.
    """

    def __init__(self, risk_manager: RiskManager | None = None, expiration_hours: float = 24):
        self.risk_manager = risk_manager or RiskManager()
        self.expiration_hours = expiration_hours

    def determine_direction(self, results: Mapping[Domain, AnalyzerResult], ai: AIAnalysis | None) -> Direction:
        bullish = 0
        bearish = 0
        for name, domain in (("smc", Domain.SMC), ("technical", Domain.TECHNICAL), ("wyckoff", Domain.WYCKOFF)):
            result = results.get(domain)
            if result is None:
                continue
            if result.bias == Bias.BULLISH:
                bullish += DIRECTION_WEIGHTS[name]
            elif result.bias == Bias.BEARISH:
                bearish += DIRECTION_WEIGHTS[name]

        if ai is not None and ai.direction is Direction.LONG:
            bullish += DIRECTION_WEIGHTS["ai"]
        elif ai is not None and ai.direction is Direction.SHORT:
            bearish += DIRECTION_WEIGHTS["ai"]

        return Direction.LONG if bullish > bearish else Direction.SHORT

    @staticmethod
    def nearby_order_block(smc, direction: Direction, price: float):
        """First same-side order block whose midpoint is within 0.5% of price."""
        if smc is None or price <= 0:
            return None
        for ob in smc.order_blocks:
            if ob.bias != direction.bias:
                continue
            if abs(price - ob.midpoint) / price < ORDER_BLOCK_ENTRY_DISTANCE:
                return ob
        return None

    def calculate_entry(self, smc, direction: Direction, price: float) -> float:
        ob = self.nearby_order_block(smc, direction, price)
        if ob is not None:
            return ob.low if direction is Direction.LONG else ob.high

        ote = smc.ote_zone if smc is not None else None
        if ote is not None and ote.bias == direction.bias:
            return ote.low if direction is Direction.LONG else ote.high

        return price

    @staticmethod
    def _atr(report: AnalysisReport) -> float:
        technical = report.findings(Domain.TECHNICAL)
        if technical is not None and technical.volatility.atr > 0:
            return technical.volatility.atr
        candles = report.market_data.primary
        if len(candles) < 2:
            return 0.0
        arrays = to_arrays(candles)
        return last_atr(arrays.high, arrays.low, arrays.close)

    def build_reasoning(self, report: AnalysisReport) -> list[str]:
        reasons: list[str] = []
        smc = report.findings(Domain.SMC)
        technical = report.findings(Domain.TECHNICAL)
        wyckoff = report.findings(Domain.WYCKOFF)
        fundamental = report.findings(Domain.FUNDAMENTAL)
        sentiment = report.results.get(Domain.SENTIMENT)

        if smc is not None:
            if smc.order_blocks:
                side = smc.order_blocks[0].bias.value.capitalize()
                reasons.append(f"{side} order block detected at key level")
            if smc.fvgs:
                reasons.append("Fair Value Gap present - price imbalance zone")
            last_break = smc.structure.last_break
            if last_break is not None:
                reasons.append(f"{last_break.kind} confirmed - trend continuation")

        if technical is not None:
            if technical.trend.direction != Bias.NEUTRAL:
                reasons.append(
                    f"Trend: {technical.trend.direction.value} (strength: {technical.trend.strength}%)"
                )
            if technical.divergences:
                div = technical.divergences[0]
                reasons.append(f"{div.bias.value.capitalize()} {div.indicator} divergence detected")

        if wyckoff is not None:
            if wyckoff.phase.phase != "unknown":
                reasons.append(
                    f"Wyckoff {wyckoff.phase.phase} phase ({wyckoff.phase.probability}% confidence)"
                )
            if wyckoff.spring.detected:
                reasons.append("Spring pattern - potential reversal")

        reasons.extend(f"AI: {r}" for r in report.ai.reasoning[:2])

        if fundamental is not None and not fundamental.blackout.active and fundamental.signal.bias != Bias.NEUTRAL:
            reasons.append(f"Fundamental bias: {fundamental.signal.bias.value}")

        if sentiment is not None and sentiment.ok and sentiment.bias != Bias.NEUTRAL and sentiment.score > 50:
            reasons.append(f"Market sentiment: {sentiment.bias.value} ({sentiment.score}%)")

        return reasons

    def generate(
        self,
        report: AnalysisReport,
        account_balance: float,
        risk_percent: float | None = None,
    ) -> Signal:
        """Build the signal for `report.proposed_direction`.

        Raises:
            AnalysisError: If the report carries no primary price series.
        """
        price = report.last_price
        if price is None:
            raise AnalysisError(
                f"No price data for {report.symbol}",
                analyzer="signal_generator",
                code=ErrorCode.INSUFFICIENT_DATA,
            )

        direction = report.proposed_direction
        smc = report.findings(Domain.SMC)
        entry = self.calculate_entry(smc, direction, price)
        ob = self.nearby_order_block(smc, direction, price)

        swing_high = swing_low = None
        if smc is not None:
            if smc.structure.last_swing_high is not None:
                swing_high = smc.structure.last_swing_high.price
            if smc.structure.last_swing_low is not None:
                swing_low = smc.structure.last_swing_low.price

        risk = self.risk_manager.calculate(
            RiskParams(
                symbol=report.symbol,
                direction=direction,
                entry_price=entry,
                account_balance=account_balance,
                atr=self._atr(report),
                swing_high=swing_high,
                swing_low=swing_low,
                order_block=PriceZone(ob.high, ob.low) if ob is not None else None,
                risk_percent=risk_percent,
            )
        )
        tp1, tp2, tp3 = (tp.price for tp in risk.take_profits)
        score = report.confluence.score

        signal = Signal(
            symbol=report.symbol,
            direction=direction,
            entry=entry,
            stop_loss=risk.stop_loss.price,
            take_profit_1=tp1,
            take_profit_2=tp2,
            take_profit_3=tp3,
            confluence_score=score,
            quality=quality_label(score),
            reasoning=self.build_reasoning(report),
            validation_layers=[layer.outcome() for layer in report.validation.layers],
            stop_pips=risk.stop_loss.pips,
            lot_size=risk.position_size.lots,
            risk_amount=risk.risk_amount,
            risk_percent=risk.position_size.risk_percent,
            risk_reward=risk.risk_reward.average,
            smc_bias=report.results[Domain.SMC].bias if Domain.SMC in report.results else Bias.NEUTRAL,
            technical_bias=(
                report.results[Domain.TECHNICAL].bias if Domain.TECHNICAL in report.results else Bias.NEUTRAL
            ),
            ai_direction=report.ai.direction,
            ai_confidence=report.ai.confidence,
            created_at=report.timestamp,
            expires_at=report.timestamp + timedelta(hours=self.expiration_hours),
        )
        logger.info(
            f"Signal {signal.id[:8]} {signal.symbol} {direction.label} @ {entry} "
            f"SL={signal.stop_loss} TP2={signal.take_profit_2} score={score} ({signal.quality})"
        )
        return signal
