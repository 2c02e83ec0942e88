"""Stop loss, take profit levels and position sizing for a trade idea."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

from signal_core.constants import instrument_type, pip_size
from signal_core.errors import ConfigurationError
from signal_core.models.signal import Direction

# Normal ATR range in pips per instrument type
NORMAL_ATR_RANGES: dict[str, tuple[float, float]] = {
    "forex": (30, 80),
    "metals": (100, 300),
    "indices": (50, 200),
}

VOLATILITY_RECOMMENDATIONS = {
    "low": "Consider wider targets, market may be consolidating",
    "normal": "Standard risk parameters apply",
    "high": "Reduce position size, use wider stops",
}

STANDARD_LOT_UNITS = 100_000


def round_price(price: float, symbol: str) -> float:
    """Round to 5 decimals for 4-digit pairs, 3 for 2-digit pairs, else 2."""
    pip = pip_size(symbol)
    decimals = 3 if pip == 0.01 else 5 if pip == 0.0001 else 2
    return round(price, decimals)


def pip_value_per_lot(symbol: str, price: float) -> float:
    """Approximate USD value of one pip on one standard lot."""
    symbol = symbol.upper()
    kind = instrument_type(symbol)
    if kind == "metals":
        return 50.0 if symbol == "XAGUSD" else 10.0
    if kind == "indices":
        return 1.0
    if not symbol.endswith("USD") and symbol.startswith("USD") and price > 0:
        return 10.0 / price
    return 10.0


def _floor(value: float, step: float) -> float:
    return round(math.floor(value / step + 1e-9) * step, 2)


@dataclass(frozen=True)
class PriceZone:
    """Order block (or any zone) a stop can be placed beyond."""

    high: float
    low: float


@dataclass(frozen=True)
class RiskParams:
    symbol: str
    direction: Direction
    entry_price: float
    account_balance: float
    atr: float
    swing_high: float | None = None
    swing_low: float | None = None
    order_block: PriceZone | None = None
    risk_percent: float | None = None


@dataclass(frozen=True)
class StopLoss:
    price: float
    pips: float
    method: str  # atr / structure / order_block / max_distance
    distance: float


@dataclass(frozen=True)
class TakeProfit:
    level: int
    price: float
    pips: float
    ratio: float
    close_percent: float


@dataclass(frozen=True)
class PositionSize:
    lots: float
    mini_lots: float
    micro_lots: float
    units: int
    risk_amount: float
    risk_percent: float
    pip_value_per_lot: float


@dataclass(frozen=True)
class RiskReward:
    ratios: list[float]
    average: float
    meets_minimum: bool


@dataclass(frozen=True)
class VolatilityAdjustment:
    atr_pips: float
    adjustment: float
    level: str
    recommendation: str


@dataclass(frozen=True)
class PotentialProfit:
    per_target: list[float]
    total: float


@dataclass(frozen=True)
class RiskValidity:
    is_valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RiskAssessment:
    symbol: str
    direction: Direction
    entry: float
    stop_loss: StopLoss
    take_profits: list[TakeProfit]
    position_size: PositionSize
    risk_reward: RiskReward
    volatility_adjustment: VolatilityAdjustment
    potential_profit: PotentialProfit
    validity: RiskValidity

    @property
    def is_valid(self) -> bool:
        return self.validity.is_valid

    @property
    def risk_amount(self) -> float:
        return self.position_size.risk_amount


@dataclass(frozen=True)
class TrailingStop:
    price: float
    distance: float
    pips: float


@dataclass(frozen=True)
class BreakEven:
    price: float
    move_after_tp1: bool = True


class RiskManager:
    """Sizes a trade from account balance, volatility and market structure.

    Args:
        default_risk_percent: Balance percent risked when the caller does not say.
        max_risk_percent: Hard cap on any requested risk percent.
        min_risk_reward: TP2 ratio a trade needs to be valid.
        tp_ratios: Take-profit distances as multiples of the stop distance.
        partial_close_percents: Share of the position closed at each target.
        atr_multiplier: ATR multiple used for the volatility stop.
        min_sl_pips: Narrowest allowed stop.
        max_sl_pips: Widest allowed stop.

    Raises:
        ConfigurationError: On inconsistent parameters.
    """

    def __init__(
        self,
        default_risk_percent: float = 1.0,
        max_risk_percent: float = 2.0,
        min_risk_reward: float = 2.5,
        tp_ratios: Sequence[float] = (1.5, 2.5, 4.0),
        partial_close_percents: Sequence[float] = (40, 40, 20),
        atr_multiplier: float = 1.5,
        min_sl_pips: float = 10,
        max_sl_pips: float = 50,
    ):
        if len(tp_ratios) != 3 or len(partial_close_percents) != 3:
            raise ConfigurationError("Exactly three take-profit levels are required", setting="tp_ratios")
        if abs(sum(partial_close_percents) - 100) > 1e-6:
            raise ConfigurationError(
                f"Partial close percents must sum to 100, got {sum(partial_close_percents)}",
                setting="partial_close_percents",
            )
        if min_sl_pips <= 0 or min_sl_pips > max_sl_pips:
            raise ConfigurationError(
                f"Invalid stop range: {min_sl_pips}-{max_sl_pips} pips",
                setting="min_sl_pips",
            )
        if not 0 < default_risk_percent <= max_risk_percent:
            raise ConfigurationError(
                f"default_risk_percent must be in (0, {max_risk_percent}]",
                setting="default_risk_percent",
            )

        self.default_risk_percent = default_risk_percent
        self.max_risk_percent = max_risk_percent
        self.min_risk_reward = min_risk_reward
        self.tp_ratios = tuple(tp_ratios)
        self.partial_close_percents = tuple(partial_close_percents)
        self.atr_multiplier = atr_multiplier
        self.min_sl_pips = min_sl_pips
        self.max_sl_pips = max_sl_pips

    def calculate(self, params: RiskParams) -> RiskAssessment:
        stop = self.stop_loss(params)
        targets = self.take_profits(params.symbol, params.direction, params.entry_price, stop)
        size = self.position_size(params.symbol, params.account_balance, params.entry_price, stop, params.risk_percent)
        rr = self.risk_reward(stop, targets)
        return RiskAssessment(
            symbol=params.symbol,
            direction=params.direction,
            entry=params.entry_price,
            stop_loss=stop,
            take_profits=targets,
            position_size=size,
            risk_reward=rr,
            volatility_adjustment=self.volatility_adjustment(params.atr, params.symbol),
            potential_profit=self.potential_profit(size, targets),
            validity=self.validate(stop, rr),
        )

    def stop_loss(self, params: RiskParams) -> StopLoss:
        """Tightest positive stop among ATR, swing structure and order block.

        The chosen distance is clamped into [min_sl_pips, max_sl_pips].
        """
        pip = pip_size(params.symbol)
        entry = params.entry_price
        is_long = params.direction is Direction.LONG

        candidates: list[tuple[float, str]] = [(params.atr * self.atr_multiplier, "atr")]
        if is_long and params.swing_low is not None:
            candidates.append((entry - params.swing_low, "structure"))
        elif not is_long and params.swing_high is not None:
            candidates.append((params.swing_high - entry, "structure"))
        if params.order_block is not None:
            ob = params.order_block
            candidates.append((entry - ob.low if is_long else ob.high - entry, "order_block"))

        valid = [c for c in candidates if c[0] > 0]
        if valid:
            distance, method = min(valid, key=lambda c: c[0])
        else:
            distance, method = math.inf, "max_distance"
        distance = max(self.min_sl_pips * pip, min(self.max_sl_pips * pip, distance))

        price = entry - distance if is_long else entry + distance
        return StopLoss(
            price=round_price(price, params.symbol),
            pips=round(distance / pip, 1),
            method=method,
            distance=distance,
        )

    def take_profits(self, symbol: str, direction: Direction, entry: float, stop: StopLoss) -> list[TakeProfit]:
        pip = pip_size(symbol)
        sign = 1 if direction is Direction.LONG else -1
        targets = []
        for level, (ratio, close_pct) in enumerate(zip(self.tp_ratios, self.partial_close_percents), start=1):
            distance = stop.distance * ratio
            targets.append(
                TakeProfit(
                    level=level,
                    price=round_price(entry + sign * distance, symbol),
                    pips=round(distance / pip, 1),
                    ratio=ratio,
                    close_percent=close_pct,
                )
            )
        return targets

    def position_size(
        self,
        symbol: str,
        account_balance: float,
        entry: float,
        stop: StopLoss,
        risk_percent: float | None = None,
    ) -> PositionSize:
        """Lots such that hitting the stop loses `risk_percent` of the balance."""
        risk_pct = min(risk_percent or self.default_risk_percent, self.max_risk_percent)
        risk_amount = account_balance * risk_pct / 100
        per_lot = pip_value_per_lot(symbol, entry)
        lots = risk_amount / (stop.pips * per_lot) if stop.pips > 0 else 0.0
        standard = _floor(lots, 0.01)
        return PositionSize(
            lots=standard,
            mini_lots=_floor(lots, 0.1),
            micro_lots=standard,
            units=round(standard * STANDARD_LOT_UNITS),
            risk_amount=round(risk_amount, 2),
            risk_percent=risk_pct,
            pip_value_per_lot=per_lot,
        )

    def risk_reward(self, stop: StopLoss, targets: Sequence[TakeProfit]) -> RiskReward:
        ratios = [round(tp.pips / stop.pips, 2) for tp in targets]
        weighted = sum(tp.pips * tp.close_percent / 100 for tp in targets)
        tp2 = targets[1]
        return RiskReward(
            ratios=ratios,
            average=round(weighted / stop.pips, 2),
            meets_minimum=tp2.ratio >= self.min_risk_reward,
        )

    def volatility_adjustment(self, atr: float, symbol: str) -> VolatilityAdjustment:
        atr_pips = atr / pip_size(symbol)
        low, high = NORMAL_ATR_RANGES.get(instrument_type(symbol), NORMAL_ATR_RANGES["forex"])
        if atr_pips < low:
            adjustment, level = 1.2, "low"
        elif atr_pips > high:
            adjustment, level = 0.7, "high"
        else:
            adjustment, level = 1.0, "normal"
        return VolatilityAdjustment(round(atr_pips, 1), adjustment, level, VOLATILITY_RECOMMENDATIONS[level])

    @staticmethod
    def potential_profit(size: PositionSize, targets: Sequence[TakeProfit]) -> PotentialProfit:
        raw = [size.lots * tp.pips * size.pip_value_per_lot * tp.close_percent / 100 for tp in targets]
        return PotentialProfit(per_target=[round(p, 2) for p in raw], total=round(sum(raw), 2))

    def validate(self, stop: StopLoss, rr: RiskReward) -> RiskValidity:
        issues = []
        if stop.pips < self.min_sl_pips:
            issues.append("Stop loss too tight")
        if stop.pips > self.max_sl_pips:
            issues.append("Stop loss too wide")
        if not rr.meets_minimum:
            issues.append(f"Risk/Reward below minimum {self.min_risk_reward}")
        return RiskValidity(is_valid=not issues, issues=issues)

    @staticmethod
    def trailing_stop(
        symbol: str,
        direction: Direction,
        entry_price: float,
        current_price: float,
        atr: float,
    ) -> TrailingStop:
        """Stop trailed one ATR behind price, never past entry."""
        if direction is Direction.LONG:
            price = max(current_price - atr, entry_price)
        else:
            price = min(current_price + atr, entry_price)
        return TrailingStop(
            price=round_price(price, symbol),
            distance=atr,
            pips=round(atr / pip_size(symbol), 1),
        )

    @staticmethod
    def break_even(symbol: str, direction: Direction, entry_price: float, spread: float = 0.0) -> BreakEven:
        price = entry_price + spread if direction is Direction.LONG else entry_price - spread
        return BreakEven(price=round_price(price, symbol))
