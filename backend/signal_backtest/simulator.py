"""Bar-by-bar trade simulation.

Rules:
- LONG: low <= stop -> stop_loss, high >= tp3 -> tp3
- SHORT: high >= stop -> stop_loss, low <= tp3 -> tp3
- Stop checked first, so a bar touching both exits at the stop (pessimistic)
- TP1/TP2 touches are recorded but do not close the trade
- No exit within the horizon -> close of the last bar, reason "timeout"
- Stop exits pay slippage in pips against the trade
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence

from signal_core.constants import pip_size
from signal_core.models.candle import Candle
from signal_core.models.signal import Direction, Signal

DEFAULT_STOP_PERCENT = 1.0
DEFAULT_TP_RATIOS = (1.5, 2.5, 4.0)


class ExitReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TP3 = "tp3"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class TradeSetup:
    """What the backtester needs from a signal. Missing levels get defaults."""

    direction: Direction
    stop_loss: float | None = None
    take_profits: tuple[float, float, float] | None = None
    confluence_score: int = 0

    @classmethod
    def from_signal(cls, signal: Signal) -> TradeSetup:
        return cls(
            direction=signal.direction,
            stop_loss=signal.stop_loss,
            take_profits=(signal.take_profit_1, signal.take_profit_2, signal.take_profit_3),
            confluence_score=signal.confluence_score,
        )

    def levels(self, entry: float) -> tuple[float, tuple[float, float, float]]:
        """Resolve (stop, (tp1, tp2, tp3)) around `entry`."""
        sign = self.direction.value
        stop = self.stop_loss
        if stop is None:
            stop = entry - sign * entry * DEFAULT_STOP_PERCENT / 100
        if self.take_profits is not None:
            return stop, self.take_profits
        distance = abs(entry - stop)
        r1, r2, r3 = DEFAULT_TP_RATIOS
        return stop, (entry + sign * distance * r1, entry + sign * distance * r2, entry + sign * distance * r3)


@dataclass(frozen=True)
class Trade:
    id: str
    symbol: str
    direction: Direction
    entry_price: float
    entry_time: datetime
    exit_price: float
    exit_time: datetime
    exit_reason: ExitReason
    stop_loss: float
    tp1: float
    tp2: float
    tp3: float
    tp1_hit: bool
    tp2_hit: bool
    position_size: float
    pnl: float
    pnl_percent: float
    bars_held: int
    confluence_score: int = 0

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    @property
    def holding_hours(self) -> float:
        return (self.exit_time - self.entry_time).total_seconds() / 3600


def simulate_trade(
    trade_id: str,
    symbol: str,
    setup: TradeSetup,
    entry_candle: Candle,
    future: Sequence[Candle],
    balance: float,
    risk_percent: float = 1.0,
    slippage_pips: float = 0.5,
    commission: float = 0.0,
) -> Trade | None:
    """Walk `future` bars from the close of `entry_candle` until an exit.

    Returns None when there are no future bars or the stop sits on the entry.
    """
    if not future:
        return None

    entry = entry_candle.close
    stop, (tp1, tp2, tp3) = setup.levels(entry)
    stop_distance = abs(entry - stop)
    if stop_distance == 0:
        return None

    risk_amount = balance * risk_percent / 100
    size = risk_amount / stop_distance
    slippage = slippage_pips * pip_size(symbol)
    is_long = setup.direction is Direction.LONG

    tp1_hit = tp2_hit = False
    exit_price: float | None = None
    exit_reason = ExitReason.TIMEOUT
    exit_index = len(future) - 1

    for index, candle in enumerate(future):
        if is_long:
            if candle.low <= stop:
                exit_price, exit_reason = stop - slippage, ExitReason.STOP_LOSS
            else:
                tp1_hit = tp1_hit or candle.high >= tp1
                tp2_hit = tp2_hit or candle.high >= tp2
                if candle.high >= tp3:
                    exit_price, exit_reason = tp3, ExitReason.TP3
        else:
            if candle.high >= stop:
                exit_price, exit_reason = stop + slippage, ExitReason.STOP_LOSS
            else:
                tp1_hit = tp1_hit or candle.low <= tp1
                tp2_hit = tp2_hit or candle.low <= tp2
                if candle.low <= tp3:
                    exit_price, exit_reason = tp3, ExitReason.TP3
        if exit_price is not None:
            exit_index = index
            break

    if exit_price is None:
        exit_price = future[-1].close

    pnl = (exit_price - entry) * size * setup.direction.value - commission * 2

    return Trade(
        id=trade_id,
        symbol=symbol,
        direction=setup.direction,
        entry_price=entry,
        entry_time=entry_candle.timestamp,
        exit_price=exit_price,
        exit_time=future[exit_index].timestamp,
        exit_reason=exit_reason,
        stop_loss=stop,
        tp1=tp1,
        tp2=tp2,
        tp3=tp3,
        tp1_hit=tp1_hit,
        tp2_hit=tp2_hit,
        position_size=size,
        pnl=round(pnl, 2),
        pnl_percent=round(pnl / balance * 100, 2),
        bars_held=exit_index + 1,
        confluence_score=setup.confluence_score,
    )
