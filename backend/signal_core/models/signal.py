"""Trading signal models."""

from __future__ import annotations

import hashlib
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from signal_core.models.analysis import Bias


class Direction(int, Enum):
    """Trade direction."""

    LONG = 1
    SHORT = -1

    @property
    def label(self) -> str:
        return "BUY" if self is Direction.LONG else "SELL"

    @property
    def bias(self) -> Bias:
        return Bias.BULLISH if self is Direction.LONG else Bias.BEARISH

    @property
    def opposite(self) -> Direction:
        return Direction.SHORT if self is Direction.LONG else Direction.LONG

    @classmethod
    def from_bias(cls, bias: Bias) -> Direction | None:
        if bias is Bias.BULLISH:
            return cls.LONG
        if bias is Bias.BEARISH:
            return cls.SHORT
        return None

    @classmethod
    def from_label(cls, label: str) -> Direction | None:
        """Parse 'BUY'/'SELL' (anything else is no direction)."""
        label = label.upper()
        if label in ("BUY", "LONG"):
            return cls.LONG
        if label in ("SELL", "SHORT"):
            return cls.SHORT
        return None


class SignalStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


def _generate_signal_id(symbol: str, created_at: datetime, direction: int) -> str:
    """Deterministic signal ID so a replayed analysis yields the same ID."""
    ts_str = created_at.strftime("%Y%m%d%H%M%S%f")
    key = f"{symbol}:{ts_str}:{direction}"
    return hashlib.sha256(key.encode()).hexdigest()[:32]


class LayerOutcome(BaseModel):
    """Compact record of one validation layer attached to a signal."""

    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    score: int
    reason: str = ""


class Signal(BaseModel):
    """Qualified trade recommendation. Immutable after creation."""

    model_config = ConfigDict(frozen=True)

    id: str = ""  # Set in model_post_init
    symbol: str
    direction: Direction
    entry: float
    stop_loss: float
    take_profit_1: float
    take_profit_2: float
    take_profit_3: float
    confluence_score: int
    quality: str
    reasoning: list[str] = Field(default_factory=list)
    validation_layers: list[LayerOutcome] = Field(default_factory=list)

    # Position sizing
    stop_pips: float = 0.0
    lot_size: float = 0.0
    risk_amount: float = 0.0
    risk_percent: float = 0.0
    risk_reward: float = 0.0

    # Analysis snapshot
    smc_bias: Bias = Bias.NEUTRAL
    technical_bias: Bias = Bias.NEUTRAL
    ai_direction: Direction | None = None
    ai_confidence: float = 0.0

    created_at: datetime
    expires_at: datetime
    status: SignalStatus = SignalStatus.ACTIVE

    def model_post_init(self, __context) -> None:
        if not self.id:
            object.__setattr__(
                self,
                "id",
                _generate_signal_id(self.symbol, self.created_at, self.direction.value),
            )

    @property
    def risk_distance(self) -> float:
        """Distance from entry to stop loss."""
        if self.direction == Direction.LONG:
            return self.entry - self.stop_loss
        return self.stop_loss - self.entry

    @property
    def take_profits(self) -> tuple[float, float, float]:
        return (self.take_profit_1, self.take_profit_2, self.take_profit_3)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
