"""Instrument catalog, scoring weights and session windows."""

from __future__ import annotations

from enum import Enum


class Timeframe(str, Enum):
    """Candle timeframe labels."""

    M1 = "M1"
    M5 = "M5"
    M15 = "M15"
    M30 = "M30"
    H1 = "H1"
    H4 = "H4"
    D1 = "D1"
    W1 = "W1"

    @property
    def minutes(self) -> int:
        return _TIMEFRAME_MINUTES[self]


_TIMEFRAME_MINUTES = {
    Timeframe.M1: 1,
    Timeframe.M5: 5,
    Timeframe.M15: 15,
    Timeframe.M30: 30,
    Timeframe.H1: 60,
    Timeframe.H4: 240,
    Timeframe.D1: 1440,
    Timeframe.W1: 10080,
}

# Timeframes fetched for every analysis pass
ANALYSIS_TIMEFRAMES: tuple[Timeframe, ...] = (
    Timeframe.M15,
    Timeframe.H1,
    Timeframe.H4,
    Timeframe.D1,
)

# Timeframe the analyzers read their primary series from
PRIMARY_TIMEFRAME = Timeframe.H1


SUPPORTED_INSTRUMENTS: dict[str, dict[str, list[str]] | list[str]] = {
    "forex": {
        "major": ["EURUSD", "GBPUSD", "USDJPY", "USDCHF", "AUDUSD", "NZDUSD", "USDCAD"],
        "minor": ["EURGBP", "EURJPY", "GBPJPY", "AUDJPY", "EURAUD", "GBPAUD", "EURCAD"],
    },
    "metals": ["XAUUSD", "XAGUSD"],
    "indices": ["US30", "US500", "US100", "GER40", "UK100"],
}

FOREX_MAJORS = SUPPORTED_INSTRUMENTS["forex"]["major"]
FOREX_MINORS = SUPPORTED_INSTRUMENTS["forex"]["minor"]
METALS = SUPPORTED_INSTRUMENTS["metals"]
INDICES = SUPPORTED_INSTRUMENTS["indices"]


def supported_instruments() -> list[str]:
    """Flat list of every tradable symbol."""
    return [*FOREX_MAJORS, *FOREX_MINORS, *METALS, *INDICES]


def is_supported(symbol: str) -> bool:
    return symbol.upper() in supported_instruments()


def instrument_type(symbol: str) -> str:
    """Classify a symbol as 'forex', 'metals' or 'indices'."""
    symbol = symbol.upper()
    if symbol.startswith("XAU") or symbol.startswith("XAG"):
        return "metals"
    if symbol in INDICES:
        return "indices"
    return "forex"


# Pip size (price increment of one pip) per symbol
PIP_SIZES: dict[str, float] = {
    "EURUSD": 0.0001, "GBPUSD": 0.0001, "AUDUSD": 0.0001, "NZDUSD": 0.0001,
    "USDCHF": 0.0001, "USDCAD": 0.0001,
    "USDJPY": 0.01, "EURJPY": 0.01, "GBPJPY": 0.01, "AUDJPY": 0.01,
    "XAUUSD": 0.1, "XAGUSD": 0.01,
    "US30": 1.0, "US500": 0.1, "US100": 0.1,
}
DEFAULT_PIP_SIZE = 0.0001


def pip_size(symbol: str) -> float:
    return PIP_SIZES.get(symbol.upper(), DEFAULT_PIP_SIZE)


# Confluence component weights (must sum to 1.0)
CONFLUENCE_WEIGHTS: dict[str, float] = {
    "smc": 0.20,
    "structure": 0.15,
    "wyckoff": 0.10,
    "vsa": 0.10,
    "order_flow": 0.10,
    "technical": 0.10,
    "intermarket": 0.05,
    "fundamental": 0.05,
    "sentiment": 0.05,
    "ai": 0.10,
}

QUALITY_THRESHOLDS: dict[str, int] = {
    "minimum": 80,
    "good": 80,
    "strong": 85,
    "excellent": 90,
    "institutional": 95,
}


def quality_label(score: float) -> str:
    """Map a confluence score to its quality tier."""
    if score >= QUALITY_THRESHOLDS["institutional"]:
        return "institutional"
    if score >= QUALITY_THRESHOLDS["excellent"]:
        return "excellent"
    if score >= QUALITY_THRESHOLDS["strong"]:
        return "strong"
    if score >= QUALITY_THRESHOLDS["good"]:
        return "good"
    return "fair"


# Kill zones in EST hours (fixed UTC-5, no daylight saving)
KILL_ZONES: dict[str, tuple[int, int]] = {
    "london": (2, 5),
    "new_york": (7, 10),
    "london_close": (10, 12),
    "asian": (19, 2),  # wraps midnight
}

KILL_ZONE_PENALTY = 15

FIB_RETRACEMENT_RATIOS: tuple[float, ...] = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
FIB_EXTENSION_RATIOS: tuple[float, ...] = (1.0, 1.272, 1.414, 1.618, 2.0, 2.618, 3.618)
GOLDEN_ZONE: tuple[float, float] = (0.618, 0.786)
