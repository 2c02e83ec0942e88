"""Business services."""

from signal_app.services.engine import SignalEngine
from signal_app.services.market_data import MarketDataProvider, PriceQuote, validate_candles

__all__ = [
    "SignalEngine",
    "MarketDataProvider",
    "PriceQuote",
    "validate_candles",
]
