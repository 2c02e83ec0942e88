"""Market data source clients."""

from signal_app.clients.alpha_vantage import AlphaVantageClient
from signal_app.clients.base import HTTPSource, OHLCVSource, RateLimiter
from signal_app.clients.static import StaticSource
from signal_app.clients.twelve_data import TwelveDataClient
from signal_app.clients.yahoo import YahooFinanceClient

__all__ = [
    "AlphaVantageClient",
    "HTTPSource",
    "OHLCVSource",
    "RateLimiter",
    "StaticSource",
    "TwelveDataClient",
    "YahooFinanceClient",
]
