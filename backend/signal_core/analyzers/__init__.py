"""Analyzer plugin system.

Public API:
- Analyzer: Protocol that all analyzers implement
- BaseAnalyzer: Minimum-history check plus `_analyze` hook
- register_analyzer: Decorator to register an analyzer class for a domain
- create_analyzer / create_all_analyzers: Factories
- list_analyzers: Discover all registered analyzers
- get_analyzer_class: Get analyzer class by domain without instantiating

Importing this package auto-registers all ten built-in analyzers.
"""

from signal_core.analyzers.base import BaseAnalyzer, SignalVote
from signal_core.analyzers.protocol import Analyzer
from signal_core.analyzers.registry import (
    create_all_analyzers,
    create_analyzer,
    get_analyzer_class,
    list_analyzers,
    register_analyzer,
)

# Import built-in analyzers to trigger auto-registration
from signal_core.analyzers.technical import TechnicalAnalyzer, TechnicalFindings
from signal_core.analyzers.smc import SMCAnalyzer, SMCFindings
from signal_core.analyzers.wyckoff import WyckoffAnalyzer, WyckoffFindings
from signal_core.analyzers.elliott import ElliottFindings, ElliottWaveAnalyzer
from signal_core.analyzers.vsa import VSAAnalyzer, VSAFindings
from signal_core.analyzers.market_profile import MarketProfileAnalyzer, MarketProfileFindings
from signal_core.analyzers.order_flow import OrderFlowAnalyzer, OrderFlowFindings
from signal_core.analyzers.intermarket import IntermarketAnalyzer, IntermarketFindings
from signal_core.analyzers.fundamental import FundamentalAnalyzer, FundamentalFindings, is_trading_allowed
from signal_core.analyzers.sentiment import SentimentAnalyzer, SentimentFindings

__all__ = [
    "Analyzer",
    "BaseAnalyzer",
    "SignalVote",
    "register_analyzer",
    "create_analyzer",
    "create_all_analyzers",
    "list_analyzers",
    "get_analyzer_class",
    "TechnicalAnalyzer",
    "TechnicalFindings",
    "SMCAnalyzer",
    "SMCFindings",
    "WyckoffAnalyzer",
    "WyckoffFindings",
    "ElliottWaveAnalyzer",
    "ElliottFindings",
    "VSAAnalyzer",
    "VSAFindings",
    "MarketProfileAnalyzer",
    "MarketProfileFindings",
    "OrderFlowAnalyzer",
    "OrderFlowFindings",
    "IntermarketAnalyzer",
    "IntermarketFindings",
    "FundamentalAnalyzer",
    "FundamentalFindings",
    "is_trading_allowed",
    "SentimentAnalyzer",
    "SentimentFindings",
]
