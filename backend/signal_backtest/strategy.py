"""Signal callback backed by the full engine pipeline."""

from __future__ import annotations

import logging

from signal_app.clients import StaticSource
from signal_app.engine_config import EngineConfig
from signal_app.services import MarketDataProvider, SignalEngine
from signal_core.constants import PRIMARY_TIMEFRAME
from signal_core.models.candle import Candle
from signal_core.models.market import MarketContext, MultiTimeframeData
from signal_core.models.signal import Signal

logger = logging.getLogger(__name__)


class EngineStrategy:
    """Runs analyzers, gates and the signal generator over replayed history.

    History becomes the primary timeframe; the evaluation clock is pinned to
    the last bar so kill zones and blackouts follow replay time.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        context: MarketContext | None = None,
        account_balance: float | None = None,
        risk_percent: float | None = None,
    ):
        config = (config or EngineConfig()).model_copy(update={"enable_caching": False})
        provider = MarketDataProvider({"static": StaticSource()}, primary_source="static")
        self.engine = SignalEngine(provider, config=config)
        self.context = context or MarketContext()
        self.account_balance = account_balance
        self.risk_percent = risk_percent
        self.rejections: dict[str, int] = {}

    async def __call__(self, symbol: str, history: list[Candle]) -> Signal | None:
        context = MarketContext(
            related=self.context.related,
            events=self.context.events,
            news=self.context.news,
            sentiment=self.context.sentiment,
            now=history[-1].timestamp,
        )
        data = MultiTimeframeData(symbol=symbol, series={PRIMARY_TIMEFRAME.value: history}, context=context)
        report = await self.engine.analyze_data(data)
        decision = self.engine.decide(report, self.account_balance, self.risk_percent)
        if not decision.accepted:
            gate = next((name for name, ok in decision.checks.items() if not ok), "unknown")
            self.rejections[gate] = self.rejections.get(gate, 0) + 1
        return decision.signal

    async def close(self) -> None:
        await self.engine.close()
