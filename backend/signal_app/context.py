"""Market context loaded from a YAML file (calendar, news, sentiment, related series)."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from signal_core.errors import ConfigurationError
from signal_core.models.candle import Candle
from signal_core.models.market import EconomicEvent, MarketContext, NewsItem, SentimentSnapshot

logger = logging.getLogger(__name__)


def context_from_dict(raw: dict[str, Any], source: str = "market context") -> MarketContext:
    """Build a MarketContext from a plain mapping.

    Recognised keys: `events`, `news`, `sentiment`, `related`
    (`{name: [candle rows]}`) and `now`.

    Raises:
        ConfigurationError: If any entry fails validation.
    """
    try:
        now = raw.get("now")
        if isinstance(now, str):
            now = datetime.fromisoformat(now)
        sentiment = raw.get("sentiment")
        return MarketContext(
            related={
                name.upper(): [Candle(**row) for row in rows or []]
                for name, rows in (raw.get("related") or {}).items()
            },
            events=[EconomicEvent(**e) for e in raw.get("events") or []],
            news=[NewsItem(**n) for n in raw.get("news") or []],
            sentiment=SentimentSnapshot(**sentiment) if sentiment else None,
            now=now,
        )
    except (ValidationError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {source}: {e}", setting=source) from e


def load_market_context(path: Path | str) -> MarketContext:
    """Read a context file. A missing file yields an empty context."""
    context_path = Path(path)
    if not context_path.exists():
        logger.warning(f"Context file {context_path} not found, using empty context")
        return MarketContext()

    with open(context_path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Cannot parse {context_path}: {e}", setting=str(context_path)) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{context_path} must contain a mapping", setting=str(context_path))
    return context_from_dict(raw, source=str(context_path))


class FileContextProvider:
    """Context provider that serves the same file-backed context for every symbol."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    async def __call__(self, symbol: str) -> MarketContext:
        return load_market_context(self.path)
