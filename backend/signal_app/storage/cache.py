"""In-process TTL cache with LRU eviction.

Provides caching for:
- Market data per symbol/timeframe
- Analysis reports per symbol
- Instrument lists and kill-zone status

Entries expire lazily on read and through a periodic sweep task.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

_MISSING = object()


class CacheTTL(IntEnum):
    """TTL presets in seconds."""

    REALTIME = 5
    SHORT = 30
    MEDIUM = 60
    LONG = 300
    EXTENDED = 900
    HOUR = 3600


# =============================================================================
# Key builders for different data types
# =============================================================================


class CacheKeys:
    @staticmethod
    def market_data(symbol: str, timeframe: str) -> str:
        return f"market:{symbol}:{timeframe}"

    @staticmethod
    def analysis(symbol: str) -> str:
        return f"analysis:{symbol}"

    @staticmethod
    def signal(symbol: str) -> str:
        return f"signal:{symbol}"

    @staticmethod
    def performance() -> str:
        return "performance:stats"

    @staticmethod
    def instruments() -> str:
        return "instruments:list"

    @staticmethod
    def kill_zone() -> str:
        return "killzone:current"


@dataclass
class CacheEntry:
    value: Any
    created_at: float
    last_access: float
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0


class TTLCache:
    """Key-value store with per-entry TTL and least-recently-used eviction.

    Args:
        max_size: Entry count at which the least recently read entry is evicted.
        default_ttl: Seconds an entry lives when `set` is given no TTL.
        sweep_interval: Seconds between background sweeps of expired entries.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 60.0,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._stats = CacheStats()
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    # =========================================================================
    # Basic operations
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value, or `default` if missing or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return default

        now = self._clock()
        if now > entry.expires_at:
            del self._entries[key]
            self._stats.misses += 1
            return default

        entry.last_access = now
        self._stats.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value for `ttl` seconds (default TTL if None)."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            created_at=now,
            last_access=now,
            expires_at=now + (self.default_ttl if ttl is None else ttl),
        )
        self._stats.sets += 1

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        """True if the key exists and has not expired. Does not count as a read."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return False
        return True

    def clear(self) -> None:
        self._entries.clear()

    def clear_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with `prefix`. Returns the number removed."""
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: float | None = None,
    ) -> Any:
        """Return the cached value, computing and storing it on a miss.

        Concurrent callers for the same key share one computation.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                # Another caller may have filled it while we waited
                entry = self._entries.get(key)
                if entry is not None and self._clock() <= entry.expires_at:
                    entry.last_access = self._clock()
                    return entry.value
                value = await factory()
                self.set(key, value, ttl)
        finally:
            self._locks.pop(key, None)
        return value

    # =========================================================================
    # Eviction and expiry
    # =========================================================================

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].last_access)
        del self._entries[oldest_key]
        self._stats.evictions += 1
        logger.debug(f"Cache evicted LRU entry: {oldest_key}")

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now > e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.sweep()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")

    def start_sweeper(self) -> asyncio.Task:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())
        return self._sweeper

    async def close(self) -> None:
        """Stop the sweeper and drop all entries."""
        if self._sweeper is not None and not self._sweeper.done():
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
        self._sweeper = None
        self.clear()

    # =========================================================================
    # Statistics
    # =========================================================================

    def stats(self) -> dict[str, Any]:
        s = self._stats
        lookups = s.hits + s.misses
        hit_rate = round(s.hits / lookups * 100, 2) if lookups else 0.0
        return {
            "hits": s.hits,
            "misses": s.misses,
            "sets": s.sets,
            "evictions": s.evictions,
            "hit_rate": hit_rate,
            "size": len(self._entries),
            "max_size": self.max_size,
        }
