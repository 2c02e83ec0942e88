"""In-process storage."""

from signal_app.storage.cache import CacheEntry, CacheKeys, CacheTTL, TTLCache

__all__ = [
    "CacheEntry",
    "CacheKeys",
    "CacheTTL",
    "TTLCache",
]
