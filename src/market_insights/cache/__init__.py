"""Series cache: storage backends, codec and the cache service."""

from market_insights.cache.backends import CacheBackend, MemoryCacheBackend, SqliteCacheBackend
from market_insights.cache.codec import decode_series, encode_series
from market_insights.cache.store import CacheEntry, SeriesCache, create_cache

__all__ = [
    "CacheBackend",
    "MemoryCacheBackend",
    "SqliteCacheBackend",
    "CacheEntry",
    "SeriesCache",
    "create_cache",
    "encode_series",
    "decode_series",
]
