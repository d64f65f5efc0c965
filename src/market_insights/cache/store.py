"""Series cache service: last good series per (coin, metric).

The acquisition engine reads an entry for optimistic display before fetching
and overwrites it only after a successful race. Reads never wait on writers;
writes to the same key are serialized by a per-key lock.

Entries are keyed by coin and metric only, so a series cached under one
timeframe is served for every timeframe of the same coin and metric. Set
``key_includes_timeframe`` to key by timeframe as well.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict

from market_insights.cache.backends import CacheBackend, MemoryCacheBackend, SqliteCacheBackend
from market_insights.cache.codec import decode_series, encode_series
from market_insights.core.config import CacheConfig
from market_insights.core.exceptions import CacheError
from market_insights.core.models import (
    CacheBackendType,
    CoinId,
    Metric,
    Query,
    TimeSeriesPoint,
    normalize_series,
)

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    """A cached series plus its fallback status."""

    model_config = ConfigDict(frozen=True)

    key: str
    coin_id: CoinId
    metric: Metric
    points: list[TimeSeriesPoint]
    stale: bool = False
    written_at: datetime | None = None


class SeriesCache:
    """Cache service handed to the acquisition engine.

    Parameters
    ----------
    backend : CacheBackend
        Storage for encoded series (in-memory for tests, SQLite in production).
    key_includes_timeframe : bool
        Widen the key from (coin, metric) to (coin, metric, timeframe).
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        key_includes_timeframe: bool = False,
    ) -> None:
        self._backend = backend or MemoryCacheBackend()
        self._key_includes_timeframe = key_includes_timeframe
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        # Process-local: staleness describes how this process served the entry.
        self._stale: set[str] = set()
        self._written_at: dict[str, datetime] = {}

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def key_for(self, query: Query) -> str:
        key = f"series:{query.coin_id}:{query.metric.value}"
        if self._key_includes_timeframe:
            key = f"{key}:{query.timeframe.value}"
        return key

    async def read(self, query: Query) -> CacheEntry | None:
        """Return the cached entry for ``query``, or None if absent or empty.

        Raises:
            CacheError: backend failure or corrupt payload.
        """
        key = self.key_for(query)
        payload = await self._backend.get(key)
        if payload is None:
            return None
        try:
            points = decode_series(payload)
        except CacheError as e:
            e.context.setdefault("key", key)
            raise
        if not points:
            return None
        return CacheEntry(
            key=key,
            coin_id=query.coin_id,
            metric=query.metric,
            points=points,
            stale=key in self._stale,
            written_at=self._written_at.get(key),
        )

    async def write(self, query: Query, points: list[TimeSeriesPoint]) -> CacheEntry:
        """Overwrite the entry for ``query`` and clear its stale flag.

        Raises:
            CacheError: backend failure, or ``points`` is empty.
        """
        key = self.key_for(query)
        series = normalize_series(points)
        if not series:
            raise CacheError(
                "Refusing to cache an empty series",
                context={"operation": "set", "key": key},
            )
        async with self._locks[key]:
            await self._backend.set(key, encode_series(series))
            self._stale.discard(key)
            self._written_at[key] = datetime.now(timezone.utc)
        logger.info("Cached %d points under %s", len(series), key)
        return CacheEntry(
            key=key,
            coin_id=query.coin_id,
            metric=query.metric,
            points=series,
            written_at=self._written_at[key],
        )

    def mark_stale(self, query: Query) -> None:
        """Flag the entry as having been served as a fallback."""
        self._stale.add(self.key_for(query))

    async def invalidate(self, query: Query) -> None:
        key = self.key_for(query)
        async with self._locks[key]:
            await self._backend.delete(key)
            self._stale.discard(key)
            self._written_at.pop(key, None)

    async def close(self) -> None:
        await self._backend.close()


async def create_cache(config: CacheConfig) -> SeriesCache:
    """Create a SeriesCache with an initialized backend based on configuration."""
    if config.backend == CacheBackendType.SQLITE:
        backend: CacheBackend = SqliteCacheBackend(config.sqlite_path)
    elif config.backend == CacheBackendType.MEMORY:
        backend = MemoryCacheBackend()
    else:
        raise CacheError(
            f"Unsupported cache backend: {config.backend}",
            context={"operation": "create_cache", "backend": str(config.backend)},
        )
    await backend.initialize()
    return SeriesCache(backend, key_includes_timeframe=config.key_includes_timeframe)
