"""Acquisition engine: cache-first display, provider race, graceful fallback.

State machine per caller context::

    IDLE ─▶ CACHE_SERVED (optimistic, if cached) ─▶ FETCHING ─┬─▶ RESOLVED_FRESH
                                                              ├─▶ CACHE_SERVED (stale)
                                                              ├─▶ RESOLVED_SYNTHETIC
                                                              └─▶ FAILED

Resolution order when fetching fails: the cached entry (flagged stale) wins
over the synthetic series; FAILED is only reachable when synthetic fallback
is disabled or cannot be produced.

Each request gets a sequence number. A newer request in the same context
cancels the older race, and anything the older request would still have
produced is dropped.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from enum import StrEnum
from typing import AsyncIterator, Sequence

import httpx
from pydantic import BaseModel, ConfigDict

from market_insights.acquisition.race import race_providers
from market_insights.acquisition.synthetic import synthetic_series
from market_insights.cache.store import CacheEntry, SeriesCache, create_cache
from market_insights.core.config import EngineConfig, InsightsConfig
from market_insights.core.exceptions import AllProvidersFailed, CacheError
from market_insights.core.models import (
    Query,
    SeriesStats,
    TimeSeriesPoint,
    normalize_series,
)
from market_insights.providers import create_providers
from market_insights.providers.base import ProviderAdapter, ProviderResult

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT = "default"


class AcquisitionState(StrEnum):
    """Engine states for one caller context."""

    IDLE = "idle"
    CACHE_SERVED = "cache_served"
    FETCHING = "fetching"
    RESOLVED_FRESH = "resolved_fresh"
    RESOLVED_SYNTHETIC = "resolved_synthetic"
    FAILED = "failed"


class Acquisition(BaseModel):
    """A snapshot handed to the caller.

    ``final`` is False only for the optimistic cache snapshot that precedes a
    fetch. ``source`` is the winning provider name, ``"cache"`` or
    ``"synthetic"``.
    """

    model_config = ConfigDict(frozen=True)

    query: Query
    sequence: int
    state: AcquisitionState
    points: list[TimeSeriesPoint] = []
    source: str | None = None
    stale: bool = False
    final: bool = True
    warning: str | None = None
    errors: list[str] = []

    @property
    def stats(self) -> SeriesStats:
        return SeriesStats.from_points(self.points, self.query.metric)


class AcquisitionEngine:
    """Obtains a series for a query with bounded latency and graceful degradation.

    Parameters
    ----------
    providers : Sequence[ProviderAdapter]
        Adapters raced for every query.
    cache : SeriesCache
        Cache service read before fetching and written after a success.
    config : EngineConfig | None
        Race deadline and synthetic fallback switch.
    """

    def __init__(
        self,
        providers: Sequence[ProviderAdapter],
        cache: SeriesCache,
        config: EngineConfig | None = None,
    ) -> None:
        self._providers = list(providers)
        self._cache = cache
        self._config = config or EngineConfig()
        self._sequence = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._states: dict[str, AcquisitionState] = {}
        self._inflight: dict[str, asyncio.Task[ProviderResult]] = {}

    @classmethod
    async def from_config(
        cls,
        config: InsightsConfig,
        client: httpx.AsyncClient | None = None,
    ) -> AcquisitionEngine:
        """Wire enabled providers and the configured cache backend."""
        providers = create_providers(config.providers, client=client)
        cache = await create_cache(config.cache)
        return cls(providers, cache, config.engine)

    async def __aenter__(self) -> AcquisitionEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Cancel in-flight races, close adapters and the cache backend.

        Pending ``stream``/``acquire`` calls are treated as superseded and
        finish without a snapshot.
        """
        self._latest.clear()
        self._states.clear()
        tasks = list(self._inflight.values())
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for provider in self._providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
        await self._cache.close()

    @property
    def cache(self) -> SeriesCache:
        return self._cache

    def state(self, context: str = DEFAULT_CONTEXT) -> AcquisitionState:
        return self._states.get(context, AcquisitionState.IDLE)

    def is_current(self, context: str, sequence: int) -> bool:
        return self._latest.get(context) == sequence

    # --- Public API ---

    async def acquire(
        self, query: Query, context: str = DEFAULT_CONTEXT
    ) -> Acquisition | None:
        """Return the terminal snapshot for ``query``.

        Returns None when a newer request in the same context superseded
        this one.

        Raises:
            AllProvidersFailed: no provider, cache entry or synthetic series
                could produce data.
        """
        final: Acquisition | None = None
        async for snapshot in self.stream(query, context):
            if snapshot.final:
                final = snapshot
        return final

    async def stream(
        self, query: Query, context: str = DEFAULT_CONTEXT
    ) -> AsyncIterator[Acquisition]:
        """Yield an optimistic cache snapshot (if any), then the resolution.

        Yields nothing further once the request has been superseded.
        """
        sequence = self._issue(context)
        self._set_state(context, sequence, AcquisitionState.IDLE)

        cached = await self._read_cache(query)
        if not self.is_current(context, sequence):
            return
        if cached is not None:
            self._set_state(context, sequence, AcquisitionState.CACHE_SERVED)
            yield Acquisition(
                query=query,
                sequence=sequence,
                state=AcquisitionState.CACHE_SERVED,
                points=cached.points,
                source="cache",
                stale=cached.stale,
                final=False,
            )
            if not self.is_current(context, sequence):
                return

        self._set_state(context, sequence, AcquisitionState.FETCHING)
        task = asyncio.create_task(
            race_providers(self._providers, query, timeout=self._config.race_timeout),
            name=f"acquire:{context}:{sequence}",
        )
        self._inflight[context] = task
        try:
            winner = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if (current is not None and current.cancelling()) or self.is_current(
                context, sequence
            ):
                raise
            logger.debug("Dropped superseded request #%d in %s", sequence, context)
            return
        except AllProvidersFailed as e:
            if not self.is_current(context, sequence):
                return
            resolution = self._fallback(query, sequence, cached, e, context)
        else:
            if not self.is_current(context, sequence):
                logger.debug(
                    "Discarding %s result for superseded request #%d",
                    winner.provider, sequence,
                )
                return
            resolution = await self._resolve_fresh(query, sequence, winner)
        finally:
            if self._inflight.get(context) is task:
                del self._inflight[context]

        # The cache write can yield; a newer request may have arrived meanwhile.
        if not self.is_current(context, sequence):
            logger.debug("Dropped superseded request #%d in %s", sequence, context)
            return
        self._set_state(context, sequence, resolution.state)
        yield resolution

    # --- Internals ---

    def _issue(self, context: str) -> int:
        sequence = next(self._sequence)
        self._latest[context] = sequence
        prior = self._inflight.pop(context, None)
        if prior is not None and not prior.done():
            logger.debug("Request #%d supersedes in-flight race in %s", sequence, context)
            prior.cancel()
        return sequence

    def _set_state(self, context: str, sequence: int, state: AcquisitionState) -> None:
        if self.is_current(context, sequence):
            self._states[context] = state

    async def _read_cache(self, query: Query) -> CacheEntry | None:
        try:
            return await self._cache.read(query)
        except CacheError as e:
            logger.warning("Cache read failed for %s, continuing without: %s", query.coin_id, e)
            return None

    async def _resolve_fresh(
        self, query: Query, sequence: int, winner: ProviderResult
    ) -> Acquisition:
        points = normalize_series(winner.points)
        try:
            await self._cache.write(query, points)
        except CacheError as e:
            logger.warning("Could not cache %s series: %s", query.coin_id, e)
        logger.info(
            "Resolved %s/%s/%s from %s (%d points)",
            query.coin_id, query.metric.value, query.timeframe.value,
            winner.provider, len(points),
        )
        return Acquisition(
            query=query,
            sequence=sequence,
            state=AcquisitionState.RESOLVED_FRESH,
            points=points,
            source=winner.provider,
        )

    def _fallback(
        self,
        query: Query,
        sequence: int,
        cached: CacheEntry | None,
        failure: AllProvidersFailed,
        context: str,
    ) -> Acquisition:
        errors = [f"{r.provider}: {r.error}" for r in failure.failures]

        if cached is not None:
            self._cache.mark_stale(query)
            logger.warning(
                "All providers failed for %s, keeping cached series (%d points)",
                query.coin_id, len(cached.points),
            )
            return Acquisition(
                query=query,
                sequence=sequence,
                state=AcquisitionState.CACHE_SERVED,
                points=cached.points,
                source="cache",
                stale=True,
                warning="Live data unavailable; showing cached data.",
                errors=errors,
            )

        if self._config.synthetic_fallback:
            try:
                points = synthetic_series(query)
            except ValueError as e:
                self._set_state(context, sequence, AcquisitionState.FAILED)
                raise AllProvidersFailed(
                    f"Synthetic fallback failed for {query.coin_id}: {e}",
                    failures=failure.failures,
                    context=failure.context,
                ) from e
            logger.warning(
                "All providers failed for %s and nothing is cached, serving synthetic series",
                query.coin_id,
            )
            return Acquisition(
                query=query,
                sequence=sequence,
                state=AcquisitionState.RESOLVED_SYNTHETIC,
                points=points,
                source="synthetic",
                warning="Live data unavailable; showing placeholder data.",
                errors=errors,
            )

        self._set_state(context, sequence, AcquisitionState.FAILED)
        logger.error("All providers failed for %s with no fallback", query.coin_id)
        raise failure
