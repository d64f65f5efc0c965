"""Tests for market_insights.acquisition.engine (AcquisitionEngine)."""

import asyncio
import logging
import time
from datetime import timedelta

import pytest
from pydantic import ValidationError

from market_insights.acquisition import (
    REFERENCE_POINTS,
    Acquisition,
    AcquisitionEngine,
    AcquisitionState,
    synthetic_series,
)
from market_insights.cache import MemoryCacheBackend, SeriesCache
from market_insights.core.config import CacheConfig, EngineConfig, InsightsConfig
from market_insights.core.exceptions import (
    AllProvidersFailed,
    CacheError,
    NetworkError,
    UpstreamStatusError,
)
from market_insights.core.models import CacheBackendType, Metric, Query, Timeframe


class BrokenBackend(MemoryCacheBackend):
    """Backend whose every read and write fails."""

    async def get(self, key: str) -> str | None:
        raise CacheError("disk on fire", context={"operation": "get", "key": key})

    async def set(self, key: str, value: str) -> None:
        raise CacheError("disk on fire", context={"operation": "set", "key": key})


class SlowWriteBackend(MemoryCacheBackend):
    """Backend whose writes take ``delay`` seconds."""

    def __init__(self, delay: float) -> None:
        super().__init__()
        self.delay = delay

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(self.delay)
        await super().set(key, value)


# --- Fixtures ---


@pytest.fixture
def cache() -> SeriesCache:
    return SeriesCache(MemoryCacheBackend())


@pytest.fixture
def failing_providers(make_provider):
    return [
        make_provider("coingecko", delay=0.01, error=NetworkError("timeout")),
        make_provider("coinpaprika", delay=0.02, error=UpstreamStatusError("HTTP 500", 500)),
    ]


async def collect(engine: AcquisitionEngine, query: Query, context: str = "default"):
    return [snapshot async for snapshot in engine.stream(query, context)]


# --- Fresh resolution ---


class TestFreshResolution:
    async def test_resolves_and_caches(self, make_provider, cache, btc_query, hourly_points):
        engine = AcquisitionEngine([make_provider("binance", points=hourly_points)], cache)

        result = await engine.acquire(btc_query)

        assert result.state == AcquisitionState.RESOLVED_FRESH
        assert result.source == "binance"
        assert result.points == hourly_points
        assert result.stale is False
        assert result.warning is None
        assert engine.state() == AcquisitionState.RESOLVED_FRESH

        entry = await cache.read(btc_query)
        assert entry.points == hourly_points

    async def test_no_cache_yields_only_resolution(self, make_provider, cache, btc_query, hourly_points):
        engine = AcquisitionEngine([make_provider("binance", points=hourly_points)], cache)
        snapshots = await collect(engine, btc_query)
        assert [s.state for s in snapshots] == [AcquisitionState.RESOLVED_FRESH]

    async def test_cached_snapshot_comes_first(self, make_provider, cache, btc_query, hourly_points):
        await cache.write(btc_query, hourly_points[:5])
        engine = AcquisitionEngine([make_provider("binance", points=hourly_points)], cache)

        first, final = await collect(engine, btc_query)

        assert first.state == AcquisitionState.CACHE_SERVED
        assert first.final is False
        assert first.source == "cache"
        assert len(first.points) == 5
        assert final.state == AcquisitionState.RESOLVED_FRESH
        assert len(final.points) == 24
        assert len((await cache.read(btc_query)).points) == 24

    async def test_state_while_fetching(self, make_provider, cache, btc_query, hourly_points):
        engine = AcquisitionEngine(
            [make_provider("slow", delay=0.2, points=hourly_points)], cache
        )
        assert engine.state() == AcquisitionState.IDLE
        task = asyncio.create_task(engine.acquire(btc_query))
        await asyncio.sleep(0.05)
        assert engine.state() == AcquisitionState.FETCHING
        await task
        assert engine.state() == AcquisitionState.RESOLVED_FRESH

    async def test_fastest_provider_wins(self, make_provider, cache, btc_query, hourly_points):
        """Gecko 0.5s ok, paprika 0.1s failing, binance 0.2s ok: binance at ~0.2s."""
        gecko = make_provider("coingecko", delay=0.5, points=hourly_points[:10])
        paprika = make_provider(
            "coinpaprika", delay=0.1, error=UpstreamStatusError("HTTP 503", 503)
        )
        binance = make_provider("binance", delay=0.2, points=hourly_points)
        engine = AcquisitionEngine([gecko, paprika, binance], cache)

        started = time.monotonic()
        result = await engine.acquire(btc_query)
        elapsed = time.monotonic() - started

        assert result.source == "binance"
        assert len(result.points) == 24
        assert 0.15 <= elapsed < 0.45
        assert gecko.cancelled

    async def test_stats(self, make_provider, cache, btc_query, hourly_points):
        engine = AcquisitionEngine([make_provider("binance", points=hourly_points)], cache)
        result = await engine.acquire(btc_query)
        assert result.stats.minimum == 100.0
        assert result.stats.maximum == 123.0
        assert result.stats.count == 24


# --- Fallbacks ---


class TestFallback:
    async def test_synthetic_when_nothing_cached(self, failing_providers, cache, btc_query):
        engine = AcquisitionEngine(failing_providers, cache)

        result = await engine.acquire(btc_query)

        assert result.state == AcquisitionState.RESOLVED_SYNTHETIC
        assert result.source == "synthetic"
        assert [(p.price, p.volume, p.market_cap) for p in result.points] == list(REFERENCE_POINTS)
        assert result.warning
        assert len(result.errors) == 2
        assert engine.state() == AcquisitionState.RESOLVED_SYNTHETIC
        assert await cache.read(btc_query) is None

    async def test_stale_cache_beats_synthetic(self, failing_providers, cache, btc_query, hourly_points):
        await cache.write(btc_query, hourly_points)
        engine = AcquisitionEngine(failing_providers, cache)

        first, final = await collect(engine, btc_query)

        assert first.stale is False
        assert final.state == AcquisitionState.CACHE_SERVED
        assert final.final is True
        assert final.stale is True
        assert final.points == hourly_points
        assert final.warning
        assert (await cache.read(btc_query)).stale is True

    async def test_fresh_success_clears_stale(self, failing_providers, make_provider, cache, btc_query, hourly_points):
        await cache.write(btc_query, hourly_points)
        await AcquisitionEngine(failing_providers, cache).acquire(btc_query)

        engine = AcquisitionEngine([make_provider("binance", points=hourly_points)], cache)
        first, final = await collect(engine, btc_query)
        assert first.stale is True
        assert final.state == AcquisitionState.RESOLVED_FRESH
        assert (await cache.read(btc_query)).stale is False

    async def test_failed_without_synthetic(self, failing_providers, cache, btc_query):
        engine = AcquisitionEngine(
            failing_providers, cache, EngineConfig(synthetic_fallback=False)
        )
        with pytest.raises(AllProvidersFailed) as exc_info:
            await engine.acquire(btc_query)
        assert len(exc_info.value.failures) == 2
        assert engine.state() == AcquisitionState.FAILED

    async def test_no_providers_falls_back(self, cache, btc_query):
        result = await AcquisitionEngine([], cache).acquire(btc_query)
        assert result.state == AcquisitionState.RESOLVED_SYNTHETIC

    async def test_race_timeout(self, make_provider, cache, btc_query):
        hung = make_provider("hung", delay=5.0)
        engine = AcquisitionEngine([hung], cache, EngineConfig(race_timeout=0.05))
        result = await engine.acquire(btc_query)
        assert result.state == AcquisitionState.RESOLVED_SYNTHETIC
        assert hung.cancelled

    async def test_cache_errors_are_logged_not_raised(self, make_provider, btc_query, hourly_points, caplog):
        engine = AcquisitionEngine(
            [make_provider("binance", points=hourly_points)], SeriesCache(BrokenBackend())
        )
        with caplog.at_level(logging.WARNING, logger="market_insights.acquisition.engine"):
            result = await engine.acquire(btc_query)

        assert result.state == AcquisitionState.RESOLVED_FRESH
        assert "Cache read failed" in caplog.text
        assert "Could not cache" in caplog.text


# --- Supersession ---


class TestSupersession:
    async def test_newer_request_drops_older(self, make_provider, cache, hourly_points):
        provider = make_provider("slow", delay=0.2, points=hourly_points)
        engine = AcquisitionEngine([provider], cache)
        old = Query(coin_id="bitcoin")
        new = Query(coin_id="ethereum")

        older = asyncio.create_task(engine.acquire(old, context="chart"))
        await asyncio.sleep(0.05)
        newer = await engine.acquire(new, context="chart")

        assert await older is None
        assert newer.query == new
        assert newer.state == AcquisitionState.RESOLVED_FRESH
        assert await cache.read(old) is None
        assert await cache.read(new) is not None

    async def test_superseded_during_cache_write(self, make_provider, hourly_points):
        engine = AcquisitionEngine(
            [make_provider("fast", points=hourly_points)],
            SeriesCache(SlowWriteBackend(delay=0.2)),
        )

        older = asyncio.create_task(engine.acquire(Query(coin_id="bitcoin"), context="chart"))
        await asyncio.sleep(0.05)
        newer = await engine.acquire(Query(coin_id="ethereum"), context="chart")

        assert await older is None
        assert newer.query.coin_id == "ethereum"
        assert newer.state == AcquisitionState.RESOLVED_FRESH
        assert engine.state("chart") == AcquisitionState.RESOLVED_FRESH

    async def test_sequence_increases(self, make_provider, cache, btc_query, hourly_points):
        engine = AcquisitionEngine([make_provider("p", points=hourly_points)], cache)
        first = await engine.acquire(btc_query)
        second = await engine.acquire(btc_query)
        assert second.sequence > first.sequence

    async def test_contexts_are_independent(self, make_provider, cache, hourly_points):
        provider = make_provider("slow", delay=0.1, points=hourly_points)
        engine = AcquisitionEngine([provider], cache)

        a, b = await asyncio.gather(
            engine.acquire(Query(coin_id="bitcoin"), context="left"),
            engine.acquire(Query(coin_id="ethereum"), context="right"),
        )
        assert a is not None and b is not None
        assert engine.state("left") == AcquisitionState.RESOLVED_FRESH
        assert engine.state("right") == AcquisitionState.RESOLVED_FRESH

    async def test_caller_cancellation_propagates(self, make_provider, cache, btc_query):
        engine = AcquisitionEngine([make_provider("slow", delay=5.0)], cache)
        task = asyncio.create_task(engine.acquire(btc_query))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


# --- Synthetic series ---


class TestSyntheticSeries:
    def test_spacing_follows_timeframe(self):
        points = synthetic_series(Query(coin_id="x", timeframe=Timeframe.WEEK))
        steps = {b.timestamp - a.timestamp for a, b in zip(points, points[1:])}
        assert steps == {timedelta(hours=6)}

    def test_values_are_fixed(self):
        a = synthetic_series(Query(coin_id="x", metric=Metric.VOLUME))
        b = synthetic_series(Query(coin_id="y", timeframe=Timeframe.ALL))
        assert [p.price for p in a] == [p.price for p in b] == [100.0, 102.0, 101.0, 103.0]


# --- Wiring ---


class TestFromConfig:
    async def test_builds_enabled_providers(self):
        config = InsightsConfig(cache=CacheConfig(backend=CacheBackendType.MEMORY))
        async with await AcquisitionEngine.from_config(config) as engine:
            assert isinstance(engine.cache.backend, MemoryCacheBackend)
            assert engine.state() == AcquisitionState.IDLE

    async def test_close_closes_providers(self, make_provider, cache):
        provider = make_provider("p")
        engine = AcquisitionEngine([provider], cache)
        await engine.close()
        assert provider.closed

    async def test_close_ends_pending_acquire(self, make_provider, cache, btc_query):
        provider = make_provider("slow", delay=5.0)
        engine = AcquisitionEngine([provider], cache)
        task = asyncio.create_task(engine.acquire(btc_query))
        await asyncio.sleep(0.05)

        await engine.close()

        assert await task is None
        assert provider.cancelled
        assert provider.closed
        assert engine.state() == AcquisitionState.IDLE

    def test_snapshot_is_frozen(self, btc_query):
        snapshot = Acquisition(query=btc_query, sequence=1, state=AcquisitionState.IDLE)
        with pytest.raises(ValidationError):
            snapshot.stale = True
