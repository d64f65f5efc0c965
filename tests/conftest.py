"""Shared pytest fixtures for market-insights."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from market_insights.core.exceptions import FetchError
from market_insights.core.models import Query, TimeSeriesPoint, Timeframe
from market_insights.providers.base import ProviderResult

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeProvider:
    """In-process provider that answers after ``delay`` seconds."""

    def __init__(
        self,
        name: str,
        *,
        delay: float = 0.0,
        points: list[TimeSeriesPoint] | None = None,
        error: FetchError | None = None,
        raises: Exception | None = None,
    ) -> None:
        self.name = name
        self.delay = delay
        self.points = points or []
        self.error = error
        self.raises = raises
        self.calls = 0
        self.cancelled = False
        self.closed = False

    async def fetch(self, query: Query) -> ProviderResult:
        self.calls += 1
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            return ProviderResult.failure(self.name, self.error)
        return ProviderResult.success(self.name, self.points)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_point():
    """Factory for TimeSeriesPoint, hourly offsets from 2024-01-01 UTC."""

    def _make(hour: int = 0, price: float = 100.0, **overrides) -> TimeSeriesPoint:
        defaults = dict(
            timestamp=T0 + timedelta(hours=hour),
            price=price,
            volume=1_000.0 + hour,
            market_cap=10_000.0 + hour,
        )
        defaults.update(overrides)
        return TimeSeriesPoint(**defaults)

    return _make


@pytest.fixture
def hourly_points(make_point) -> list[TimeSeriesPoint]:
    """A day of hourly points, ascending."""
    return [make_point(hour=h, price=100.0 + h) for h in range(24)]


@pytest.fixture
def make_provider():
    """Factory for FakeProvider."""

    def _make(name: str, **kwargs) -> FakeProvider:
        return FakeProvider(name, **kwargs)

    return _make


@pytest.fixture
def btc_query() -> Query:
    return Query(coin_id="bitcoin", timeframe=Timeframe.DAY)
