"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

CoinId = str
ProviderName = str

# --- Enumerations ---


class Timeframe(StrEnum):
    """Chart timeframes offered to callers."""

    DAY = "1D"
    WEEK = "1W"
    MONTH = "1M"
    YEAR = "1Y"
    THREE_YEARS = "3Y"
    ALL = "ALL"

    @property
    def window(self) -> TimeWindow:
        """Lookback and sampling interval used to build provider requests."""
        return _WINDOWS[self]


class Metric(StrEnum):
    """Series values a caller can chart."""

    PRICE = "price"
    VOLUME = "volume"
    MARKET_CAP = "market_cap"


class Privilege(StrEnum):
    """Credential class required by a signed API operation."""

    READ = "read"
    WRITE = "write"


class CacheBackendType(StrEnum):
    """Supported cache storage backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


# --- Query Models ---


class TimeWindow(BaseModel):
    """Resolved request window for a timeframe.

    ``lookback`` is None for the open-ended ALL timeframe; providers that need
    explicit start/end bounds use ``ALL_HORIZON`` instead.
    """

    model_config = ConfigDict(frozen=True)

    lookback: timedelta | None
    interval: timedelta
    gecko_days: str

    def bounds(self, now: datetime | None = None) -> tuple[datetime, datetime]:
        """Return (start, end) in UTC ending at ``now``."""
        end = now or datetime.now(timezone.utc)
        return end - (self.lookback or ALL_HORIZON), end


ALL_HORIZON = timedelta(days=3650)

_WINDOWS: dict[Timeframe, TimeWindow] = {
    Timeframe.DAY: TimeWindow(
        lookback=timedelta(days=1), interval=timedelta(hours=1), gecko_days="1"
    ),
    Timeframe.WEEK: TimeWindow(
        lookback=timedelta(days=7), interval=timedelta(hours=6), gecko_days="7"
    ),
    Timeframe.MONTH: TimeWindow(
        lookback=timedelta(days=30), interval=timedelta(hours=12), gecko_days="30"
    ),
    Timeframe.YEAR: TimeWindow(
        lookback=timedelta(days=365), interval=timedelta(days=1), gecko_days="365"
    ),
    Timeframe.THREE_YEARS: TimeWindow(
        lookback=timedelta(days=1095), interval=timedelta(days=7), gecko_days="1095"
    ),
    Timeframe.ALL: TimeWindow(
        lookback=None, interval=timedelta(days=7), gecko_days="max"
    ),
}


class Query(BaseModel):
    """A single (coin, timeframe, metric) series request."""

    model_config = ConfigDict(frozen=True)

    coin_id: CoinId
    timeframe: Timeframe = Timeframe.DAY
    metric: Metric = Metric.PRICE

    @field_validator("coin_id")
    @classmethod
    def coin_id_not_blank(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("coin_id must not be blank")
        return v

    @property
    def window(self) -> TimeWindow:
        return self.timeframe.window


# --- Series Models ---


class TimeSeriesPoint(BaseModel):
    """One sample of a coin's market history — the canonical series record.

    Every provider adapter normalizes its payload into this shape. Fields a
    provider does not report are zero, never missing.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: datetime
    price: float = 0.0
    volume: float = 0.0
    market_cap: float = Field(default=0.0, alias="marketCap")

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @field_validator("volume", "market_cap")
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"must be >= 0, got {v}")
        return v

    def value(self, metric: Metric) -> float:
        """Return the field selected by ``metric``."""
        if metric == Metric.VOLUME:
            return self.volume
        if metric == Metric.MARKET_CAP:
            return self.market_cap
        return self.price


def normalize_series(points: Iterable[TimeSeriesPoint]) -> list[TimeSeriesPoint]:
    """Sort ascending by timestamp and drop duplicate timestamps.

    The last occurrence of a timestamp wins. Applying this twice is a no-op.
    """
    by_ts: dict[datetime, TimeSeriesPoint] = {}
    for point in points:
        by_ts[point.timestamp] = point
    return [by_ts[ts] for ts in sorted(by_ts)]


class SeriesStats(BaseModel):
    """Min / max / average of one metric across a series."""

    model_config = ConfigDict(frozen=True)

    metric: Metric
    minimum: float = 0.0
    maximum: float = 0.0
    average: float = 0.0
    count: int = 0

    @classmethod
    def from_points(
        cls, points: list[TimeSeriesPoint], metric: Metric
    ) -> SeriesStats:
        values = [p.value(metric) for p in points]
        if not values:
            return cls(metric=metric)
        return cls(
            metric=metric,
            minimum=min(values),
            maximum=max(values),
            average=sum(values) / len(values),
            count=len(values),
        )


# --- Reference Data ---


class CoinInfo(BaseModel):
    """An entry of the CoinGecko coin list."""

    model_config = ConfigDict(frozen=True)

    id: CoinId
    symbol: str
    name: str

    def matches(self, search: str) -> bool:
        needle = search.strip().lower()
        if not needle:
            return True
        return needle in self.name.lower() or needle in self.symbol.lower()


class CoinSymbols(BaseModel):
    """Per-provider identifiers for one coin, keyed by CoinGecko id."""

    model_config = ConfigDict(frozen=True)

    paprika_id: str | None = None
    binance_symbol: str | None = None
