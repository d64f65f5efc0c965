"""Built-in placeholder series used when every provider and the cache fail."""

from __future__ import annotations

from datetime import datetime, timezone

from market_insights.core.models import Query, TimeSeriesPoint

# (price, volume, market_cap), oldest first
REFERENCE_POINTS: tuple[tuple[float, float, float], ...] = (
    (100.0, 1_000.0, 10_000.0),
    (102.0, 1_200.0, 10_200.0),
    (101.0, 900.0, 10_100.0),
    (103.0, 1_100.0, 10_300.0),
)


def synthetic_series(query: Query, now: datetime | None = None) -> list[TimeSeriesPoint]:
    """Return the fixed reference points spaced by the query's sampling interval.

    Values never change; only timestamps follow the query so the series lines
    up with the requested timeframe and ends at ``now``.
    """
    end = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    step = query.window.interval
    last = len(REFERENCE_POINTS) - 1
    return [
        TimeSeriesPoint(
            timestamp=end - step * (last - i),
            price=price,
            volume=volume,
            market_cap=market_cap,
        )
        for i, (price, volume, market_cap) in enumerate(REFERENCE_POINTS)
    ]
