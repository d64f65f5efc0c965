"""JSON encoding of cached series.

Wire format: a JSON array of ``{"timestamp": ISO-8601, "price", "volume",
"marketCap"}`` objects, sorted ascending by timestamp.
"""

from __future__ import annotations

from pydantic import TypeAdapter, ValidationError

from market_insights.core.exceptions import CacheError
from market_insights.core.models import TimeSeriesPoint, normalize_series

_SERIES = TypeAdapter(list[TimeSeriesPoint])


def encode_series(points: list[TimeSeriesPoint]) -> str:
    return _SERIES.dump_json(normalize_series(points), by_alias=True).decode("utf-8")


def decode_series(payload: str | bytes) -> list[TimeSeriesPoint]:
    """Parse a cached payload back into points.

    Raises:
        CacheError: the payload is not a valid encoded series.
    """
    try:
        points = _SERIES.validate_json(payload)
    except ValidationError as e:
        raise CacheError(
            f"Corrupt cached series: {e.error_count()} validation errors",
            context={"operation": "decode"},
        ) from e
    return normalize_series(points)
