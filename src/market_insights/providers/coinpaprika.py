"""CoinPaprika adapter — ``/tickers/{id}/historical``."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from market_insights.core.exceptions import DecodeError, InvalidURLError
from market_insights.core.models import Query, TimeSeriesPoint
from market_insights.providers.base import HttpProvider

# Sampling intervals accepted by the historical endpoint
_INTERVAL_MAP: dict[timedelta, str] = {
    timedelta(hours=1): "1h",
    timedelta(hours=6): "6h",
    timedelta(hours=12): "12h",
    timedelta(days=1): "1d",
    timedelta(days=7): "7d",
}


class CoinPaprikaAdapter(HttpProvider):
    """Market history from CoinPaprika.

    Needs explicit ``start``/``end`` bounds and a paprika coin id
    (``btc-bitcoin``), looked up from the coin table by CoinGecko id.
    Records look like ``{"timestamp": "2024-01-01T00:00:00Z", "price": ...,
    "volume_24h": ..., "market_cap": ...}``.
    """

    name = "coinpaprika"

    def build_request(self, query: Query) -> tuple[str, dict[str, str]]:
        symbols = self._settings.coins.get(query.coin_id)
        if symbols is None or not symbols.paprika_id:
            raise InvalidURLError(
                f"No CoinPaprika id mapped for {query.coin_id!r}",
                context={"source": self.name, "coin_id": query.coin_id},
            )
        window = query.window
        interval = _INTERVAL_MAP.get(window.interval)
        if interval is None:
            raise InvalidURLError(
                f"CoinPaprika has no interval for {window.interval}",
                context={"source": self.name, "interval": str(window.interval)},
            )
        start, end = window.bounds()
        url = f"{self._base_url}/tickers/{symbols.paprika_id}/historical"
        params = {
            "start": str(int(start.timestamp())),
            "end": str(int(end.timestamp())),
            "interval": interval,
            "quote": self._settings.vs_currency,
        }
        return url, params

    def adapt(self, raw_data: Any, query: Query) -> list[TimeSeriesPoint]:
        if not isinstance(raw_data, list):
            raise DecodeError(
                f"Expected a JSON array from coinpaprika, got {type(raw_data).__name__}",
                context={"source": self.name},
            )
        points: list[TimeSeriesPoint] = []
        for record in raw_data:
            if record.get("price") is None:
                continue
            points.append(
                TimeSeriesPoint(
                    timestamp=datetime.fromisoformat(record["timestamp"]),
                    price=float(record["price"]),
                    volume=float(record.get("volume_24h") or 0.0),
                    market_cap=float(record.get("market_cap") or 0.0),
                )
            )
        return points
