"""Binance adapter — spot ``/klines``."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any

from market_insights.core.exceptions import DecodeError, InvalidURLError
from market_insights.core.models import Query, TimeSeriesPoint
from market_insights.providers.base import HttpProvider
from market_insights.providers.json_value import decode_row

_INTERVAL_MAP: dict[timedelta, str] = {
    timedelta(hours=1): "1h",
    timedelta(hours=6): "6h",
    timedelta(hours=12): "12h",
    timedelta(days=1): "1d",
    timedelta(days=7): "1w",
}

_MAX_LIMIT = 1000

# Kline row layout:
# [openTime, open, high, low, close, volume, closeTime, quoteVolume, trades, ...]
_OPEN_TIME = 0
_CLOSE = 4
_QUOTE_VOLUME = 7


class BinanceAdapter(HttpProvider):
    """Candles from Binance spot, paired against the configured quote asset.

    Binance reports no market cap, so ``market_cap`` is always zero. Volume is
    the quote-asset volume so it is comparable with the USD volumes of the
    other providers.
    """

    name = "binance"

    def build_request(self, query: Query) -> tuple[str, dict[str, str]]:
        symbols = self._settings.coins.get(query.coin_id)
        if symbols is None or not symbols.binance_symbol:
            raise InvalidURLError(
                f"No Binance symbol mapped for {query.coin_id!r}",
                context={"source": self.name, "coin_id": query.coin_id},
            )
        window = query.window
        interval = _INTERVAL_MAP.get(window.interval)
        if interval is None:
            raise InvalidURLError(
                f"Binance has no interval for {window.interval}",
                context={"source": self.name, "interval": str(window.interval)},
            )
        start, end = window.bounds()
        limit = min(_MAX_LIMIT, math.ceil((end - start) / window.interval) + 1)
        params = {
            "symbol": f"{symbols.binance_symbol}{self._settings.quote_asset}".upper(),
            "interval": interval,
            "startTime": str(int(start.timestamp() * 1000)),
            "endTime": str(int(end.timestamp() * 1000)),
            "limit": str(limit),
        }
        return f"{self._base_url}/klines", params

    def adapt(self, raw_data: Any, query: Query) -> list[TimeSeriesPoint]:
        if not isinstance(raw_data, list):
            raise DecodeError(
                f"Expected a JSON array from binance, got {type(raw_data).__name__}",
                context={"source": self.name},
            )
        points: list[TimeSeriesPoint] = []
        for row in raw_data:
            cells = decode_row(row, min_length=_CLOSE + 1)
            volume = cells[_QUOTE_VOLUME].as_float() if len(cells) > _QUOTE_VOLUME else 0.0
            points.append(
                TimeSeriesPoint(
                    timestamp=datetime.fromtimestamp(
                        cells[_OPEN_TIME].as_int() / 1000, tz=timezone.utc
                    ),
                    price=cells[_CLOSE].as_float(),
                    volume=volume,
                )
            )
        return points
