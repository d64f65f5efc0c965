"""CoinGecko adapter — ``/coins/{id}/market_chart`` and the coin list."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from market_insights.core.exceptions import DecodeError
from market_insights.core.models import CoinInfo, Query, TimeSeriesPoint
from market_insights.providers.base import HttpProvider
from market_insights.providers.json_value import decode_row

logger = logging.getLogger(__name__)


class CoinGeckoAdapter(HttpProvider):
    """Market history from CoinGecko's ``market_chart`` endpoint.

    The endpoint takes a day count (``days=1`` .. ``days=max``) and picks its
    own granularity. The payload carries three parallel ``[[ms, value]]``
    arrays; records are zipped up to the shortest one.
    """

    name = "coingecko"

    def build_request(self, query: Query) -> tuple[str, dict[str, str]]:
        url = f"{self._base_url}/coins/{query.coin_id}/market_chart"
        params = {
            "vs_currency": self._settings.vs_currency,
            "days": query.window.gecko_days,
        }
        return url, params

    def adapt(self, raw_data: Any, query: Query) -> list[TimeSeriesPoint]:
        if not isinstance(raw_data, dict):
            raise DecodeError(
                f"Expected a JSON object from coingecko, got {type(raw_data).__name__}",
                context={"source": self.name},
            )
        prices = raw_data.get("prices") or []
        market_caps = raw_data.get("market_caps") or []
        volumes = raw_data.get("total_volumes") or []
        count = min(len(prices), len(market_caps), len(volumes))

        points: list[TimeSeriesPoint] = []
        for i in range(count):
            ts_ms, price = decode_row(prices[i], min_length=2)[:2]
            market_cap = decode_row(market_caps[i], min_length=2)[1]
            volume = decode_row(volumes[i], min_length=2)[1]
            points.append(
                TimeSeriesPoint(
                    timestamp=datetime.fromtimestamp(ts_ms.as_float() / 1000, tz=timezone.utc),
                    price=price.as_float(),
                    volume=0.0 if volume.is_null else volume.as_float(),
                    market_cap=0.0 if market_cap.is_null else market_cap.as_float(),
                )
            )
        return points

    async def list_coins(self) -> list[CoinInfo]:
        """Fetch the full CoinGecko coin list.

        Raises:
            FetchError: network, status or decode failure.
        """
        url = f"{self._base_url}/coins/list"
        raw = await self._get_json(url, {"include_platform": "false"})
        if not isinstance(raw, list):
            raise DecodeError(
                "Expected a JSON array for the coin list",
                context={"source": self.name, "url": url},
            )
        coins: list[CoinInfo] = []
        for entry in raw:
            try:
                coins.append(
                    CoinInfo(id=entry["id"], symbol=entry["symbol"], name=entry["name"])
                )
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed coin list entry: %r", entry)
        logger.info("Loaded %d coins from coingecko", len(coins))
        return coins


def filter_coins(coins: list[CoinInfo], search: str) -> list[CoinInfo]:
    """Case-insensitive match on name or symbol. Blank search returns everything."""
    if not search.strip():
        return list(coins)
    return [coin for coin in coins if coin.matches(search)]
