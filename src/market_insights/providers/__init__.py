"""Source-agnostic market-data providers.

Architecture
------------
Each third-party API is wrapped in an adapter implementing
``ProviderAdapter.fetch(query) -> ProviderResult``:

    Query → ProviderAdapter → HTTP GET → list[TimeSeriesPoint] → ProviderResult

Built-in adapters:

- ``CoinGeckoAdapter``: ``/coins/{id}/market_chart`` (also the coin list).
- ``CoinPaprikaAdapter``: ``/tickers/{id}/historical``.
- ``BinanceAdapter``: spot ``/klines``.

Plus ``CoinbaseSpotClient`` for single spot prices.

Adding a new source: subclass ``HttpProvider``, implement ``build_request``
and ``adapt``, and register it in ``create_providers``.
"""

from __future__ import annotations

import httpx

from market_insights.core.config import ProvidersConfig
from market_insights.providers.base import HttpProvider, ProviderAdapter, ProviderResult
from market_insights.providers.binance import BinanceAdapter
from market_insights.providers.coinbase import SUPPORTED_PAIRS, CoinbaseSpotClient
from market_insights.providers.coingecko import CoinGeckoAdapter, filter_coins
from market_insights.providers.coinpaprika import CoinPaprikaAdapter
from market_insights.providers.json_value import JsonKind, JsonValue, decode_row


def create_providers(
    config: ProvidersConfig,
    client: httpx.AsyncClient | None = None,
) -> list[HttpProvider]:
    """Instantiate every enabled history adapter from config."""
    candidates: list[tuple[bool, type[HttpProvider], object]] = [
        (config.coingecko.enabled, CoinGeckoAdapter, config.coingecko),
        (config.coinpaprika.enabled, CoinPaprikaAdapter, config.coinpaprika),
        (config.binance.enabled, BinanceAdapter, config.binance),
    ]
    return [
        cls(endpoint, config, client=client)  # type: ignore[arg-type]
        for enabled, cls, endpoint in candidates
        if enabled
    ]


__all__ = [
    # Protocol and result
    "ProviderAdapter",
    "ProviderResult",
    "HttpProvider",
    # Adapters
    "CoinGeckoAdapter",
    "CoinPaprikaAdapter",
    "BinanceAdapter",
    "create_providers",
    "filter_coins",
    # Spot prices
    "CoinbaseSpotClient",
    "SUPPORTED_PAIRS",
    # JSON cells
    "JsonKind",
    "JsonValue",
    "decode_row",
]
