"""Coinbase spot price client — ``/prices/{BASE-FIAT}/spot``.

Unlike the history adapters this client owns a retry loop: transient
failures are retried through the shared RetryPolicy, while a 400/404 means
the pair is unknown and aborts immediately.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from market_insights.core.config import CoinbaseConfig
from market_insights.core.exceptions import (
    DecodeError,
    FetchError,
    NetworkError,
    UpstreamStatusError,
)
from market_insights.core.retry import RetryPolicy

logger = logging.getLogger(__name__)

SUPPORTED_PAIRS: frozenset[str] = frozenset({
    "BTC-USD", "ETH-USD", "USDT-USD", "XRP-USD", "BNB-USD",
    "USDC-USD", "SOL-USD", "DOGE-USD", "ADA-USD", "TRX-USD",
    "WBTC-USD", "WETH-USD", "WEETH-USD", "UNI-USD", "DAI-USD",
    "APT-USD", "TON-USD", "LINK-USD", "XLM-USD", "WSTETH-USD",
    "AVAX-USD", "SUI-USD", "SHIB-USD", "HBAR-USD", "LTC-USD",
    "OM-USD", "DOT-USD", "BCH-USD", "SUSDE-USD", "AAVE-USD",
    "ATOM-USD", "CRO-USD", "NEAR-USD", "PEPE-USD", "OKB-USD",
    "CBBTC-USD", "GT-USD",
})


class CoinbaseSpotClient:
    """Fetches the current spot price of a coin pair from Coinbase.

    Use via ``async with CoinbaseSpotClient(...) as client:``.
    """

    name = "coinbase"

    def __init__(
        self,
        config: CoinbaseConfig | None = None,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
        supported_pairs: frozenset[str] = SUPPORTED_PAIRS,
    ) -> None:
        self._config = config or CoinbaseConfig()
        self._retry = retry or RetryPolicy.from_config(self._config.retry)
        self._supported = supported_pairs
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.request_timeout),
        )

    async def __aenter__(self) -> CoinbaseSpotClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_spot_price(self, coin: str = "BTC", fiat: str = "USD") -> float | None:
        """Return the spot price, or None if the pair is unsupported or unavailable."""
        pair = f"{coin.upper()}-{fiat.upper()}"
        if pair not in self._supported:
            logger.info("Coinbase pair %s is not supported, skipping", pair)
            return None

        url = f"{self._config.base_url}/prices/{pair}/spot"
        try:
            price = await self._retry.run(
                lambda: self._fetch_once(url), description=f"Coinbase spot {pair}"
            )
        except UpstreamStatusError as e:
            logger.warning("Coinbase rejected pair %s (HTTP %d)", pair, e.status_code)
            return None
        except FetchError as e:
            logger.error("Coinbase spot price for %s unavailable: %s", pair, e)
            return None

        logger.debug("Coinbase spot price for %s: %s", pair, price)
        return price

    async def _fetch_once(self, url: str) -> float:
        context = {"source": self.name, "url": url}
        try:
            response = await asyncio.wait_for(
                self._client.get(url), timeout=self._config.resource_timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise NetworkError(f"Timed out fetching {url}", context=context) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request to {url} failed: {e}", context=context) from e

        if not response.is_success:
            raise UpstreamStatusError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
                context=context,
            )

        try:
            data = response.json().get("data")
            return float(data["amount"])
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Unexpected Coinbase spot payload: {e}", context=context) from e
