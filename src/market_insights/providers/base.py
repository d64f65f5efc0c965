"""Provider adapter protocol, result type and shared HTTP plumbing.

Architecture
------------
Every market-data source is wrapped in an adapter that turns a generic
``Query`` into one provider-specific HTTP call and the raw payload into
canonical ``TimeSeriesPoint`` records:

    Query → ProviderAdapter.fetch → HTTP GET → adapt(raw) → ProviderResult

Adapters never raise across ``fetch``. Every failure (unbuildable URL,
non-2xx status, timeout, malformed payload, empty payload) comes back as a
failed ``ProviderResult`` carrying a typed ``FetchError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Protocol, runtime_checkable

import httpx
from aiolimiter import AsyncLimiter

from market_insights.core.config import ProviderEndpointConfig, ProvidersConfig
from market_insights.core.exceptions import (
    DecodeError,
    EmptyResultError,
    FetchError,
    InvalidURLError,
    NetworkError,
    UpstreamStatusError,
)
from market_insights.core.models import ProviderName, Query, TimeSeriesPoint, normalize_series

logger = logging.getLogger(__name__)


class ProviderResult:
    """Outcome of one adapter invocation: a non-empty series or a typed failure."""

    __slots__ = ("provider", "points", "error", "elapsed")

    def __init__(
        self,
        provider: ProviderName,
        points: list[TimeSeriesPoint] | None = None,
        error: FetchError | None = None,
        elapsed: float = 0.0,
    ) -> None:
        if error is None and not points:
            error = EmptyResultError(
                f"{provider} returned no records", context={"source": provider}
            )
        self.provider = provider
        self.points = list(points or []) if error is None else []
        self.error = error
        self.elapsed = elapsed

    @classmethod
    def success(
        cls, provider: ProviderName, points: list[TimeSeriesPoint], elapsed: float = 0.0
    ) -> ProviderResult:
        return cls(provider, points=points, elapsed=elapsed)

    @classmethod
    def failure(
        cls, provider: ProviderName, error: FetchError, elapsed: float = 0.0
    ) -> ProviderResult:
        return cls(provider, error=error, elapsed=elapsed)

    @property
    def ok(self) -> bool:
        return self.error is None

    def __repr__(self) -> str:
        if self.ok:
            return f"ProviderResult({self.provider!r}, points={len(self.points)})"
        return f"ProviderResult({self.provider!r}, error={type(self.error).__name__})"


@runtime_checkable
class ProviderAdapter(Protocol):
    """Consumer-facing interface for one market-data source."""

    @property
    def name(self) -> ProviderName: ...

    async def fetch(self, query: Query) -> ProviderResult:
        """Fetch and normalize a series. Never raises."""
        ...


class HttpProvider:
    """Base class for JSON-over-HTTP adapters.

    Subclasses implement ``build_request`` (URL + params for a query) and
    ``adapt`` (raw JSON → points). This class owns the single HTTP attempt,
    rate limiting, timeouts and the mapping of failures onto FetchError types.

    Parameters
    ----------
    endpoint : ProviderEndpointConfig
        Base URL and requests-per-minute budget.
    settings : ProvidersConfig
        Shared timeouts, currency and coin table.
    client : httpx.AsyncClient | None
        Shared client. A private one is created (and closed by ``close``)
        when omitted.
    """

    name: ProviderName = "http"

    def __init__(
        self,
        endpoint: ProviderEndpointConfig,
        settings: ProvidersConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._settings = settings or ProvidersConfig()
        self._base_url = endpoint.base_url
        self._limiter = AsyncLimiter(max_rate=endpoint.rate_limit, time_period=60.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._settings.request_timeout),
            follow_redirects=True,
        )

    async def __aenter__(self) -> HttpProvider:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    # --- To implement ---

    def build_request(self, query: Query) -> tuple[str, dict[str, str]]:
        """Return (url, params) for ``query``. Raise InvalidURLError if impossible."""
        raise NotImplementedError

    def adapt(self, raw_data: Any, query: Query) -> list[TimeSeriesPoint]:
        """Parse the provider payload into points. Raise DecodeError on bad shape."""
        raise NotImplementedError

    # --- Template ---

    async def fetch(self, query: Query) -> ProviderResult:
        started = time.monotonic()
        try:
            url, params = self.build_request(query)
            raw = await self._get_json(url, params)
            try:
                points = self.adapt(raw, query)
            except FetchError:
                raise
            except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
                raise DecodeError(
                    f"Unexpected {self.name} payload: {e}",
                    context={"source": self.name, "url": url},
                ) from e
            if not points:
                raise EmptyResultError(
                    f"{self.name} returned no records for {query.coin_id}",
                    context={"source": self.name, "url": url},
                )
        except FetchError as e:
            elapsed = time.monotonic() - started
            logger.warning(
                "%s failed for %s/%s after %.2fs: %s",
                self.name, query.coin_id, query.timeframe.value, elapsed, e,
            )
            return ProviderResult.failure(self.name, e, elapsed=elapsed)

        elapsed = time.monotonic() - started
        series = normalize_series(points)
        logger.debug(
            "%s returned %d points for %s/%s in %.2fs",
            self.name, len(series), query.coin_id, query.timeframe.value, elapsed,
        )
        return ProviderResult.success(self.name, series, elapsed=elapsed)

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        """One rate-limited GET with a bounded total duration.

        Raises:
            NetworkError: timeout or transport failure.
            UpstreamStatusError: non-2xx response.
            DecodeError: body is not JSON.
        """
        context = {"source": self.name, "url": url}
        await self._limiter.acquire()
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params),
                timeout=self._settings.resource_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise NetworkError(f"Timed out fetching {url}", context=context) from e
        except httpx.InvalidURL as e:
            raise InvalidURLError(f"Invalid URL {url}: {e}", context=context) from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request to {url} failed: {e}", context=context) from e

        if not response.is_success:
            raise UpstreamStatusError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
                context={**context, "body": response.text[:200]},
            )

        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Response from {url} is not JSON", context=context) from e
