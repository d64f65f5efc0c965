"""Signed async client for the 3commas trading-bot API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping
from urllib.parse import quote, urlencode

import httpx
from aiolimiter import AsyncLimiter

from market_insights.core.config import ThreeCommasConfig
from market_insights.core.exceptions import (
    DecodeError,
    InvalidURLError,
    NetworkError,
    NoDataError,
    UpstreamStatusError,
)
from market_insights.core.models import Privilege
from market_insights.core.retry import RetryPolicy
from market_insights.threecommas.credentials import Credentials

logger = logging.getLogger(__name__)

ParamValue = str | int | float | bool


def encode_query(params: Mapping[str, ParamValue] | None) -> str:
    """Percent-encode ``params`` in insertion order (spaces become ``%20``)."""
    if not params:
        return ""
    items = [
        (key, str(value).lower() if isinstance(value, bool) else str(value))
        for key, value in params.items()
    ]
    return urlencode(items, quote_via=quote)


class ThreeCommasClient:
    """Rate-limited client that signs every request with the right key pair.

    Each request is sent as a GET with ``APIKEY`` and ``Signature`` headers.
    The signature is the hex HMAC-SHA256 of the percent-encoded query string,
    made with the secret of the pair the operation's privilege selects.

    Use via ``async with ThreeCommasClient(...) as client:``.
    """

    name = "3commas"

    def __init__(
        self,
        config: ThreeCommasConfig | None = None,
        credentials: Credentials | None = None,
        retry: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ThreeCommasConfig()
        self._credentials = credentials or Credentials.from_config(self._config)
        self._retry = retry or RetryPolicy.from_config(self._config.retry)
        self._limiter = AsyncLimiter(max_rate=self._config.rate_limit, time_period=1.0)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.request_timeout),
        )

    async def __aenter__(self) -> ThreeCommasClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Request Building ---

    def build_request(
        self,
        endpoint: str,
        params: Mapping[str, ParamValue] | None = None,
        privilege: Privilege = Privilege.READ,
    ) -> httpx.Request:
        """Build a signed GET request for ``endpoint``.

        Raises:
            SigningOrCredentialError: no key pair for ``privilege``.
            InvalidURLError: the URL could not be formed.
        """
        pair = self._credentials.for_privilege(privilege)
        if not endpoint.startswith("/"):
            raise InvalidURLError(
                f"Endpoint must start with '/': {endpoint!r}",
                context={"source": self.name, "url": endpoint},
            )

        query_string = encode_query(params)
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        if query_string:
            url = f"{url}?{query_string}"

        signature = pair.sign(query_string)
        try:
            return self._client.build_request(
                "GET",
                url,
                headers={"APIKEY": pair.api_key, "Signature": signature},
            )
        except httpx.InvalidURL as e:
            raise InvalidURLError(
                f"Invalid 3commas URL {url!r}: {e}",
                context={"source": self.name, "url": url},
            ) from e

    # --- Core Request ---

    async def request(
        self,
        endpoint: str,
        *,
        privilege: Privilege = Privilege.READ,
        params: Mapping[str, ParamValue] | None = None,
    ) -> Any:
        """Perform a signed request and return the parsed JSON body.

        Network failures and 5xx responses are retried by the retry policy;
        any 4xx response fails immediately.

        Raises:
            SigningOrCredentialError: missing credentials for ``privilege``.
            InvalidURLError: the URL could not be formed.
            UpstreamStatusError: non-retryable status (4xx).
            NoDataError: 2xx with an empty body.
            DecodeError: body was not JSON.
            RetriesExhaustedError: every attempt hit a transient failure.
        """
        request = self.build_request(endpoint, params, privilege)
        logger.debug("3commas %s %s (%s)", request.method, endpoint, privilege.value)
        return await self._retry.run(
            lambda: self._send_once(request),
            description=f"3commas {endpoint}",
        )

    async def _send_once(self, request: httpx.Request) -> Any:
        url = str(request.url)
        context = {"source": self.name, "url": url}
        async with self._limiter:
            try:
                response = await asyncio.wait_for(
                    self._client.send(request),
                    timeout=self._config.resource_timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise NetworkError(f"Timed out calling {url}", context=context) from e
            except httpx.RequestError as e:
                raise NetworkError(f"Request to {url} failed: {e}", context=context) from e

        if not response.is_success:
            raise UpstreamStatusError(
                f"HTTP {response.status_code} from 3commas",
                status_code=response.status_code,
                context={**context, "body": response.text[:200]},
            )

        if not response.content.strip():
            raise NoDataError("No data returned by 3commas", context=context)

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Invalid JSON from 3commas: {e}", context=context) from e

    # --- Operations ---

    async def list_accounts(self) -> Any:
        """List connected exchange accounts."""
        return await self.request("/ver1/accounts", privilege=Privilege.READ)

    async def load_account_balances(self, account_id: int) -> Any:
        """Refresh and return balances of one account."""
        return await self.request(
            f"/ver1/accounts/{account_id}/load_balances", privilege=Privilege.READ
        )

    async def list_bots(self, **params: ParamValue) -> Any:
        """List bots, optionally filtered (``limit``, ``scope``, ``account_id``, ...)."""
        return await self.request("/ver1/bots", privilege=Privilege.READ, params=params)

    async def start_bot(self, bot_id: int) -> Any:
        return await self.request(f"/ver1/bots/{bot_id}/start", privilege=Privilege.WRITE)

    async def stop_bot(self, bot_id: int) -> Any:
        return await self.request(f"/ver1/bots/{bot_id}/disable", privilege=Privilege.WRITE)

    async def verify_credentials(self) -> bool:
        """Check both key pairs are configured, then ping with the read-only pair.

        Raises:
            SigningOrCredentialError: either pair is missing.
            FetchError: the ping failed.
        """
        for privilege in (Privilege.READ, Privilege.WRITE):
            self._credentials.for_privilege(privilege)
        await self.list_accounts()
        logger.info("3commas credentials verified")
        return True

