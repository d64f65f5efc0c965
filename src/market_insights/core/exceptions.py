"""Custom exception hierarchy for market-insights."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from market_insights.providers.base import ProviderResult


class MarketInsightsError(Exception):
    """Base exception for all market-insights errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(MarketInsightsError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str — the config field that failed validation
        value: Any — the invalid value (redacted for secrets)
    """


class FetchError(MarketInsightsError):
    """An outbound HTTP call failed.

    Policy: provider adapters return these as values inside a
    ProviderResult; the signed 3commas client raises them.

    Context keys:
        source: str — provider or client name
        url: str — the URL that was being fetched
    """


class NetworkError(FetchError):
    """Timeout, connection refused or connection lost."""


class UpstreamStatusError(FetchError):
    """Upstream answered with a non-2xx status.

    Context keys:
        status_code: int
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context={**(context or {}), "status_code": status_code})
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500


class DecodeError(FetchError):
    """Payload was not JSON or did not have the expected shape."""


class EmptyResultError(FetchError):
    """Payload parsed correctly but contained zero records."""


class InvalidURLError(FetchError):
    """A request URL could not be built (unknown coin mapping, bad base URL)."""


class NoDataError(FetchError):
    """Upstream answered 2xx with an empty body."""


class RetriesExhaustedError(FetchError):
    """Every attempt allowed by the retry policy failed.

    Context keys:
        attempts: int — number of attempts made
        last_error: str — message of the final failure
    """


class AllProvidersFailed(MarketInsightsError):
    """Every provider in a race failed or returned nothing.

    Policy: absorbed by the acquisition engine, which falls back to cache or
    synthetic data. Only reaches callers when no fallback is possible.
    """

    def __init__(
        self,
        message: str,
        failures: list[ProviderResult] | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.failures = list(failures or [])


class SigningOrCredentialError(MarketInsightsError):
    """Credentials are missing or a request could not be signed.

    Context keys:
        privilege: str — "read" or "write"
    """


class CacheError(MarketInsightsError):
    """Cache backend operation failed.

    Policy: the acquisition engine logs and continues without cache.

    Context keys:
        operation: str — "get", "set", "delete", "initialize"
        key: str — the cache key involved
    """
