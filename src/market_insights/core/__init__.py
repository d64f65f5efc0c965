"""market_insights.core — Foundation types, config, retry policy and exceptions."""

from market_insights.core.config import (
    CacheConfig,
    CoinbaseConfig,
    EngineConfig,
    InsightsConfig,
    ProviderEndpointConfig,
    ProvidersConfig,
    RetryConfig,
    ThreeCommasConfig,
    load_config,
)
from market_insights.core.exceptions import (
    AllProvidersFailed,
    CacheError,
    ConfigError,
    DecodeError,
    EmptyResultError,
    FetchError,
    InvalidURLError,
    MarketInsightsError,
    NetworkError,
    NoDataError,
    RetriesExhaustedError,
    SigningOrCredentialError,
    UpstreamStatusError,
)
from market_insights.core.models import (
    CacheBackendType,
    CoinId,
    CoinInfo,
    CoinSymbols,
    Metric,
    Privilege,
    ProviderName,
    Query,
    SeriesStats,
    Timeframe,
    TimeSeriesPoint,
    TimeWindow,
    normalize_series,
)
from market_insights.core.retry import RetryPolicy, linear_backoff

__all__ = [
    # Type aliases
    "CoinId",
    "ProviderName",
    # Enums
    "Timeframe",
    "Metric",
    "Privilege",
    "CacheBackendType",
    # Models
    "Query",
    "TimeWindow",
    "TimeSeriesPoint",
    "SeriesStats",
    "CoinInfo",
    "CoinSymbols",
    "normalize_series",
    # Config
    "InsightsConfig",
    "ProvidersConfig",
    "ProviderEndpointConfig",
    "CacheConfig",
    "EngineConfig",
    "RetryConfig",
    "ThreeCommasConfig",
    "CoinbaseConfig",
    "load_config",
    # Retry
    "RetryPolicy",
    "linear_backoff",
    # Exceptions
    "MarketInsightsError",
    "ConfigError",
    "FetchError",
    "NetworkError",
    "UpstreamStatusError",
    "DecodeError",
    "EmptyResultError",
    "InvalidURLError",
    "NoDataError",
    "RetriesExhaustedError",
    "AllProvidersFailed",
    "SigningOrCredentialError",
    "CacheError",
]
