"""Configuration loading, validation, and access."""

from __future__ import annotations

import copy
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, SecretStr, field_validator, model_validator

from market_insights.core.exceptions import ConfigError
from market_insights.core.models import CacheBackendType, CoinSymbols

DEFAULT_CONFIG_FILE = Path("market-insights.yml")
_UNCAST_SUFFIXES = ("_key", "_secret")
_BOOLEANS = {"true": True, "false": False}

_DEFAULT_COINS: dict[str, CoinSymbols] = {
    "bitcoin": CoinSymbols(paprika_id="btc-bitcoin", binance_symbol="BTC"),
    "ethereum": CoinSymbols(paprika_id="eth-ethereum", binance_symbol="ETH"),
    "solana": CoinSymbols(paprika_id="sol-solana", binance_symbol="SOL"),
    "ripple": CoinSymbols(paprika_id="xrp-xrp", binance_symbol="XRP"),
    "binancecoin": CoinSymbols(paprika_id="bnb-binance-coin", binance_symbol="BNB"),
    "cardano": CoinSymbols(paprika_id="ada-cardano", binance_symbol="ADA"),
    "dogecoin": CoinSymbols(paprika_id="doge-dogecoin", binance_symbol="DOGE"),
    "tron": CoinSymbols(paprika_id="trx-tron", binance_symbol="TRX"),
    "chainlink": CoinSymbols(paprika_id="link-chainlink", binance_symbol="LINK"),
    "avalanche-2": CoinSymbols(paprika_id="avax-avalanche", binance_symbol="AVAX"),
    "polkadot": CoinSymbols(paprika_id="dot-polkadot", binance_symbol="DOT"),
    "litecoin": CoinSymbols(paprika_id="ltc-litecoin", binance_symbol="LTC"),
    "tether": CoinSymbols(paprika_id="usdt-tether", binance_symbol=None),
}


class ProviderEndpointConfig(BaseModel):
    """Per-provider switch, endpoint and request budget."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str
    rate_limit: int = 30  # requests per minute

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v


class ProvidersConfig(BaseModel):
    """Market-data provider configuration."""

    model_config = ConfigDict(frozen=True)

    coingecko: ProviderEndpointConfig = ProviderEndpointConfig(
        base_url="https://api.coingecko.com/api/v3", rate_limit=30
    )
    coinpaprika: ProviderEndpointConfig = ProviderEndpointConfig(
        base_url="https://api.coinpaprika.com/v1", rate_limit=60
    )
    binance: ProviderEndpointConfig = ProviderEndpointConfig(
        base_url="https://api.binance.com/api/v3", rate_limit=600
    )
    request_timeout: float = 10.0
    resource_timeout: float = 15.0
    vs_currency: str = "usd"
    quote_asset: str = "USDT"
    coins: dict[str, CoinSymbols] = dict(_DEFAULT_COINS)

    @model_validator(mode="after")
    def resource_covers_request(self) -> ProvidersConfig:
        if self.request_timeout <= 0 or self.resource_timeout <= 0:
            raise ValueError("timeouts must be > 0")
        if self.resource_timeout < self.request_timeout:
            raise ValueError("resource_timeout must be >= request_timeout")
        return self


class CacheConfig(BaseModel):
    """Series cache backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: CacheBackendType = CacheBackendType.SQLITE
    sqlite_path: str = "./data/market_cache.db"
    key_includes_timeframe: bool = False


class EngineConfig(BaseModel):
    """Acquisition engine behavior."""

    model_config = ConfigDict(frozen=True)

    race_timeout: float | None = 20.0
    synthetic_fallback: bool = True

    @field_validator("race_timeout")
    @classmethod
    def race_timeout_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("race_timeout must be > 0")
        return v


class RetryConfig(BaseModel):
    """Retry policy for clients that own their retry loop."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = 3
    backoff_seconds: float = 2.0

    @field_validator("max_attempts")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v


class ThreeCommasConfig(BaseModel):
    """3commas signed API configuration.

    Two key pairs: the read-only pair for account and bot queries, the
    trading pair for operations that change state.
    """

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.3commas.io/public/api"
    read_only_key: SecretStr | None = None
    read_only_secret: SecretStr | None = None
    trading_key: SecretStr | None = None
    trading_secret: SecretStr | None = None
    rate_limit: int = 10  # requests per second
    request_timeout: float = 10.0
    resource_timeout: float = 15.0
    retry: RetryConfig = RetryConfig()


class CoinbaseConfig(BaseModel):
    """Coinbase spot-price endpoint configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.coinbase.com/v2"
    request_timeout: float = 10.0
    resource_timeout: float = 15.0
    retry: RetryConfig = RetryConfig()


class InsightsConfig(BaseModel):
    """Root configuration for market-insights."""

    model_config = ConfigDict(frozen=True)

    providers: ProvidersConfig = ProvidersConfig()
    cache: CacheConfig = CacheConfig()
    engine: EngineConfig = EngineConfig()
    threecommas: ThreeCommasConfig = ThreeCommasConfig()
    coinbase: CoinbaseConfig = CoinbaseConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "MARKET_INSIGHTS_",
) -> InsightsConfig:
    """Build an ``InsightsConfig`` from defaults, a YAML file and the environment.

    Environment variables win over the file, which wins over defaults.
    Double underscores descend into sections:
        MARKET_INSIGHTS_ENGINE__RACE_TIMEOUT=5  ->  engine.race_timeout = 5

    Raises:
        ConfigError: missing or unparsable file, or a value that fails validation.
    """
    try:
        document = _read_config_file(_locate_config_file(config_path, env_prefix))
        return InsightsConfig.model_validate(_merge_env_vars(document, env_prefix))
    except ConfigError:
        raise
    except (OSError, ValueError) as e:
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _locate_config_file(explicit: str | None, env_prefix: str) -> Path | None:
    """Pick the config file: explicit path, then ``<prefix>CONFIG``, then the cwd default."""
    env_var = f"{env_prefix}CONFIG"
    candidates = (("config_path", explicit), (env_var, os.environ.get(env_var)))
    for field, candidate in candidates:
        if not candidate:
            continue
        path = Path(candidate)
        if not path.is_file():
            raise ConfigError(
                f"Config file not found: {candidate}",
                context={"field": field, "value": candidate},
            )
        return path
    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.is_file() else None


def _read_config_file(path: Path | None) -> dict:
    if path is None:
        return {}
    try:
        document = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigError(
            f"YAML config must be a mapping, got {type(document).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return document


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay ``<prefix>SECTION__FIELD`` environment variables onto ``base``.

    Values are auto-cast, except ``*_key``/``*_secret`` fields, which stay
    strings so numeric-looking API keys survive.
    """
    merged = copy.deepcopy(base)
    for name, raw in os.environ.items():
        if not name.startswith(prefix):
            continue
        path = name[len(prefix) :].lower().split("__")
        if path == ["config"]:
            continue
        value = raw if path[-1].endswith(_UNCAST_SUFFIXES) else _auto_cast(raw)
        _set_nested(merged, path, value)
    return merged


def _set_nested(tree: dict, path: list[str], value: object) -> None:
    *parents, leaf = path
    for part in parents:
        child = tree.get(part)
        if not isinstance(child, dict):
            child = tree[part] = {}
        tree = child
    tree[leaf] = value


def _auto_cast(value: str) -> str | int | float | bool:
    """Cast "true"/"false" to bool and numeric strings to int or float."""
    lowered = value.lower()
    if lowered in _BOOLEANS:
        return _BOOLEANS[lowered]
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value
