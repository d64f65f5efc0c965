"""Integration test fixtures: real SQLite cache, HTTP mocked with respx."""

from __future__ import annotations

from pathlib import Path

import pytest

from market_insights.core.config import CacheConfig, EngineConfig, InsightsConfig
from market_insights.core.models import CacheBackendType


@pytest.fixture
def integration_config(tmp_path: Path) -> InsightsConfig:
    return InsightsConfig(
        cache=CacheConfig(
            backend=CacheBackendType.SQLITE,
            sqlite_path=str(tmp_path / "data" / "market_cache.db"),
        ),
        engine=EngineConfig(race_timeout=2.0),
    )


@pytest.fixture
def paprika_history() -> list[dict]:
    return [
        {
            "timestamp": f"2024-01-01T{hour:02d}:00:00Z",
            "price": 42000.0 + hour,
            "volume_24h": 1.0e10,
            "market_cap": 8.2e11,
        }
        for hour in range(24)
    ]
