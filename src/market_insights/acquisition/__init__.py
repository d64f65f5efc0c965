"""Acquisition: provider race, fallback resolution and the engine state machine."""

from market_insights.acquisition.engine import (
    DEFAULT_CONTEXT,
    Acquisition,
    AcquisitionEngine,
    AcquisitionState,
)
from market_insights.acquisition.race import race, race_providers
from market_insights.acquisition.synthetic import REFERENCE_POINTS, synthetic_series

__all__ = [
    "DEFAULT_CONTEXT",
    "Acquisition",
    "AcquisitionEngine",
    "AcquisitionState",
    "race",
    "race_providers",
    "REFERENCE_POINTS",
    "synthetic_series",
]
