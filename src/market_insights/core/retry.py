"""Shared retry policy for clients that own their retry loop.

Provider adapters make a single attempt; the 3commas client and the Coinbase
spot-price client retry through a ``RetryPolicy``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from market_insights.core.config import RetryConfig
from market_insights.core.exceptions import (
    FetchError,
    NetworkError,
    RetriesExhaustedError,
    UpstreamStatusError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def linear_backoff(step: float) -> Callable[[int], float]:
    """Delay of ``attempt * step`` seconds after the given (1-based) attempt."""

    def _delay(attempt: int) -> float:
        return attempt * step

    return _delay


def server_errors_only(status_code: int) -> bool:
    """4xx is the caller's fault and never retried; 5xx may be transient."""
    return status_code >= 500


@dataclass(frozen=True)
class RetryPolicy:
    """Max attempts, a backoff function and a retryable-status predicate."""

    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default=linear_backoff(2.0))
    retryable_status: Callable[[int], bool] = field(default=server_errors_only)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_attempts=config.max_attempts,
            backoff=linear_backoff(config.backoff_seconds),
        )

    def should_retry(self, error: Exception) -> bool:
        if isinstance(error, UpstreamStatusError):
            return self.retryable_status(error.status_code)
        return isinstance(error, NetworkError)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        description: str = "request",
    ) -> T:
        """Await ``operation`` until it succeeds or the policy gives up.

        Non-retryable FetchErrors propagate immediately without any delay.

        Raises:
            RetriesExhaustedError: every attempt failed with a retryable error.
        """
        last_exc: FetchError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except FetchError as e:
                if not self.should_retry(e):
                    raise
                last_exc = e
                if attempt < self.max_attempts:
                    delay = self.backoff(attempt)
                    logger.warning(
                        "%s failed (%s), retrying in %.1fs (attempt %d/%d)",
                        description, e, delay, attempt, self.max_attempts,
                    )
                    await asyncio.sleep(delay)

        raise RetriesExhaustedError(
            f"{description} failed after {self.max_attempts} attempts: {last_exc}",
            context={
                **(last_exc.context if last_exc else {}),
                "attempts": self.max_attempts,
                "last_error": str(last_exc),
            },
        ) from last_exc
