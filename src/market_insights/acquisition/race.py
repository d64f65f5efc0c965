"""Race coordinator: first non-empty provider result wins.

All invocations start together. As soon as one returns a successful
``ProviderResult`` the others are cancelled and their results are never
looked at. There is no provider priority: which provider wins depends only
on completion order, so it varies between runs.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Awaitable, Callable, Mapping, Sequence

from market_insights.core.exceptions import AllProvidersFailed, FetchError, NetworkError
from market_insights.core.models import ProviderName, Query
from market_insights.providers.base import ProviderAdapter, ProviderResult

logger = logging.getLogger(__name__)

Invocation = Callable[[], Awaitable[ProviderResult]]


async def _guarded(label: ProviderName, invocation: Invocation) -> ProviderResult:
    """Run one invocation, turning stray exceptions into a failed result."""
    started = time.monotonic()
    try:
        return await invocation()
    except FetchError as e:
        return ProviderResult.failure(label, e, elapsed=time.monotonic() - started)
    except Exception as e:
        logger.error("Provider %s raised instead of returning a result", label, exc_info=True)
        return ProviderResult.failure(
            label,
            FetchError(f"{label} raised {type(e).__name__}: {e}", context={"source": label}),
            elapsed=time.monotonic() - started,
        )


async def race(
    invocations: Mapping[ProviderName, Invocation],
    *,
    timeout: float | None = None,
) -> ProviderResult:
    """Run labelled provider invocations concurrently and return the first success.

    Args:
        invocations: provider name → zero-argument coroutine function.
        timeout: overall deadline in seconds; providers still running when it
            expires are cancelled and count as network failures.

    Returns:
        The first ``ProviderResult`` with a non-empty series.

    Raises:
        AllProvidersFailed: no invocation succeeded. ``failures`` holds one
            result per provider.
    """
    if not invocations:
        raise AllProvidersFailed("No providers to race")

    tasks: dict[asyncio.Task[ProviderResult], ProviderName] = {
        asyncio.create_task(_guarded(label, inv), name=f"race:{label}"): label
        for label, inv in invocations.items()
    }
    failures: list[ProviderResult] = []
    pending: set[asyncio.Task[ProviderResult]] = set(tasks)
    started = time.monotonic()

    try:
        async with asyncio.timeout(timeout):
            while pending:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    result = task.result()
                    if result.ok:
                        logger.info(
                            "%s won the race with %d points in %.2fs",
                            result.provider, len(result.points),
                            time.monotonic() - started,
                        )
                        return result
                    failures.append(result)
    except TimeoutError:
        for task in pending:
            label = tasks[task]
            failures.append(
                ProviderResult.failure(
                    label,
                    NetworkError(
                        f"{label} did not answer within {timeout}s",
                        context={"source": label},
                    ),
                    elapsed=time.monotonic() - started,
                )
            )
    finally:
        losers = [task for task in tasks if not task.done()]
        for task in losers:
            task.cancel()
        if losers:
            await asyncio.gather(*losers, return_exceptions=True)
            logger.debug("Cancelled %d in-flight providers", len(losers))

    summary = ", ".join(f"{r.provider}: {r.error}" for r in failures)
    raise AllProvidersFailed(
        f"All {len(tasks)} providers failed ({summary})",
        failures=failures,
        context={"providers": [r.provider for r in failures]},
    )


async def race_providers(
    providers: Sequence[ProviderAdapter],
    query: Query,
    timeout: float | None = None,
) -> ProviderResult:
    """Race every adapter's ``fetch(query)``."""
    invocations: dict[ProviderName, Invocation] = {}
    for provider in providers:
        label = provider.name
        suffix = 2
        while label in invocations:
            label = f"{provider.name}#{suffix}"
            suffix += 1
        invocations[label] = functools.partial(provider.fetch, query)
    return await race(invocations, timeout=timeout)
