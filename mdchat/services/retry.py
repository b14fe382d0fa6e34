"""Bounded retry with exponential backoff for provider calls.

Only transient upstream failures (rate limits, timeouts, dropped connections,
5xx) are retried. Everything else, and a transient failure that outlives the
retry budget, surfaces as ProviderError.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import litellm

from mdchat.core.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    litellm.RateLimitError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.InternalServerError,
    litellm.ServiceUnavailableError,
    asyncio.TimeoutError,
)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Full-jitter exponential delay for the given 0-based attempt."""
    ceiling = min(max_delay, base_delay * (2 ** attempt))
    return random.uniform(ceiling / 2, ceiling)


async def call_with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    operation: str,
    max_retries: int,
    base_delay: float,
    max_delay: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()``, retrying transient failures up to ``max_retries`` times.

    Raises:
        ProviderError: when ``fn`` fails with a non-transient error, or with a
            transient one on the last attempt.
    """
    for attempt in range(max_retries + 1):
        try:
            return await fn()
        except ProviderError:
            raise
        except TRANSIENT_ERRORS as exc:
            if attempt >= max_retries:
                raise ProviderError(f"Failed to {operation}: {exc}", transient=True) from exc
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Transient provider error during %s (attempt %d/%d): %s; retrying in %.2fs",
                operation, attempt + 1, max_retries + 1, type(exc).__name__, delay,
            )
            await sleep(delay)
        except Exception as exc:
            raise ProviderError(f"Failed to {operation}: {exc}") from exc

    raise AssertionError("unreachable")  # pragma: no cover
