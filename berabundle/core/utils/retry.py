from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from loguru import logger

from berabundle.core.constants.base import (
    DEFAULT_BASE_RETRY_DELAY_S,
    DEFAULT_MAX_RETRIES,
)

JITTER_MIN = 0.5
JITTER_MAX = 1.5

T = TypeVar("T")


def exponential_backoff_s(
    attempt: int,
    *,
    base_delay_s: float = DEFAULT_BASE_RETRY_DELAY_S,
    max_delay_s: float | None = None,
    jitter: Callable[[], float] | None = None,
) -> float:
    """Delay before ``attempt`` (0-indexed, attempt >= 1): ``base * 2**attempt * jitter``.

    ``jitter`` defaults to a uniform draw from ``[0.5, 1.5)`` so concurrent
    retries against the same endpoint do not line up.
    """
    factor = jitter() if jitter is not None else random.uniform(JITTER_MIN, JITTER_MAX)
    delay_s = base_delay_s * (2**attempt) * factor
    if max_delay_s is not None:
        delay_s = min(delay_s, max_delay_s)
    return delay_s


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_s: float = DEFAULT_BASE_RETRY_DELAY_S,
    max_delay_s: float | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
    get_delay_s: Callable[[int], float] | None = None,
    on_retry: Callable[[int, Exception, float], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``fn`` up to ``max_retries`` times, re-raising the last error.

    Only ``Exception`` subclasses are retried, so task cancellation always
    propagates immediately.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be >= 1")

    for attempt in range(max_retries):
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001
            if attempt >= max_retries - 1:
                raise
            if should_retry is not None and not should_retry(exc):
                raise

            next_attempt = attempt + 1
            delay_s = (
                get_delay_s(next_attempt)
                if get_delay_s is not None
                else exponential_backoff_s(
                    next_attempt, base_delay_s=base_delay_s, max_delay_s=max_delay_s
                )
            )
            logger.debug(
                f"Attempt {next_attempt}/{max_retries} failed, retrying in {delay_s:.3f}s: {exc}"
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay_s)
            await sleep(delay_s)

    raise RuntimeError("with_retry exhausted retries")


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: T | None = None
    error: Exception | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def try_with_retry(
    fn: Callable[[], Awaitable[T]],
    **kwargs: Any,
) -> RetryOutcome[T]:
    """Like :func:`with_retry` but returns a :class:`RetryOutcome` instead of raising."""
    attempts = 0

    async def _counted() -> T:
        nonlocal attempts
        attempts += 1
        return await fn()

    try:
        value = await with_retry(_counted, **kwargs)
    except Exception as exc:  # noqa: BLE001
        return RetryOutcome(error=exc, attempts=attempts)
    return RetryOutcome(value=value, attempts=attempts)
