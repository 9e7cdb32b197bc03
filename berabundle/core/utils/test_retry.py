import asyncio
from unittest.mock import AsyncMock

import pytest

from berabundle.core.utils.retry import (
    exponential_backoff_s,
    try_with_retry,
    with_retry,
)


def _flaky(failures: int, result="ok"):
    calls = {"n": 0}

    async def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise ConnectionError(f"boom {calls['n']}")
        return result

    return fn, calls


def test_exponential_backoff_uses_jitter():
    assert exponential_backoff_s(1, base_delay_s=0.1, jitter=lambda: 1.0) == pytest.approx(0.2)
    assert exponential_backoff_s(3, base_delay_s=0.1, jitter=lambda: 0.5) == pytest.approx(0.4)


def test_exponential_backoff_respects_cap():
    assert exponential_backoff_s(10, base_delay_s=1.0, max_delay_s=5.0, jitter=lambda: 1.0) == 5.0


def test_exponential_backoff_default_jitter_in_range():
    for _ in range(50):
        delay = exponential_backoff_s(1, base_delay_s=0.1)
        assert 0.1 <= delay < 0.3


@pytest.mark.asyncio
async def test_succeeds_after_two_failures():
    fn, calls = _flaky(2)
    sleep = AsyncMock()

    result = await with_retry(fn, max_retries=3, base_delay_s=0.1, sleep=sleep)

    assert result == "ok"
    assert calls["n"] == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_reraises_last_error_when_exhausted():
    fn, calls = _flaky(10)
    sleep = AsyncMock()

    with pytest.raises(ConnectionError, match="boom 3"):
        await with_retry(fn, max_retries=3, sleep=sleep)

    assert calls["n"] == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_custom_delay_and_callback():
    fn, _ = _flaky(2)
    sleep = AsyncMock()
    seen = []

    await with_retry(
        fn,
        max_retries=3,
        get_delay_s=lambda attempt: attempt * 10.0,
        on_retry=lambda attempt, exc, delay: seen.append((attempt, delay)),
        sleep=sleep,
    )

    assert seen == [(0, 10.0), (1, 20.0)]
    assert [c.args[0] for c in sleep.await_args_list] == [10.0, 20.0]


@pytest.mark.asyncio
async def test_should_retry_false_raises_immediately():
    fn, calls = _flaky(5)

    with pytest.raises(ConnectionError):
        await with_retry(
            fn, max_retries=5, should_retry=lambda exc: False, sleep=AsyncMock()
        )

    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_cancellation_is_not_retried():
    calls = {"n": 0}

    async def fn():
        calls["n"] += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await with_retry(fn, max_retries=3, sleep=AsyncMock())

    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_rejects_non_positive_max_retries():
    fn, _ = _flaky(0)
    with pytest.raises(ValueError):
        await with_retry(fn, max_retries=0)


@pytest.mark.asyncio
async def test_try_with_retry_reports_outcome():
    fn, _ = _flaky(1, result=42)
    outcome = await try_with_retry(fn, max_retries=3, sleep=AsyncMock())
    assert outcome.ok
    assert outcome.value == 42
    assert outcome.attempts == 2

    failing, _ = _flaky(10)
    outcome = await try_with_retry(failing, max_retries=2, sleep=AsyncMock())
    assert not outcome.ok
    assert isinstance(outcome.error, ConnectionError)
    assert outcome.attempts == 2
