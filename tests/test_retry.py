import asyncio

import pytest

from storefront.errors import GenerationExhaustedError, GenerationTimeoutError
from storefront.retry import backoff_delay, retry_with_backoff, with_timeout


def test_backoff_doubles_and_caps_at_eight_seconds():
    assert [backoff_delay(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]


@pytest.mark.parametrize("max_retries", [0, 1, 2, 4])
async def test_always_failing_operation_uses_every_attempt(max_retries, sleeps):
    calls = []

    async def operation():
        calls.append(1)
        raise RuntimeError(f"boom {len(calls)}")

    with pytest.raises(GenerationExhaustedError) as excinfo:
        await retry_with_backoff(operation, max_retries, sleep=sleeps)

    assert len(calls) == max_retries + 1
    assert sleeps.delays == [backoff_delay(i) for i in range(max_retries)]
    assert excinfo.value.attempts == max_retries + 1
    assert str(excinfo.value.last_error) == f"boom {max_retries + 1}"


async def test_stops_retrying_after_first_success(sleeps):
    outcomes = [RuntimeError("flaky"), "ok"]

    async def operation():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert await retry_with_backoff(operation, 2, sleep=sleeps) == "ok"
    assert sleeps.delays == [1.0]


async def test_with_timeout_raises_timeout_error():
    with pytest.raises(GenerationTimeoutError) as excinfo:
        await with_timeout(asyncio.sleep(1), 0.01)
    assert excinfo.value.seconds == 0.01


async def test_with_timeout_returns_result_in_time():
    async def quick():
        return 42

    assert await with_timeout(quick(), 1) == 42
