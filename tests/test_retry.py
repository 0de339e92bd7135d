import asyncio

import pytest

from livetweak.core.retry import RetryPolicy, RetryState, with_retry


class Counter:
    def __init__(self, succeed_on=None):
        self.calls = 0
        self.succeed_on = succeed_on

    async def __call__(self):
        self.calls += 1
        if self.succeed_on is not None and self.calls >= self.succeed_on:
            return "element"
        return None


@pytest.mark.parametrize("attempts", [1, 3, 5])
@pytest.mark.asyncio
async def test_exhausts_after_exactly_max_attempts(attempts):
    operation = Counter()
    outcome = await with_retry(operation, RetryPolicy(max_attempts=attempts, delay_ms=1))

    assert outcome.state is RetryState.EXHAUSTED
    assert outcome.attempts == attempts
    assert operation.calls == attempts


@pytest.mark.asyncio
async def test_stops_at_first_success():
    operation = Counter(succeed_on=2)
    outcome = await with_retry(operation, RetryPolicy(max_attempts=5, delay_ms=1))

    assert outcome.ok
    assert outcome.attempts == 2
    assert outcome.result == "element"
    assert operation.calls == 2


@pytest.mark.asyncio
async def test_first_attempt_is_immediate_and_later_ones_wait():
    loop = asyncio.get_running_loop()
    started = loop.time()
    await with_retry(Counter(succeed_on=1), RetryPolicy(max_attempts=3, delay_ms=200))
    assert loop.time() - started < 0.1

    started = loop.time()
    await with_retry(Counter(), RetryPolicy(max_attempts=3, delay_ms=50))
    assert loop.time() - started >= 0.09


@pytest.mark.asyncio
async def test_custom_missing_predicate():
    async def operation():
        return "not_found"

    outcome = await with_retry(operation, RetryPolicy(max_attempts=2), missing=lambda r: r == "not_found")
    assert outcome.state is RetryState.EXHAUSTED


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"delay_ms": -1}])
def test_policy_validation(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
