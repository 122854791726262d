"""Tests for envdock.retry: schedules and the bounded retry executor."""

import pytest

from envdock.retry import Retry, RetryExhausted, RetryPolicy, fibonacci, fixed, retry, take


class Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


# ── schedules ───────────────────────────────────────────────────────


def test_fixed_schedule():
    assert take(fixed(3000), 4) == [3000, 3000, 3000, 3000]


def test_fibonacci_schedule():
    assert take(fibonacci(3000), 6) == [3000, 3000, 6000, 9000, 15000, 24000]


def test_policy_schedule_length_is_attempts():
    assert RetryPolicy("fibonacci", 100, 3).schedule() == [100, 100, 200]
    assert RetryPolicy("fixed", 10, 2).schedule() == [10, 10]


def test_policy_unknown_kind():
    with pytest.raises(ValueError, match="Unknown retry schedule kind"):
        RetryPolicy("exponential", 10, 2).schedule()


def test_policy_from_dict_defaults():
    policy = RetryPolicy.from_dict({"kind": "fibonacci"})
    assert policy == RetryPolicy("fibonacci", 3000, 5)


# ── retry ───────────────────────────────────────────────────────────


async def test_retry_returns_first_success():
    sleeps = Sleeps()
    results = iter([Retry("not yet"), Retry("not yet"), "done"])
    calls = []

    async def op():
        calls.append(1)
        return next(results)

    assert await retry([10, 20, 30, 40], op, sleep=sleeps) == "done"
    assert len(calls) == 3
    assert sleeps.calls == [0.01, 0.02]


async def test_retry_exhausted_after_schedule_length():
    sleeps = Sleeps()
    calls = []

    async def op():
        calls.append(1)
        return Retry("still pending")

    with pytest.raises(RetryExhausted) as exc_info:
        await retry([1000, 2000, 3000], op, sleep=sleeps)

    assert len(calls) == 3
    # no sleep after the last attempt
    assert sleeps.calls == [1.0, 2.0]
    assert exc_info.value.attempts == 3
    assert exc_info.value.reason == "still pending"


async def test_retry_single_attempt_never_sleeps():
    sleeps = Sleeps()

    async def op():
        return Retry()

    with pytest.raises(RetryExhausted):
        await retry([5000], op, sleep=sleeps)
    assert sleeps.calls == []


async def test_retry_exception_is_terminal():
    sleeps = Sleeps()
    calls = []

    async def op():
        calls.append(1)
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await retry([10, 10, 10], op, sleep=sleeps)
    assert len(calls) == 1
    assert sleeps.calls == []


async def test_retry_empty_schedule_rejected():
    async def op():
        return "never"

    with pytest.raises(ValueError):
        await retry([], op)


async def test_retry_falsy_result_is_success():
    async def op():
        return None

    assert await retry([10], op) is None
