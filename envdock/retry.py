"""Bounded retry executor with fixed and Fibonacci delay schedules.

An operation returns :class:`Retry` to ask for another attempt; any other
return value is a success and stops the loop. Exceptions raised by the
operation are terminal and propagate unchanged.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SCHEDULE_KINDS = ("fixed", "fibonacci")


def fixed(delay_ms):
    """Infinite schedule repeating ``delay_ms``."""
    while True:
        yield delay_ms


def fibonacci(base_ms):
    """Infinite Fibonacci schedule starting at ``base_ms``: b, b, 2b, 3b, 5b..."""
    a, b = base_ms, base_ms
    while True:
        yield a
        a, b = b, a + b


def take(schedule, attempts) -> list[int]:
    """Bound a schedule to ``attempts`` delays."""
    return list(itertools.islice(schedule, attempts))


@dataclass
class Retry:
    """Returned by an operation to request another attempt."""

    reason: str = ""


class RetryExhausted(Exception):
    """Every attempt of the schedule returned :class:`Retry`."""

    def __init__(self, attempts: int, reason: str):
        self.attempts = attempts
        self.reason = reason
        super().__init__(f"gave up after {attempts} attempt(s): {reason}" if reason else f"gave up after {attempts} attempt(s)")


@dataclass
class RetryPolicy:
    """Tunable retry settings for one class of operation."""

    kind: str = "fixed"
    delay_ms: int = 3000
    attempts: int = 5

    def schedule(self) -> list[int]:
        if self.kind == "fibonacci":
            return take(fibonacci(self.delay_ms), self.attempts)
        if self.kind == "fixed":
            return take(fixed(self.delay_ms), self.attempts)
        raise ValueError(f"Unknown retry schedule kind: {self.kind!r}")

    def validate(self):
        if self.kind not in SCHEDULE_KINDS:
            raise ValueError(f"unknown kind {self.kind!r}, expected one of: {', '.join(SCHEDULE_KINDS)}")
        if self.attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {self.attempts}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must not be negative, got {self.delay_ms}")

    @classmethod
    def from_dict(cls, d: dict) -> "RetryPolicy":
        """Build a policy; raises ValueError on an unknown kind or out-of-range numbers."""
        policy = cls(
            kind=d.get("kind", "fixed"),
            delay_ms=int(d.get("delay_ms", 3000)),
            attempts=int(d.get("attempts", 5)),
        )
        policy.validate()
        return policy


async def retry(schedule, operation, sleep=asyncio.sleep, description="operation"):
    """Run ``operation`` until it succeeds or the schedule is exhausted.

    Args:
        schedule: finite iterable of delays in milliseconds; its length is the
            maximum number of attempts
        operation: async callable() returning a value or a Retry marker
        sleep: async callable(seconds), injectable for tests
        description: label used in debug logs

    Returns:
        The first non-Retry value returned by ``operation``.

    Raises:
        RetryExhausted: when every attempt asked for a retry.
    """
    delays = list(schedule)
    if not delays:
        raise ValueError("retry schedule must contain at least one delay")

    reason = ""
    for attempt, delay in enumerate(delays, start=1):
        result = await operation()
        if not isinstance(result, Retry):
            return result
        reason = result.reason
        logger.debug(f"{description}: attempt {attempt}/{len(delays)} not done yet ({reason})")
        if attempt < len(delays):
            await sleep(delay / 1000)

    raise RetryExhausted(len(delays), reason)
