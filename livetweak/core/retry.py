"""
Bounded retry of lookup-and-apply operations.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, and how long to wait between tries."""
    max_attempts: int = 1
    delay_ms: int = 0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.delay_ms < 0:
            raise ValueError(f"delay_ms must not be negative, got {self.delay_ms}")


class RetryState(Enum):
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass
class RetryOutcome:
    state: RetryState
    attempts: int
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.state is RetryState.SUCCEEDED


def _is_none(result: Any) -> bool:
    return result is None


async def with_retry(operation: Callable[[], Awaitable[Any]], policy: RetryPolicy,
                     missing: Callable[[Any], bool] = _is_none,
                     label: str = "operation") -> RetryOutcome:
    """
    Run ``operation`` until it stops reporting a missing element.

    The first attempt runs immediately. Each further attempt waits
    ``policy.delay_ms`` without blocking the event loop. After
    ``policy.max_attempts`` attempts the outcome is ``EXHAUSTED``; that is a
    normal result, not an error.

    Args:
        operation: Coroutine function performing one lookup-and-apply attempt.
        policy: Attempt bound and inter-attempt delay.
        missing: Predicate telling whether a result means "element not found".
        label: Name used in log messages.

    Returns:
        RetryOutcome carrying the number of attempts made and the last result.
    """
    attempts = 0
    result = None
    while attempts < policy.max_attempts:
        if attempts:
            await asyncio.sleep(policy.delay_ms / 1000)
        result = await operation()
        attempts += 1
        if not missing(result):
            if attempts > 1:
                logger.debug(f"{label} succeeded on attempt {attempts}")
            return RetryOutcome(RetryState.SUCCEEDED, attempts, result)
        logger.debug(f"{label}: element not found (attempt {attempts}/{policy.max_attempts})")

    if policy.max_attempts > 1:
        logger.info(f"{label}: giving up after {attempts} attempts")
    return RetryOutcome(RetryState.EXHAUSTED, attempts, result)
