"""
Retry Policy: Bounded Exponential Backoff

Implements the retry strategy used for best-effort storage work:
- Exponential backoff: base × multiplier^n, capped at max delay
- Optional full jitter: random(0, backoff)
- Fixed maximum attempt count (first try included)

The policy is a plain value object so it can be tested without
running anything; retry_with_backoff is the only loop that consumes it.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Type, TypeVar

from browsermesh.core.types import Result, Ok, Err
from browsermesh.core.errors import ReliabilityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration."""

    max_attempts: int = 3
    base_delay_ms: int = 100
    max_delay_ms: int = 2000
    backoff_multiplier: float = 2.0
    jitter: bool = False
    attempt_timeout_s: Optional[float] = None
    retryable_exceptions: tuple[Type[Exception], ...] = (Exception,)
    non_retryable_exceptions: tuple[Type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        """Single attempt."""
        return cls(max_attempts=1)

    def delay_ms(self, attempt: int) -> float:
        """
        Delay before the retry that follows failed attempt `attempt` (0-based).

        Without jitter: min(max_delay, base * multiplier^attempt).
        """
        return calculate_backoff(
            attempt=attempt,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            multiplier=self.backoff_multiplier,
            jitter=self.jitter,
        )

    def schedule_ms(self) -> list[float]:
        """Un-jittered delays between attempts, in order."""
        return [
            min(self.max_delay_ms, self.base_delay_ms * (self.backoff_multiplier ** n))
            for n in range(self.max_attempts - 1)
        ]


def calculate_backoff(
    attempt: int,
    base_delay_ms: int,
    max_delay_ms: int,
    multiplier: float,
    jitter: bool,
) -> float:
    """
    Calculate backoff delay with optional jitter.

    Full jitter: random(0, min(cap, base * multiplier^attempt))
    """
    delay = min(max_delay_ms, base_delay_ms * (multiplier ** attempt))
    if jitter:
        delay = random.uniform(0, delay)
    return delay


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    operation: str = "operation",
    sleep: Sleeper = asyncio.sleep,
) -> Result[T, ReliabilityError]:
    """
    Execute async function with retry and exponential backoff.

    Args:
        func: Async function to execute (called once per attempt)
        policy: Retry configuration (default if None)
        operation: Name used in log lines
        sleep: Awaitable sleep, injectable for tests

    Returns:
        Ok with result, or Err carrying the last exception as cause
        once attempts are exhausted. Cancellation is never retried.
    """
    if policy is None:
        policy = RetryPolicy.default()

    last_exception: Optional[Exception] = None
    attempts = 0

    for attempt in range(policy.max_attempts):
        attempts += 1
        try:
            if policy.attempt_timeout_s is not None:
                result = await asyncio.wait_for(func(), timeout=policy.attempt_timeout_s)
            else:
                result = await func()
            if attempt > 0:
                logger.info(f"{operation} succeeded on attempt {attempts}")
            return Ok(result)

        except policy.non_retryable_exceptions as e:
            return Err(ReliabilityError.retry_exhausted(attempts=attempts, last_error=e))

        except policy.retryable_exceptions as e:
            last_exception = e
            logger.debug(f"{operation} attempt {attempts} failed: {e}")

        if attempt < policy.max_attempts - 1:
            delay = policy.delay_ms(attempt)
            logger.debug(f"Retrying {operation} in {delay:.0f}ms (attempt {attempts + 1})")
            await sleep(delay / 1000)

    logger.warning(
        f"{operation} failed after {attempts} attempts: {last_exception}",
    )
    return Err(ReliabilityError.retry_exhausted(attempts=attempts, last_error=last_exception))
