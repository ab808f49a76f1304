"""
Bounded retry for operations against external sessions.

A RetryPolicy runs an async operation up to `max_attempts` times, sleeping
between attempts according to a delay strategy. When every attempt has failed
it runs the optional `on_exhaustion` action and raises RetryExhausted.

Example:
    policy = RetryPolicy(max_attempts=3, delay=FixedDelay(5.0))
    await policy.run(connect_once, before_attempt=maybe_reset_credentials)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("retry")


class RetryExhausted(Exception):
    """Every attempt failed."""

    def __init__(self, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class FixedDelay:
    """Same delay before every retry."""

    def __init__(self, seconds: float):
        self.seconds = seconds

    def __call__(self, retry_number: int) -> float:
        return self.seconds


class ExponentialBackoff:
    """`initial * factor ** (retry_number - 1)`, capped at `maximum`."""

    def __init__(self, initial: float = 1.0, factor: float = 2.0, maximum: float = 60.0):
        self.initial = initial
        self.factor = factor
        self.maximum = maximum

    def __call__(self, retry_number: int) -> float:
        return min(self.initial * self.factor ** (retry_number - 1), self.maximum)


# Called with (attempt_number, last_error) before each attempt
BeforeAttempt = Callable[[int, Optional[BaseException]], Awaitable[None]]
OnExhaustion = Callable[[BaseException], Awaitable[None]]


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    delay: Callable[[int], float] = field(default_factory=lambda: FixedDelay(5.0))
    on_exhaustion: Optional[OnExhaustion] = None
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def run(
        self,
        operation: Callable[[int], Awaitable[Any]],
        before_attempt: Optional[BeforeAttempt] = None,
    ) -> Any:
        """
        Run `operation(attempt_number)` until it succeeds or attempts run out.

        Returns:
            Whatever the first successful attempt returns.

        Raises:
            RetryExhausted: After `max_attempts` failures.
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                wait = self.delay(attempt - 1)
                logger.info(f"Retrying in {wait:.1f}s (attempt {attempt}/{self.max_attempts})")
                await self.sleep(wait)

            if before_attempt is not None:
                await before_attempt(attempt, last_error)

            try:
                return await operation(attempt)
            except self.retry_on as e:
                last_error = e
                logger.warning(f"Attempt {attempt}/{self.max_attempts} failed: {e}")

        if self.on_exhaustion is not None:
            await self.on_exhaustion(last_error)
        raise RetryExhausted(self.max_attempts, last_error) from last_error
