"""
Bounded retry with exponential backoff for fetch attempts.

Only failures that may be transient are retried: no response at all, or an
HTTP 408 / 5xx. The delay after attempt n (1-indexed) is

    min(max_delay_s, min_delay_s * backoff_factor ** (n - 1))

clamped below by min_delay_s. There is no jitter, so delays never decrease.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import FetchError, is_retryable_status

# Three attempts spread over about a minute
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 10.0
DEFAULT_MIN_DELAY_S = 10.0
DEFAULT_MAX_DELAY_S = 60.0

T = TypeVar("T")
logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class RetryConfig:
    """
    Configuration for retry with exponential backoff.

    Attributes:
        retries: Total number of attempts. Values below 1 mean a single attempt.
        backoff_factor: Multiplier applied to the delay after each attempt.
        min_delay_s: Delay after the first attempt, and the lower clamp.
        max_delay_s: Upper clamp for any delay.
    """
    retries: int = DEFAULT_RETRIES
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR
    min_delay_s: float = DEFAULT_MIN_DELAY_S
    max_delay_s: float = DEFAULT_MAX_DELAY_S

    @property
    def max_attempts(self) -> int:
        return max(1, int(self.retries))

    def to_persist_dict(self) -> dict:
        return {
            "retries": self.retries,
            "backoff_factor": self.backoff_factor,
            "min_delay_s": self.min_delay_s,
            "max_delay_s": self.max_delay_s,
        }

    @classmethod
    def from_persist_dict(cls, data: dict) -> "RetryConfig":
        retries = data.get("retries", DEFAULT_RETRIES)
        factor = data.get("backoff_factor", DEFAULT_BACKOFF_FACTOR)
        min_delay = data.get("min_delay_s", DEFAULT_MIN_DELAY_S)
        max_delay = data.get("max_delay_s", DEFAULT_MAX_DELAY_S)

        try:
            retries = int(retries)
        except (TypeError, ValueError):
            retries = DEFAULT_RETRIES

        try:
            factor = float(factor)
        except (TypeError, ValueError):
            factor = DEFAULT_BACKOFF_FACTOR

        try:
            min_delay = float(min_delay)
        except (TypeError, ValueError):
            min_delay = DEFAULT_MIN_DELAY_S

        try:
            max_delay = float(max_delay)
        except (TypeError, ValueError):
            max_delay = DEFAULT_MAX_DELAY_S

        min_delay = max(0.0, min_delay)
        return cls(
            retries=max(1, retries),
            backoff_factor=max(1.0, factor),
            min_delay_s=min_delay,
            max_delay_s=max(min_delay, max_delay),
        )

    def compute_delay(self, attempt: int) -> float:
        """
        Compute the delay to wait after a failed attempt.

        Args:
            attempt: The attempt that just failed (1-indexed).

        Returns:
            Delay in seconds, within [min_delay_s, max_delay_s].
        """
        exponent = max(0, attempt - 1)
        delay = self.min_delay_s * (self.backoff_factor ** exponent)
        delay = min(delay, self.max_delay_s)
        return max(delay, self.min_delay_s)

    def is_retryable_status(self, status_code: int) -> bool:
        """Check if HTTP status code should trigger retry."""
        return is_retryable_status(status_code)


async def with_retry_async(
    func: Callable[[int], Awaitable[T]],
    *,
    config: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[int, FetchError, float], None]] = None,
    sleep: SleepFunc = asyncio.sleep,
) -> T:
    """
    Drive up to `config.max_attempts` attempts of an async function.

    Args:
        func: Async function called with the 1-indexed attempt number.
        config: Retry configuration.
        on_retry: Optional callback called before each backoff with
                  (attempt, exception, delay).
        sleep: Coroutine used for the backoff wait.

    Returns:
        The result of the first successful attempt.

    Raises:
        The failure of the last attempt, or the first terminal failure.
        Exceptions that are not FetchError propagate untouched.
    """
    cfg = config or RetryConfig()
    attempts = cfg.max_attempts

    for attempt in range(1, attempts + 1):
        logger.info(
            "fetch attempt %d/%d at %s",
            attempt,
            attempts,
            datetime.now().strftime("%H:%M:%S"),
        )
        try:
            return await func(attempt)
        except FetchError as exc:
            if not exc.should_retry or attempt >= attempts:
                raise
            delay = cfg.compute_delay(attempt)
            if on_retry:
                on_retry(attempt, exc, delay)
            logger.warning(
                "will retry in %.2fs, error on attempt %d/%d: %s",
                delay,
                attempt,
                attempts,
                exc,
            )
            await sleep(delay)

    raise RuntimeError("Retry logic error: no result or exception")
