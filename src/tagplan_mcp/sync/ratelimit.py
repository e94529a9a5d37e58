"""Pacing and quota retry for mutating container calls.

Two separate concerns, injected into the executor independently:

- ``RateLimiter`` enforces a fixed minimum interval between calls.
- ``RetryPolicy`` retries a call that failed with ``QuotaExceededError``,
  waiting a fixed (much longer) back-off between attempts.

Clock and sleep are injectable so tests run without real waiting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from ..core.async_utils import Sleeper, run_sync
from ..errors import QuotaExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_API_DELAY = 1.0
DEFAULT_QUOTA_MAX_ATTEMPTS = 3
DEFAULT_QUOTA_BACKOFF = 60.0


class RateLimiter:
    """Keep at least *min_interval* seconds between successive calls.

    The first call goes through immediately.
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_API_DELAY,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    async def wait(self) -> None:
        if self._last is not None and self.min_interval > 0:
            remaining = self._last + self.min_interval - self._clock()
            if remaining > 0:
                await self._sleep(remaining)
        self._last = self._clock()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry of quota failures.

    ``max_attempts`` counts the first try, so a call that always hits the
    quota is attempted exactly ``max_attempts`` times and waits
    ``(max_attempts - 1) * backoff_seconds`` in total.
    """

    max_attempts: int = DEFAULT_QUOTA_MAX_ATTEMPTS
    backoff_seconds: float = DEFAULT_QUOTA_BACKOFF
    sleep: Sleeper = field(default=asyncio.sleep, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff_seconds < 0:
            raise ValueError(
                f"backoff_seconds must be >= 0, got {self.backoff_seconds}"
            )

    async def run(
        self, call: Callable[[], Awaitable[T]], *, description: str = "call"
    ) -> T:
        """Await ``call()``, retrying on ``QuotaExceededError``.

        Raises:
            QuotaExceededError: When every attempt hit the quota.
        """
        attempt = 1
        while True:
            try:
                return await call()
            except QuotaExceededError as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "%s: quota still exceeded after %d attempts",
                        description,
                        attempt,
                    )
                    raise
                logger.warning(
                    "%s: quota exceeded (%s), retrying in %.0fs (attempt %d/%d)",
                    description,
                    e,
                    self.backoff_seconds,
                    attempt + 1,
                    self.max_attempts,
                )
                await self.sleep(self.backoff_seconds)
                attempt += 1


async def paced_call(
    limiter: RateLimiter,
    retry: RetryPolicy,
    description: str,
    func: Callable[..., T],
    *args: object,
) -> T:
    """Run blocking ``func(*args)`` off the loop, paced and quota-retried.

    Every mutating container call goes through here.
    """

    async def attempt() -> T:
        await limiter.wait()
        return await run_sync(func, *args)

    return await retry.run(attempt, description=description)
