"""
Exponential backoff retry policy for block source requests.

Schedule: the first wait is ``initial_interval``, every following wait is
multiplied by ``multiplier`` and capped at ``max_interval``; each wait is
jittered by ``randomization_factor``. Retrying stops once the next wait
would push the elapsed time past ``max_elapsed``.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator, Optional

import structlog

from aleo_rewards.core.config import Settings
from aleo_rewards.core.exceptions import TransientNetworkError


logger = structlog.get_logger(__name__)


def is_transient(error: BaseException) -> bool:
    """Default retryable predicate: only transient network failures."""
    return isinstance(error, TransientNetworkError)


@dataclass
class RetryPolicy:
    """Capped exponential backoff with an elapsed-time budget."""
    initial_interval: float = 0.05
    multiplier: float = 1.5
    randomization_factor: float = 0.5
    max_interval: float = 15.0
    max_elapsed: Optional[float] = 60.0
    retryable: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    clock: Callable[[], float] = time.monotonic
    rng: random.Random = field(default_factory=random.Random)

    @classmethod
    def from_settings(cls, config: Settings) -> "RetryPolicy":
        return cls(
            initial_interval=config.retry_initial_interval,
            max_interval=config.retry_max_interval,
            max_elapsed=config.retry_max_elapsed,
        )

    def intervals(self) -> Iterator[float]:
        """Un-jittered wait schedule."""
        interval = self.initial_interval
        while True:
            yield interval
            interval = min(interval * self.multiplier, self.max_interval)

    def _jitter(self, interval: float) -> float:
        if self.randomization_factor <= 0:
            return interval
        delta = self.randomization_factor * interval
        return self.rng.uniform(interval - delta, interval + delta)

    async def call(self, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        """
        Await ``func`` until it succeeds or the budget runs out.

        Non-retryable errors propagate immediately; the last retryable
        error propagates once the budget is exhausted.
        """
        started = self.clock()
        schedule = self.intervals()
        attempt = 0

        while True:
            attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not self.retryable(e):
                    raise

                delay = self._jitter(next(schedule))
                elapsed = self.clock() - started
                if self.max_elapsed is not None and elapsed + delay > self.max_elapsed:
                    logger.debug(
                        "Retry budget exhausted",
                        attempts=attempt,
                        elapsed=round(elapsed, 3),
                        error=str(e)
                    )
                    raise

                logger.debug(
                    "Transient failure, retrying",
                    attempt=attempt,
                    delay=round(delay, 3),
                    error=str(e)
                )
                await self.sleep(delay)
