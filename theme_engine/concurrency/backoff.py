"""
Exponential backoff and retry helpers for provider calls.

Embedding and language-model calls both go through ``retry_async``, which
re-issues a failed call after an exponentially growing, jittered delay and
gives up after a bounded number of attempts.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExponentialBackoff:
    """
    Jittered exponential delay schedule.

    The n-th delay (n from 0) is ``base_delay * multiplier**n`` capped at
    ``max_delay``, then scaled by a random factor in
    ``[1 - jitter_range, 1 + jitter_range]``. ``retry_async`` resets the
    schedule before each call it wraps.
    """

    def __init__(
        self,
        base_delay: float = 0.5,
        max_delay: float = 30.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.25,
        rng: random.Random | None = None,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._rng = rng or random.Random()
        self._attempt = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_delay(self) -> float:
        capped = min(self.max_delay, self.base_delay * self.multiplier**self._attempt)
        self._attempt += 1
        factor = 1.0 + self._rng.uniform(-self.jitter_range, self.jitter_range)
        return max(0.0, capped * factor)

    def reset(self) -> None:
        self._attempt = 0


async def retry_async(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int,
    backoff: ExponentialBackoff,
    retry_on: tuple[type[BaseException], ...],
    description: str = "call",
    **kwargs: Any,
) -> T:
    """
    Await ``fn(*args, **kwargs)``, retrying failures listed in ``retry_on``.

    At most ``max_retries + 1`` attempts are made. An exception whose
    ``retryable`` attribute is False is re-raised at once, as is anything
    outside ``retry_on``; otherwise the last failure is re-raised when the
    attempts run out.
    """
    backoff.reset()
    for attempt in range(max_retries + 1):
        try:
            return await fn(*args, **kwargs)
        except retry_on as e:
            if attempt >= max_retries or not getattr(e, "retryable", True):
                raise
            delay = backoff.next_delay()
            logger.debug(
                "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                description,
                attempt + 1,
                max_retries + 1,
                e,
                delay,
            )
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
