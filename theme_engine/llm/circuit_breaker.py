"""Per-provider circuit breaker for language-model requests.

A run issues many extraction, split and labeling batches against one
provider. After ``failure_threshold`` consecutive provider failures the
breaker opens and every further batch fails fast with CircuitOpenError, so
callers go straight to their fallback (local codes, unsplit codes,
representative-code labels). Once ``recovery_timeout`` has passed, one
probe request is let through to decide whether to close again.

Usage:
    breaker = GenericCircuitBreaker(failure_threshold=5, recovery_timeout=60.0, name="openai")
    raw = await breaker.call(client.request, prompt)
"""

import enum
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

from theme_engine.errors import CircuitOpenError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class GenericCircuitBreaker:
    """
    Counts consecutive provider failures and short-circuits while open.

    Only exceptions listed in ``trips_on`` count as failures; anything else
    propagates without touching the breaker state.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds the circuit stays open before a probe.
        name: Provider name for errors and logs.
        trips_on: Exception types counted as provider failures.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "llm",
        trips_on: tuple[type[BaseException], ...] = (ProviderError,),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._trips_on = trips_on
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._rejected = 0

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    @property
    def seconds_until_probe(self) -> float:
        """Remaining cool-down while open, else 0."""
        if self._state is not CircuitState.OPEN:
            return 0.0
        return max(0.0, self._recovery_timeout - (self._clock() - self._opened_at))

    def _admit(self) -> None:
        """Let a request through, move OPEN to HALF_OPEN, or reject."""
        if self._state is not CircuitState.OPEN:
            return
        if self.seconds_until_probe > 0:
            self._rejected += 1
            raise CircuitOpenError(
                f"{self._name} circuit open; retry in {self.seconds_until_probe:.0f}s",
                provider=self._name,
            )
        self._state = CircuitState.HALF_OPEN
        logger.info("%s circuit half-open: sending probe request", self._name)

    def record_success(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            logger.info("%s circuit closed: probe succeeded", self._name)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state is CircuitState.HALF_OPEN or self._consecutive_failures >= self._failure_threshold:
            if self._state is not CircuitState.OPEN:
                logger.warning(
                    "%s circuit open after %d consecutive failures (cool-down %.0fs)",
                    self._name,
                    self._consecutive_failures,
                    self._recovery_timeout,
                )
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Await ``fn(*args, **kwargs)`` unless the circuit is open.

        Raises:
            CircuitOpenError: The circuit is open and still cooling down.
        """
        self._admit()
        try:
            result = await fn(*args, **kwargs)
        except self._trips_on:
            self.record_failure()
            raise
        self.record_success()
        return result

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self._name,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
            "rejected_calls": self._rejected,
            "seconds_until_probe": round(self.seconds_until_probe, 1),
        }
