"""Per-run cap on language-model calls."""

import asyncio
import logging

from theme_engine.errors import BudgetExhaustedError

logger = logging.getLogger(__name__)


class LLMCallBudget:
    """
    Counts language-model calls against a fixed per-run limit.

    Enrichment and labeling share one budget. ``acquire()`` is called before
    each request; once the limit is reached it raises BudgetExhaustedError
    and callers fall back (unenriched codes, representative-code labels).

    Args:
        limit: Maximum number of calls (0 disables budgeted calls entirely).
    """

    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        self._limit = limit
        self._used = 0
        self._lock = asyncio.Lock()
        self._exhausted_logged = False

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        return self._limit - self._used

    @property
    def exhausted(self) -> bool:
        return self._used >= self._limit

    async def acquire(self, operation: str = "call") -> None:
        """
        Reserve one call.

        Raises:
            BudgetExhaustedError: No calls remain.
        """
        async with self._lock:
            if self._used >= self._limit:
                if not self._exhausted_logged:
                    logger.warning(
                        "LLM call budget of %d exhausted during %s; falling back",
                        self._limit,
                        operation,
                    )
                    self._exhausted_logged = True
                raise BudgetExhaustedError(self._limit)
            self._used += 1
