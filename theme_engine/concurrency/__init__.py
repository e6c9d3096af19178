"""
Concurrency primitives for the extraction pipeline.

Components:
- ExponentialBackoff / retry_async: jittered retries for provider calls
- CancellationToken: run-wide cooperative cancellation signal
- bounded_gather: semaphore-bounded fan-out with explicit join
"""

from theme_engine.concurrency.backoff import ExponentialBackoff, retry_async
from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.concurrency.pool import bounded_gather

__all__ = [
    "ExponentialBackoff",
    "retry_async",
    "CancellationToken",
    "bounded_gather",
]
