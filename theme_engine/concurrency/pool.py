"""Bounded-concurrency fan-out with explicit join and cancellation."""

import asyncio
from typing import Awaitable, Callable, Iterable, TypeVar

from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.errors import PipelineCancelledError

T = TypeVar("T")
R = TypeVar("R")


async def bounded_gather(
    fn: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    *,
    limit: int,
    cancel_token: CancellationToken | None = None,
    return_exceptions: bool = False,
) -> list[R | BaseException]:
    """
    Run ``fn`` over ``items`` with at most ``limit`` calls in flight.

    Results are returned in input order. When ``return_exceptions`` is False
    the first failure cancels the remaining tasks and is re-raised. When the
    cancellation token fires, every outstanding task is cancelled and
    PipelineCancelledError is raised.

    Args:
        fn: Async function applied to each item.
        items: Work items.
        limit: Maximum concurrent calls (>= 1).
        cancel_token: Optional run-wide cancellation signal.
        return_exceptions: Return exceptions in place of results instead of raising.

    Returns:
        List of results (or exceptions) aligned with ``items``.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    semaphore = asyncio.Semaphore(limit)

    async def _run(item: T) -> R:
        async with semaphore:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            return await fn(item)

    tasks = [asyncio.create_task(_run(item)) for item in items]
    if not tasks:
        return []

    gathered = asyncio.gather(*tasks, return_exceptions=return_exceptions)
    waiter = (
        asyncio.create_task(cancel_token.wait()) if cancel_token is not None else None
    )

    try:
        pending = {gathered} if waiter is None else {gathered, waiter}
        done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

        if gathered not in done:
            gathered.cancel()
            await asyncio.wait(tasks)
            raise PipelineCancelledError(cancel_token.reason or "cancelled")

        return gathered.result()
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        if waiter is not None:
            waiter.cancel()
