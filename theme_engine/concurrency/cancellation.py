"""Cooperative cancellation shared by every task of a pipeline run."""

import asyncio
import logging

from theme_engine.errors import PipelineCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    A one-shot cancellation signal for a pipeline run.

    The token is passed explicitly to every stage and fan-out. Stages call
    ``raise_if_cancelled()`` between units of work; ``bounded_gather`` races
    outstanding tasks against ``wait()`` and cancels them when it fires.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(pipeline.run(request, cancel_token=token))
        token.cancel("user aborted")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        """Whether cancel() has been called."""
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        """Reason passed to cancel(), if any."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Later calls are no-ops."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.info("Cancellation requested: %s", reason)

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        """Raise PipelineCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise PipelineCancelledError(self._reason or "cancelled")
