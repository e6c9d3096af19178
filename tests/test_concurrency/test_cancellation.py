"""Tests for CancellationToken."""

import asyncio

import pytest

from theme_engine.concurrency.cancellation import CancellationToken
from theme_engine.errors import PipelineCancelledError


class TestCancellationToken:
    """Test the one-shot cancellation signal."""

    def test_initial_state(self):
        token = CancellationToken()
        assert token.cancelled is False
        assert token.reason is None
        token.raise_if_cancelled()

    def test_cancel_sets_reason(self):
        token = CancellationToken()
        token.cancel("user aborted")
        assert token.cancelled is True
        assert token.reason == "user aborted"

    def test_second_cancel_keeps_first_reason(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.cancel("stop now")
        with pytest.raises(PipelineCancelledError, match="stop now"):
            token.raise_if_cancelled()

    async def test_wait_returns_after_cancel(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        token.cancel()
        await asyncio.wait_for(waiter, timeout=1.0)
