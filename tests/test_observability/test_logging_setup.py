"""Tests for structured logging setup and context binding."""

import logging

import pytest
import structlog

from theme_engine.config.settings import Settings
from theme_engine.observability.logging import (
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    unbind_context,
)


@pytest.fixture(autouse=True)
def _reset_structlog():
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


class TestSetupLogging:
    def test_production_renders_json(self):
        setup_logging(Settings(environment="production"))
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_development_renders_console(self):
        setup_logging(Settings(environment="development"))
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_context_merged_first(self):
        setup_logging(Settings())
        processors = structlog.get_config()["processors"]
        assert processors[0] is structlog.contextvars.merge_contextvars

    def test_quiets_chatty_libraries(self):
        setup_logging(Settings())
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("transformers").level == logging.WARNING

    def test_get_logger(self):
        setup_logging(Settings())
        logger = get_logger("theme_engine.test")
        assert hasattr(logger, "info")


class TestContext:
    """run_id binding used by pipeline runs."""

    def test_bind_and_unbind(self):
        bind_context(run_id="abc123", stage="coding")
        assert structlog.contextvars.get_contextvars() == {"run_id": "abc123", "stage": "coding"}

        unbind_context("stage")
        assert structlog.contextvars.get_contextvars() == {"run_id": "abc123"}

    def test_clear(self):
        bind_context(run_id="abc123")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
