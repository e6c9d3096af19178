"""
structlog setup for the CLI and library callers.

Log lines go to stderr: JSON in production, colored key/value lines
elsewhere. A pipeline run binds ``run_id`` into the context so every
line emitted while it is active carries it.
"""

import logging
import sys

import structlog
from structlog.types import Processor

from theme_engine.config.settings import Settings, get_settings

# Quieted to WARNING regardless of the configured level
_NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "asyncio",
    "urllib3",
    "openai",
    "anthropic",
    "transformers",
    "filelock",
)


def _processor_chain(json_output: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        chain.append(structlog.processors.dict_tracebacks)
        chain.append(structlog.processors.JSONRenderer())
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return chain


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Modules log through either ``logging.getLogger(__name__)`` or
    ``structlog.get_logger(__name__)``; both end up on stderr so that
    ``theme-engine extract`` can print its JSON result on stdout.

    Args:
        settings: Source of ``environment``, ``log_level`` and ``debug``
            (the cached process settings when omitted).
    """
    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)

    structlog.configure(
        processors=_processor_chain(json_output=settings.is_production),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**fields) -> None:
    """Attach ``fields`` to every log line from the current context."""
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
