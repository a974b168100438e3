"""Structured logging for the site backend and the carousel engine.

Development runs get colored console output; production runs emit one JSON
object per line so the hosting platform can index the fields.

Usage:
    from src.core.logging import configure_logging, get_logger

    configure_logging(development=True)

    logger = get_logger(__name__)
    logger.info("carousel_rebuilt", per_view=3, total=10)
"""

import logging
import sys
from collections.abc import Iterable
from os import getenv
from typing import Any, cast

import structlog
from structlog.types import Processor

# Libraries that log too much at INFO for our purposes
NOISY_LOGGERS = ("uvicorn.access", "PIL", "httpx", "httpcore", "multipart")


def configure_logging(
    development: bool | None = None,
    log_level: str | None = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        development: Pretty console output when True, JSON when False.
            Falls back to the ENVIRONMENT env var (anything other than
            "production" counts as development).
        log_level: DEBUG, INFO, WARNING or ERROR. Falls back to LOG_LEVEL,
            then INFO.
        quiet_loggers: Third-party logger names capped at WARNING.
    """
    if development is None:
        development = getenv("ENVIRONMENT", "development").lower() != "production"
    level = getattr(logging, (log_level or getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO)

    structlog.configure(
        processors=_processor_chain(development),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # force=True replaces handlers installed by uvicorn or pytest
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    logging.getLogger().setLevel(level)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def _processor_chain(development: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if development:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    else:
        chain.extend(
            [
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(),
            ]
        )
    return chain


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually named after the calling module."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))


def bind_contextvars(**kwargs: Any) -> None:
    """Attach key/value pairs to every following log call in this context.

    Example:
        bind_contextvars(request_id="abc-123", user_id="u-1")
        logger.info("admin_record_updated")  # carries request_id and user_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_contextvars() -> None:
    """Drop all bound context, typically at the end of a request."""
    structlog.contextvars.clear_contextvars()


def unbind_contextvars(*keys: str) -> None:
    """Remove the given keys from the bound context."""
    structlog.contextvars.unbind_contextvars(*keys)
