"""Structured logging for the API and the load workers.

Loads bind their prediction run (and the target being processed) with
structlog's contextvars, so every event emitted while loading carries
``run_id`` and ``target_id`` without threading them through the services.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

import structlog

from synthboard.core.config import get_settings


def setup_logging(level: str | None = None) -> None:
    """Configure structlog and the stdlib root logger from settings.

    Args:
        level: Overrides ``settings.log_level``, e.g. for a worker started
            with ``--loglevel``.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
        force=True,
    )
    # Engine echo is controlled by the engine itself
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


@contextmanager
def load_context(run_id: UUID | str) -> Iterator[None]:
    """Tag every log event inside the block with the run being loaded."""
    with structlog.contextvars.bound_contextvars(run_id=str(run_id)):
        yield


@contextmanager
def target_context(target_id: str) -> Iterator[None]:
    """Tag log events with the external id of the target being processed."""
    with structlog.contextvars.bound_contextvars(target_id=target_id):
        yield
