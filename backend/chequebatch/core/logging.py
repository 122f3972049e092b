"""
Structured logging setup (structlog).

Usage:
    from chequebatch.core.logging import get_logger, setup_logging

    setup_logging("INFO")          # once, at process start
    logger = get_logger(__name__)
    logger.info("Batch started", batch_id=batch_id, total_items=5)
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "INFO", json_output: bool | None = None) -> None:
    """
    Configure stdlib logging and structlog together.

    Console rendering in development, JSON lines everywhere else.
    """
    if json_output is None:
        from chequebatch.core.config import settings

        json_output = settings.APP_ENV != "development"

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to `name`."""
    return structlog.get_logger(name)
