from __future__ import annotations

import logging
import os

import structlog

LOG_LEVEL_ENV = "WORKTREE_SNAPSHOT_LOG_LEVEL"


def configure_logging(level: str | None = None) -> None:
    """
    Route structlog through stdlib logging to stderr.
    stdout belongs to the MCP stdio transport and must stay clean.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    root_logger = logging.getLogger()
    root_logger.setLevel((level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper())
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
        )
    )
    root_logger.addHandler(handler)

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
