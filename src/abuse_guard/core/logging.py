"""
Structured logging configuration.

Every module logs through ``structlog.get_logger(__name__)`` with snake_case
event names and keyword context. This module wires structlog onto the
standard library handlers once at startup: human-readable console output in
debug mode, one JSON object per line otherwise.
"""

import logging
import sys

import structlog

from abuse_guard.core.config import Settings, settings

_configured = False


def configure_logging(app_settings: Settings | None = None, force: bool = False) -> None:
    """Configure structlog and the root logger. Safe to call more than once."""
    global _configured
    if _configured and not force:
        return

    cfg = app_settings or settings
    level = logging.getLevelName(cfg.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if cfg.DEBUG or not cfg.LOG_JSON:
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))

    _configured = True
