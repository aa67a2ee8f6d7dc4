"""
Application lifecycle event handlers.

Manages startup and shutdown tasks: logging setup and the rate-limit
expiry janitor.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from abuse_guard.core.config import settings
from abuse_guard.core.logging import configure_logging

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        configure_logging()
        logger.info("abuse_guard_starting", environment=settings.APP_ENV)

        from abuse_guard.services.expiry_janitor import ExpiryJanitor
        from abuse_guard.services.risk_engine import get_risk_engine

        janitor = ExpiryJanitor(get_risk_engine().limiter)
        try:
            janitor.start()
        except Exception as e:
            logger.exception("expiry_janitor_start_failed", error=str(e))
            logger.warning("Rate-limit records will not be evicted until restart")
        app.state.expiry_janitor = janitor

        logger.info("abuse_guard_started")

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("abuse_guard_shutting_down")

        janitor = getattr(app.state, "expiry_janitor", None)
        if janitor is not None:
            try:
                janitor.stop()
            except Exception as e:
                logger.warning("expiry_janitor_stop_failed", error=str(e))
            app.state.expiry_janitor = None

        logger.info("abuse_guard_shutdown_complete")

    return stop_app
