"""
Logging setup for mako-hooks.

Hooks talk to the host over stdout, so every log line goes to stderr.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

_configured = False


def _stderr_logger(*args: Any) -> structlog.PrintLogger:
    # Resolve sys.stderr per call so redirected streams are honoured.
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(debug: bool = False) -> None:
    """
    Configure structlog to render to stderr.

    Args:
        debug: Log at DEBUG instead of WARNING.
    """
    global _configured

    log_level = logging.DEBUG if debug else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
    _configured = True


def ensure_logging(debug: bool = False) -> None:
    """Configure logging unless it has already been configured in this process."""
    if not _configured:
        configure_logging(debug)
