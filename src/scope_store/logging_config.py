"""
Structured logging configuration.

Every module obtains its logger through get_logger so that events
share one structlog pipeline: ISO timestamp, level, JSON rendering.
"""

from typing import Any

import structlog

_CONFIGURED = False


def configure_logging() -> None:
    """Configure the structlog processor chain once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(sort_keys=True),
        ],
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def get_logger(name: str) -> Any:
    """
    Return a structured logger for a module.

    Args:
        name: logger name, usually __name__

    Returns:
        A structlog bound logger accepting keyword event fields.
    """
    configure_logging()
    return structlog.get_logger(name)
