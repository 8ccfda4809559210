"""
Logging Configuration
=====================

structlog on top of the standard library so that ``structlog.get_logger``
and ``logging.getLogger`` end up in the same handlers.
"""

import logging
import sys

import structlog

from s2s_api.core.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure stdlib logging and structlog once per process."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    log_format = settings.LOG_FORMAT or ("json" if settings.is_production else "console")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
