"""structlog configuration.

Every log entry carries whatever the middleware bound into
structlog.contextvars for the current request (correlation_id,
request_id, client_ip, user_id), plus level and an ISO timestamp.
"""

import logging
import sys
from typing import Any, Optional

import structlog

from ecovale_hr.config import settings


def configure_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure structlog for the process. Safe to call more than once."""
    level_name = (level or settings.log_level).upper()
    level_value = getattr(logging, level_name, logging.INFO)
    fmt = (fmt or settings.log_format).strip().lower()

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )
