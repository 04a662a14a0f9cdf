"""Structured logging configuration using structlog.

The access layer (``access.*`` and the resource provider) emits key/value
events through structlog; the HTTP plumbing uses stdlib loggers. Both end
up in the same handler, rendered as JSON or as console text.
"""

import logging
import sys

import structlog
from app.config import get_settings

# Loggers whose level follows ACCESS_LOG_LEVEL instead of LOG_LEVEL
ACCESS_LOGGERS = ("access", "services.resource_provider", "services.authorization_service")


def _drop_empty_fields(logger, method_name, event_dict):
    """Remove keys whose value is None so list events stay compact."""
    return {key: value for key, value in event_dict.items() if value is not None}


def setup_logging() -> None:
    """Configure structured logging for the entire application.

    Text output is used in development or when LOG_FORMAT is "text";
    everything else gets one JSON object per line.
    """
    settings = get_settings()

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _drop_empty_fields,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development or settings.LOG_FORMAT == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
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
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(_level(settings.LOG_LEVEL))

    access_level = _level(settings.ACCESS_LOG_LEVEL or settings.LOG_LEVEL)
    for name in ACCESS_LOGGERS:
        logging.getLogger(name).setLevel(access_level)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.SQLALCHEMY_ECHO else logging.WARNING
    )
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)
