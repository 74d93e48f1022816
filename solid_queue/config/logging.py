import logging
import sys
from typing import Any

import structlog

from .settings import Settings, settings as default_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog: console output in debug, one JSON object per line otherwise."""
    settings = settings or default_settings
    level = getattr(logging, settings.log_level)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # aiosqlite logs every statement it forwards at DEBUG
    logging.getLogger("aiosqlite").setLevel(max(level, logging.INFO))

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.debug:
        processors += [
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            structlog.dev.ConsoleRenderer(),
        ]
    else:
        # Worker and poller failures are logged with exc_info; keep the traceback
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def add_request_context(request_id: str, **context: Any) -> None:
    """Replace the log context of the current request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **context)
