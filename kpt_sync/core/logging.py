"""
Structured logging for the sync core.

Library modules log through module-level ``structlog.get_logger()`` loggers
with key/value events and never configure output themselves. The hosting
application calls ``setup_logging`` once at startup.
"""
import logging
import sys
from typing import Optional, TextIO

import structlog

from kpt_sync.core.config import settings

QUIET_LIBRARIES = ("httpx", "httpcore")


def _processors(debug: bool) -> list:
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if debug:
        return shared + [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer()]
    return shared + [
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(debug: Optional[bool] = None, stream: Optional[TextIO] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        debug: Override for settings.debug. Debug mode renders events for the
            console and lets DEBUG through; otherwise events are JSON lines at
            INFO and above.
        stream: Output stream (default: stdout)
    """
    debug = settings.debug if debug is None else debug
    level = logging.DEBUG if debug else logging.INFO
    stream = stream or sys.stdout

    structlog.configure(
        processors=_processors(debug),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=stream, level=level)

    # Request-level chatter from the HTTP stack
    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)
