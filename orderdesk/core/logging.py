"""
Structured logging for the order editor.

Every module logs through ``get_logger(__name__)`` with key/value events.
Events carry the editor session id bound with ``set_session_id`` so that all
lookups, cascades and saves of one editing session can be correlated.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import uuid4

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from orderdesk.core.config import get_settings

SESSION_KEY = "session_id"

# Operations slower than this are logged as warnings
SLOW_OPERATION_MS = 500.0

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def add_app_info(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag events with application name and environment."""
    settings = get_settings()
    event_dict.setdefault("app", settings.app_name)
    event_dict.setdefault("env", settings.environment)
    return event_dict


def _renderer() -> Processor:
    if get_settings().is_development:
        return structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )
    return structlog.processors.JSONRenderer(ensure_ascii=False)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure structlog and the standard library root logger.

    Console output in development, one JSON object per line elsewhere.

    Args:
        level: Log level name, defaults to ``settings.log_level``
    """
    level_name = level or get_settings().log_level

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_app_info,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_session_id(session_id: Optional[str] = None) -> str:
    """
    Bind an editor session id to all subsequent log events.

    Args:
        session_id: Session id to bind, a new UUID when omitted

    Returns:
        The bound session id
    """
    session_id = session_id or str(uuid4())
    structlog.contextvars.bind_contextvars(**{SESSION_KEY: session_id})
    return session_id


def get_session_id() -> str:
    """Currently bound session id, or an empty string."""
    return structlog.contextvars.get_contextvars().get(SESSION_KEY, "")


def clear_context() -> None:
    """Unbind the session id and any other bound context."""
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> Iterator[None]:
    """
    Time a block and log its outcome.

    Failures are logged with the exception type and re-raised. Blocks slower
    than SLOW_OPERATION_MS are logged as warnings.

    Example:
        >>> with log_performance(logger, "order_upsert", order_id=12):
        ...     await client.upsert_order(payload)
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(
            "Operation failed",
            operation=operation,
            duration_ms=_elapsed_ms(started),
            error_type=type(e).__name__,
            **context,
        )
        raise

    duration_ms = _elapsed_ms(started)
    log = logger.warning if duration_ms > SLOW_OPERATION_MS else logger.info
    log(
        "Operation completed",
        operation=operation,
        duration_ms=duration_ms,
        **context,
    )


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
