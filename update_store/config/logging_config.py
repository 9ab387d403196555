"""Structured logging for the update store.

Every event carries the application name and, once configured for a bot,
its ``bot_id``, so logs from several bots sharing one database stay
separable. Per-update context (``update_id``, ``update_kind``) is bound
through contextvars by the normalizer.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

APP_NAME = "update_store"


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every log entry with the application name."""
    event_dict["app"] = APP_NAME
    return event_dict


def bot_context(bot_id: int) -> Processor:
    """Build a processor that tags entries with the bot partition.

    An explicit ``bot_id`` on the event wins.
    """

    def add_bot_id(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("bot_id", bot_id)
        return event_dict

    return add_bot_id


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    bot_id: int | None = None,
) -> None:
    """Configure structlog on top of the standard logging module.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        json_logs: Render JSON lines instead of the coloured console format
        bot_id: Bot partition to stamp on every entry

    Example:
        >>> setup_logging(log_level="DEBUG", json_logs=True, bot_id=123456)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    logging.getLogger("psycopg2").setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_app_context,
    ]
    if bot_id is not None:
        processors.append(bot_context(bot_id))

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind key-value pairs to every subsequent entry in the current context.

    Example:
        >>> bind_context(update_id=100, update_kind="message")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove keys previously bound with ``bind_context``."""
    structlog.contextvars.unbind_contextvars(*keys)
