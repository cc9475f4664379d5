"""Structured logging for the bot client, built on structlog.

Library code logs through `get_logger(__name__)` and never configures
handlers itself. An application embedding the client calls
`configure_logging` once. Two pieces of request context are attached to
every entry:
- `correlation_id`, taken from `correlation_id_ctx` (also sent to the bot
  server as `X-Request-ID`)
- `bot`, bound by `stream_context` for the lifetime of one streamed request
"""

import logging
import sys
from contextlib import AbstractContextManager
from contextvars import ContextVar
from typing import TextIO

import structlog

# Request correlation ID; ContextVar so it follows the request across tasks
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_QUIET_LOGGERS = ("httpx", "httpcore")


def add_correlation_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    """Processor that adds correlation_id to every log entry."""
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def stream_context(bot: str) -> AbstractContextManager:
    """Bind the bot name to every log entry emitted inside the block.

    Bindings live in structlog's context variables, so they are scoped to
    the current task and vanish when the block exits.
    """
    return structlog.contextvars.bound_contextvars(bot=bot)


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_correlation_id,
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(log_level: str, json_output: bool = True, stream: TextIO | None = None) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Root logging level (INFO, DEBUG, etc.)
        json_output: True for one JSON object per line, False for colored console output
        stream: Output stream (default: stdout)
    """
    pre_chain = _pre_chain()
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger, typically with the calling module's __name__."""
    return structlog.get_logger(name)
