"""Observability infrastructure module.

This module provides monitoring for the bot client:
- Structured logging with correlation IDs
- Prometheus metrics for stream attempts, events and tool calls
"""

from botwire.observability.logging import (
    configure_logging,
    correlation_id_ctx,
    get_logger,
    stream_context,
)
from botwire.observability.metrics import (
    BUCKETS,
    record_attempt,
    record_event,
    record_tool_call,
    time_stream,
)

__all__ = [
    "BUCKETS",
    "configure_logging",
    "correlation_id_ctx",
    "get_logger",
    "record_attempt",
    "record_event",
    "record_tool_call",
    "stream_context",
    "time_stream",
]
