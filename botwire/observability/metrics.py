"""Prometheus metrics for bot stream requests.

Counters and histograms are registered on the default prometheus_client
registry so that any exporter the host application runs picks them up.
"""

from typing import NamedTuple

import prometheus_client


class AttemptLabels(NamedTuple):
    bot: str
    outcome: str


class ToolCallLabels(NamedTuple):
    tool: str
    outcome: str


BUCKETS = (
    # these are log spaced with 1 sig-fig rounding so there are 3 per decade
    0.01,
    0.02,
    0.05,
    0.1,
    0.2,
    0.5,
    1,
    2,
    5,
    10,
    20,
    50,
    100,
    200,
    600,  # default client timeout
    float("inf"),
)


def setup_metrics(registry):
    """Create the stream metrics on the given registry.

    Args:
        registry: Prometheus registry to register the metrics with

    Returns:
        Tuple of (attempts counter, events counter, tool calls counter, duration histogram)
    """
    attempts = prometheus_client.Counter(
        name="botwire_stream_attempts",
        documentation="Stream request attempts by bot and outcome",
        labelnames=AttemptLabels._fields,
        registry=registry,
    )
    events = prometheus_client.Counter(
        name="botwire_stream_events",
        documentation="Event records received by event type",
        labelnames=("event",),
        registry=registry,
    )
    tool_calls = prometheus_client.Counter(
        name="botwire_tool_calls",
        documentation="Local tool executions by tool and outcome",
        labelnames=ToolCallLabels._fields,
        registry=registry,
    )
    duration = prometheus_client.Histogram(
        name="botwire_stream_duration_seconds",
        documentation="Stream request duration (seconds), retries included",
        labelnames=("bot",),
        registry=registry,
        buckets=BUCKETS,
    )
    return attempts, events, tool_calls, duration


attempts_counter, events_counter, tool_calls_counter, duration_histogram = setup_metrics(
    registry=prometheus_client.REGISTRY
)


def record_attempt(bot: str, outcome: str) -> None:
    """Count one orchestrator attempt ("success", "retryable", "fatal", "cancelled")."""
    attempts_counter.labels(*AttemptLabels(bot=bot, outcome=outcome)).inc()


def record_event(event_kind: str) -> None:
    """Count one received event record by its classified kind.

    Callers pass the protocol event kind rather than the raw wire type, so
    the label set stays bounded.
    """
    events_counter.labels(event_kind).inc()


def record_tool_call(tool: str, outcome: str) -> None:
    """Count one tool execution ("success", "error", "not_found")."""
    tool_calls_counter.labels(*ToolCallLabels(tool=tool, outcome=outcome)).inc()


def time_stream(bot: str):
    """Context manager timing a whole stream request.

    Usage:
        ```
        with time_stream("my-bot"):
            ...
        ```
    """
    return duration_histogram.labels(bot).time()
