"""Structured issue reporting for response streams.

The orchestrator and tool aggregator never raise into the consumer's
control flow. Instead, everything noteworthy that happens on the way
(failed attempts, unknown events, silent completions, tool failures) is
described by a `StreamIssue` and handed to an injected `IssueReporter`.
The default reporter writes the issue to the structured log.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class IssueKind(StrEnum):
    """Kinds of reportable stream issues."""

    TRANSPORT_ERROR = "transport_error"
    PROTOCOL_ERROR = "protocol_error"
    SERVER_ERROR = "server_error"
    SILENT_COMPLETION = "silent_completion"
    UNKNOWN_EVENT = "unknown_event"
    MALFORMED_META = "malformed_meta"
    RETRIES_EXHAUSTED = "retries_exhausted"
    CANCELLED = "cancelled"
    TOOL_NOT_FOUND = "tool_not_found"
    TOOL_FAILED = "tool_failed"


_WARNING_KINDS = frozenset(
    {
        IssueKind.SILENT_COMPLETION,
        IssueKind.UNKNOWN_EVENT,
        IssueKind.MALFORMED_META,
        IssueKind.CANCELLED,
        IssueKind.TOOL_NOT_FOUND,
    }
)


@dataclass(frozen=True)
class StreamIssue:
    """A reportable event on a response stream.

    Attributes:
        kind: What happened
        message: Human-readable description
        url: Endpoint of the request
        attempt: 1-based attempt number, when the issue belongs to one
        retryable: Whether the failure leads to another attempt
        details: Extra structured context (event type, tool name, ...)
    """

    kind: IssueKind
    message: str
    url: str | None = None
    attempt: int | None = None
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)


IssueReporter = Callable[[StreamIssue], None]


def log_issue(issue: StreamIssue) -> None:
    """Default reporter: write the issue to the structured log."""
    log = logger.warning if issue.kind in _WARNING_KINDS else logger.error
    log(
        issue.kind.value,
        message=issue.message,
        url=issue.url,
        attempt=issue.attempt,
        retryable=issue.retryable,
        **issue.details,
    )
