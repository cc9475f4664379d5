"""Response message types produced from event records.

A response stream is an ordered sequence of these frozen dataclasses.
`ErrorResponse` and `DoneResponse` describe control records: the
orchestrator turns them into attempt failure or termination and never
hands them to consumers.
"""

from dataclasses import dataclass, field
from typing import Any

DEFAULT_CONTENT_TYPE = "text/markdown"


@dataclass(frozen=True)
class TextResponse:
    """An incremental text fragment of the bot's answer."""

    text: str
    index: int | None = None


@dataclass(frozen=True)
class ReplaceResponse:
    """Replaces everything the bot has said so far with `text`."""

    text: str
    index: int | None = None


@dataclass(frozen=True)
class SuggestedReplyResponse:
    """A reply the user may send next; never part of the answer text."""

    text: str
    index: int | None = None


@dataclass(frozen=True)
class AttachmentResponse:
    """A file attached to the bot's answer.

    Attributes:
        url: Download URL of the file
        content_type: MIME type
        name: File name
        inline_ref: Reference used to embed the file inline in markdown
        index: Optional message index
    """

    url: str
    content_type: str
    name: str
    inline_ref: str | None = None
    index: int | None = None


@dataclass(frozen=True)
class JsonResponse:
    """An arbitrary JSON object sent by the bot."""

    payload: dict[str, Any]
    index: int | None = None


@dataclass(frozen=True)
class MetaResponse:
    """Rendering metadata; only honored as the first record of a stream."""

    linkify: bool = False
    suggested_replies: bool = False
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class ToolCallDelta:
    """A positionally-keyed fragment of a streamed function call."""

    index: int
    id: str | None = None
    type: str | None = None
    function_name: str | None = None
    arguments: str = ""


@dataclass(frozen=True)
class ToolCallDeltasResponse:
    """Raw tool-call fragments forwarded when no local executables exist."""

    deltas: list[ToolCallDelta] = field(default_factory=list)
    index: int | None = None


@dataclass(frozen=True)
class ErrorResponse:
    """An explicit error record from the server."""

    text: str
    allow_retry: bool = True
    error_type: str | None = None


@dataclass(frozen=True)
class DoneResponse:
    """The terminal record of a successful stream."""


ResponseMessage = (
    TextResponse
    | ReplaceResponse
    | SuggestedReplyResponse
    | AttachmentResponse
    | JsonResponse
    | MetaResponse
    | ToolCallDeltasResponse
    | ErrorResponse
    | DoneResponse
)
