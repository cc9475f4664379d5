"""Mapping from event records to response messages.

`EventKind` is the closed set of event types the protocol defines, with an
explicit UNKNOWN member for anything else. `parse_record` decodes the JSON
payload of one record into its ResponseMessage; position-dependent rules
(meta only as the first record) are left to the orchestrator.
"""

import json
from enum import StrEnum
from typing import Any

from botwire.client.exceptions import BotProtocolError
from botwire.client.responses import (
    DEFAULT_CONTENT_TYPE,
    AttachmentResponse,
    DoneResponse,
    ErrorResponse,
    JsonResponse,
    MetaResponse,
    ReplaceResponse,
    ResponseMessage,
    SuggestedReplyResponse,
    TextResponse,
)
from botwire.sse import EventRecord


class EventKind(StrEnum):
    """Event types of the bot protocol."""

    TEXT = "text"
    REPLACE_RESPONSE = "replace_response"
    SUGGESTED_REPLY = "suggested_reply"
    FILE = "file"
    JSON = "json"
    META = "meta"
    ERROR = "error"
    PING = "ping"
    DONE = "done"
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, event_type: str) -> "EventKind":
        """Classify a wire event type, mapping unrecognized types to UNKNOWN."""
        try:
            return cls(event_type)
        except ValueError:
            return cls.UNKNOWN


def load_object(data: str) -> dict[str, Any] | None:
    """Decode a JSON object payload, returning None if it is not one."""
    try:
        value = json.loads(data)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def parse_index(payload: dict[str, Any] | None) -> int | None:
    """Extract the optional integer `index` field of a payload."""
    if payload is None:
        return None
    index = payload.get("index")
    if isinstance(index, bool) or not isinstance(index, (int, float)):
        return None
    return int(index)


def _string_field(record: EventRecord, field: str) -> tuple[str, int | None]:
    payload = load_object(record.data)
    if payload is None:
        raise BotProtocolError(f"Invalid JSON in event: {record.data}", event_type=record.type)
    value = payload.get(field)
    if not isinstance(value, str):
        raise BotProtocolError(f"Expected string in '{field}' field", event_type=record.type)
    return value, parse_index(payload)


def _optional_str(payload: dict[str, Any], field: str) -> str | None:
    value = payload.get(field)
    return value if isinstance(value, str) else None


def parse_meta(record: EventRecord) -> MetaResponse | None:
    """Decode a meta record, returning None when its JSON is malformed."""
    payload = load_object(record.data)
    if payload is None:
        return None
    linkify = payload.get("linkify")
    suggested_replies = payload.get("suggested_replies")
    return MetaResponse(
        linkify=linkify if isinstance(linkify, bool) else False,
        suggested_replies=suggested_replies if isinstance(suggested_replies, bool) else False,
        content_type=_optional_str(payload, "content_type") or DEFAULT_CONTENT_TYPE,
    )


def parse_error(record: EventRecord) -> ErrorResponse:
    """Decode an error record.

    Raises:
        BotProtocolError: If the payload is not a JSON object. The message
            is the raw payload.
    """
    payload = load_object(record.data)
    if payload is None:
        raise BotProtocolError(record.data, event_type=record.type)
    allow_retry = payload.get("allow_retry")
    return ErrorResponse(
        text=_optional_str(payload, "text") or record.data,
        allow_retry=allow_retry if isinstance(allow_retry, bool) else True,
        error_type=_optional_str(payload, "error_type"),
    )


def parse_record(kind: EventKind, record: EventRecord) -> ResponseMessage | None:
    """Decode one record into a response message.

    Returns None for kinds that carry no message (ping, unknown). Meta
    records decode to None when malformed.

    Raises:
        BotProtocolError: If a record with a mandatory schema is malformed.
    """
    match kind:
        case EventKind.TEXT:
            text, index = _string_field(record, "text")
            return TextResponse(text=text, index=index)
        case EventKind.REPLACE_RESPONSE:
            text, index = _string_field(record, "text")
            return ReplaceResponse(text=text, index=index)
        case EventKind.SUGGESTED_REPLY:
            text, index = _string_field(record, "text")
            return SuggestedReplyResponse(text=text, index=index)
        case EventKind.FILE:
            payload = load_object(record.data)
            if payload is None:
                raise BotProtocolError("Invalid JSON in file event", event_type=record.type)
            return AttachmentResponse(
                url=_optional_str(payload, "url") or "",
                content_type=_optional_str(payload, "content_type") or "",
                name=_optional_str(payload, "name") or "",
                inline_ref=_optional_str(payload, "inline_ref"),
                index=parse_index(payload),
            )
        case EventKind.JSON:
            payload = load_object(record.data)
            if payload is None:
                raise BotProtocolError("Invalid JSON in json event", event_type=record.type)
            return JsonResponse(payload=payload, index=parse_index(payload))
        case EventKind.META:
            return parse_meta(record)
        case EventKind.ERROR:
            return parse_error(record)
        case EventKind.DONE:
            return DoneResponse()
        case EventKind.PING | EventKind.UNKNOWN:
            return None
