"""Line-oriented event-stream codec.

This module provides the wire-level encoder and decoder used by the bot
client:
- EventRecord: one (id, type, data) record
- iter_events / aiter_events: lazy decoders over sync and async line sources
- EventWriter / encode_event: record encoder with per-record flushing
"""

from botwire.sse.event import EventRecord
from botwire.sse.exceptions import EventStreamError, EventStreamReadError
from botwire.sse.reader import aiter_events, iter_events
from botwire.sse.writer import STREAM_HEADERS, EventWriter, encode_event

__all__ = [
    "EventRecord",
    "EventStreamError",
    "EventStreamReadError",
    "EventWriter",
    "STREAM_HEADERS",
    "aiter_events",
    "encode_event",
    "iter_events",
]
