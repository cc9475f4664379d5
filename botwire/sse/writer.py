"""Event-stream encoder.

Writes EventRecord objects to a text sink, one atomic `write` call per
field line, flushing after every record when the sink supports it.
"""

from typing import Protocol

from botwire.sse.event import EventRecord

STREAM_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class TextSink(Protocol):
    """Anything with a text `write` method (files, StringIO, response bodies)."""

    def write(self, s: str, /) -> object: ...


def _field_lines(record: EventRecord) -> list[str]:
    lines = []
    if record.id:
        lines.append(f"id: {record.id}\n")
    if record.type:
        lines.append(f"event: {record.type}\n")
    lines.extend(f"data: {value}\n" for value in record.data.split("\n"))
    lines[-1] += "\n"
    return lines


def encode_event(record: EventRecord) -> str:
    """Render a record as wire text.

    The `data` line is always present, even when data is empty. Multi-line
    data is written as one `data` line per line.
    """
    return "".join(_field_lines(record))


class EventWriter:
    """Writes event records to a sink with push semantics.

    Usage:
        writer = EventWriter(response_body)
        writer.write_event(EventRecord(type="text", data='{"text": "hi"}'))
    """

    headers = STREAM_HEADERS

    def __init__(self, sink: TextSink):
        """Initialize the writer.

        Args:
            sink: Text sink; if it has a callable `flush`, it is flushed
                after every record.
        """
        self._sink = sink
        flush = getattr(sink, "flush", None)
        self._flush = flush if callable(flush) else None

    def write_event(self, record: EventRecord) -> None:
        """Write one record, aborting on the first failed field write.

        Raises:
            Whatever the sink raises; no further lines are written.
        """
        for line in _field_lines(record):
            self._sink.write(line)
        if self._flush is not None:
            self._flush()
