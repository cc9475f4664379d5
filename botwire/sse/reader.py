"""Event-stream decoder.

Turns a source of text lines into a lazy sequence of EventRecord objects.
Both synchronous and asynchronous line sources are supported; the async
variant is what the HTTP client feeds with `httpx.Response.aiter_lines()`.

Example:
    >>> list(iter_events(["event: message", "data: Hello, world!", ""]))
    [EventRecord(id='', type='message', data='Hello, world!')]
"""

from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from botwire.sse.event import EventRecord
from botwire.sse.exceptions import EventStreamReadError


class _RecordBuilder:
    """Accumulates field lines until a record boundary is reached."""

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._id = ""
        self._type = ""
        self._data_lines: list[str] = []

    @property
    def has_content(self) -> bool:
        return bool(self._id or self._type or self._data_lines)

    def feed(self, raw_line: str) -> EventRecord | None:
        """Consume one line, returning a record when a blank line closes one."""
        line = raw_line.rstrip("\r\n")

        if line == "":
            return self.flush()

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._type = value
        elif field == "data":
            self._data_lines.append(value)
        elif field == "id":
            self._id = value

        return None

    def flush(self) -> EventRecord | None:
        """Emit the pending record, if any, and start a new one."""
        if not self.has_content:
            return None
        record = EventRecord(id=self._id, type=self._type, data="\n".join(self._data_lines))
        self._reset()
        return record


def iter_events(lines: Iterable[str]) -> Iterator[EventRecord]:
    """Decode records from a synchronous line source.

    A final record that is not terminated by a blank line is still yielded.

    Args:
        lines: Iterable of text lines, with or without line terminators.

    Yields:
        EventRecord objects in arrival order.

    Raises:
        EventStreamReadError: If the line source raises an I/O error.
    """
    builder = _RecordBuilder()
    iterator = iter(lines)
    while True:
        try:
            line = next(iterator)
        except StopIteration:
            break
        except OSError as e:
            raise EventStreamReadError(str(e)) from e

        record = builder.feed(line)
        if record is not None:
            yield record

    record = builder.flush()
    if record is not None:
        yield record


async def aiter_events(lines: AsyncIterable[str]) -> AsyncIterator[EventRecord]:
    """Decode records from an asynchronous line source.

    Same semantics as `iter_events`.

    Args:
        lines: Async iterable of text lines.

    Yields:
        EventRecord objects in arrival order.

    Raises:
        EventStreamReadError: If the line source raises an I/O error.
    """
    builder = _RecordBuilder()
    iterator = aiter(lines)
    while True:
        try:
            line = await anext(iterator)
        except StopAsyncIteration:
            break
        except OSError as e:
            raise EventStreamReadError(str(e)) from e

        record = builder.feed(line)
        if record is not None:
            yield record

    record = builder.flush()
    if record is not None:
        yield record
