"""Event record type for the line-oriented event-stream protocol."""

from dataclasses import dataclass


@dataclass(frozen=True)
class EventRecord:
    """One self-contained record of an event stream.

    Attributes:
        id: Optional record id, empty when absent from the wire.
        type: Event type (e.g. "text", "done", "meta"), empty when absent.
        data: All `data` lines of the record joined with "\\n".
    """

    id: str = ""
    type: str = ""
    data: str = ""
