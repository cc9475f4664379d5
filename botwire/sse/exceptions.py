"""Exceptions raised by the event-stream codec."""


class EventStreamError(Exception):
    """Base exception for event-stream codec errors."""


class EventStreamReadError(EventStreamError):
    """Raised when the underlying line source fails while reading.

    Distinct from normal exhaustion, which simply ends iteration.
    """

    def __init__(self, message: str):
        super().__init__(f"Event stream read failed: {message}")
