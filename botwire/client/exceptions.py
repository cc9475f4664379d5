"""Custom exception hierarchy for the bot client.

Each error carries a `retryable` flag that drives the orchestrator's retry
loop. These exceptions are used to classify failed attempts; apart from
`BotNoResponseError`, they are reported rather than raised to consumers of
a response stream.
"""


class BotError(Exception):
    """Base exception for all bot client errors."""

    retryable: bool = True

    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        super().__init__(f"{message}: {cause}" if cause is not None else message)


class BotTransportError(BotError):
    """Raised on connection, timeout, HTTP status or stream read failures."""

    def __init__(self, message: str, cause: BaseException | None = None, url: str | None = None):
        self.url = url
        super().__init__(message, cause)


class BotProtocolError(BotError):
    """Raised when a record with a mandatory schema is malformed."""

    retryable = False

    def __init__(self, message: str, event_type: str | None = None):
        self.event_type = event_type
        super().__init__(message)


class BotServerError(BotError):
    """Raised when the server sends an explicit `error` record."""

    def __init__(self, message: str, allow_retry: bool = True, error_type: str | None = None):
        self.allow_retry = allow_retry
        self.error_type = error_type
        self.retryable = allow_retry
        super().__init__(message)


class BotCancelledError(BotError):
    """Raised internally when the cancel token is set during an attempt."""

    retryable = False

    def __init__(self) -> None:
        super().__init__("Request cancelled")


class BotNoResponseError(BotError):
    """Raised by `get_final_response` when the bot produced no text."""

    retryable = False

    def __init__(self, bot_name: str):
        self.bot_name = bot_name
        super().__init__(f"Bot {bot_name} sent no response")
