"""Configuration for the bot stream client.

This module provides configuration dataclasses for the client, including
retry behavior, timeouts, output buffering and authentication.
"""

from dataclasses import dataclass, field

DEFAULT_BASE_URL = "https://api.poe.com/bot/"
DEFAULT_NUM_TRIES = 2
DEFAULT_RETRY_SLEEP_SECONDS = 0.5
DEFAULT_TIMEOUT_SECONDS = 600.0
DEFAULT_QUEUE_SIZE = 64


@dataclass(frozen=True)
class StreamClientConfig:
    """Configuration for a stream client instance.

    Non-positive numeric values fall back to their defaults.

    Attributes:
        base_url: Base URL that bot names are appended to.
        num_tries: Total attempts per request, first one included (default: 2).
        retry_sleep_seconds: Fixed delay between attempts (default: 0.5s).
        timeout_seconds: HTTP timeout for the whole stream (default: 600s).
        queue_size: Capacity of the output queue between the HTTP reader
            and the consumer (default: 64).
    """

    base_url: str = DEFAULT_BASE_URL
    num_tries: int = DEFAULT_NUM_TRIES
    retry_sleep_seconds: float = DEFAULT_RETRY_SLEEP_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    queue_size: int = DEFAULT_QUEUE_SIZE

    def __post_init__(self) -> None:
        if not self.base_url:
            object.__setattr__(self, "base_url", DEFAULT_BASE_URL)
        if self.num_tries <= 0:
            object.__setattr__(self, "num_tries", DEFAULT_NUM_TRIES)
        if self.retry_sleep_seconds <= 0:
            object.__setattr__(self, "retry_sleep_seconds", DEFAULT_RETRY_SLEEP_SECONDS)
        if self.timeout_seconds <= 0:
            object.__setattr__(self, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        if self.queue_size <= 0:
            object.__setattr__(self, "queue_size", DEFAULT_QUEUE_SIZE)

    def bot_url(self, bot_name: str) -> str:
        """Build the endpoint URL for a bot."""
        return f"{self.base_url.rstrip('/')}/{bot_name}"


@dataclass(frozen=True)
class AuthConfig:
    """Authentication configuration for the bot server.

    Attributes:
        api_key: API key sent as a bearer token.
        extra_headers: Additional headers sent with every request.
    """

    api_key: str | None = None
    extra_headers: dict[str, str] = field(default_factory=dict)

    def headers(self) -> dict[str, str]:
        """Build request headers; extra headers win over the Authorization header."""
        headers: dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        headers.update(self.extra_headers)
        return headers
