"""High-level bot client.

Provides a simplified interface for streaming responses from bots, handling
HTTP client ownership, header construction, and routing between plain and
tool-enabled requests.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from opentelemetry import propagate

from botwire.client.config import AuthConfig, StreamClientConfig
from botwire.client.exceptions import BotNoResponseError
from botwire.client.models import (
    ProtocolMessage,
    QueryRequest,
    ToolDefinition,
    build_payload,
)
from botwire.client.orchestrator import StreamOrchestrator
from botwire.client.reporting import IssueReporter
from botwire.client.responses import (
    MetaResponse,
    ReplaceResponse,
    ResponseMessage,
    SuggestedReplyResponse,
    TextResponse,
)
from botwire.client.tools import PayloadBuilder, ToolCallAggregator, ToolExecutable
from botwire.observability import correlation_id_ctx


async def _inject_trace_context(request: httpx.Request) -> None:
    """Inject OpenTelemetry trace context and correlation ID into each request.

    Note: Must be async because httpx AsyncClient awaits event hooks.
    """
    propagate.inject(request.headers)

    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        request.headers["X-Request-ID"] = correlation_id


class Transcript:
    """Accumulates the answer text of a response stream.

    Text fragments are appended; a replace message discards everything
    collected so far; meta messages, suggested replies and non-text
    messages are ignored.
    """

    def __init__(self) -> None:
        self._chunks: list[str] = []

    def add(self, message: ResponseMessage) -> None:
        match message:
            case ReplaceResponse(text=text):
                self._chunks = [text]
            case TextResponse(text=text):
                self._chunks.append(text)

    def __bool__(self) -> bool:
        return bool(self._chunks)

    @property
    def text(self) -> str:
        return "".join(self._chunks)


class BotClient:
    """Client for streaming responses from bots.

    Usage:
        async with BotClient(auth=AuthConfig(api_key="...")) as client:
            async for message in client.get_bot_response(messages, "GPT-4o"):
                print(message)
    """

    def __init__(
        self,
        config: StreamClientConfig | None = None,
        auth: AuthConfig | None = None,
        httpx_client: httpx.AsyncClient | None = None,
        reporter: IssueReporter | None = None,
        payload_builder: PayloadBuilder = build_payload,
    ):
        """Initialize the client.

        Args:
            config: Optional client configuration.
            auth: Optional authentication configuration.
            httpx_client: Optional pre-configured HTTP client; not closed by this client.
            reporter: Optional callback receiving stream issue reports.
            payload_builder: Builds request bodies from a request and tool lists.
        """
        self._config = config or StreamClientConfig()
        self._auth = auth or AuthConfig()
        self._httpx_client = httpx_client
        self._owns_httpx_client = httpx_client is None
        self._reporter = reporter
        self._build_payload = payload_builder

    @property
    def config(self) -> StreamClientConfig:
        return self._config

    async def __aenter__(self) -> "BotClient":
        """Async context manager entry."""
        self._ensure_http_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this client created it."""
        if self._owns_httpx_client and self._httpx_client is not None:
            await self._httpx_client.aclose()
            self._httpx_client = None

    def _ensure_http_client(self) -> httpx.AsyncClient:
        if self._httpx_client is None:
            self._httpx_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.timeout_seconds),
                event_hooks={"request": [_inject_trace_context]},
            )
            self._owns_httpx_client = True
        return self._httpx_client

    def _orchestrator(self) -> StreamOrchestrator:
        return StreamOrchestrator(self._ensure_http_client(), self._config, self._reporter)

    async def stream_request(
        self,
        request: QueryRequest,
        bot_name: str,
        *,
        tools: list[ToolDefinition] | None = None,
        executables: list[ToolExecutable] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[ResponseMessage]:
        """Stream a bot's response to a query.

        Uses the two-pass tool protocol when tools are given.

        Args:
            request: The query request.
            bot_name: Name of the bot, appended to the base URL.
            tools: Optional tool definitions offered to the bot.
            executables: Optional local implementations of those tools.
            cancel_event: Optional shared cancel token.

        Yields:
            ResponseMessage objects as they arrive.
        """
        url = self._config.bot_url(bot_name)
        headers = self._auth.headers()
        orchestrator = self._orchestrator()

        if tools:
            aggregator = ToolCallAggregator(
                orchestrator, tools, executables, payload_builder=self._build_payload
            )
            stream = aggregator.run(request, url, headers, cancel_event)
        else:
            stream = orchestrator.run(self._build_payload(request), url, headers, cancel_event)

        async for message in stream:
            yield message

    async def get_bot_response(
        self,
        messages: list[ProtocolMessage],
        bot_name: str,
        **kwargs: Any,
    ) -> AsyncIterator[ResponseMessage]:
        """Stream a bot's response to a list of messages.

        Builds a query request with empty user, conversation and message IDs.

        Args:
            messages: Conversation to send.
            bot_name: Name of the bot.
            **kwargs: Passed through to `stream_request`.

        Yields:
            ResponseMessage objects as they arrive.
        """
        request = QueryRequest(query=messages)
        async for message in self.stream_request(request, bot_name, **kwargs):
            yield message

    async def get_final_response(
        self,
        request: QueryRequest,
        bot_name: str,
        **kwargs: Any,
    ) -> str:
        """Collect a bot's full answer text.

        Args:
            request: The query request.
            bot_name: Name of the bot.
            **kwargs: Passed through to `stream_request`.

        Returns:
            The answer text, with replace messages applied.

        Raises:
            BotNoResponseError: If the bot produced no text.
        """
        transcript = Transcript()
        async for message in self.stream_request(request, bot_name, **kwargs):
            if isinstance(message, (MetaResponse, SuggestedReplyResponse)):
                continue
            transcript.add(message)

        if not transcript:
            raise BotNoResponseError(bot_name)
        return transcript.text


@asynccontextmanager
async def create_client(
    config: StreamClientConfig | None = None,
    auth: AuthConfig | None = None,
    reporter: IssueReporter | None = None,
) -> AsyncIterator[BotClient]:
    """Create a bot client as an async context manager.

    Args:
        config: Optional client configuration.
        auth: Optional authentication configuration.
        reporter: Optional callback receiving stream issue reports.

    Yields:
        BotClient instance with an open HTTP client.
    """
    client = BotClient(config=config, auth=auth, reporter=reporter)
    try:
        await client.__aenter__()
        yield client
    finally:
        await client.close()
