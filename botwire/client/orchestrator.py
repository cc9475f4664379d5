"""Stream orchestrator: one request/response cycle against a bot.

Sends a JSON payload, decodes the event stream, maps each record to a
ResponseMessage and pushes it into a bounded queue that the consumer
drains as an async iterator. Transient failures are retried with a fixed
delay; failures are reported through the injected IssueReporter and end
the output sequence early instead of raising into the consumer.

Usage:
    orchestrator = StreamOrchestrator(httpx_client, config)
    async for message in orchestrator.run(payload, url, headers):
        ...
"""

import asyncio
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_fixed

from botwire.client.config import StreamClientConfig
from botwire.client.events import EventKind, parse_record
from botwire.client.exceptions import (
    BotCancelledError,
    BotError,
    BotProtocolError,
    BotServerError,
    BotTransportError,
)
from botwire.client.reporting import IssueKind, IssueReporter, StreamIssue, log_issue
from botwire.client.responses import (
    DoneResponse,
    ErrorResponse,
    ReplaceResponse,
    ResponseMessage,
    TextResponse,
)
from botwire.observability.logging import stream_context
from botwire.observability.metrics import record_attempt, record_event, time_stream
from botwire.sse import EventRecord, EventStreamReadError, aiter_events

logger = structlog.get_logger(__name__)

MANDATORY_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "text/event-stream",
}


class StreamState(StrEnum):
    """Lifecycle of an orchestrated request."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DONE = "done"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"
    CANCELLED = "cancelled"


_CLOSED = object()


@dataclass(frozen=True)
class _ProducerFailure:
    error: BaseException


@dataclass
class _AttemptState:
    has_tools: bool
    event_count: int = 0
    text_count: int = 0
    issue_reported: bool = False


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, BotError) and error.retryable


def _issue_kind(error: BotError) -> IssueKind:
    if isinstance(error, BotServerError):
        return IssueKind.SERVER_ERROR
    if isinstance(error, BotProtocolError):
        return IssueKind.PROTOCOL_ERROR
    return IssueKind.TRANSPORT_ERROR


class StreamOrchestrator:
    """Drives one streamed request at a time against a bot endpoint.

    Use one orchestrator per logical request; `state` reflects the most
    recent `run`. Concurrent requests should use separate instances.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: StreamClientConfig | None = None,
        reporter: IssueReporter | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            http_client: HTTP client used to send requests.
            config: Retry, timeout and buffering configuration.
            reporter: Callback receiving StreamIssue reports (default: log them).
        """
        self._http = http_client
        self._config = config or StreamClientConfig()
        self._reporter = reporter or log_issue
        self._state = StreamState.IDLE

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def reporter(self) -> IssueReporter:
        return self._reporter

    async def run(
        self,
        payload: dict[str, Any],
        url: str,
        headers: dict[str, str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[ResponseMessage]:
        """Send a request and stream its response messages.

        Messages are produced by a background task into a bounded queue, so
        a slow consumer applies backpressure to the HTTP reader. Closing the
        iterator early cancels the request.

        Args:
            payload: JSON request body.
            url: Bot endpoint URL.
            headers: Extra request headers (cannot override Content-Type/Accept).
            cancel_event: Shared cancel token; once set, the current attempt
                ends at the next read or retry sleep and the output closes.

        Yields:
            ResponseMessage objects in arrival order. The sequence ends early,
            possibly empty, when the request fails.
        """
        queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=self._config.queue_size)
        producer = asyncio.create_task(self._produce(payload, url, headers, cancel_event, queue))
        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    break
                if isinstance(item, _ProducerFailure):
                    raise item.error
                yield item
        finally:
            if not producer.done():
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def _produce(
        self,
        payload: dict[str, Any],
        url: str,
        headers: dict[str, str] | None,
        cancel_event: asyncio.Event | None,
        queue: asyncio.Queue[Any],
    ) -> None:
        bot = _bot_label(url)
        try:
            with stream_context(bot), time_stream(bot):
                await self._run_attempts(payload, url, headers, cancel_event, queue)
        except Exception as e:
            await queue.put(_ProducerFailure(e))
            return
        await queue.put(_CLOSED)

    async def _run_attempts(
        self,
        payload: dict[str, Any],
        url: str,
        headers: dict[str, str] | None,
        cancel_event: asyncio.Event | None,
        queue: asyncio.Queue[Any],
    ) -> None:
        num_tries = self._config.num_tries
        retrying = AsyncRetrying(
            stop=stop_after_attempt(num_tries),
            wait=wait_fixed(self._config.retry_sleep_seconds),
            retry=retry_if_exception(_is_retryable),
            sleep=_interruptible_sleep(cancel_event),
            before_sleep=self._before_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt(
                        payload,
                        url,
                        headers,
                        cancel_event,
                        queue,
                        attempt.retry_state.attempt_number,
                    )
        except BotCancelledError:
            self._state = StreamState.CANCELLED
            record_attempt(_bot_label(url), "cancelled")
            self._report(StreamIssue(kind=IssueKind.CANCELLED, message="Request cancelled", url=url))
        except BotError as e:
            self._state = StreamState.FATAL_FAILURE
            if e.retryable:
                self._report(
                    StreamIssue(
                        kind=IssueKind.RETRIES_EXHAUSTED,
                        message=f"Giving up after {num_tries} attempt(s): {e}",
                        url=url,
                        attempt=num_tries,
                    )
                )
        else:
            self._state = StreamState.DONE

    def _before_retry(self, retry_state: RetryCallState) -> None:
        self._state = StreamState.RETRYABLE_FAILURE
        logger.debug(
            "stream_retry_scheduled",
            attempt=retry_state.attempt_number,
            sleep_seconds=self._config.retry_sleep_seconds,
        )

    async def _attempt(
        self,
        payload: dict[str, Any],
        url: str,
        headers: dict[str, str] | None,
        cancel_event: asyncio.Event | None,
        queue: asyncio.Queue[Any],
        attempt_number: int,
    ) -> None:
        bot = _bot_label(url)
        try:
            await self._stream_once(payload, url, headers, cancel_event, queue)
        except BotCancelledError:
            raise
        except BotError as e:
            will_retry = e.retryable and attempt_number < self._config.num_tries
            record_attempt(bot, "retryable" if e.retryable else "fatal")
            self._report(
                StreamIssue(
                    kind=_issue_kind(e),
                    message=str(e),
                    url=url,
                    attempt=attempt_number,
                    retryable=will_retry,
                    details={"error_type": e.error_type} if isinstance(e, BotServerError) else {},
                )
            )
            raise
        record_attempt(bot, "success")

    async def _stream_once(
        self,
        payload: dict[str, Any],
        url: str,
        headers: dict[str, str] | None,
        cancel_event: asyncio.Event | None,
        queue: asyncio.Queue[Any],
    ) -> None:
        _check_cancelled(cancel_event)
        self._state = StreamState.CONNECTING
        request_headers = {**(headers or {}), **MANDATORY_HEADERS}

        try:
            async with self._http.stream("POST", url, json=payload, headers=request_headers) as response:
                response.raise_for_status()
                self._state = StreamState.STREAMING
                await self._consume(
                    aiter_events(response.aiter_lines()),
                    _AttemptState(has_tools=bool(payload.get("tools"))),
                    url,
                    cancel_event,
                    queue,
                )
        except httpx.HTTPStatusError as e:
            raise BotTransportError(
                f"Bot returned HTTP {e.response.status_code}", cause=e, url=url
            ) from e
        except httpx.HTTPError as e:
            raise BotTransportError("HTTP request failed", cause=e, url=url) from e
        except EventStreamReadError as e:
            raise BotTransportError("Event stream read error", cause=e, url=url) from e

    async def _consume(
        self,
        records: AsyncIterable[EventRecord],
        state: _AttemptState,
        url: str,
        cancel_event: asyncio.Event | None,
        queue: asyncio.Queue[Any],
    ) -> None:
        async for record in records:
            kind = EventKind.of(record.type)
            record_event(kind)
            state.event_count += 1

            if kind is EventKind.META and state.event_count != 1:
                continue

            message = parse_record(kind, record)
            match message:
                case DoneResponse():
                    if state.text_count == 0 and not state.issue_reported and not state.has_tools:
                        self._report(
                            StreamIssue(
                                kind=IssueKind.SILENT_COMPLETION,
                                message="Bot returned no text in response",
                                url=url,
                            )
                        )
                    return
                case ErrorResponse():
                    raise BotServerError(
                        message.text,
                        allow_retry=message.allow_retry,
                        error_type=message.error_type,
                    )
                case None:
                    if kind is EventKind.META:
                        state.issue_reported = True
                        self._report(
                            StreamIssue(
                                kind=IssueKind.MALFORMED_META,
                                message="Invalid JSON in meta event",
                                url=url,
                                details={"data": record.data},
                            )
                        )
                    elif kind is EventKind.UNKNOWN:
                        state.issue_reported = True
                        self._report(
                            StreamIssue(
                                kind=IssueKind.UNKNOWN_EVENT,
                                message=f"Unknown event type: {record.type}",
                                url=url,
                                details={"event_type": record.type},
                            )
                        )
                case TextResponse() | ReplaceResponse():
                    state.text_count += 1
                    await queue.put(message)
                case _:
                    await queue.put(message)

            _check_cancelled(cancel_event)

        self._report(
            StreamIssue(
                kind=IssueKind.SILENT_COMPLETION,
                message="Bot exited without sending 'done' event",
                url=url,
            )
        )

    def _report(self, issue: StreamIssue) -> None:
        self._reporter(issue)


def _bot_label(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]


def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise BotCancelledError()


def _interruptible_sleep(cancel_event: asyncio.Event | None):
    """Build a tenacity sleep function that wakes up early on cancellation."""

    async def sleep(seconds: float) -> None:
        if cancel_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except TimeoutError:
            return
        raise BotCancelledError()

    return sleep
