"""Unit tests for StreamOrchestrator.

HTTP traffic is intercepted with respx, so these tests exercise the real
httpx streaming path, the event-stream decoder and the tenacity retry loop.
"""

import asyncio
import json
from contextlib import aclosing

import httpx
import prometheus_client
import pytest
import respx

from botwire.client import (
    AttachmentResponse,
    IssueKind,
    JsonResponse,
    MetaResponse,
    ReplaceResponse,
    StreamClientConfig,
    StreamOrchestrator,
    StreamState,
    SuggestedReplyResponse,
    TextResponse,
)

PAYLOAD = {"version": "1.2", "type": "query", "query": [{"role": "user", "content": "Hello"}]}


async def collect(orchestrator, url, payload=PAYLOAD, **kwargs):
    return [message async for message in orchestrator.run(payload, url, **kwargs)]


def corrupt_gzip_response():
    """A 200 response claiming gzip encoding over a plain-text body."""
    return httpx.Response(
        200,
        stream=httpx.ByteStream(b"event: text\ndata: not gzip at all\n\n"),
        headers={"Content-Type": "text/event-stream", "Content-Encoding": "gzip"},
    )


def events_sample(event):
    return prometheus_client.REGISTRY.get_sample_value("botwire_stream_events_total", {"event": event})


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def orchestrator(http_client, fast_config, issues):
    return StreamOrchestrator(http_client, fast_config, reporter=issues)


class TestStreamOrchestratorMessages:
    """Tests for mapping event records to response messages."""

    def test_initial_state(self, orchestrator):
        """A fresh orchestrator is idle."""
        assert orchestrator.state is StreamState.IDLE

    @respx.mock
    async def test_text_stream(self, orchestrator, bot_url, stream_response, issues):
        """Meta and text records are forwarded in order; done ends the stream."""
        respx.post(bot_url).mock(
            return_value=stream_response(
                ("meta", {"linkify": True, "content_type": "text/plain"}),
                ("text", {"text": "Hello"}),
                ("text", {"text": " world"}),
                ("done", {}),
            )
        )

        messages = await collect(orchestrator, bot_url)

        assert messages == [
            MetaResponse(linkify=True, suggested_replies=False, content_type="text/plain"),
            TextResponse(text="Hello"),
            TextResponse(text=" world"),
        ]
        assert orchestrator.state is StreamState.DONE
        assert issues == []

    @respx.mock
    async def test_other_message_kinds(self, orchestrator, bot_url, stream_response, issues):
        """Replace, suggested reply, file and json records become messages."""
        respx.post(bot_url).mock(
            return_value=stream_response(
                ("text", {"text": "draft"}),
                ("replace_response", {"text": "final", "index": 1}),
                ("suggested_reply", {"text": "Tell me more"}),
                ("file", {"url": "https://f.test/a.png", "content_type": "image/png", "name": "a.png"}),
                ("json", {"score": 3}),
                ("done", {}),
            )
        )

        messages = await collect(orchestrator, bot_url)

        assert messages[1:] == [
            ReplaceResponse(text="final", index=1),
            SuggestedReplyResponse(text="Tell me more"),
            AttachmentResponse(url="https://f.test/a.png", content_type="image/png", name="a.png"),
            JsonResponse(payload={"score": 3}),
        ]
        assert issues == []

    @respx.mock
    async def test_meta_after_first_record_is_dropped(self, orchestrator, bot_url, stream_response):
        """Only a meta record in first position is forwarded."""
        respx.post(bot_url).mock(
            return_value=stream_response(
                ("text", {"text": "hi"}),
                ("meta", {"linkify": True}),
                ("done", {}),
            )
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="hi")]

    @respx.mock
    async def test_malformed_meta_is_reported(self, orchestrator, bot_url, stream_response, issues):
        """A malformed first meta record is reported and the stream continues."""
        respx.post(bot_url).mock(
            return_value=stream_response(("meta", "not json"), ("text", {"text": "hi"}), ("done", {}))
        )

        messages = await collect(orchestrator, bot_url)

        assert messages == [TextResponse(text="hi")]
        assert issues.kinds() == [IssueKind.MALFORMED_META]
        assert orchestrator.state is StreamState.DONE

    @respx.mock
    async def test_ping_is_ignored(self, orchestrator, bot_url, stream_response, issues):
        """Ping records produce no message and no issue."""
        respx.post(bot_url).mock(
            return_value=stream_response(("ping", ""), ("text", {"text": "hi"}), ("done", {}))
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="hi")]
        assert issues == []

    @respx.mock
    async def test_unknown_event_is_reported(self, orchestrator, bot_url, stream_response, issues):
        """Unknown event types are reported and skipped."""
        respx.post(bot_url).mock(
            return_value=stream_response(("sparkle", "{}"), ("text", {"text": "hi"}), ("done", {}))
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="hi")]
        assert issues.kinds() == [IssueKind.UNKNOWN_EVENT]
        assert issues[0].details == {"event_type": "sparkle"}

    @respx.mock
    async def test_unknown_event_counted_as_unknown(self, orchestrator, bot_url, stream_response):
        """Unknown wire types share one metric label instead of adding their own."""
        respx.post(bot_url).mock(
            return_value=stream_response(("sparkle-xyz", "{}"), ("text", {"text": "hi"}), ("done", {}))
        )
        before = events_sample("unknown") or 0.0

        await collect(orchestrator, bot_url)

        assert events_sample("unknown") == before + 1
        assert events_sample("sparkle-xyz") is None

    @respx.mock
    async def test_done_without_text_is_reported(self, orchestrator, bot_url, stream_response, issues):
        """A stream that completes with no text is reported as silent."""
        respx.post(bot_url).mock(return_value=stream_response(("done", {})))

        assert await collect(orchestrator, bot_url) == []
        assert issues.kinds() == [IssueKind.SILENT_COMPLETION]
        assert issues[0].message == "Bot returned no text in response"
        assert orchestrator.state is StreamState.DONE

    @respx.mock
    async def test_done_without_text_after_issue_not_reported_twice(
        self, orchestrator, bot_url, stream_response, issues
    ):
        """An earlier issue suppresses the silent-completion report."""
        respx.post(bot_url).mock(return_value=stream_response(("sparkle", "{}"), ("done", {})))

        await collect(orchestrator, bot_url)

        assert issues.kinds() == [IssueKind.UNKNOWN_EVENT]

    @respx.mock
    async def test_done_without_text_with_tools_not_reported(
        self, orchestrator, bot_url, stream_response, issues
    ):
        """Tool-enabled requests may legitimately complete without text."""
        respx.post(bot_url).mock(return_value=stream_response(("done", {})))

        await collect(orchestrator, bot_url, payload={**PAYLOAD, "tools": [{"type": "function"}]})

        assert issues == []

    @respx.mock
    async def test_missing_done_is_reported(self, orchestrator, bot_url, stream_response, issues):
        """Reaching end of stream without done is reported but keeps the messages."""
        respx.post(bot_url).mock(return_value=stream_response(("text", {"text": "hi"})))

        assert await collect(orchestrator, bot_url) == [TextResponse(text="hi")]
        assert issues.kinds() == [IssueKind.SILENT_COMPLETION]
        assert issues[0].message == "Bot exited without sending 'done' event"

    @respx.mock
    async def test_records_after_done_are_ignored(self, orchestrator, bot_url, stream_response):
        """Nothing after the done record is read."""
        respx.post(bot_url).mock(
            return_value=stream_response(("text", {"text": "a"}), ("done", {}), ("text", {"text": "b"}))
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="a")]


class TestStreamOrchestratorRetries:
    """Tests for retry and failure handling."""

    @respx.mock
    async def test_retryable_server_error_is_retried(
        self, orchestrator, bot_url, stream_response, issues
    ):
        """An error record with allow_retry leads to another attempt."""
        route = respx.post(bot_url).mock(
            side_effect=[
                stream_response(("error", {"text": "overloaded", "allow_retry": True})),
                stream_response(("text", {"text": "ok"}), ("done", {})),
            ]
        )

        messages = await collect(orchestrator, bot_url)

        assert messages == [TextResponse(text="ok")]
        assert route.call_count == 2
        assert issues.kinds() == [IssueKind.SERVER_ERROR]
        assert issues[0].message == "overloaded"
        assert issues[0].attempt == 1
        assert issues[0].retryable is True
        assert orchestrator.state is StreamState.DONE

    @respx.mock
    async def test_retry_re_emits_earlier_output(self, orchestrator, bot_url, stream_response):
        """Messages from a failed attempt are not retracted."""
        respx.post(bot_url).mock(
            side_effect=[
                stream_response(("text", {"text": "partial"}), ("error", {"text": "oops"})),
                stream_response(("text", {"text": "full"}), ("done", {})),
            ]
        )

        messages = await collect(orchestrator, bot_url)

        assert messages == [TextResponse(text="partial"), TextResponse(text="full")]

    @respx.mock
    async def test_non_retryable_error_stops_immediately(
        self, orchestrator, bot_url, stream_response, issues
    ):
        """allow_retry=false ends the request after one attempt with no output."""
        route = respx.post(bot_url).mock(
            return_value=stream_response(
                ("error", {"text": "bad request", "allow_retry": False, "error_type": "user_caused"})
            )
        )

        assert await collect(orchestrator, bot_url) == []
        assert route.call_count == 1
        assert issues.kinds() == [IssueKind.SERVER_ERROR]
        assert issues[0].retryable is False
        assert issues[0].details == {"error_type": "user_caused"}
        assert orchestrator.state is StreamState.FATAL_FAILURE

    @respx.mock
    async def test_retries_exhausted(self, orchestrator, bot_url, stream_response, issues):
        """A retryable failure on every attempt gives up after num_tries."""
        route = respx.post(bot_url).mock(
            side_effect=lambda request: stream_response(("error", {"text": "busy"}))
        )

        assert await collect(orchestrator, bot_url) == []
        assert route.call_count == 3
        assert issues.kinds() == [IssueKind.SERVER_ERROR] * 3 + [IssueKind.RETRIES_EXHAUSTED]
        assert [i.retryable for i in issues[:3]] == [True, True, False]
        assert [i.attempt for i in issues[:3]] == [1, 2, 3]
        assert orchestrator.state is StreamState.FATAL_FAILURE

    @respx.mock
    async def test_malformed_error_record_is_not_retried(
        self, orchestrator, bot_url, stream_response, issues
    ):
        """An unparseable error record is a protocol error carrying the raw payload."""
        route = respx.post(bot_url).mock(return_value=stream_response(("error", "boom")))

        assert await collect(orchestrator, bot_url) == []
        assert route.call_count == 1
        assert issues.kinds() == [IssueKind.PROTOCOL_ERROR]
        assert issues[0].message == "boom"

    @respx.mock
    async def test_malformed_text_is_protocol_error(
        self, orchestrator, bot_url, stream_response, issues
    ):
        """A text record without a string text field fails the request."""
        route = respx.post(bot_url).mock(
            return_value=stream_response(("text", {"text": "ok"}), ("text", {"text": 5}), ("done", {}))
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="ok")]
        assert route.call_count == 1
        assert issues.kinds() == [IssueKind.PROTOCOL_ERROR]
        assert issues[0].message == "Expected string in 'text' field"

    @respx.mock
    async def test_connect_error_is_retried(self, orchestrator, bot_url, stream_response, issues):
        """Transport failures are retried."""
        route = respx.post(bot_url).mock(
            side_effect=[
                httpx.ConnectError("connection refused"),
                stream_response(("text", {"text": "ok"}), ("done", {})),
            ]
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="ok")]
        assert route.call_count == 2
        assert issues.kinds() == [IssueKind.TRANSPORT_ERROR]
        assert "connection refused" in issues[0].message

    @respx.mock
    async def test_http_error_status_is_retried(self, orchestrator, bot_url, stream_response, issues):
        """Non-2xx responses are transport failures."""
        respx.post(bot_url).mock(
            side_effect=[
                httpx.Response(503, text="unavailable"),
                stream_response(("text", {"text": "ok"}), ("done", {})),
            ]
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="ok")]
        assert issues.kinds() == [IssueKind.TRANSPORT_ERROR]
        assert issues[0].message.startswith("Bot returned HTTP 503")

    @respx.mock
    async def test_undecodable_body_is_retried(self, orchestrator, bot_url, stream_response, issues):
        """A body that fails content decoding is a transport failure, not a raise."""
        route = respx.post(bot_url).mock(
            side_effect=[
                corrupt_gzip_response(),
                stream_response(("text", {"text": "ok"}), ("done", {})),
            ]
        )

        assert await collect(orchestrator, bot_url) == [TextResponse(text="ok")]
        assert route.call_count == 2
        assert issues.kinds() == [IssueKind.TRANSPORT_ERROR]

    @respx.mock
    async def test_undecodable_body_exhausts_retries(self, orchestrator, bot_url, issues):
        """Repeated decoding failures end the output without raising."""
        route = respx.post(bot_url).mock(side_effect=lambda request: corrupt_gzip_response())

        assert await collect(orchestrator, bot_url) == []
        assert route.call_count == 3
        assert issues.kinds() == [IssueKind.TRANSPORT_ERROR] * 3 + [IssueKind.RETRIES_EXHAUSTED]
        assert orchestrator.state is StreamState.FATAL_FAILURE

    @respx.mock
    async def test_single_try(self, http_client, bot_url, issues):
        """With num_tries=1 a retryable failure is not retried."""
        route = respx.post(bot_url).mock(side_effect=httpx.ReadTimeout("slow"))
        orchestrator = StreamOrchestrator(
            http_client,
            StreamClientConfig(num_tries=1, retry_sleep_seconds=0.01),
            reporter=issues,
        )

        assert await collect(orchestrator, bot_url) == []
        assert route.call_count == 1
        assert issues.kinds() == [IssueKind.TRANSPORT_ERROR, IssueKind.RETRIES_EXHAUSTED]


class TestStreamOrchestratorRequest:
    """Tests for the outgoing request."""

    @respx.mock
    async def test_request_headers_and_body(self, orchestrator, bot_url, stream_response):
        """Caller headers are sent; Content-Type and Accept are always enforced."""
        route = respx.post(bot_url).mock(return_value=stream_response(("done", {})))

        await collect(
            orchestrator,
            bot_url,
            headers={"Authorization": "Bearer k", "Accept": "text/html", "X-Custom": "1"},
        )

        request = route.calls[0].request
        assert request.headers["Authorization"] == "Bearer k"
        assert request.headers["X-Custom"] == "1"
        assert request.headers["Accept"] == "text/event-stream"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == PAYLOAD


class TestStreamOrchestratorCancellation:
    """Tests for the shared cancel token and early close."""

    @respx.mock(assert_all_called=False)
    async def test_cancelled_before_start(self, orchestrator, bot_url, stream_response, issues):
        """A pre-set cancel token sends no request."""
        route = respx.post(bot_url).mock(return_value=stream_response(("done", {})))
        cancel_event = asyncio.Event()
        cancel_event.set()

        assert await collect(orchestrator, bot_url, cancel_event=cancel_event) == []
        assert not route.called
        assert issues.kinds() == [IssueKind.CANCELLED]
        assert orchestrator.state is StreamState.CANCELLED

    @respx.mock
    async def test_cancel_during_stream(self, http_client, bot_url, stream_response, issues):
        """Setting the token mid-stream stops reading after the current record."""
        respx.post(bot_url).mock(
            return_value=stream_response(*[("text", {"text": str(i)}) for i in range(10)], ("done", {}))
        )
        orchestrator = StreamOrchestrator(
            http_client, StreamClientConfig(queue_size=1, retry_sleep_seconds=0.01), reporter=issues
        )
        cancel_event = asyncio.Event()

        received = []
        async for message in orchestrator.run(PAYLOAD, bot_url, cancel_event=cancel_event):
            received.append(message)
            cancel_event.set()

        assert 1 <= len(received) < 10
        assert orchestrator.state is StreamState.CANCELLED
        assert IssueKind.CANCELLED in issues.kinds()

    @respx.mock
    async def test_cancel_interrupts_retry_sleep(self, http_client, bot_url, issues):
        """Cancellation wakes the retry sleep instead of waiting it out."""
        route = respx.post(bot_url).mock(side_effect=httpx.ConnectError("down"))
        cancel_event = asyncio.Event()

        def reporter(issue):
            issues(issue)
            cancel_event.set()

        orchestrator = StreamOrchestrator(
            http_client,
            StreamClientConfig(num_tries=3, retry_sleep_seconds=30),
            reporter=reporter,
        )

        messages = await asyncio.wait_for(
            collect(orchestrator, bot_url, cancel_event=cancel_event), timeout=5
        )

        assert messages == []
        assert route.call_count == 1
        assert issues.kinds() == [IssueKind.TRANSPORT_ERROR, IssueKind.CANCELLED]
        assert orchestrator.state is StreamState.CANCELLED

    @respx.mock
    async def test_early_close_stops_producer(self, http_client, bot_url, stream_response, issues):
        """Closing the iterator early returns promptly without finishing the stream."""
        respx.post(bot_url).mock(
            return_value=stream_response(*[("text", {"text": str(i)}) for i in range(20)], ("done", {}))
        )
        orchestrator = StreamOrchestrator(
            http_client, StreamClientConfig(queue_size=1), reporter=issues
        )

        async with aclosing(orchestrator.run(PAYLOAD, bot_url)) as stream:
            async for message in stream:
                assert message == TextResponse(text="0")
                break

        assert orchestrator.state is StreamState.STREAMING
        assert issues == []
