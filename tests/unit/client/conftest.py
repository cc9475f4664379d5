"""Shared fixtures for bot client tests.

Provides:
- A fast StreamClientConfig (tiny retry sleep) pointed at a fake server
- An issue collector usable as an IssueReporter
- A factory rendering event-stream HTTP responses
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from botwire.client import ProtocolMessage, QueryRequest, StreamClientConfig, StreamIssue

BASE_URL = "http://bots.test/bot/"


class IssueCollector(list):
    """IssueReporter that records every reported issue."""

    def __call__(self, issue: StreamIssue) -> None:
        self.append(issue)

    def kinds(self) -> list[str]:
        return [issue.kind for issue in self]


def _render(events: tuple[tuple[str, Any], ...]) -> str:
    chunks = []
    for event_type, data in events:
        if not isinstance(data, str):
            data = json.dumps(data)
        chunks.append(f"event: {event_type}\ndata: {data}\n\n")
    return "".join(chunks)


@pytest.fixture
def stream_response() -> Callable[..., httpx.Response]:
    """Factory building a 200 event-stream response from (event, data) pairs.

    Dict data is JSON-encoded; string data is written verbatim.
    """

    def build(*events: tuple[str, Any]) -> httpx.Response:
        return httpx.Response(
            200, text=_render(events), headers={"Content-Type": "text/event-stream"}
        )

    return build


@pytest.fixture
def issues() -> IssueCollector:
    return IssueCollector()


@pytest.fixture
def fast_config() -> StreamClientConfig:
    """Config with three tries and a negligible retry sleep."""
    return StreamClientConfig(base_url=BASE_URL, num_tries=3, retry_sleep_seconds=0.01)


@pytest.fixture
def bot_url(fast_config: StreamClientConfig) -> str:
    return fast_config.bot_url("echo")


@pytest.fixture
def query_request() -> QueryRequest:
    return QueryRequest(query=[ProtocolMessage(role="user", content="Hello")])
