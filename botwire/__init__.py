"""Streaming client for remote conversational bots.

Quick Start:
    >>> from botwire import AuthConfig, BotClient, ProtocolMessage
    >>>
    >>> async with BotClient(auth=AuthConfig(api_key="...")) as client:
    ...     messages = [ProtocolMessage(role="user", content="Hello")]
    ...     async for message in client.get_bot_response(messages, "GPT-4o"):
    ...         print(message)
"""

from botwire.client import (
    AuthConfig,
    BotClient,
    BotError,
    ProtocolMessage,
    QueryRequest,
    StreamClientConfig,
    StreamOrchestrator,
    ToolCallAggregator,
    ToolDefinition,
    ToolExecutable,
    create_client,
)
from botwire.sse import EventRecord, EventWriter, aiter_events, iter_events

__all__ = [
    "AuthConfig",
    "BotClient",
    "BotError",
    "EventRecord",
    "EventWriter",
    "ProtocolMessage",
    "QueryRequest",
    "StreamClientConfig",
    "StreamOrchestrator",
    "ToolCallAggregator",
    "ToolDefinition",
    "ToolExecutable",
    "aiter_events",
    "create_client",
    "iter_events",
]
