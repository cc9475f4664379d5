"""Request-side wire models for the bot protocol.

Pydantic models for the query request body, tool definitions and the
tool-call / tool-result lists exchanged during two-pass tool calling,
plus the payload builder the orchestrator sends.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

PROTOCOL_VERSION = "1.2"


class Attachment(BaseModel):
    url: str
    content_type: str
    name: str
    inline_ref: str | None = None
    parsed_content: str | None = None


class ProtocolMessage(BaseModel):
    """A single message in the conversation sent to a bot.

    Attributes:
        role: Message role ("system", "user", "bot", "tool")
        content: Message text content
        content_type: MIME type of the content
        message_id: Optional message identifier
        sender_id: Optional sender identifier
        attachments: Files attached to the message
        parameters: Bot-specific parameters
        metadata: Opaque metadata string
    """

    role: str
    content: str
    content_type: str = "text/markdown"
    message_id: str | None = None
    sender_id: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    parameters: dict[str, Any] | None = None
    metadata: str | None = None


class QueryRequest(BaseModel):
    """Request body for a bot query."""

    version: str = PROTOCOL_VERSION
    type: Literal["query"] = "query"
    query: list[ProtocolMessage]
    user_id: str = ""
    conversation_id: str = ""
    message_id: str = ""
    metadata: str | None = None
    access_key: str | None = None
    temperature: float | None = None
    skip_system_prompt: bool | None = None
    logit_bias: dict[str, float] | None = None
    stop_sequences: list[str] | None = None
    language_code: str | None = None
    bot_query_id: str | None = None
    extra_params: dict[str, Any] | None = None


class ParametersDefinition(BaseModel):
    type: str = "object"
    properties: dict[str, Any] = Field(default_factory=dict)
    required: list[str] | None = None


class FunctionDefinition(BaseModel):
    name: str
    description: str = ""
    parameters: ParametersDefinition = Field(default_factory=ParametersDefinition)


class ToolDefinition(BaseModel):
    """A function the bot may call, in OpenAI function-calling shape."""

    type: str = "function"
    function: FunctionDefinition


class FunctionCallDefinition(BaseModel):
    name: str
    arguments: str = ""


class ToolCallDefinition(BaseModel):
    """A complete tool call, aggregated from streamed deltas."""

    id: str
    type: str
    function: FunctionCallDefinition


class ToolResultDefinition(BaseModel):
    """Result of executing one tool call locally."""

    role: Literal["tool"] = "tool"
    name: str
    tool_call_id: str
    content: str


def _dump(models: list[BaseModel]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json", exclude_none=True) for m in models]


def build_payload(
    request: QueryRequest,
    tools: list[ToolDefinition] | None = None,
    tool_calls: list[ToolCallDefinition] | None = None,
    tool_results: list[ToolResultDefinition] | None = None,
) -> dict[str, Any]:
    """Build the JSON request body for a query.

    Tool lists are attached only when given, so a request without tools
    carries no `tools` key at all.

    Args:
        request: The query request.
        tools: Tool definitions offered to the bot.
        tool_calls: Aggregated tool calls from a first pass.
        tool_results: Results of executing those tool calls.

    Returns:
        The JSON-serializable payload dict.
    """
    payload = request.model_dump(mode="json", exclude_none=True)
    if tools is not None:
        payload["tools"] = _dump(tools)
    if tool_calls is not None:
        payload["tool_calls"] = _dump(tool_calls)
    if tool_results is not None:
        payload["tool_results"] = _dump(tool_results)
    return payload
