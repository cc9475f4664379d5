"""Bot client module for streaming responses from remote bots.

The module includes:
- StreamOrchestrator: one request/response cycle with retries
- ToolCallAggregator: two-pass tool calling with local executables
- BotClient: high-level wrapper owning the HTTP client
- Response message types, request models and the exception hierarchy
"""

from botwire.client.client import BotClient, Transcript, create_client
from botwire.client.config import AuthConfig, StreamClientConfig
from botwire.client.events import EventKind
from botwire.client.exceptions import (
    BotCancelledError,
    BotError,
    BotNoResponseError,
    BotProtocolError,
    BotServerError,
    BotTransportError,
)
from botwire.client.models import (
    Attachment,
    FunctionCallDefinition,
    FunctionDefinition,
    ParametersDefinition,
    ProtocolMessage,
    QueryRequest,
    ToolCallDefinition,
    ToolDefinition,
    ToolResultDefinition,
    build_payload,
)
from botwire.client.orchestrator import StreamOrchestrator, StreamState
from botwire.client.reporting import IssueKind, IssueReporter, StreamIssue, log_issue
from botwire.client.responses import (
    AttachmentResponse,
    DoneResponse,
    ErrorResponse,
    JsonResponse,
    MetaResponse,
    ReplaceResponse,
    ResponseMessage,
    SuggestedReplyResponse,
    TextResponse,
    ToolCallDelta,
    ToolCallDeltasResponse,
)
from botwire.client.tools import ToolCallAggregator, ToolExecutable

__all__ = [
    # Client
    "BotClient",
    "Transcript",
    "create_client",
    "StreamOrchestrator",
    "StreamState",
    "ToolCallAggregator",
    "ToolExecutable",
    # Config
    "AuthConfig",
    "StreamClientConfig",
    # Reporting
    "IssueKind",
    "IssueReporter",
    "StreamIssue",
    "log_issue",
    # Responses
    "EventKind",
    "AttachmentResponse",
    "DoneResponse",
    "ErrorResponse",
    "JsonResponse",
    "MetaResponse",
    "ReplaceResponse",
    "ResponseMessage",
    "SuggestedReplyResponse",
    "TextResponse",
    "ToolCallDelta",
    "ToolCallDeltasResponse",
    # Request models
    "Attachment",
    "FunctionCallDefinition",
    "FunctionDefinition",
    "ParametersDefinition",
    "ProtocolMessage",
    "QueryRequest",
    "ToolCallDefinition",
    "ToolDefinition",
    "ToolResultDefinition",
    "build_payload",
    # Exceptions
    "BotError",
    "BotTransportError",
    "BotProtocolError",
    "BotServerError",
    "BotCancelledError",
    "BotNoResponseError",
]
