"""Two-pass tool calling on top of the stream orchestrator.

Pass 1 sends the request with tool definitions and intercepts the
OpenAI-style `choices[0].delta.tool_calls` fragments carried in `json`
events, merging them by index. The matching local executables are then
run one after another, and pass 2 resends the request with the tool calls
and their results, streaming its answer straight to the caller.

Without executables the aggregator runs in pass-through mode: fragments
are forwarded as ToolCallDeltasResponse messages and pass 2 never runs.
"""

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from botwire.client.models import (
    FunctionCallDefinition,
    QueryRequest,
    ToolCallDefinition,
    ToolDefinition,
    ToolResultDefinition,
    build_payload,
)
from botwire.client.orchestrator import StreamOrchestrator
from botwire.client.reporting import IssueKind, StreamIssue
from botwire.client.responses import (
    JsonResponse,
    ResponseMessage,
    TextResponse,
    ToolCallDelta,
    ToolCallDeltasResponse,
)
from botwire.observability.metrics import record_tool_call

logger = structlog.get_logger(__name__)

PayloadBuilder = Callable[..., dict[str, Any]]


@dataclass(frozen=True)
class ToolExecutable:
    """A local function the bot can call.

    Attributes:
        name: Function name, matched against the tool call's function name.
        execute: Callable taking the raw JSON arguments string and returning
            the result content. May be sync or async.
    """

    name: str
    execute: Callable[[str], str | Awaitable[str]]


def parse_tool_call_deltas(raw: list[Any]) -> list[ToolCallDelta]:
    """Parse the `tool_calls` list of a streamed delta.

    A missing index means 0. Entries that are not objects or whose index
    is not an integer are skipped.
    """
    deltas = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        index = item.get("index", 0)
        if isinstance(index, bool) or not isinstance(index, int):
            continue
        function = item.get("function")
        if not isinstance(function, dict):
            function = {}
        arguments = function.get("arguments")
        deltas.append(
            ToolCallDelta(
                index=index,
                id=item.get("id") if isinstance(item.get("id"), str) else None,
                type=item.get("type") if isinstance(item.get("type"), str) else None,
                function_name=function.get("name") if isinstance(function.get("name"), str) else None,
                arguments=arguments if isinstance(arguments, str) else "",
            )
        )
    return deltas


class ToolCallArena:
    """Tool calls under construction, keyed by delta index.

    The first delta seen for an index must carry id, type and function name;
    otherwise the index is never initialized and all of its fragments are
    dropped.
    """

    def __init__(self) -> None:
        self._calls: dict[int, ToolCallDefinition] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def merge(self, delta: ToolCallDelta) -> None:
        call = self._calls.get(delta.index)
        if call is not None:
            call.function.arguments += delta.arguments
            return
        if delta.id is None or delta.type is None or delta.function_name is None:
            logger.debug("tool_call_delta_dropped", index=delta.index)
            return
        self._calls[delta.index] = ToolCallDefinition(
            id=delta.id,
            type=delta.type,
            function=FunctionCallDefinition(name=delta.function_name, arguments=delta.arguments),
        )

    def calls(self) -> list[ToolCallDefinition]:
        """Aggregated calls in index order."""
        return [self._calls[index] for index in sorted(self._calls)]


class ToolCallAggregator:
    """Runs the two-pass tool calling protocol for one request."""

    def __init__(
        self,
        orchestrator: StreamOrchestrator,
        tools: list[ToolDefinition],
        executables: list[ToolExecutable] | None = None,
        payload_builder: PayloadBuilder = build_payload,
    ):
        """Initialize the aggregator.

        Args:
            orchestrator: Orchestrator used for both passes, sequentially.
            tools: Tool definitions offered to the bot.
            executables: Local implementations; empty means pass-through mode.
            payload_builder: Builds request bodies from the request and tool lists.
        """
        self._orchestrator = orchestrator
        self._tools = tools
        self._executables = {e.name: e for e in executables or []}
        self._build_payload = payload_builder

    @property
    def pass_through(self) -> bool:
        return not self._executables

    async def run(
        self,
        request: QueryRequest,
        url: str,
        headers: dict[str, str] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[ResponseMessage]:
        """Stream a tool-enabled request, executing tool calls locally.

        Yields:
            ResponseMessage objects from pass 1 (text and untouched messages,
            or raw deltas in pass-through mode), then from pass 2.
        """
        arena = ToolCallArena()
        first_payload = self._build_payload(request, self._tools)

        async for message in self._orchestrator.run(first_payload, url, headers, cancel_event):
            for forwarded in self._intercept(message, arena):
                yield forwarded

        if self.pass_through:
            return

        tool_calls = arena.calls()
        if not tool_calls:
            return

        tool_results = await self.execute_tools(tool_calls, url)

        second_payload = self._build_payload(request, self._tools, tool_calls, tool_results)
        async for message in self._orchestrator.run(second_payload, url, headers, cancel_event):
            yield message

    def _intercept(self, message: ResponseMessage, arena: ToolCallArena) -> list[ResponseMessage]:
        if not isinstance(message, JsonResponse):
            return [message]

        choices = message.payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return [message]
        choice = choices[0]

        if choice.get("finish_reason") is not None:
            return []

        delta = choice.get("delta")
        if not isinstance(delta, dict):
            return [message]

        if "tool_calls" in delta:
            raw = delta["tool_calls"]
            if not isinstance(raw, list):
                return []
            deltas = parse_tool_call_deltas(raw)
            if self.pass_through:
                return [ToolCallDeltasResponse(deltas=deltas, index=message.index)]
            for tool_delta in deltas:
                arena.merge(tool_delta)
            return []

        content = delta.get("content")
        if isinstance(content, str):
            return [TextResponse(text=content, index=message.index)]
        return []

    async def execute_tools(
        self, tool_calls: list[ToolCallDefinition], url: str | None = None
    ) -> list[ToolResultDefinition]:
        """Execute tool calls sequentially.

        Calls without a registered executable produce no result. An
        exception raised by an executable becomes the result content.

        Args:
            tool_calls: Aggregated tool calls, in order.
            url: Endpoint, for issue reports.

        Returns:
            One ToolResultDefinition per executed call.
        """
        results = []
        for call in tool_calls:
            name = call.function.name
            executable = self._executables.get(name)
            if executable is None:
                record_tool_call(name, "not_found")
                self._orchestrator.reporter(
                    StreamIssue(
                        kind=IssueKind.TOOL_NOT_FOUND,
                        message=f"Tool executable not found: {name}",
                        url=url,
                        details={"tool": name, "tool_call_id": call.id},
                    )
                )
                continue

            try:
                content = executable.execute(call.function.arguments)
                if inspect.isawaitable(content):
                    content = await content
                record_tool_call(name, "success")
            except Exception as e:
                record_tool_call(name, "error")
                self._orchestrator.reporter(
                    StreamIssue(
                        kind=IssueKind.TOOL_FAILED,
                        message=f"Tool execution error for {name}: {e}",
                        url=url,
                        details={"tool": name, "tool_call_id": call.id},
                    )
                )
                content = str(e)

            results.append(
                ToolResultDefinition(
                    name=name,
                    tool_call_id=call.id,
                    content=str(content),
                )
            )
        return results
