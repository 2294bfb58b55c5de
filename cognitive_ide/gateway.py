"""Tool execution gateway — streaming detection, dedup and rate limiting.

One ``ToolGateway`` serves one conversation/workspace.  It owns three
pieces of private state:

* the pending buffer — everything streamed in the current model turn
* the executed-key set — dedup keys already executed in this turn
* the rate limiter

``process_chunk`` re-parses the whole buffer on every chunk, so feeding
successively longer prefixes of the same text never runs a call twice.
A denied call is not added to the key set, so it is checked again on the
next chunk and runs once the limiter allows it.

Rate-limit denials are converted to failed ``ToolResult`` objects here;
``RateLimitError`` never leaves this module.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from cognitive_ide.contracts import ToolCall, ToolExecution, ToolResult
from cognitive_ide.errors import RateLimitError
from cognitive_ide.executor import ToolExecutor
from cognitive_ide.parser import has_tool_calls, parse_tool_calls
from cognitive_ide.rate_limit import RateLimitConfig, RateLimiter, RateLimitStatus

logger = logging.getLogger(__name__)

ToolStartCallback = Callable[[str, dict[str, Any]], Any]
ToolResultCallback = Callable[[str, ToolResult], Any]


@dataclass(frozen=True)
class ChunkOutcome:
    text: str
    tool_results: list[ToolExecution] = field(default_factory=list)


@dataclass(frozen=True)
class ResponseOutcome:
    processed_text: str
    tool_results: list[ToolExecution] = field(default_factory=list)


class ToolGateway:
    """Front door for every tool call the model makes."""

    def __init__(
        self,
        executor: ToolExecutor,
        *,
        rate_limiter: RateLimiter | None = None,
        rate_limit_config: RateLimitConfig | None = None,
    ) -> None:
        self.executor = executor
        self._limiter = rate_limiter or RateLimiter(rate_limit_config)
        self._buffer = ""
        self._executed: set[tuple[str, str, int]] = set()

    @property
    def pending_buffer(self) -> str:
        return self._buffer

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin_turn(self) -> None:
        """Start a new model turn: clear the buffer and the dedup keys."""
        self._buffer = ""
        self._executed.clear()

    def reset(self) -> None:
        """New conversation: clear everything, rate limiter included."""
        self.begin_turn()
        self._limiter.reset()

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def process_chunk(
        self,
        chunk: str,
        on_tool_start: ToolStartCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> ChunkOutcome:
        """Append *chunk* and run any newly completed calls in the buffer."""
        self._buffer += chunk
        executions: list[ToolExecution] = []

        for call in parse_tool_calls(self._buffer):
            key = call.dedup_key
            if key in self._executed:
                continue
            denied = await self._admit(call, on_tool_result)
            if denied is not None:
                executions.append(denied)
                continue
            self._executed.add(key)
            executions.append(await self._execute(call, on_tool_start, on_tool_result))

        return ChunkOutcome(text=self._buffer, tool_results=executions)

    async def process_response(
        self,
        full_text: str,
        on_tool_start: ToolStartCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> ResponseOutcome:
        """Run every call in *full_text* and splice results in place of the calls.

        Successes become ``\\n<formatted>\\n``; failures become a
        ``[[TOOL_ERROR:<tool>:<error>]]`` marker.
        """
        if not has_tool_calls(full_text):
            return ResponseOutcome(processed_text=full_text)

        calls = parse_tool_calls(full_text)
        executions: list[ToolExecution] = []
        for call in calls:
            executions.append(await self._run(call, on_tool_start, on_tool_result))

        # Splice right-to-left so earlier spans stay valid
        processed = full_text
        for execution in reversed(executions):
            call, result = execution.call, execution.result
            if result.success:
                replacement = f"\n{result.formatted or ''}\n"
            else:
                replacement = f"[[TOOL_ERROR:{call.tool}:{result.error}]]"
            processed = processed[: call.start_index] + replacement + processed[call.end_index :]

        return ResponseOutcome(processed_text=processed, tool_results=executions)

    # ------------------------------------------------------------------
    # Direct execution
    # ------------------------------------------------------------------

    async def execute_tool(self, name: str, args: dict[str, Any] | None) -> ToolResult:
        """Rate-limited direct call.  No parsing, no dedup."""
        try:
            self._limiter.acquire()
        except RateLimitError as exc:
            logger.warning("[gateway:deny] tool=%s kind=%s %s", name, exc.kind, exc)
            return ToolResult.fail(str(exc))
        return await self.executor.execute(name, args or {})

    def rate_limit_status(self) -> RateLimitStatus:
        return self._limiter.status()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        call: ToolCall,
        on_tool_start: ToolStartCallback | None,
        on_tool_result: ToolResultCallback | None,
    ) -> ToolExecution:
        denied = await self._admit(call, on_tool_result)
        if denied is not None:
            return denied
        return await self._execute(call, on_tool_start, on_tool_result)

    async def _admit(
        self, call: ToolCall, on_tool_result: ToolResultCallback | None
    ) -> ToolExecution | None:
        """Acquire a rate-limit slot; return the failed execution when denied."""
        try:
            self._limiter.acquire()
        except RateLimitError as exc:
            logger.warning("[gateway:deny] tool=%s kind=%s %s", call.tool, exc.kind, exc)
            denied = ToolResult.fail(str(exc))
            await emit(on_tool_result, call.tool, denied)
            return ToolExecution(call=call, result=denied)
        return None

    async def _execute(
        self,
        call: ToolCall,
        on_tool_start: ToolStartCallback | None,
        on_tool_result: ToolResultCallback | None,
    ) -> ToolExecution:
        await emit(on_tool_start, call.tool, call.args)
        result = await self.executor.execute(call.tool, call.args)
        await emit(on_tool_result, call.tool, result)
        return ToolExecution(call=call, result=result)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def emit(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Invoke *callback* with *args*, handling both sync and async."""
    if callback is None:
        return
    result = callback(*args)
    if asyncio.iscoroutine(result):
        await result


def make_stream_handler(
    gateway: ToolGateway,
    on_chunk: Callable[[str], Any],
    on_tool_start: Callable[[str], Any] | None = None,
    on_tool_complete: Callable[[str, str], Any] | None = None,
) -> Callable[[str], Awaitable[None]]:
    """Wrap *gateway* as a provider chunk callback.

    Each raw chunk is forwarded to *on_chunk* first, followed by the
    formatted output of any call it completed.
    """

    async def _on_tool_start(tool: str, _args: dict[str, Any]) -> None:
        await emit(on_tool_start, tool)

    async def _on_tool_result(tool: str, result: ToolResult) -> None:
        if result.formatted:
            await emit(on_tool_complete, tool, result.formatted)

    async def handle(chunk: str) -> None:
        outcome = await gateway.process_chunk(chunk, _on_tool_start, _on_tool_result)
        await emit(on_chunk, chunk)
        for execution in outcome.tool_results:
            if execution.result.formatted:
                await emit(on_chunk, f"\n\n{execution.result.formatted}\n")

    return handle


__all__ = [
    "ChunkOutcome",
    "ResponseOutcome",
    "ToolGateway",
    "emit",
    "make_stream_handler",
]
