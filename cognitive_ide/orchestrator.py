"""Conversation orchestrator — the bounded agent loop.

Architecture
------------
1. The caller sends the conversation so far and a mode.
2. The system prompt for the mode is prepended.
3. Responder mode: one provider call, streamed straight through.  Done.
4. Agent mode: stream a model turn.  Visible text goes out through a
   ``VisibleStreamFilter`` so tool-call syntax never reaches the user.
5. If the turn contains tool calls, run them one by one through the
   gateway, show a result marker for each, append the cleaned assistant
   turn plus one synthesized user turn carrying the results, and go to 4.
6. A turn without tool calls ends the loop.  So does the iteration cap,
   which also emits a one-time warning.

The orchestrator owns the conversation list; nothing else mutates it.
Cancellation is cooperative: ``abort`` sets an ``asyncio.Event`` that is
checked before each provider request and after each one settles.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from cognitive_ide.backends import FileSystem, LocalFileSystem, LocalSearch, SearchBackend
from cognitive_ide.config import Settings, get_settings, rate_limit_config
from cognitive_ide.contracts import ChatMessage, ModelRef, ToolExecution, ToolResult
from cognitive_ide.executor import ToolExecutor
from cognitive_ide.gateway import ToolGateway, emit
from cognitive_ide.parser import VisibleStreamFilter, clean_response, parse_tool_calls
from cognitive_ide.prompts import ChatMode, build_system_prompt
from cognitive_ide.providers import ProviderRegistry, clean_title, fallback_title

logger = logging.getLogger(__name__)

StopReason = Literal["responder", "complete", "max_iterations", "cancelled", "error"]

ChunkCallback = Callable[[str], Any]
ToolExecutionCallback = Callable[[str, bool, str | None], Any]

# ---------------------------------------------------------------------------
# Stream markers
# ---------------------------------------------------------------------------

TURN_SEPARATOR = "\n\n---\n\n"
MAX_ITERATIONS_WARNING = "\n\n⚠️ Maximum iterations reached. Stopping agent loop.\n"
NOT_INITIALIZED_ERROR = "Tool service not initialized. Set workspace first."

_RESULTS_HEADER = "Tool execution completed. Results:\n\n"
_RESULTS_FOOTER = (
    "\n\nNow analyze these results and provide your answer to the user's "
    "original question. Use the ACTUAL file content and search results "
    "provided above. Do not call more tools unless absolutely necessary."
)
_RESULT_JOINER = "\n\n---\n\n"

_READ_FILE_RE = re.compile(
    r"^📄\s*(?P<path>.+?)\s*\((?P<lines>\d+)\s*lines?\)\n```\n(?P<content>[\s\S]*)\n```$"
)


def result_marker(tool: str, result: ToolResult) -> str:
    """Visible marker for one tool result."""
    if result.success:
        return f"\n\n[[TOOL_RESULT:{tool}:{_result_text(result)}]]\n"
    return f"\n\n[[TOOL_ERROR:{tool}:{result.error}]]\n"


@dataclass(frozen=True)
class AgentRunResult:
    """Outcome of one ``send_message`` call."""

    stop_reason: StopReason
    iterations: int
    tool_calls: list[ToolExecution] = field(default_factory=list)
    final_text: str = ""
    conversation: list[ChatMessage] = field(default_factory=list)


class ChatOrchestrator:
    """Drives responder and agent chats against a provider registry."""

    def __init__(
        self,
        providers: ProviderRegistry,
        *,
        settings: Settings | None = None,
        prompt_builder: Callable[..., str] = build_system_prompt,
    ) -> None:
        self._providers = providers
        self._settings = settings or get_settings()
        self._prompt_builder = prompt_builder
        self._gateway: ToolGateway | None = None
        self._cancel_event: asyncio.Event | None = None

    @property
    def gateway(self) -> ToolGateway | None:
        return self._gateway

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def set_workspace(
        self,
        workspace: str,
        filesystem: FileSystem | None = None,
        search: SearchBackend | None = None,
    ) -> None:
        """Bind a workspace: fresh executor, fresh gateway, fresh limits."""
        executor = ToolExecutor(
            workspace,
            filesystem or LocalFileSystem(),
            search or LocalSearch(),
            allowed_prefixes=self._settings.ALLOWED_ABSOLUTE_PREFIXES,
        )
        self._gateway = ToolGateway(
            executor, rate_limit_config=rate_limit_config(self._settings)
        )
        logger.info("[agent:workspace] %s", executor.workspace)

    def reset_conversation(self) -> None:
        if self._gateway is not None:
            self._gateway.reset()

    def abort(self) -> None:
        """Ask the running ``send_message`` to stop at its next check."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def send_message(
        self,
        model: ModelRef,
        messages: list[ChatMessage],
        mode: ChatMode,
        on_chunk: ChunkCallback,
        on_tool_execution: ToolExecutionCallback | None = None,
    ) -> AgentRunResult:
        """Run one user request to completion (or cap / cancel / error)."""
        cancel = asyncio.Event()
        self._cancel_event = cancel
        loop_start = time.perf_counter()

        user_query = messages[-1].content if messages else ""
        system_prompt = self._prompt_builder(
            mode=mode, user_os=self._settings.USER_OS, user_query=user_query
        )
        conversation: list[ChatMessage] = [
            ChatMessage(role="system", content=system_prompt),
            *messages,
        ]

        if mode == "responder":
            return await self._respond(model, conversation, on_chunk, cancel)

        max_iterations = self._settings.MAX_AGENT_ITERATIONS
        executions: list[ToolExecution] = []
        final_text = ""
        iteration = 0

        for iteration in range(1, max_iterations + 1):
            if cancel.is_set():
                return self._cancelled(iteration - 1, executions, final_text, conversation)

            if self._gateway is not None:
                self._gateway.begin_turn()

            stream_filter = VisibleStreamFilter()
            buffer: list[str] = []

            async def collect(chunk: str) -> None:
                if cancel.is_set():
                    return
                buffer.append(chunk)
                visible = stream_filter.feed(chunk)
                if visible:
                    await emit(on_chunk, visible)

            llm_start = time.perf_counter()
            try:
                provider = self._providers.create(model.provider)
                await provider.send_chat_request(model.id, list(conversation), collect, cancel)
            except Exception as exc:
                logger.error(
                    "[agent:llm] turn=%d model=%s  provider error: %s", iteration, model.id, exc
                )
                tail = stream_filter.flush()
                if tail:
                    await emit(on_chunk, tail)
                await emit(on_chunk, f"[Error: {exc}]")
                return AgentRunResult(
                    stop_reason="error",
                    iterations=iteration,
                    tool_calls=executions,
                    final_text=final_text,
                    conversation=conversation,
                )

            if cancel.is_set():
                return self._cancelled(iteration, executions, final_text, conversation)

            tail = stream_filter.flush()
            if tail:
                await emit(on_chunk, tail)

            response = "".join(buffer)
            calls = parse_tool_calls(response)
            final_text = clean_response(response)
            logger.info(
                "[agent:llm] turn=%d model=%s  chars=%d calls=%d (%dms)",
                iteration, model.id, len(response), len(calls),
                int((time.perf_counter() - llm_start) * 1000),
            )

            if not calls or self._gateway is None:
                logger.info(
                    "[agent:done] turns=%d tool_calls=%d (%dms)",
                    iteration, len(executions), int((time.perf_counter() - loop_start) * 1000),
                )
                return AgentRunResult(
                    stop_reason="complete",
                    iterations=iteration,
                    tool_calls=executions,
                    final_text=final_text,
                    conversation=conversation,
                )

            # ── Execute tools sequentially ────────────────────────────
            result_blocks: list[str] = []
            for call in calls:
                logger.info(
                    "[agent:tool_call] turn=%d  %s  input=%s",
                    iteration, call.tool, json.dumps(call.args, default=str)[:200],
                )
                await emit(on_tool_execution, call.tool, True, None)
                result = await self._gateway.execute_tool(call.tool, call.args)
                await emit(on_tool_execution, call.tool, False, result.formatted)
                logger.info(
                    "[agent:tool_result] turn=%d  %s  success=%s (%dms)",
                    iteration, call.tool, result.success, result.duration_ms,
                )
                executions.append(ToolExecution(call=call, result=result))
                await emit(on_chunk, result_marker(call.tool, result))
                result_blocks.append(_result_block(call.tool, result))

            # ── Rewrite history for the next turn ─────────────────────
            if final_text:
                conversation.append(ChatMessage(role="assistant", content=final_text))
            conversation.append(
                ChatMessage(
                    role="user",
                    content=_RESULTS_HEADER + _RESULT_JOINER.join(result_blocks) + _RESULTS_FOOTER,
                )
            )
            await emit(on_chunk, TURN_SEPARATOR)
        else:
            logger.warning("[agent:done] iteration cap %d reached", max_iterations)
            await emit(on_chunk, MAX_ITERATIONS_WARNING)

        return AgentRunResult(
            stop_reason="max_iterations",
            iterations=iteration,
            tool_calls=executions,
            final_text=final_text,
            conversation=conversation,
        )

    async def _respond(
        self,
        model: ModelRef,
        conversation: list[ChatMessage],
        on_chunk: ChunkCallback,
        cancel: asyncio.Event,
    ) -> AgentRunResult:
        buffer: list[str] = []

        async def forward(chunk: str) -> None:
            if cancel.is_set():
                return
            buffer.append(chunk)
            await emit(on_chunk, chunk)

        try:
            provider = self._providers.create(model.provider)
            await provider.send_chat_request(model.id, list(conversation), forward, cancel)
        except Exception as exc:
            logger.error("[agent:llm] responder model=%s  provider error: %s", model.id, exc)
            await emit(on_chunk, f"[Error: {exc}]")
            return AgentRunResult(stop_reason="error", iterations=1, conversation=conversation)

        return AgentRunResult(
            stop_reason="cancelled" if cancel.is_set() else "responder",
            iterations=1,
            final_text="".join(buffer),
            conversation=conversation,
        )

    @staticmethod
    def _cancelled(
        iterations: int,
        executions: list[ToolExecution],
        final_text: str,
        conversation: list[ChatMessage],
    ) -> AgentRunResult:
        logger.info("[agent:done] cancelled after %d turn(s)", iterations)
        return AgentRunResult(
            stop_reason="cancelled",
            iterations=iterations,
            tool_calls=executions,
            final_text=final_text,
            conversation=conversation,
        )

    # ------------------------------------------------------------------
    # Titles & manual tool calls
    # ------------------------------------------------------------------

    async def generate_title(
        self,
        model: ModelRef,
        user_message: str,
        assistant_response: str,
    ) -> str:
        """Short conversation title; falls back to the user's first words."""
        try:
            provider = self._providers.create(model.provider)
            title = clean_title(
                await provider.generate_title(model.id, user_message, assistant_response)
            )
        except Exception as exc:
            logger.warning("[agent:title] falling back: %s", exc)
            return fallback_title(user_message)
        return title or fallback_title(user_message)

    async def execute_tool(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Manual / UI-triggered tool call: ``{success, result, error}``."""
        if self._gateway is None:
            return {"success": False, "result": None, "error": NOT_INITIALIZED_ERROR}
        result = await self._gateway.execute_tool(name, args)
        return {
            "success": result.success,
            "result": _result_text(result) if result.success else None,
            "error": result.error,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result_text(result: ToolResult) -> str:
    if result.formatted is not None:
        return result.formatted
    return json.dumps(result.data, ensure_ascii=False, default=str)


def _result_block(tool: str, result: ToolResult) -> str:
    """One entry of the synthesized results message."""
    if not result.success:
        return f"Tool: {tool}\nError: {result.error}"

    text = _result_text(result)
    if tool.lower() in ("read_file", "read"):
        m = _READ_FILE_RE.match(text)
        if m:
            path = m.group("path")
            return (
                f"Tool: read_file executed successfully.\n\n"
                f"File: {path}\n"
                f"Lines: {m.group('lines')}\n\n"
                f"ACTUAL FILE CONTENT (use this real content, not assumptions):\n"
                f"```\n{m.group('content')}\n```\n\n"
                f"IMPORTANT: The content above is the REAL, ACTUAL content of the file "
                f"{path}. Use this exact content to analyze and answer the user's "
                f"question. Do not make up or guess what the file contains."
            )
    return f"Tool: {tool}\nResult:\n{text}"


__all__ = [
    "AgentRunResult",
    "ChatOrchestrator",
    "MAX_ITERATIONS_WARNING",
    "NOT_INITIALIZED_ERROR",
    "TURN_SEPARATOR",
    "result_marker",
]
