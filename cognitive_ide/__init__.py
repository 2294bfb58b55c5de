"""Agentic tool-calling runtime for a code editor's chat assistant.

Public API
----------
Orchestrator::

    ChatOrchestrator, AgentRunResult

Gateway::

    ToolGateway, ChunkOutcome, ResponseOutcome, make_stream_handler

Executor / registry::

    ToolExecutor, Registry

Parser::

    parse_tool_calls, has_tool_calls, strip_tool_calls,
    collapse_blank_lines, VisibleStreamFilter

Sandbox::

    sanitize_path

Rate limiting::

    RateLimiter, RateLimitConfig, RateLimitStatus

Providers::

    ChatProvider, ProviderRegistry, OpenAICompatibleProvider

Backends::

    FileSystem, SearchBackend, LocalFileSystem, LocalSearch

Contracts (Pydantic models)::

    ToolCall, ToolResult, ToolExecution, ChatMessage, ModelRef,
    SanitizedPath, DirEntry, SearchOptions, SearchHit, SearchFileResult

Errors::

    IDEError, ValidationError, AccessDeniedError, RateLimitError,
    ExecutionError, UnknownToolError, ProviderError
"""

from cognitive_ide.backends import FileSystem, LocalFileSystem, LocalSearch, SearchBackend
from cognitive_ide.contracts import (
    ChatMessage,
    DirEntry,
    ModelRef,
    SanitizedPath,
    SearchFileResult,
    SearchHit,
    SearchOptions,
    ToolCall,
    ToolExecution,
    ToolResult,
)
from cognitive_ide.errors import (
    AccessDeniedError,
    ExecutionError,
    IDEError,
    ProviderError,
    RateLimitError,
    UnknownToolError,
    ValidationError,
)
from cognitive_ide.executor import ToolExecutor
from cognitive_ide.gateway import ChunkOutcome, ResponseOutcome, ToolGateway, make_stream_handler
from cognitive_ide.orchestrator import AgentRunResult, ChatOrchestrator
from cognitive_ide.parser import (
    VisibleStreamFilter,
    collapse_blank_lines,
    has_tool_calls,
    parse_tool_calls,
    strip_tool_calls,
)
from cognitive_ide.providers import ChatProvider, OpenAICompatibleProvider, ProviderRegistry
from cognitive_ide.rate_limit import RateLimitConfig, RateLimiter, RateLimitStatus
from cognitive_ide.registry import Registry
from cognitive_ide.sanitiser import sanitize_path

__all__ = [
    # Orchestrator
    "AgentRunResult",
    "ChatOrchestrator",
    # Gateway
    "ChunkOutcome",
    "ResponseOutcome",
    "ToolGateway",
    "make_stream_handler",
    # Executor / registry
    "Registry",
    "ToolExecutor",
    # Parser
    "VisibleStreamFilter",
    "collapse_blank_lines",
    "has_tool_calls",
    "parse_tool_calls",
    "strip_tool_calls",
    # Sandbox
    "sanitize_path",
    # Rate limiting
    "RateLimitConfig",
    "RateLimitStatus",
    "RateLimiter",
    # Providers
    "ChatProvider",
    "OpenAICompatibleProvider",
    "ProviderRegistry",
    # Backends
    "FileSystem",
    "LocalFileSystem",
    "LocalSearch",
    "SearchBackend",
    # Contracts
    "ChatMessage",
    "DirEntry",
    "ModelRef",
    "SanitizedPath",
    "SearchFileResult",
    "SearchHit",
    "SearchOptions",
    "ToolCall",
    "ToolExecution",
    "ToolResult",
    # Errors
    "AccessDeniedError",
    "ExecutionError",
    "IDEError",
    "ProviderError",
    "RateLimitError",
    "UnknownToolError",
    "ValidationError",
]
