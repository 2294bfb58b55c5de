"""Agent runtime error hierarchy.

Every error carries typed fields (not just a message string),
supports ``to_dict()`` for structured logging, and has a readable
``__str__`` that is safe to surface in a failed ``ToolResult``.

Tool-level errors never cross the executor / gateway boundary: they are
caught there and turned into ``ToolResult.fail``.  Only
``ProviderError`` reaches the orchestrator.
"""

from __future__ import annotations


class IDEError(Exception):
    """Base error for all agent runtime failures."""

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.detail}

    def __str__(self) -> str:
        return self.message


class ValidationError(IDEError):
    """A required tool argument is missing or has the wrong shape."""

    def __init__(self, message: str, *, tool_name: str = "", field: str = "") -> None:
        self.tool_name = tool_name
        self.field = field
        detail: dict = {}
        if tool_name:
            detail["tool_name"] = tool_name
        if field:
            detail["field"] = field
        super().__init__(message, detail=detail)


class AccessDeniedError(IDEError):
    """Path rejected by the workspace sandbox."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            f"Access denied: {reason}",
            detail={"path": path, "reason": reason},
        )


class RateLimitError(IDEError):
    """A tool call was refused by the rate limiter.

    ``kind`` is one of ``"session"``, ``"per_minute"`` or ``"cooldown"``.
    """

    def __init__(self, kind: str, message: str, *, limit: int) -> None:
        self.kind = kind
        self.limit = limit
        super().__init__(message, detail={"kind": kind, "limit": limit})


class ExecutionError(IDEError):
    """The filesystem / search collaborator failed while running a tool."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message, detail={"tool_name": tool_name})


class UnknownToolError(IDEError):
    """Requested tool name is not registered under any alias."""

    def __init__(self, tool_name: str, available_tools: list[str]) -> None:
        self.tool_name = tool_name
        self.available_tools = available_tools
        super().__init__(
            f"Unknown tool: {tool_name}",
            detail={"tool_name": tool_name, "available_tools": available_tools},
        )


class ProviderError(IDEError):
    """A model provider (network / backend) call failed."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        detail: dict = {}
        if provider:
            detail["provider"] = provider
        if status_code is not None:
            detail["status_code"] = status_code
        super().__init__(message, detail=detail)
