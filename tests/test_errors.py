"""Tests for cognitive_ide.errors — hierarchy, messages and to_dict."""

from __future__ import annotations

import pytest

from cognitive_ide.errors import (
    AccessDeniedError,
    ExecutionError,
    IDEError,
    ProviderError,
    RateLimitError,
    UnknownToolError,
    ValidationError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc",
        [
            ValidationError("bad"),
            AccessDeniedError("/etc/x", "path contains blocked pattern"),
            RateLimitError("cooldown", "slow down", limit=2000),
            ExecutionError("grep", "boom"),
            UnknownToolError("nope", ["grep"]),
            ProviderError("down"),
        ],
    )
    def test_all_subclass_ide_error(self, exc) -> None:
        assert isinstance(exc, IDEError)
        assert isinstance(exc, Exception)


class TestMessages:
    def test_access_denied_message(self) -> None:
        exc = AccessDeniedError("../x", "path contains blocked pattern")
        assert str(exc) == "Access denied: path contains blocked pattern"
        assert exc.path == "../x"

    def test_unknown_tool_message(self) -> None:
        exc = UnknownToolError("delete_all", ["grep", "read_file"])
        assert str(exc) == "Unknown tool: delete_all"
        assert exc.available_tools == ["grep", "read_file"]

    def test_rate_limit_fields(self) -> None:
        exc = RateLimitError("session", "Session limit exceeded", limit=100)
        assert exc.kind == "session"
        assert exc.limit == 100
        assert str(exc) == "Session limit exceeded"


class TestToDict:
    def test_base(self) -> None:
        assert IDEError("oops").to_dict() == {"error": "IDEError", "message": "oops"}

    def test_validation_detail(self) -> None:
        d = ValidationError("Query is required", tool_name="grep", field="query").to_dict()
        assert d == {
            "error": "ValidationError",
            "message": "Query is required",
            "tool_name": "grep",
            "field": "query",
        }

    def test_provider_status_code(self) -> None:
        d = ProviderError("API 401: bad key", provider="openai", status_code=401).to_dict()
        assert d["status_code"] == 401
        assert d["provider"] == "openai"

    def test_provider_without_optional_fields(self) -> None:
        d = ProviderError("down").to_dict()
        assert "status_code" not in d
        assert "provider" not in d
