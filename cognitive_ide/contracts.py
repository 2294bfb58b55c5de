"""Agent runtime contracts — Pydantic models shared by every component.

Tool calls, tool results, conversation messages, collaborator payloads and
the per-tool request schemas all live here.  All models are frozen
(immutable after creation).

The per-tool request models are the single place where the loose argument
spellings models like to emit (``Query``, ``SearchPath``, ``FilePath``,
``includePattern`` …) are normalised to canonical field names.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Tool calls and results
# ---------------------------------------------------------------------------


class ToolCall(BaseModel):
    """A tool invocation found inside model-generated text.

    ``raw`` is the exact source substring, so
    ``text[call.start_index:call.end_index] == call.raw`` always holds.
    """

    model_config = ConfigDict(frozen=True)

    tool: str
    args: dict[str, Any] = Field(default_factory=dict)
    raw: str
    start_index: int = Field(..., ge=0)

    @property
    def end_index(self) -> int:
        return self.start_index + len(self.raw)

    @property
    def dedup_key(self) -> tuple[str, str, int]:
        """``(tool, serialized args, source offset)``."""
        return (
            self.tool,
            json.dumps(self.args, sort_keys=True, default=str),
            self.start_index,
        )


class ToolResult(BaseModel):
    """Structured result from any tool invocation.

    Use the ``ok`` / ``fail`` factory class methods for clean construction.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    data: dict[str, Any] | None = None
    formatted: str | None = None
    error: str | None = None
    duration_ms: int = 0

    @classmethod
    def ok(
        cls,
        data: dict[str, Any],
        *,
        formatted: str | None = None,
        duration_ms: int = 0,
    ) -> ToolResult:
        """Create a successful result."""
        return cls(success=True, data=data, formatted=formatted, duration_ms=duration_ms)

    @classmethod
    def fail(cls, error: str, *, duration_ms: int = 0) -> ToolResult:
        """Create a failure result."""
        return cls(success=False, error=error, duration_ms=duration_ms)


class ToolExecution(BaseModel):
    """One parsed call paired with the result it produced."""

    model_config = ConfigDict(frozen=True)

    call: ToolCall
    result: ToolResult


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class ModelRef(BaseModel):
    """Which provider adapter to use and which model id to ask for."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    provider: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------


class SanitizedPath(BaseModel):
    """Outcome of sandbox path resolution.  Recomputed per call."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    path: str = ""
    error: str | None = None


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class DirEntry(BaseModel):
    """A directory listing entry from the filesystem collaborator."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str
    is_dir: bool = False
    children: list[DirEntry] | None = None


class SearchOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    query: str
    case_sensitive: bool = False
    whole_word: bool = False
    regex: bool = False
    include_pattern: str = ""
    exclude_pattern: str = ""


class SearchHit(BaseModel):
    """A single matching line reported by the search collaborator."""

    model_config = ConfigDict(frozen=True)

    line: int = Field(..., ge=1, description="1-based line number")
    char_start: int = Field(0, ge=0)
    char_end: int = Field(0, ge=0)
    line_text: str


class SearchFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    path: str


class SearchFileResult(BaseModel):
    """All hits for one file."""

    model_config = ConfigDict(frozen=True)

    file: SearchFile
    matches: list[SearchHit] = Field(default_factory=list)


DirEntry.model_rebuild()


# ---------------------------------------------------------------------------
# Per-tool request models
# ---------------------------------------------------------------------------


def _require(value: str | None, message: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(message)
    return value


class GrepRequest(BaseModel):
    """Request schema for the ``grep`` tool."""

    model_config = ConfigDict(frozen=True)

    query: str = Field(
        default="",
        validate_default=True,
        validation_alias=AliasChoices("query", "Query"),
        description="Text or regex to search for",
    )
    path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("path", "Path", "SearchPath", "search_path"),
        description="Directory to search (default: workspace root)",
    )
    case_sensitive: bool = Field(
        default=False,
        validation_alias=AliasChoices("case_sensitive", "caseSensitive", "CaseSensitive"),
    )
    whole_word: bool = Field(
        default=False,
        validation_alias=AliasChoices("whole_word", "wholeWord", "WholeWord"),
    )
    regex: bool = Field(
        default=False,
        validation_alias=AliasChoices("regex", "Regex", "isRegex", "is_regex"),
    )
    include_pattern: str = Field(
        default="",
        validation_alias=AliasChoices(
            "include_pattern", "includePattern", "Includes", "include", "glob"
        ),
        description="Glob of files to include (e.g. '*.ts')",
    )
    exclude_pattern: str = Field(
        default="",
        validation_alias=AliasChoices(
            "exclude_pattern", "excludePattern", "Excludes", "exclude"
        ),
    )
    max_results: int = Field(
        default=100,
        ge=1,
        validation_alias=AliasChoices("max_results", "maxResults", "MaxResults"),
    )

    @field_validator("query")
    @classmethod
    def _query_required(cls, value: str) -> str:
        return _require(value, "Query is required")


class FindByNameRequest(BaseModel):
    """Request schema for the ``find_by_name`` tool."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(
        default="",
        validate_default=True,
        validation_alias=AliasChoices("pattern", "Pattern", "name"),
        description="File name glob, e.g. '*.tsx'",
    )
    path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("path", "Path", "SearchDirectory", "directory"),
    )
    type: Literal["file", "dir", "all"] = Field(
        default="all",
        validation_alias=AliasChoices("type", "Type"),
    )
    max_depth: int = Field(
        default=10,
        ge=0,
        validation_alias=AliasChoices("max_depth", "maxDepth", "MaxDepth"),
    )
    max_results: int = Field(
        default=50,
        ge=1,
        validation_alias=AliasChoices("max_results", "maxResults", "MaxResults"),
    )

    @field_validator("pattern")
    @classmethod
    def _pattern_required(cls, value: str) -> str:
        return _require(value, "Pattern is required")

    @field_validator("type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class ListDirRequest(BaseModel):
    """Request schema for the ``list_dir`` tool."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(
        default="",
        validate_default=True,
        validation_alias=AliasChoices("path", "Path", "DirectoryPath", "directory"),
    )
    recursive: bool = Field(default=False, validation_alias=AliasChoices("recursive", "Recursive"))
    max_depth: int = Field(
        default=3,
        ge=0,
        validation_alias=AliasChoices("max_depth", "maxDepth", "MaxDepth"),
    )
    show_hidden: bool = Field(
        default=False,
        validation_alias=AliasChoices("show_hidden", "showHidden", "ShowHidden"),
    )

    @field_validator("path")
    @classmethod
    def _path_required(cls, value: str) -> str:
        return _require(value, "Path is required")


class ReadFileRequest(BaseModel):
    """Request schema for the ``read_file`` tool."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(
        default="",
        validate_default=True,
        validation_alias=AliasChoices("path", "Path", "file_path", "filePath", "FilePath"),
    )

    @field_validator("path")
    @classmethod
    def _path_required(cls, value: str) -> str:
        return _require(value, "Path is required")


class FileInfoRequest(BaseModel):
    """Request schema for the ``file_info`` tool."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(
        default="",
        validate_default=True,
        validation_alias=AliasChoices("path", "Path", "file_path", "filePath", "FilePath"),
    )

    @field_validator("path")
    @classmethod
    def _path_required(cls, value: str) -> str:
        return _require(value, "Path is required")
