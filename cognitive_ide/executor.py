"""Sandboxed tool executor — the built-in workspace inspection catalog.

``ToolExecutor`` wires the five built-in tools into a ``Registry``:

* ``grep``          (aliases ``search``, ``grep_search``)
* ``find_by_name``  (alias ``find``)
* ``list_dir``      (alias ``ls``)
* ``read_file``     (alias ``read``)
* ``file_info``

Every path argument goes through ``sanitiser.resolve_path`` before the
filesystem / search collaborator sees it.  Handlers raise typed
``IDEError`` subclasses; the registry turns them into failed
``ToolResult`` objects so nothing escapes ``execute``.

``formatted`` strings never contain the absolute workspace root: paths
are shown workspace-relative or with the root replaced by ``~``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Iterable, Sequence

from pydantic import BaseModel

from cognitive_ide.backends import FileSystem, SearchBackend
from cognitive_ide.contracts import (
    DirEntry,
    FileInfoRequest,
    FindByNameRequest,
    GrepRequest,
    ListDirRequest,
    ReadFileRequest,
    SearchFileResult,
    SearchOptions,
    ToolResult,
)
from cognitive_ide.errors import AccessDeniedError, ExecutionError, ValidationError
from cognitive_ide.registry import Registry
from cognitive_ide.sanitiser import (
    DEFAULT_ALLOWED_PREFIXES,
    display_path,
    mask_workspace,
    relative_path,
    resolve_path,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_HITS_PER_FILE_DISPLAY: int = 5
MAX_LINE_TEXT_DISPLAY: int = 200

_SIZE_UNITS = ("B", "KB", "MB", "GB")


class ToolExecutor:
    """Validates, sandboxes and runs tool calls for one workspace."""

    def __init__(
        self,
        workspace: str,
        filesystem: FileSystem,
        search: SearchBackend,
        *,
        allowed_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES,
    ) -> None:
        if not workspace or not workspace.strip():
            raise ValueError("workspace must be a non-empty path")
        root = workspace.strip().replace("\\", "/")
        self._workspace = root.rstrip("/") or "/"
        self._fs = filesystem
        self._search = search
        self._allowed_prefixes = tuple(allowed_prefixes)
        self._registry = Registry()
        self._register_builtin_tools()

    @property
    def workspace(self) -> str:
        return self._workspace

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, tool_name: str, args: dict[str, Any] | None) -> ToolResult:
        """Run *tool_name* with *args*.  Never raises."""
        logger.debug("[executor] tool=%s args=%s", tool_name, args)
        if args is not None and not isinstance(args, dict):
            return ToolResult.fail(f"Invalid params for '{tool_name}': args must be an object")
        result = await self._registry.dispatch(tool_name, args or {})
        if not result.success:
            logger.info("[executor:error] tool=%s error=%s", tool_name, result.error)
        return result

    def register_tool(
        self,
        name: str,
        handler: Callable,
        request_model: type[BaseModel],
        description: str,
        aliases: Iterable[str] = (),
    ) -> None:
        """Add a custom tool.  *handler* receives the validated request model."""
        self._registry.register(name, handler, request_model, description, aliases)

    def available_tools(self) -> list[str]:
        """Every dispatchable name, aliases included."""
        return self._registry.all_names()

    def tool_definitions(self) -> list[dict[str, Any]]:
        return self._registry.list_tools()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _register_builtin_tools(self) -> None:
        self._registry.register(
            "grep",
            self._grep,
            GrepRequest,
            "Search file contents for a literal string or regex.",
            aliases=("search", "grep_search"),
        )
        self._registry.register(
            "find_by_name",
            self._find_by_name,
            FindByNameRequest,
            "Find files or directories whose name matches a glob.",
            aliases=("find",),
        )
        self._registry.register(
            "list_dir",
            self._list_dir,
            ListDirRequest,
            "List the entries of a directory.",
            aliases=("ls",),
        )
        self._registry.register(
            "read_file",
            self._read_file,
            ReadFileRequest,
            "Read the full text of a file.",
            aliases=("read",),
        )
        self._registry.register(
            "file_info",
            self._file_info,
            FileInfoRequest,
            "Get the size of a file.",
        )

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------

    def _resolve(self, path: str | None) -> str:
        """Sandbox *path*; ``None`` means the workspace root."""
        if path is None:
            return self._workspace
        try:
            return resolve_path(path, self._workspace, self._allowed_prefixes)
        except AccessDeniedError:
            logger.warning("[executor:deny] path=%r workspace=%s", path, self._workspace)
            raise
        except ValueError as exc:
            raise ValidationError(str(exc), field="path") from exc

    def _mask(self, exc: Exception) -> str:
        return mask_workspace(str(exc), self._workspace)

    # ------------------------------------------------------------------
    # grep
    # ------------------------------------------------------------------

    async def _grep(self, req: GrepRequest) -> ToolResult:
        root = self._resolve(req.path)
        options = SearchOptions(
            query=req.query,
            case_sensitive=req.case_sensitive,
            whole_word=req.whole_word,
            regex=req.regex,
            include_pattern=req.include_pattern,
            exclude_pattern=req.exclude_pattern,
        )

        try:
            results = await self._search.search(root, options)
        except re.error as exc:
            raise ValidationError(f"Invalid regex: {exc}", tool_name="grep", field="query") from exc
        except Exception as exc:
            raise ExecutionError("grep", f"Search failed: {self._mask(exc)}") from exc

        # Global cap: trim per-file hit lists until max_results is reached
        limited: list[SearchFileResult] = []
        total_matches = 0
        truncated = False
        for result in results:
            if not result.matches:
                continue
            remaining = req.max_results - total_matches
            kept = result.matches[: max(remaining, 0)]
            if len(kept) < len(result.matches):
                truncated = True
            if kept:
                limited.append(SearchFileResult(file=result.file, matches=kept))
                total_matches += len(kept)

        return ToolResult.ok(
            {
                "results": [r.model_dump() for r in limited],
                "total_files": len(limited),
                "total_matches": total_matches,
                "truncated": truncated,
            },
            formatted=self._format_grep(limited, req.query, root, total_matches),
        )

    def _format_grep(
        self,
        results: list[SearchFileResult],
        query: str,
        root: str,
        total_matches: int,
    ) -> str:
        files = [
            {
                "name": r.file.name,
                "path": relative_path(r.file.path, self._workspace),
                "matchCount": len(r.matches),
                "matches": [
                    {"line": m.line, "text": m.line_text.strip()[:MAX_LINE_TEXT_DISPLAY]}
                    for m in r.matches[:MAX_HITS_PER_FILE_DISPLAY]
                ],
            }
            for r in results
        ]
        return _compact_json(
            {
                "type": "search-results",
                "query": query,
                "path": display_path(root, self._workspace),
                "totalFiles": len(results),
                "totalMatches": total_matches,
                "files": files,
            }
        )

    # ------------------------------------------------------------------
    # find_by_name
    # ------------------------------------------------------------------

    async def _find_by_name(self, req: FindByNameRequest) -> ToolResult:
        root = self._resolve(req.path)
        name_re = glob_to_regex(req.pattern)

        try:
            entries = await self._fs.read_dir(root, max_depth=req.max_depth)
        except Exception as exc:
            raise ExecutionError("find_by_name", f"Failed to list directory: {self._mask(exc)}") from exc

        matches: list[dict[str, Any]] = []

        def visit(entry: DirEntry, depth: int) -> None:
            if depth > req.max_depth or len(matches) >= req.max_results:
                return
            wanted = (
                req.type == "all"
                or (req.type == "dir" and entry.is_dir)
                or (req.type == "file" and not entry.is_dir)
            )
            if wanted and name_re.fullmatch(entry.name):
                matches.append(
                    {"name": entry.name, "path": entry.path, "is_dir": entry.is_dir, "depth": depth}
                )
            for child in entry.children or ():
                if len(matches) >= req.max_results:
                    break
                visit(child, depth + 1)

        for entry in entries:
            if len(matches) >= req.max_results:
                break
            visit(entry, 0)

        formatted = _compact_json(
            {
                "type": "find-results",
                "pattern": req.pattern,
                "path": display_path(root, self._workspace),
                "totalFiles": len(matches),
                "files": [
                    {
                        "name": m["name"],
                        "path": relative_path(m["path"], self._workspace),
                        "isDir": m["is_dir"],
                    }
                    for m in matches
                ],
            }
        )
        return ToolResult.ok(
            {
                "matches": matches,
                "total": len(matches),
                "truncated": len(matches) >= req.max_results,
            },
            formatted=formatted,
        )

    # ------------------------------------------------------------------
    # list_dir
    # ------------------------------------------------------------------

    async def _list_dir(self, req: ListDirRequest) -> ToolResult:
        root = self._resolve(req.path)
        fetch_depth = req.max_depth if req.recursive else 0

        try:
            raw_entries = await self._fs.read_dir(root, max_depth=fetch_depth)
        except Exception as exc:
            raise ExecutionError("list_dir", f"Failed to list directory: {self._mask(exc)}") from exc

        entries = _process_entries(raw_entries, req, depth=0)
        flat = _flatten(entries)

        formatted = _compact_json(
            {
                "type": "list-dir-results",
                "path": display_path(root, self._workspace),
                "totalItems": len(flat),
                "files": flat,
            }
        )
        return ToolResult.ok(
            {
                "path": root,
                "entries": [e.model_dump() for e in entries],
                "total": len(flat),
            },
            formatted=formatted,
        )

    # ------------------------------------------------------------------
    # read_file / file_info
    # ------------------------------------------------------------------

    async def _read_file(self, req: ReadFileRequest) -> ToolResult:
        full_path = self._resolve(req.path)
        try:
            content = await self._fs.read_file(full_path)
        except Exception as exc:
            raise ExecutionError("read_file", f"Failed to read file: {self._mask(exc)}") from exc

        line_count = len(content.split("\n"))
        shown = relative_path(full_path, self._workspace)
        return ToolResult.ok(
            {
                "path": full_path,
                "content": content,
                "lines": line_count,
                "size": len(content),
            },
            formatted=f"📄 {shown} ({line_count} lines)\n```\n{content}\n```",
        )

    async def _file_info(self, req: FileInfoRequest) -> ToolResult:
        full_path = self._resolve(req.path)
        try:
            size = await self._fs.file_size(full_path)
        except Exception as exc:
            raise ExecutionError("file_info", f"Failed to get file info: {self._mask(exc)}") from exc

        name = full_path.rstrip("/").rsplit("/", 1)[-1] or full_path
        size_text = format_file_size(size)
        return ToolResult.ok(
            {
                "path": full_path,
                "name": name,
                "size": size,
                "size_formatted": size_text,
            },
            formatted=f"📄 {name}: {size_text}",
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a file-name glob (``*`` / ``?`` only) to an anchored regex."""
    parts: list[str] = []
    for ch in pattern.strip():
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.IGNORECASE)


def format_file_size(size: int) -> str:
    """``512 B``, ``1.5 KB``, ``3.2 MB`` …"""
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{value:.1f} {_SIZE_UNITS[unit]}"


def _process_entries(entries: list[DirEntry], req: ListDirRequest, *, depth: int) -> list[DirEntry]:
    processed: list[DirEntry] = []
    for entry in entries:
        if not req.show_hidden and entry.name.startswith("."):
            continue
        children: list[DirEntry] | None = None
        if req.recursive and entry.is_dir and depth < req.max_depth and entry.children is not None:
            children = _process_entries(entry.children, req, depth=depth + 1)
        processed.append(
            DirEntry(name=entry.name, path=entry.path, is_dir=entry.is_dir, children=children)
        )
    processed.sort(key=lambda e: (not e.is_dir, e.name.lower()))
    return processed


def _flatten(entries: list[DirEntry], prefix: str = "") -> list[dict[str, Any]]:
    flat: list[dict[str, Any]] = []
    for entry in entries:
        item_path = f"{prefix}/{entry.name}" if prefix else entry.name
        flat.append({"name": entry.name, "path": item_path, "isDir": entry.is_dir})
        if entry.children:
            flat.extend(_flatten(entry.children, item_path))
    return flat


def _compact_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


__all__ = ["ToolExecutor", "format_file_size", "glob_to_regex"]
