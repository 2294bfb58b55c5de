"""Workspace collaborators — filesystem and search contracts.

The executor never touches the disk directly; it talks to a ``FileSystem``
and a ``SearchBackend``.  Editors plug in their own implementations; the
``Local*`` classes here walk a real directory with ``os.walk`` / ``re`` and
push the blocking work onto a thread with ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

from cognitive_ide.contracts import (
    DirEntry,
    SearchFile,
    SearchFileResult,
    SearchHit,
    SearchOptions,
)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SKIP_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        "__pycache__",
        "node_modules",
        ".venv",
        "venv",
        ".tox",
        "dist",
        "build",
        "target",
        ".mypy_cache",
        ".pytest_cache",
    }
)

# Binary extensions skipped by the search walker
_BINARY_SKIP: frozenset[str] = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".ico", ".bmp", ".webp",
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        ".zip", ".tar", ".gz", ".bz2", ".xz", ".7z", ".rar",
        ".exe", ".dll", ".so", ".dylib",
        ".pyc", ".pyo", ".class", ".o", ".a", ".lib",
        ".bin", ".dat", ".pdf", ".doc", ".docx",
        ".sqlite", ".db",
    }
)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@runtime_checkable
class FileSystem(Protocol):
    """Read-only filesystem collaborator."""

    async def read_file(self, path: str) -> str: ...

    async def read_dir(self, path: str, *, max_depth: int = 0) -> list[DirEntry]:
        """List *path*; directory children are filled ``max_depth`` levels deep."""
        ...

    async def file_size(self, path: str) -> int: ...


@runtime_checkable
class SearchBackend(Protocol):
    """Full-text search collaborator."""

    async def search(self, root: str, options: SearchOptions) -> list[SearchFileResult]: ...


# ---------------------------------------------------------------------------
# Local filesystem
# ---------------------------------------------------------------------------


class LocalFileSystem:
    """``FileSystem`` over the local disk."""

    def __init__(self, *, skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRS) -> None:
        self._skip_dirs = skip_dirs

    async def read_file(self, path: str) -> str:
        return await asyncio.to_thread(
            Path(path).read_text, encoding="utf-8", errors="replace"
        )

    async def read_dir(self, path: str, *, max_depth: int = 0) -> list[DirEntry]:
        return await asyncio.to_thread(self._list, Path(path), max_depth)

    async def file_size(self, path: str) -> int:
        return await asyncio.to_thread(lambda: Path(path).stat().st_size)

    def _list(self, directory: Path, depth_left: int) -> list[DirEntry]:
        if not directory.is_dir():
            raise NotADirectoryError(f"Not a directory: {directory}")

        entries: list[DirEntry] = []
        for child in sorted(directory.iterdir(), key=lambda p: p.name):
            is_dir = child.is_dir()
            if is_dir and child.name in self._skip_dirs:
                continue
            children: list[DirEntry] | None = None
            if is_dir and depth_left > 0:
                try:
                    children = self._list(child, depth_left - 1)
                except OSError:
                    children = []
            entries.append(
                DirEntry(
                    name=child.name,
                    path=child.as_posix(),
                    is_dir=is_dir,
                    children=children,
                )
            )
        return entries


# ---------------------------------------------------------------------------
# Local search
# ---------------------------------------------------------------------------


class LocalSearch:
    """``SearchBackend`` that walks the tree and scans each text file."""

    def __init__(self, *, skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRS) -> None:
        self._skip_dirs = skip_dirs

    async def search(self, root: str, options: SearchOptions) -> list[SearchFileResult]:
        return await asyncio.to_thread(self._search, Path(root), options)

    def _search(self, root: Path, options: SearchOptions) -> list[SearchFileResult]:
        regex = compile_query(options)
        include = _split_globs(options.include_pattern)
        exclude = _split_globs(options.exclude_pattern)

        if root.is_file():
            candidates = [root]
        else:
            candidates = list(self._walk(root))

        results: list[SearchFileResult] = []
        for fpath in candidates:
            if fpath.suffix.lower() in _BINARY_SKIP:
                continue
            if include and not any(fnmatch.fnmatch(fpath.name, g) for g in include):
                continue
            if exclude and any(fnmatch.fnmatch(fpath.name, g) for g in exclude):
                continue

            try:
                content = fpath.read_text(encoding="utf-8", errors="replace")
            except OSError:
                continue

            hits: list[SearchHit] = []
            for i, line in enumerate(content.splitlines()):
                m = regex.search(line)
                if m is None:
                    continue
                hits.append(
                    SearchHit(
                        line=i + 1,
                        char_start=m.start(),
                        char_end=m.end(),
                        line_text=line,
                    )
                )
            if hits:
                results.append(
                    SearchFileResult(
                        file=SearchFile(name=fpath.name, path=fpath.as_posix()),
                        matches=hits,
                    )
                )
        return results

    def _walk(self, root: Path):
        for dirpath_str, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in self._skip_dirs)
            dirpath = Path(dirpath_str)
            for fname in sorted(filenames):
                yield dirpath / fname


def compile_query(options: SearchOptions) -> re.Pattern[str]:
    """Build the line matcher for *options*.

    Literal queries are escaped; ``whole_word`` wraps the pattern in
    ``\\b``.  Raises ``re.error`` for an invalid regex query.
    """
    flags = 0 if options.case_sensitive else re.IGNORECASE
    pattern = options.query if options.regex else re.escape(options.query)
    if options.whole_word:
        pattern = rf"\b(?:{pattern})\b"
    return re.compile(pattern, flags)


def _split_globs(value: str) -> list[str]:
    return [g.strip() for g in value.split(",") if g.strip()]


__all__ = [
    "DEFAULT_SKIP_DIRS",
    "FileSystem",
    "LocalFileSystem",
    "LocalSearch",
    "SearchBackend",
    "compile_query",
]
