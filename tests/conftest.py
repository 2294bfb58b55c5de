"""Shared test fixtures — in-memory collaborators and pinned settings.

Provides:
- ``pin_settings`` — autouse fixture that swaps in deterministic settings
- ``FakeFileSystem`` / ``FakeSearch`` — in-memory workspace collaborators
- ``ScriptedProvider`` — chat provider that replays canned model turns
- ``FakeClock`` — manually advanced clock for the rate limiter
"""

from __future__ import annotations

import asyncio
from typing import Iterable

import pytest

from cognitive_ide import config
from cognitive_ide.contracts import (
    DirEntry,
    SearchFile,
    SearchFileResult,
    SearchHit,
    SearchOptions,
)
from cognitive_ide.executor import ToolExecutor

WORKSPACE = "/ws"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: tests touching the real filesystem (tmp_path)",
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> config.Settings:
    """Deterministic settings; no ``.env`` file is read."""
    values = {
        "MAX_AGENT_ITERATIONS": 10,
        "TOOL_MAX_CALLS_PER_MINUTE": 30,
        "TOOL_MAX_CALLS_PER_SESSION": 100,
        "TOOL_COOLDOWN_MS": 0,
        "USER_OS": "linux",
        "LLM_API_KEY": "",
    }
    values.update(overrides)
    return config.Settings(_env_file=None, **values)


@pytest.fixture(autouse=True)
def pin_settings(monkeypatch):
    """Every test sees the same settings regardless of the environment."""
    pinned = make_settings()
    monkeypatch.setattr(config, "settings", pinned)
    return pinned


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeFileSystem:
    """``FileSystem`` over a ``{absolute path: content}`` dict.

    Parent directories of every file are implied; extra empty directories
    can be passed in *dirs*.
    """

    def __init__(self, files: dict[str, str], dirs: Iterable[str] = ()) -> None:
        self.files = dict(files)
        self.dirs: set[str] = set(dirs)
        for path in list(self.files) + list(self.dirs):
            parts = path.split("/")
            for i in range(2, len(parts)):
                self.dirs.add("/".join(parts[:i]))
        self.reads: list[str] = []
        self.listed: list[tuple[str, int]] = []

    async def read_file(self, path: str) -> str:
        self.reads.append(path)
        if path not in self.files:
            raise FileNotFoundError(f"No such file: {path}")
        return self.files[path]

    async def file_size(self, path: str) -> int:
        if path not in self.files:
            raise FileNotFoundError(f"No such file: {path}")
        return len(self.files[path].encode("utf-8"))

    async def read_dir(self, path: str, *, max_depth: int = 0) -> list[DirEntry]:
        self.listed.append((path, max_depth))
        if path not in self.dirs:
            raise FileNotFoundError(f"No such directory: {path}")
        return self._list(path, max_depth)

    def _list(self, path: str, depth_left: int) -> list[DirEntry]:
        prefix = path.rstrip("/") + "/"
        names = {
            p[len(prefix):].split("/")[0]
            for p in (*self.files, *self.dirs)
            if p.startswith(prefix) and len(p) > len(prefix)
        }
        entries = []
        for name in sorted(names):
            full = prefix + name
            is_dir = full in self.dirs
            children = self._list(full, depth_left - 1) if is_dir and depth_left > 0 else None
            entries.append(DirEntry(name=name, path=full, is_dir=is_dir, children=children))
        return entries


class FakeSearch:
    """``SearchBackend`` returning canned results and recording queries."""

    def __init__(
        self,
        results: list[SearchFileResult] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.results = results or []
        self.error = error
        self.calls: list[tuple[str, SearchOptions]] = []

    async def search(self, root: str, options: SearchOptions) -> list[SearchFileResult]:
        self.calls.append((root, options))
        if self.error is not None:
            raise self.error
        return self.results


def search_result(path: str, lines: Iterable[tuple[int, str]]) -> SearchFileResult:
    """Build a ``SearchFileResult`` from ``(line number, text)`` pairs."""
    return SearchFileResult(
        file=SearchFile(name=path.rsplit("/", 1)[-1], path=path),
        matches=[SearchHit(line=n, line_text=text) for n, text in lines],
    )


class ScriptedProvider:
    """``ChatProvider`` that replays one scripted turn per request.

    A turn is a list of chunks or an exception to raise.  Once the script
    runs out every further request answers ``"Done."``.
    """

    def __init__(self, turns: list | None = None, title: object = "A Title") -> None:
        self.turns = list(turns or [])
        self.title = title
        self.requests: list[list] = []
        self.title_requests: list[tuple[str, str, str]] = []

    async def send_chat_request(self, model_id, messages, on_chunk, cancel_event=None) -> None:
        self.requests.append(list(messages))
        turn = self.turns.pop(0) if self.turns else ["Done."]
        if isinstance(turn, Exception):
            raise turn
        for chunk in turn:
            result = on_chunk(chunk)
            if asyncio.iscoroutine(result):
                await result

    async def generate_title(self, model_id, user_message, assistant_response) -> str:
        self.title_requests.append((model_id, user_message, assistant_response))
        if isinstance(self.title, Exception):
            raise self.title
        return self.title


class FakeClock:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


SAMPLE_FILES: dict[str, str] = {
    f"{WORKSPACE}/src/a.py": "print('hi')",
    f"{WORKSPACE}/src/b.py": "import os\nprint(os.getcwd())\n",
    f"{WORKSPACE}/README.md": "# Sample\n",
    f"{WORKSPACE}/.env": "SECRET=1",
}


@pytest.fixture
def fake_fs() -> FakeFileSystem:
    return FakeFileSystem(SAMPLE_FILES)


@pytest.fixture
def fake_search() -> FakeSearch:
    return FakeSearch()


@pytest.fixture
def executor(fake_fs, fake_search) -> ToolExecutor:
    return ToolExecutor(WORKSPACE, fake_fs, fake_search)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
