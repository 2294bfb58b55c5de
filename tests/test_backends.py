"""Tests for cognitive_ide.backends — local filesystem and search on a tmp tree."""

from __future__ import annotations

import re

import pytest

from cognitive_ide.backends import (
    FileSystem,
    LocalFileSystem,
    LocalSearch,
    SearchBackend,
    compile_query,
)
from cognitive_ide.contracts import SearchOptions
from cognitive_ide.executor import ToolExecutor

pytestmark = pytest.mark.integration


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.ts").write_text("const useState = 1;\nuseStateful();\n")
    (tmp_path / "src" / "util.py").write_text("def helper():\n    return 'USESTATE'\n")
    (tmp_path / "src" / "logo.png").write_bytes(b"useState")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "config").write_text("useState")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "lib.js").write_text("useState")
    (tmp_path / "README.md").write_text("# readme\n")
    return tmp_path


class TestProtocols:
    def test_local_classes_satisfy_protocols(self) -> None:
        assert isinstance(LocalFileSystem(), FileSystem)
        assert isinstance(LocalSearch(), SearchBackend)


# ── compile_query ───────────────────────────────────────────────────────

class TestCompileQuery:
    def test_literal_escaped(self) -> None:
        rx = compile_query(SearchOptions(query="a.b"))
        assert rx.search("a.b")
        assert not rx.search("axb")

    def test_case_insensitive_default(self) -> None:
        assert compile_query(SearchOptions(query="Foo")).search("foo")

    def test_case_sensitive(self) -> None:
        assert not compile_query(SearchOptions(query="Foo", case_sensitive=True)).search("foo")

    def test_whole_word(self) -> None:
        rx = compile_query(SearchOptions(query="use", whole_word=True))
        assert rx.search("we use it")
        assert not rx.search("useful")

    def test_regex(self) -> None:
        assert compile_query(SearchOptions(query=r"use\w+", regex=True)).search("useState")

    def test_invalid_regex(self) -> None:
        with pytest.raises(re.error):
            compile_query(SearchOptions(query="(", regex=True))


# ── LocalFileSystem ─────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLocalFileSystem:
    async def test_read_file(self, tree) -> None:
        content = await LocalFileSystem().read_file((tree / "README.md").as_posix())
        assert content == "# readme\n"

    async def test_file_size(self, tree) -> None:
        assert await LocalFileSystem().file_size((tree / "README.md").as_posix()) == 9

    async def test_read_dir_skips_vendor_dirs(self, tree) -> None:
        entries = await LocalFileSystem().read_dir(tree.as_posix())
        names = [e.name for e in entries]
        assert names == ["README.md", "src"]
        assert all(e.children is None for e in entries)

    async def test_read_dir_depth(self, tree) -> None:
        entries = await LocalFileSystem().read_dir(tree.as_posix(), max_depth=1)
        src = next(e for e in entries if e.name == "src")
        assert src.is_dir is True
        assert [c.name for c in src.children] == ["app.ts", "logo.png", "util.py"]
        assert src.children[0].path == (tree / "src" / "app.ts").as_posix()

    async def test_read_dir_on_file(self, tree) -> None:
        with pytest.raises(NotADirectoryError):
            await LocalFileSystem().read_dir((tree / "README.md").as_posix())


# ── LocalSearch ─────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLocalSearch:
    async def test_finds_hits_and_skips_binary_and_vendor(self, tree) -> None:
        results = await LocalSearch().search(tree.as_posix(), SearchOptions(query="useState"))
        by_name = {r.file.name: r for r in results}
        assert set(by_name) == {"app.ts", "util.py"}
        app = by_name["app.ts"]
        assert [m.line for m in app.matches] == [1, 2]
        assert app.matches[0].char_start == 6
        assert app.matches[0].char_end == 14
        assert app.matches[0].line_text == "const useState = 1;"

    async def test_include_and_exclude(self, tree) -> None:
        search = LocalSearch()
        only_ts = await search.search(
            tree.as_posix(), SearchOptions(query="useState", include_pattern="*.ts, *.tsx")
        )
        assert [r.file.name for r in only_ts] == ["app.ts"]
        no_ts = await search.search(
            tree.as_posix(), SearchOptions(query="useState", exclude_pattern="*.ts")
        )
        assert [r.file.name for r in no_ts] == ["util.py"]

    async def test_whole_word_case_sensitive(self, tree) -> None:
        results = await LocalSearch().search(
            tree.as_posix(),
            SearchOptions(query="useState", whole_word=True, case_sensitive=True),
        )
        assert len(results) == 1
        assert [m.line for m in results[0].matches] == [1]

    async def test_single_file_root(self, tree) -> None:
        results = await LocalSearch().search(
            (tree / "src" / "util.py").as_posix(), SearchOptions(query="helper")
        )
        assert results[0].matches[0].line == 1

    async def test_invalid_regex_raises(self, tree) -> None:
        with pytest.raises(re.error):
            await LocalSearch().search(tree.as_posix(), SearchOptions(query="(", regex=True))


# ── Executor over the real backends ─────────────────────────────────────

@pytest.mark.asyncio
class TestExecutorOnDisk:
    async def test_read_and_grep(self, tree) -> None:
        ex = ToolExecutor(tree.as_posix(), LocalFileSystem(), LocalSearch())
        read = await ex.execute("read_file", {"path": "README.md"})
        assert read.formatted == "📄 README.md (2 lines)\n```\n# readme\n\n```"
        grep = await ex.execute("grep", {"query": "helper", "path": "src"})
        assert grep.data["total_matches"] == 1
        assert tree.as_posix() not in grep.formatted

    async def test_invalid_regex_reported(self, tree) -> None:
        ex = ToolExecutor(tree.as_posix(), LocalFileSystem(), LocalSearch())
        result = await ex.execute("grep", {"query": "(", "regex": True})
        assert result.success is False
        assert result.error.startswith("Invalid regex:")
