"""Tests for cognitive_ide.parser — JSON + shorthand detection and display filtering."""

from __future__ import annotations

import pytest

from cognitive_ide.parser import (
    VisibleStreamFilter,
    clean_response,
    collapse_blank_lines,
    has_tool_calls,
    parse_tool_calls,
    strip_tool_calls,
)


def _feed_all(chunks: list[str]) -> tuple[list[str], str]:
    f = VisibleStreamFilter()
    outputs = [f.feed(c) for c in chunks]
    outputs.append(f.flush())
    return outputs, "".join(outputs)


# ── JSON calls ──────────────────────────────────────────────────────────

class TestJsonCalls:
    def test_single_call(self) -> None:
        text = 'Let me look. {"tool": "read_file", "args": {"path": "src/App.tsx"}} ok'
        calls = parse_tool_calls(text)
        assert len(calls) == 1
        call = calls[0]
        assert call.tool == "read_file"
        assert call.args == {"path": "src/App.tsx"}
        assert text[call.start_index:call.end_index] == call.raw
        assert call.raw.startswith("{") and call.raw.endswith("}")

    def test_nested_args(self) -> None:
        text = '{"tool": "grep", "args": {"query": "a", "opts": {"x": [1, {"y": 2}]}}}'
        calls = parse_tool_calls(text)
        assert len(calls) == 1
        assert calls[0].args == {"query": "a", "opts": {"x": [1, {"y": 2}]}}
        assert calls[0].raw == text

    def test_braces_inside_strings(self) -> None:
        text = '{"tool":"grep","args":{"query":"} { ]"}}'
        calls = parse_tool_calls(text)
        assert len(calls) == 1
        assert calls[0].args == {"query": "} { ]"}

    def test_escaped_quote_inside_string(self) -> None:
        text = r'{"tool":"grep","args":{"query":"say \"}\""}}'
        calls = parse_tool_calls(text)
        assert calls[0].args == {"query": 'say "}"'}

    def test_multiline(self) -> None:
        text = '{\n  "tool": "list_dir",\n  "args": {\n    "path": "src"\n  }\n}'
        calls = parse_tool_calls(text)
        assert calls[0].tool == "list_dir"
        assert calls[0].args == {"path": "src"}

    def test_incomplete_object_not_reported(self) -> None:
        partial = '{"tool": "grep", "args": {"query": "x"'
        assert parse_tool_calls(partial) == []
        assert len(parse_tool_calls(partial + "}}")) == 1

    def test_malformed_candidate_skipped(self) -> None:
        text = 'bad {"tool": grep} then {"tool": "list_dir", "args": {"path": "src"}}'
        calls = parse_tool_calls(text)
        assert [c.tool for c in calls] == ["list_dir"]

    def test_prose_braces_ignored(self) -> None:
        text = 'use {x} and {"tool":"read_file","args":{"path":"a.py"}}'
        calls = parse_tool_calls(text)
        assert len(calls) == 1
        assert calls[0].start_index == text.index('{"tool"')

    def test_wrapped_in_invalid_outer_braces(self) -> None:
        text = 'wrapper { {"tool":"read_file","args":{"path":"a"}} }'
        calls = parse_tool_calls(text)
        assert len(calls) == 1
        assert calls[0].args == {"path": "a"}

    def test_missing_args_defaults_to_empty(self) -> None:
        calls = parse_tool_calls('{"tool": "list_dir"}')
        assert calls[0].args == {}

    def test_key_order_irrelevant(self) -> None:
        calls = parse_tool_calls('{"args": {"path": "x"}, "tool": "read_file"}')
        assert calls[0].tool == "read_file"

    @pytest.mark.parametrize(
        "text",
        [
            '{"tool": "grep", "args": "x"}',
            '{"tool": "", "args": {}}',
            '{"tool": 3, "args": {}}',
            '{"name": "grep", "args": {}}',
        ],
    )
    def test_invalid_shapes_skipped(self, text) -> None:
        assert parse_tool_calls(text) == []


# ── Shorthand calls ─────────────────────────────────────────────────────

class TestShorthandCalls:
    def test_grep(self) -> None:
        calls = parse_tool_calls("[[GREP:useState]]")
        assert calls[0].tool == "grep"
        assert calls[0].args == {"query": "useState"}

    @pytest.mark.parametrize(
        "tag,tool,field",
        [
            ("SEARCH", "grep", "query"),
            ("FIND", "find_by_name", "pattern"),
            ("LIST_DIR", "list_dir", "path"),
            ("LS", "list_dir", "path"),
            ("READ", "read_file", "path"),
            ("READ_FILE", "read_file", "path"),
            ("FILE_INFO", "file_info", "path"),
        ],
    )
    def test_tag_mapping(self, tag, tool, field) -> None:
        calls = parse_tool_calls(f"[[{tag}:src/x]]")
        assert calls[0].tool == tool
        assert calls[0].args == {field: "src/x"}

    def test_lowercase_tag(self) -> None:
        assert parse_tool_calls("[[read:a.py]]")[0].tool == "read_file"

    def test_key_value_extras_coerced(self) -> None:
        calls = parse_tool_calls("[[FIND:*.ts|type=file|max_depth=2|ratio=1.5|regex=true]]")
        assert calls[0].args == {
            "pattern": "*.ts",
            "type": "file",
            "max_depth": 2,
            "ratio": 1.5,
            "regex": True,
        }

    def test_pipe_without_equals_stays_in_positional(self) -> None:
        assert parse_tool_calls("[[GREP:a|b]]")[0].args == {"query": "a|b"}

    def test_unknown_tag_ignored(self) -> None:
        assert parse_tool_calls("[[DELETE:everything]]") == []

    def test_result_markers_are_not_calls(self) -> None:
        assert parse_tool_calls("[[TOOL_RESULT:grep:stuff]]") == []
        assert parse_tool_calls("[[TOOL_ERROR:grep:oops]]") == []

    def test_empty_positional_not_a_call(self) -> None:
        assert parse_tool_calls("[[READ:   ]]") == []

    def test_cannot_span_lines(self) -> None:
        assert parse_tool_calls("[[GREP:foo\nbar]]") == []

    def test_shorthand_inside_json_string_not_doubled(self) -> None:
        text = '{"tool":"grep","args":{"query":"[[GREP:x]]"}}'
        calls = parse_tool_calls(text)
        assert len(calls) == 1
        assert calls[0].args == {"query": "[[GREP:x]]"}


# ── Mixed / helpers ─────────────────────────────────────────────────────

class TestMixedAndHelpers:
    def test_document_order(self) -> None:
        text = '[[LS:src]] then {"tool": "read_file", "args": {"path": "a"}} then [[GREP:x]]'
        calls = parse_tool_calls(text)
        assert [c.tool for c in calls] == ["list_dir", "read_file", "grep"]
        starts = [c.start_index for c in calls]
        assert starts == sorted(starts)

    def test_spans_match_source(self) -> None:
        text = 'a [[READ:x.py]] b {"tool":"grep","args":{"query":"q"}} c'
        for call in parse_tool_calls(text):
            assert text[call.start_index:call.end_index] == call.raw

    def test_has_tool_calls(self) -> None:
        assert has_tool_calls("hello") is False
        assert has_tool_calls("") is False
        assert has_tool_calls('{"tool": "grep"') is False
        assert has_tool_calls("[[LS:src]]") is True

    def test_strip_tool_calls(self) -> None:
        text = 'A {"tool":"list_dir","args":{"path":"."}} B'
        assert strip_tool_calls(text) == "A  B"

    def test_strip_without_calls_is_identity(self) -> None:
        assert strip_tool_calls("plain text") == "plain text"

    def test_collapse_blank_lines(self) -> None:
        assert collapse_blank_lines("a\n\n\n\nb") == "a\n\nb"
        assert collapse_blank_lines("a\n  \n\t\n\nb") == "a\n\nb"
        assert collapse_blank_lines("a\n\nb") == "a\n\nb"

    def test_clean_response(self) -> None:
        text = "Intro.\n\n[[READ:a.py]]\n\n\nOutro.  "
        assert clean_response(text) == "Intro.\n\nOutro."


# ── VisibleStreamFilter ─────────────────────────────────────────────────

class TestVisibleStreamFilter:
    def test_json_call_split_across_chunks(self) -> None:
        outputs, total = _feed_all(
            ['Hello ', '{"to', 'ol": "read_file", "args": {"path": "a.py"}}', ' world']
        )
        assert total == "Hello  world"
        assert all('"tool"' not in o and "read_file" not in o for o in outputs)

    def test_args_first_json_call_split_across_chunks(self) -> None:
        outputs, total = _feed_all(['A {"args": {"path": "x"}, ', '"tool": "read_file"} B'])
        assert outputs[0] == "A"
        assert total == "A  B"
        assert all('"args"' not in o and "read_file" not in o for o in outputs)

    def test_shorthand_split_across_chunks(self) -> None:
        outputs, total = _feed_all(["See [[", "READ:a.py]] done"])
        assert total == "See  done"
        assert all("[[" not in o for o in outputs)

    def test_lone_bracket_held(self) -> None:
        outputs, total = _feed_all(["Look [", "[LS:src]] ok"])
        assert total == "Look  ok"
        assert all("[" not in o for o in outputs)

    def test_non_call_brace_released(self) -> None:
        _, total = _feed_all(["x = {", '"a": 1}'])
        assert total == 'x = {"a": 1}'

    def test_non_call_brackets_released(self) -> None:
        _, total = _feed_all(["see [[", "not a tag]] here"])
        assert total == "see [[not a tag]] here"

    def test_flush_releases_unfinished_call(self) -> None:
        _, total = _feed_all(['text {"tool": "gr'])
        assert total == 'text {"tool": "gr'

    def test_blank_runs_collapsed_without_retraction(self) -> None:
        outputs, total = _feed_all(["a\n\n", "\n\n", "b"])
        assert total == "a\n\nb"

    def test_concatenation_equals_cleaned_text(self) -> None:
        raw = 'Start.\n\n{"tool": "grep", "args": {"query": "x"}}\n\n\n[[LS:src]]\n\nEnd.'
        chunks = [raw[i:i + 3] for i in range(0, len(raw), 3)]
        _, total = _feed_all(chunks)
        assert total == collapse_blank_lines(strip_tool_calls(raw))

    def test_raw_text_keeps_everything(self) -> None:
        f = VisibleStreamFilter()
        f.feed("a [[LS:x]]")
        assert f.raw_text == "a [[LS:x]]"
