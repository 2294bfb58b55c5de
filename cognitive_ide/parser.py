"""Tool-call parser — find tool invocations inside free-form model text.

Two syntaxes are recognised and may be mixed in the same text:

1. JSON objects shaped ``{"tool": "<name>", "args": {...}}``.  They may
   span several lines and nest objects / arrays inside ``args``.
2. Bracket shorthand ``[[TAG:positional|key=value|...]]`` where TAG is one
   of the names in ``SHORTHAND_TAGS``.  The positional argument fills the
   tool's primary field; ``key=value`` segments become extra arguments.

JSON candidates are located with a brace/bracket depth scanner that knows
about JSON string literals, so nested ``args`` objects and braces inside
strings never end a match early, and an object that is still streaming in
is never reported.  Balanced-but-invalid candidates are skipped silently.

Every returned ``ToolCall`` carries its exact source span.  Stripping call
syntax from display text (``strip_tool_calls`` / ``VisibleStreamFilter``)
uses those spans and nothing else.

All functions are pure string processors — no I/O, no side effects.
"""

from __future__ import annotations

import json
import re

from cognitive_ide.contracts import ToolCall

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# TAG → (canonical tool, field filled by the positional argument)
SHORTHAND_TAGS: dict[str, tuple[str, str]] = {
    "GREP": ("grep", "query"),
    "SEARCH": ("grep", "query"),
    "FIND": ("find_by_name", "pattern"),
    "LIST_DIR": ("list_dir", "path"),
    "LS": ("list_dir", "path"),
    "READ": ("read_file", "path"),
    "READ_FILE": ("read_file", "path"),
    "FILE_INFO": ("file_info", "path"),
}

# ``[[TAG:body]]``; body may not contain a newline or ``]]``
_SHORTHAND_RE = re.compile(r"\[\[([A-Za-z_]+):((?:[^\]\n]|\](?!\]))*)\]\]")

_TOOL_KEY = '"tool"'
_ARGS_KEY = '"args"'

# Three or more line breaks, possibly with indentation-only lines between
_BLANK_RUN_RE = re.compile(r"\n(?:[ \t]*\n){2,}")

_OPENERS = {"{": "}", "[": "]"}
_CLOSERS = frozenset("}]")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_tool_calls(text: str) -> list[ToolCall]:
    """Return every complete tool call in *text*, in document order.

    Calls whose span overlaps an earlier call (for example a shorthand
    quoted inside a JSON string value) are dropped.
    """
    if not text:
        return []

    found = _scan_json_calls(text) + _scan_shorthand_calls(text)
    found.sort(key=lambda c: c.start_index)

    calls: list[ToolCall] = []
    last_end = -1
    for call in found:
        if call.start_index < last_end:
            continue
        calls.append(call)
        last_end = call.end_index
    return calls


def has_tool_calls(text: str) -> bool:
    """Cheap existence check; agrees with ``parse_tool_calls`` on emptiness."""
    if not text or (_TOOL_KEY not in text and "[[" not in text):
        return False
    return bool(parse_tool_calls(text))


def strip_tool_calls(text: str, calls: list[ToolCall] | None = None) -> str:
    """Remove the source span of every call from *text*."""
    if calls is None:
        calls = parse_tool_calls(text)
    if not calls:
        return text

    parts: list[str] = []
    cursor = 0
    for call in calls:
        parts.append(text[cursor : call.start_index])
        cursor = max(cursor, call.end_index)
    parts.append(text[cursor:])
    return "".join(parts)


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of blank lines down to a single blank line."""
    return _BLANK_RUN_RE.sub("\n\n", text)


def clean_response(text: str) -> str:
    """Strip call syntax, collapse blank runs and trim — for history."""
    return collapse_blank_lines(strip_tool_calls(text)).strip()


# ---------------------------------------------------------------------------
# Streaming display filter
# ---------------------------------------------------------------------------


class VisibleStreamFilter:
    """Turn a raw model stream into display text with call syntax removed.

    ``feed`` returns only the newly visible text.  A trailing region that
    could still turn into a tool call (an unclosed object whose first key is
    ``"tool"`` or ``"args"``, or an unclosed ``[[TAG`` shorthand) is held
    back until it either completes (and is stripped) or stops looking like a
    call.  Trailing whitespace is held back too so blank-line collapsing
    never has to retract output.

    Call ``flush`` once the stream ends to release anything still held.
    """

    __slots__ = ("_raw", "_cursor", "_visible_raw", "_emitted")

    def __init__(self) -> None:
        self._raw = ""
        self._cursor = 0
        self._visible_raw = ""
        self._emitted = ""

    @property
    def raw_text(self) -> str:
        """Everything fed so far, unfiltered."""
        return self._raw

    def feed(self, chunk: str) -> str:
        self._raw += chunk
        calls = parse_tool_calls(self._raw)
        cut = max(self._cursor, _holdback_start(self._raw, calls))
        self._consume(cut, calls)
        return self._advance(final=False)

    def flush(self) -> str:
        calls = parse_tool_calls(self._raw)
        self._consume(len(self._raw), calls)
        return self._advance(final=True)

    def _consume(self, cut: int, calls: list[ToolCall]) -> None:
        start = self._cursor
        if cut <= start:
            return
        pieces: list[str] = []
        pos = start
        for call in calls:
            if call.end_index <= pos or call.start_index >= cut:
                continue
            if call.start_index > pos:
                pieces.append(self._raw[pos : call.start_index])
            pos = max(pos, min(call.end_index, cut))
        if pos < cut:
            pieces.append(self._raw[pos:cut])
        self._visible_raw += "".join(pieces)
        self._cursor = cut

    def _advance(self, *, final: bool) -> str:
        source = self._visible_raw if final else self._visible_raw.rstrip()
        collapsed = collapse_blank_lines(source)
        if len(collapsed) <= len(self._emitted):
            return ""
        delta = collapsed[len(self._emitted) :]
        self._emitted = collapsed
        return delta


# ---------------------------------------------------------------------------
# JSON scanning
# ---------------------------------------------------------------------------


def _scan_json_calls(text: str) -> list[ToolCall]:
    calls: list[ToolCall] = []
    pos = 0
    while True:
        start = text.find("{", pos)
        if start == -1:
            break
        end = _match_brace(text, start)
        if end is None:
            # Unbalanced or still streaming, look for later candidates
            pos = start + 1
            continue
        call = _json_candidate(text[start:end], start)
        if call is None:
            pos = start + 1
            continue
        calls.append(call)
        pos = end
    return calls


def _match_brace(text: str, start: int) -> int | None:
    """Return the index just past the object opened at *start*.

    Tracks nested ``{}`` / ``[]`` and JSON string literals.  Returns
    ``None`` when the object is not closed before the end of *text* or the
    nesting is mismatched.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        ch = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in _CLOSERS:
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return pos + 1
    return None


def _json_candidate(candidate: str, start: int) -> ToolCall | None:
    if _TOOL_KEY not in candidate:
        return None
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    tool = data.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        return None
    args = data.get("args", {})
    if args is None:
        args = {}
    if not isinstance(args, dict):
        return None
    return ToolCall(tool=tool.strip(), args=args, raw=candidate, start_index=start)


# ---------------------------------------------------------------------------
# Shorthand scanning
# ---------------------------------------------------------------------------


def _scan_shorthand_calls(text: str) -> list[ToolCall]:
    calls: list[ToolCall] = []
    for m in _SHORTHAND_RE.finditer(text):
        spec = SHORTHAND_TAGS.get(m.group(1).upper())
        if spec is None:
            continue
        tool, primary = spec
        args = _parse_shorthand_body(m.group(2), primary)
        if args is None:
            continue
        calls.append(ToolCall(tool=tool, args=args, raw=m.group(0), start_index=m.start()))
    return calls


def _parse_shorthand_body(body: str, primary: str) -> dict | None:
    """Split ``positional|key=value|...`` into an args dict.

    Segments without ``=`` belong to the positional argument, so
    ``[[GREP:foo|bar]]`` searches for ``foo|bar``.
    """
    segments = body.split("|")
    positional = [segments[0]]
    extras: dict = {}
    for segment in segments[1:]:
        key, sep, value = segment.partition("=")
        if sep and key.strip() and " " not in key.strip():
            extras[key.strip()] = _coerce_value(value)
        else:
            positional.append(segment)

    value = "|".join(positional).strip()
    if not value:
        return None
    return {primary: value, **extras}


def _coerce_value(raw: str) -> bool | int | float | str:
    value = raw.strip()
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


# ---------------------------------------------------------------------------
# Hold-back detection for streaming display
# ---------------------------------------------------------------------------


def _holdback_start(text: str, calls: list[ToolCall]) -> int:
    """Earliest offset where an unfinished tool call might be starting."""
    earliest = len(text)

    def _inside_call(pos: int) -> bool:
        return any(c.start_index <= pos < c.end_index for c in calls)

    pos = text.find("{")
    while pos != -1 and pos < earliest:
        if (
            not _inside_call(pos)
            and _looks_like_json_call(text[pos + 1 :])
            and _match_brace(text, pos) is None
        ):
            earliest = pos
            break
        pos = text.find("{", pos + 1)

    for m in re.finditer(r"\[\[", text):
        pos = m.start()
        if pos >= earliest:
            break
        if not _inside_call(pos) and _looks_like_open_shorthand(text[pos + 2 :]):
            earliest = pos
            break

    # A lone trailing "[" may become "[["
    if text.endswith("[") and not text.endswith("[[") and len(text) - 1 < earliest:
        earliest = len(text) - 1

    return earliest


def _looks_like_json_call(tail: str) -> bool:
    stripped = tail.lstrip()
    for key in (_TOOL_KEY, _ARGS_KEY):
        if len(stripped) < len(key):
            if key.startswith(stripped):
                return True
        elif stripped.startswith(key):
            return True
    return False


def _looks_like_open_shorthand(tail: str) -> bool:
    line = tail.split("\n", 1)
    if len(line) > 1 or "]]" in tail:
        return False
    head, sep, _ = tail.partition(":")
    tag = head.upper()
    if sep:
        return tag in SHORTHAND_TAGS
    return any(name.startswith(tag) for name in SHORTHAND_TAGS)


__all__ = [
    "SHORTHAND_TAGS",
    "VisibleStreamFilter",
    "clean_response",
    "collapse_blank_lines",
    "has_tool_calls",
    "parse_tool_calls",
    "strip_tool_calls",
]
