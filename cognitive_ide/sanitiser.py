"""Workspace sandbox — path validation and display helpers.

``sanitize_path`` is the only gate between model-supplied paths and the
filesystem collaborator.  It never touches the disk: normalisation is a
plain segment stack so symlinks and the current process directory play
no part in the decision.
"""

from __future__ import annotations

import re
from typing import Sequence

from cognitive_ide.contracts import SanitizedPath
from cognitive_ide.errors import AccessDeniedError

DEFAULT_ALLOWED_PREFIXES: tuple[str, ...] = ("/home", "/usr", "/tmp", "/Users")

BLOCKED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\.\."),
    re.compile(r"^/etc/"),
    re.compile(r"^/var/"),
    re.compile(r"^/root/"),
    re.compile(r"^/proc/"),
    re.compile(r"^/sys/"),
    re.compile(r"^/dev/"),
    re.compile(r"^/boot/"),
    re.compile(r"^/bin/"),
    re.compile(r"^/sbin/"),
    re.compile(r"^/lib/"),
    re.compile(r"^~/\.\w+"),
)

BLOCKED_REASON = "path contains blocked pattern"
OUTSIDE_REASON = "path is outside allowed directories"

WORKSPACE_PLACEHOLDER = "~"


def sanitize_path(
    path: object,
    workspace_root: str,
    allowed_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES,
) -> SanitizedPath:
    """Resolve *path* against *workspace_root* and check the sandbox.

    Never raises — rejection is reported through ``SanitizedPath.error``.
    """
    try:
        resolved = resolve_path(path, workspace_root, allowed_prefixes)
    except AccessDeniedError as exc:
        return SanitizedPath(valid=False, error=str(exc))
    except ValueError as exc:
        return SanitizedPath(valid=False, error=str(exc))
    return SanitizedPath(valid=True, path=resolved)


def resolve_path(
    path: object,
    workspace_root: str,
    allowed_prefixes: Sequence[str] = DEFAULT_ALLOWED_PREFIXES,
) -> str:
    """Raising variant of ``sanitize_path``.

    Raises ``ValueError`` for empty input and ``AccessDeniedError`` for
    anything the sandbox refuses.
    """
    if not isinstance(path, str) or not path.strip():
        raise ValueError("Invalid path: path must be a non-empty string")

    candidate = path.strip().replace("\\", "/")
    if any(p.search(candidate) for p in BLOCKED_PATTERNS):
        raise AccessDeniedError(candidate, BLOCKED_REASON)

    candidate = re.sub(r"/{2,}", "/", candidate)
    root = _normalize(workspace_root.replace("\\", "/"))
    prefixes = [_normalize(p.replace("\\", "/")) for p in allowed_prefixes]

    if (
        candidate.startswith("/")
        and not _is_within(candidate, root)
        and not any(_is_within(candidate, p) for p in prefixes)
    ):
        # Unknown absolute roots are treated as workspace-relative
        candidate = candidate.lstrip("/")

    if candidate.startswith("/"):
        resolved = _normalize(candidate)
    else:
        resolved = _normalize(f"{root}/{candidate}")

    if _is_within(resolved, root) or any(_is_within(resolved, p) for p in prefixes):
        return resolved
    raise AccessDeniedError(candidate, OUTSIDE_REASON)


def _normalize(path: str) -> str:
    """Collapse ``.`` / ``..`` / empty segments with a stack."""
    absolute = path.startswith("/")
    stack: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if stack:
                stack.pop()
            continue
        stack.append(segment)
    joined = "/".join(stack)
    return f"/{joined}" if absolute else joined


def _is_within(path: str, prefix: str) -> bool:
    """True when *path* equals *prefix* or lies below it (segment-aware)."""
    prefix = prefix.rstrip("/")
    if not prefix:
        return path.startswith("/")
    return path == prefix or path.startswith(prefix + "/")


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def display_path(path: str, workspace_root: str) -> str:
    """Replace the workspace root with ``~`` so absolute layout never leaks."""
    root = _normalize(workspace_root.replace("\\", "/"))
    normalized = path.replace("\\", "/")
    if normalized == root:
        return WORKSPACE_PLACEHOLDER
    if root and normalized.startswith(root + "/"):
        return WORKSPACE_PLACEHOLDER + normalized[len(root):]
    return normalized


def relative_path(path: str, workspace_root: str) -> str:
    """Workspace-relative form of *path* (``.`` for the root itself)."""
    root = _normalize(workspace_root.replace("\\", "/"))
    normalized = path.replace("\\", "/")
    if normalized == root:
        return "."
    if root and normalized.startswith(root + "/"):
        return normalized[len(root) + 1:]
    return display_path(normalized, workspace_root)


def mask_workspace(text: str, workspace_root: str) -> str:
    """Replace every occurrence of the workspace root in free text."""
    root = _normalize(workspace_root.replace("\\", "/"))
    if not root or root == "/":
        return text
    return text.replace(root, WORKSPACE_PLACEHOLDER)


__all__ = [
    "BLOCKED_PATTERNS",
    "DEFAULT_ALLOWED_PREFIXES",
    "WORKSPACE_PLACEHOLDER",
    "display_path",
    "mask_workspace",
    "relative_path",
    "resolve_path",
    "sanitize_path",
]
