"""
Path validation and resolution for context-mcp.

Every file path handed to a tool is checked against a workspace root before
anything touches disk. Checks run in a fixed order and each one is a hard
reject: null bytes, percent-encoded traversal, ``..`` segments, and finally
containment of the canonical path.
"""

import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import unquote

logger = logging.getLogger(__name__)

_SEPARATORS = re.compile(r"[\\/]")
_ENCODED_BACKSLASH = re.compile(r"%(25)*5c", re.IGNORECASE)


class TraversalReason(str, Enum):
    TRAVERSAL = "traversal"
    ENCODED_TRAVERSAL = "encoded-traversal"
    DOUBLE_ENCODED_TRAVERSAL = "double-encoded-traversal"
    ENCODED_BACKSLASH_TRAVERSAL = "encoded-backslash-traversal"
    NULL_BYTE = "null-byte"


_MESSAGES = {
    TraversalReason.NULL_BYTE: "Path contains null bytes",
    TraversalReason.ENCODED_TRAVERSAL: "Path contains URL-encoded traversal sequences",
    TraversalReason.DOUBLE_ENCODED_TRAVERSAL: "Path contains double URL-encoded traversal sequences",
    TraversalReason.ENCODED_BACKSLASH_TRAVERSAL: "Path contains URL-encoded backslash traversal sequences",
    TraversalReason.TRAVERSAL: "Path must be under root",
}


class SecurityError(ValueError):
    """Raised when a candidate path would escape the workspace root."""

    def __init__(self, attempted_path: str, workspace_root: Path, reason: TraversalReason) -> None:
        self.attempted_path = attempted_path
        self.workspace_root = workspace_root
        self.reason = reason
        super().__init__(f"{_MESSAGES[reason]} {workspace_root}: {attempted_path!r} ({reason.value})")


@dataclass(frozen=True)
class PathCheck:
    """Outcome of check_path: exactly one of path or reason is set."""

    path: Path | None = None
    reason: TraversalReason | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def get_root() -> Path:
    """Return the configured project root (CONTEXT_MCP_ROOT, else cwd)."""
    root = os.environ.get("CONTEXT_MCP_ROOT")
    if root:
        return Path(root).resolve()
    return Path.cwd().resolve()


def _has_parent_segment(text: str) -> bool:
    return any(segment == ".." for segment in _SEPARATORS.split(text))


def _encoded_traversal(candidate: str) -> TraversalReason | None:
    """Decode once and twice; report traversal that only decoding reveals."""
    once = unquote(candidate)
    if once == candidate:
        return None
    if _has_parent_segment(once) and not _has_parent_segment(candidate):
        slash_only = any(segment == ".." for segment in once.split("/"))
        if slash_only or not _ENCODED_BACKSLASH.search(candidate):
            return TraversalReason.ENCODED_TRAVERSAL
        return TraversalReason.ENCODED_BACKSLASH_TRAVERSAL
    twice = unquote(once)
    if twice != once and _has_parent_segment(twice):
        return TraversalReason.DOUBLE_ENCODED_TRAVERSAL
    return None


def _canonical(path: str | Path) -> Path | None:
    """Absolute resolved form of path, or None when the OS rejects it (e.g. NUL)."""
    try:
        return Path(path).resolve()
    except (OSError, ValueError):
        return None


def is_within_boundary(root: str | Path, absolute_path: str | Path) -> bool:
    """True when absolute_path is root itself or lies beneath it (component-wise)."""
    resolved_root = _canonical(root)
    target = _canonical(absolute_path)
    if resolved_root is None or target is None:
        return False
    try:
        target.relative_to(resolved_root)
    except ValueError:
        return False
    return True


def check_path(root: str | Path, candidate: str) -> PathCheck:
    """
    Run every boundary check on candidate relative to root.
    Returns a PathCheck holding the resolved path, or the rejection reason.
    """
    if "\0" in candidate or "\0" in str(root):
        return PathCheck(reason=TraversalReason.NULL_BYTE)
    reason = _encoded_traversal(candidate)
    if reason is not None:
        return PathCheck(reason=reason)
    if _has_parent_segment(candidate) or _has_parent_segment(unquote(unquote(candidate))):
        return PathCheck(reason=TraversalReason.TRAVERSAL)
    resolved_root = _canonical(root)
    if resolved_root is None:
        return PathCheck(reason=TraversalReason.TRAVERSAL)
    path = _canonical(resolved_root / candidate)
    if path is None or not is_within_boundary(resolved_root, path):
        return PathCheck(reason=TraversalReason.TRAVERSAL)
    return PathCheck(path=path)


def validate_path(root: str | Path, candidate: str) -> Path:
    """
    Resolve and validate candidate under root.
    Raises SecurityError if the path escapes the root.
    """
    result = check_path(root, candidate)
    if not result.ok:
        raise SecurityError(candidate, _canonical(root) or Path(root), result.reason)
    return result.path


def safe_resolve(root: str | Path, candidate: str) -> Path | None:
    """Like validate_path, but returns None instead of raising."""
    return check_path(root, candidate).path
