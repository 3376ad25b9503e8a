"""File-name spelling helpers shared by inference and diff correlation."""

from __future__ import annotations

import re
from typing import Final

WINDOWS_ABSOLUTE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:")


def normalize_separators(path: str) -> str:
    """Normalize Windows separators to forward slashes."""
    return path.replace("\\", "/")


def is_absolute_path(path: str) -> bool:
    """Detect POSIX, drive-letter and UNC absolute spellings."""
    if path.startswith("/") or path.startswith("\\\\"):
        return True
    return WINDOWS_ABSOLUTE_PATTERN.match(path) is not None


def base_name(path: str) -> str:
    """Return the final path segment, accepting either separator."""
    return normalize_separators(path).rsplit("/", 1)[-1]


def to_workspace_relative(path: str, workspace_roots: tuple[str, ...]) -> str:
    """Strip the first matching workspace root, or return ``path`` unchanged."""
    for root in workspace_roots:
        if not root or not path.startswith(root):
            continue
        relative = path[len(root) :]
        if relative.startswith("/") or relative.startswith("\\"):
            relative = relative[1:]
        if relative:
            return relative
    return path


def is_file_name_related(feed_name: str, record_name: str) -> bool:
    """Return True when two spellings plausibly name the same file.

    Spellings are related on exact equality, substring containment in either
    direction, or equal non-empty base names.
    """
    if feed_name == record_name:
        return True
    if feed_name in record_name or record_name in feed_name:
        return True
    feed_base = base_name(feed_name)
    return feed_base != "" and feed_base == base_name(record_name)


def is_path_suffix_match(diff_path: str, stored_path: str) -> bool:
    """Return True when ``stored_path`` ends with ``diff_path`` on a segment boundary."""
    diff_normalized = normalize_separators(diff_path).lstrip("/")
    stored_normalized = normalize_separators(stored_path)
    if not diff_normalized:
        return False
    if stored_normalized == diff_normalized:
        return True
    return stored_normalized.endswith(f"/{diff_normalized}")
