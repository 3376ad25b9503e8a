"""Workspace path spelling helpers."""

from .paths import (
    base_name,
    is_absolute_path,
    is_file_name_related,
    is_path_suffix_match,
    normalize_separators,
    to_workspace_relative,
)

__all__ = [
    "base_name",
    "is_absolute_path",
    "is_file_name_related",
    "is_path_suffix_match",
    "normalize_separators",
    "to_workspace_relative",
]
