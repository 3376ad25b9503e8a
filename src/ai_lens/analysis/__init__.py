"""Commit-level attribution over git diffs."""

from .correlator import CACHE_FILE_NAME, DiffCorrelator
from .diff import (
    DEFAULT_CODE_EXTENSIONS,
    UNCOMMITTED_HASH,
    CommitAnalysis,
    CommitHeader,
    DiffLine,
    FileChange,
    NumstatEntry,
    RecentAnalysis,
    extract_file_diff,
    is_code_file,
    parse_commit_header,
    parse_diff_lines,
    parse_numstat,
)
from .git import DiffSource, GitCommandError, GitDiffSource

__all__ = [
    "CACHE_FILE_NAME",
    "DEFAULT_CODE_EXTENSIONS",
    "UNCOMMITTED_HASH",
    "CommitAnalysis",
    "CommitHeader",
    "DiffCorrelator",
    "DiffLine",
    "DiffSource",
    "FileChange",
    "GitCommandError",
    "GitDiffSource",
    "NumstatEntry",
    "RecentAnalysis",
    "extract_file_diff",
    "is_code_file",
    "parse_commit_header",
    "parse_diff_lines",
    "parse_numstat",
]
