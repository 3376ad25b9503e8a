"""Commit analysis models and parsers for git text output."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import PurePosixPath
from typing import Final

from ai_lens.workspace import normalize_separators

# Header format requested from ``git show --pretty=format:...``.
COMMIT_HEADER_FORMAT: Final = "%H|%h|%an|%ad|%at|%s"
UNCOMMITTED_HASH: Final = "uncommitted"

DEFAULT_CODE_EXTENSIONS: Final[tuple[str, ...]] = (
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".py",
    ".java",
    ".cpp",
    ".c",
    ".h",
    ".cs",
    ".go",
    ".rs",
    ".php",
    ".rb",
    ".swift",
    ".kt",
    ".dart",
    ".html",
    ".css",
    ".scss",
    ".sass",
    ".less",
    ".vue",
    ".svelte",
    ".json",
    ".yaml",
    ".yml",
    ".xml",
    ".sql",
    ".sh",
    ".bash",
)


@dataclass(slots=True, frozen=True)
class CommitHeader:
    """Metadata for one commit."""

    hash: str
    short_hash: str
    author: str
    date: str
    timestamp: int
    message: str


@dataclass(slots=True, frozen=True)
class NumstatEntry:
    """Per-file line counts from ``--numstat`` output."""

    file_name: str
    additions: int
    deletions: int


@dataclass(slots=True, frozen=True)
class DiffLine:
    """One added or removed diff line and its attribution."""

    content: str
    is_ai_generated: bool
    ai_item_hash: str | None = None


@dataclass(slots=True, frozen=True)
class FileChange:
    """Attribution totals for one file in a commit."""

    file_name: str
    additions: int
    deletions: int
    ai_additions: int
    ai_deletions: int
    added_lines: tuple[DiffLine, ...] = ()
    deleted_lines: tuple[DiffLine, ...] = ()


@dataclass(slots=True, frozen=True)
class CommitAnalysis:
    """Attribution totals for one commit or for the uncommitted tree."""

    hash: str
    short_hash: str
    author: str
    date: str
    timestamp: int
    message: str
    total_files: int
    total_additions: int
    total_deletions: int
    ai_additions: int
    ai_deletions: int
    ai_contribution_percentage: float
    files: tuple[FileChange, ...]

    def to_dict(self) -> dict[str, object]:
        return asdict(self)

    def summary(self) -> dict[str, object]:
        """Counts-only view without diff line content."""
        return {
            "hash": self.hash,
            "short_hash": self.short_hash,
            "author": self.author,
            "date": self.date,
            "timestamp": self.timestamp,
            "total_files": self.total_files,
            "total_additions": self.total_additions,
            "total_deletions": self.total_deletions,
            "ai_additions": self.ai_additions,
            "ai_deletions": self.ai_deletions,
            "ai_contribution_percentage": self.ai_contribution_percentage,
            "files": [
                {
                    "file_name": change.file_name,
                    "additions": change.additions,
                    "deletions": change.deletions,
                    "ai_additions": change.ai_additions,
                    "ai_deletions": change.ai_deletions,
                }
                for change in self.files
            ],
        }


@dataclass(slots=True, frozen=True)
class RecentAnalysis:
    """Uncommitted changes (when present) followed by recent commits."""

    current_branch: str
    commits: tuple[CommitAnalysis, ...]
    last_analyzed_at: int


def is_code_file(file_name: str, extensions: tuple[str, ...] = DEFAULT_CODE_EXTENSIONS) -> bool:
    suffix = PurePosixPath(normalize_separators(file_name)).suffix.lower()
    return suffix in extensions


def parse_commit_header(text: str) -> CommitHeader | None:
    """Parse one ``COMMIT_HEADER_FORMAT`` line; the subject may contain ``|``."""
    parts = text.strip().split("|", 5)
    if len(parts) < 6:
        return None
    try:
        seconds = int(parts[4])
    except ValueError:
        return None
    return CommitHeader(
        hash=parts[0],
        short_hash=parts[1],
        author=parts[2],
        date=parts[3],
        timestamp=seconds * 1000,
        message=parts[5],
    )


def parse_numstat(text: str) -> list[NumstatEntry]:
    """Parse ``added<TAB>deleted<TAB>path`` lines; binary ``-`` counts become 0."""
    entries: list[NumstatEntry] = []
    for line in text.splitlines():
        parts = line.split("\t", 2)
        if len(parts) != 3:
            continue
        additions = _numstat_count(parts[0])
        deletions = _numstat_count(parts[1])
        if additions is None or deletions is None or not parts[2]:
            continue
        entries.append(NumstatEntry(file_name=parts[2], additions=additions, deletions=deletions))
    return entries


def extract_file_diff(diff_text: str, file_name: str) -> str | None:
    """Return the ``diff --git`` section for ``file_name``, or None when absent."""
    section: list[str] = []
    in_target = False
    for line in diff_text.split("\n"):
        if line.startswith("diff --git"):
            if in_target:
                break
            if _header_names_file(line, file_name):
                in_target = True
                section.append(line)
            continue
        if in_target:
            section.append(line)
    if not section:
        return None
    return "\n".join(section)


def parse_diff_lines(file_diff: str) -> tuple[list[str], list[str]]:
    """Split a file diff into added and removed line contents, markers stripped."""
    added: list[str] = []
    removed: list[str] = []
    for line in file_diff.split("\n"):
        if line.startswith("+") and not line.startswith("+++"):
            added.append(line[1:])
        elif line.startswith("-") and not line.startswith("---"):
            removed.append(line[1:])
    return added, removed


def contribution_percentage(ai_changes: int, total_changes: int) -> float:
    if total_changes <= 0:
        return 0.0
    return ai_changes / total_changes * 100


def commit_analysis_from_dict(payload: dict[str, object]) -> CommitAnalysis | None:
    """Rebuild a cached analysis; returns None when the payload is malformed."""
    raw_files = payload.get("files")
    if not isinstance(raw_files, (list, tuple)):
        return None
    files: list[FileChange] = []
    for raw in raw_files:
        change = _file_change_from_dict(raw)
        if change is None:
            return None
        files.append(change)

    strings = [payload.get(key) for key in ("hash", "short_hash", "author", "date", "message")]
    counts = [
        payload.get(key)
        for key in (
            "timestamp",
            "total_files",
            "total_additions",
            "total_deletions",
            "ai_additions",
            "ai_deletions",
        )
    ]
    percentage = payload.get("ai_contribution_percentage")
    if not all(isinstance(value, str) for value in strings):
        return None
    if not all(_is_int(value) for value in counts):
        return None
    if not isinstance(percentage, (int, float)) or isinstance(percentage, bool):
        return None
    commit_hash, short_hash, author, date, message = (str(value) for value in strings)
    timestamp, total_files, additions, deletions, ai_additions, ai_deletions = (
        int(str(value)) for value in counts
    )
    return CommitAnalysis(
        hash=commit_hash,
        short_hash=short_hash,
        author=author,
        date=date,
        timestamp=timestamp,
        message=message,
        total_files=total_files,
        total_additions=additions,
        total_deletions=deletions,
        ai_additions=ai_additions,
        ai_deletions=ai_deletions,
        ai_contribution_percentage=float(percentage),
        files=tuple(files),
    )


def _file_change_from_dict(raw: object) -> FileChange | None:
    if not isinstance(raw, dict):
        return None
    file_name = raw.get("file_name")
    counts = [raw.get(key) for key in ("additions", "deletions", "ai_additions", "ai_deletions")]
    if not isinstance(file_name, str) or not all(_is_int(value) for value in counts):
        return None
    added = [_diff_line_from_dict(line) for line in raw.get("added_lines") or ()]
    deleted = [_diff_line_from_dict(line) for line in raw.get("deleted_lines") or ()]
    if any(line is None for line in added) or any(line is None for line in deleted):
        return None
    additions, deletions, ai_additions, ai_deletions = (int(str(value)) for value in counts)
    return FileChange(
        file_name=file_name,
        additions=additions,
        deletions=deletions,
        ai_additions=ai_additions,
        ai_deletions=ai_deletions,
        added_lines=tuple(line for line in added if line is not None),
        deleted_lines=tuple(line for line in deleted if line is not None),
    )


def _diff_line_from_dict(raw: object) -> DiffLine | None:
    if not isinstance(raw, dict):
        return None
    content = raw.get("content")
    is_ai = raw.get("is_ai_generated")
    item_hash = raw.get("ai_item_hash")
    if not isinstance(content, str) or not isinstance(is_ai, bool):
        return None
    return DiffLine(
        content=content,
        is_ai_generated=is_ai,
        ai_item_hash=item_hash if isinstance(item_hash, str) else None,
    )


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _numstat_count(value: str) -> int | None:
    if value == "-":
        return 0
    if not value.isdigit():
        return None
    return int(value)


def _header_names_file(header: str, file_name: str) -> bool:
    normalized = normalize_separators(file_name)
    return header.endswith(f" b/{normalized}") or f" a/{normalized} " in header
