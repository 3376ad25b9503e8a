"""Bounded per-file document history used to recover deleted text."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

DEFAULT_MAX_VERSIONS_PER_FILE = 50
DEFAULT_MAX_HISTORY_MS = 10 * 60 * 1000
MEMORY_PRESSURE_BYTES = 100 * 1024 * 1024
REDUCED_VERSIONS_PER_FILE = 20


@dataclass(slots=True, frozen=True)
class EditRange:
    """Zero-based ``[start, end)`` character range across lines."""

    start_line: int
    start_character: int
    end_line: int
    end_character: int

    @property
    def is_single_line(self) -> bool:
        return self.start_line == self.end_line


@dataclass(slots=True, frozen=True)
class DocumentSnapshot:
    """Full line array of one document version."""

    version: int
    timestamp: int
    lines: tuple[str, ...]

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def estimated_bytes(self) -> int:
        return sum(len(line) for line in self.lines) * 2


@dataclass(slots=True, frozen=True)
class RemovedSpan:
    """Text that a range covered in an earlier snapshot."""

    content: str
    range: EditRange
    version: int | None


@dataclass(slots=True, frozen=True)
class SnapshotStats:
    """Counts-only view of retained history."""

    total_files: int
    total_versions: int
    oldest_timestamp: int | None
    newest_timestamp: int | None
    estimated_bytes: int


def deleted_placeholder(range_length: int) -> str:
    """Stand-in content when no snapshot covers a deletion."""
    return f"[deleted:{range_length}chars]"


def utf16_column_to_index(line: str, column: int) -> int:
    """Convert an editor column, counted in UTF-16 code units, to a ``str`` index.

    A column inside a surrogate pair lands after that character. Columns past
    the end keep their overflow so callers can still detect out-of-range edits.
    """
    if line.isascii():
        return column
    units = 0
    for index, char in enumerate(line):
        if units >= column:
            return index
        units += 2 if ord(char) > 0xFFFF else 1
    return len(line) + max(0, column - units)


def extract_span(lines: Sequence[str], edit_range: EditRange) -> str | None:
    """Return the text ``edit_range`` covers in ``lines``, or None when out of range.

    Interior line boundaries are kept as ``"\\n"``. On multi-line ranges a start
    column past the first line, or an end column past the last line, drops that
    line's part instead of failing.
    """
    start_line = edit_range.start_line
    end_line = edit_range.end_line
    start_char = edit_range.start_character
    end_char = edit_range.end_character
    if start_line < 0 or end_line < start_line:
        return None
    if start_line >= len(lines) or end_line >= len(lines):
        return None

    if edit_range.is_single_line:
        line = lines[start_line]
        start = utf16_column_to_index(line, start_char)
        end = utf16_column_to_index(line, end_char)
        if start >= len(line) or end > len(line):
            return None
        return line[start:end]

    parts: list[str] = []
    first_line = lines[start_line]
    start = utf16_column_to_index(first_line, start_char)
    parts.append(first_line[start:] if start < len(first_line) else "")
    for index in range(start_line + 1, end_line):
        parts.append(lines[index])
    last_line = lines[end_line]
    end = utf16_column_to_index(last_line, end_char)
    if end <= len(last_line):
        parts.append(last_line[:end])
    return "\n".join(parts)


class VersionSnapshotStore:
    """Keep a short, time- and count-bounded snapshot history per file.

    Age limits apply to older versions only. Each file keeps its latest
    snapshot until the document is closed.
    """

    def __init__(
        self,
        max_versions_per_file: int = DEFAULT_MAX_VERSIONS_PER_FILE,
        max_history_ms: int = DEFAULT_MAX_HISTORY_MS,
    ) -> None:
        if max_versions_per_file < 1:
            raise ValueError("max_versions_per_file must be >= 1")
        self._max_versions_per_file = max_versions_per_file
        self._max_history_ms = max_history_ms
        self._histories: dict[str, list[DocumentSnapshot]] = {}

    def capture_snapshot(
        self,
        file_name: str,
        version: int,
        lines: Sequence[str],
        timestamp: int,
    ) -> DocumentSnapshot:
        """Append an immutable copy of ``lines`` and enforce both bounds."""
        snapshot = DocumentSnapshot(version=version, timestamp=timestamp, lines=tuple(lines))
        history = self._histories.setdefault(file_name, [])
        history.append(snapshot)
        overflow = len(history) - self._max_versions_per_file
        if overflow > 0:
            del history[:overflow]
        self._expire(file_name, timestamp)
        return snapshot

    def latest(self, file_name: str) -> DocumentSnapshot | None:
        history = self._histories.get(file_name)
        if not history:
            return None
        return history[-1]

    def get(self, file_name: str, version: int) -> DocumentSnapshot | None:
        for snapshot in self._histories.get(file_name, ()):
            if snapshot.version == version:
                return snapshot
        return None

    def history(self, file_name: str) -> tuple[DocumentSnapshot, ...]:
        return tuple(self._histories.get(file_name, ()))

    def closest_at_or_before(self, file_name: str, version: int) -> DocumentSnapshot | None:
        """Return the exact version, else the closest earlier one."""
        exact = self.get(file_name, version)
        if exact is not None:
            return exact
        earlier = [s for s in self._histories.get(file_name, ()) if s.version < version]
        if not earlier:
            return None
        return max(earlier, key=lambda snapshot: snapshot.version)

    def reconstruct_removed_span(
        self,
        file_name: str,
        edit_range: EditRange,
        prior_version: int,
    ) -> RemovedSpan | None:
        snapshot = self.closest_at_or_before(file_name, prior_version)
        if snapshot is None:
            return None
        content = extract_span(snapshot.lines, edit_range)
        if content is None:
            return None
        return RemovedSpan(content=content, range=edit_range, version=snapshot.version)

    def removed_span_or_placeholder(
        self,
        file_name: str,
        edit_range: EditRange,
        prior_version: int,
        range_length: int,
    ) -> RemovedSpan:
        span = self.reconstruct_removed_span(file_name, edit_range, prior_version)
        if span is not None:
            return span
        return RemovedSpan(
            content=deleted_placeholder(range_length), range=edit_range, version=None
        )

    def perform_maintenance(self, now: int) -> int:
        """Expire old versions, then shrink histories under memory pressure.

        Returns the number of snapshots dropped.
        """
        before = self._count()
        for file_name in list(self._histories.keys()):
            self._expire(file_name, now)
        if self.stats().estimated_bytes > MEMORY_PRESSURE_BYTES:
            for file_name, history in self._histories.items():
                if len(history) > REDUCED_VERSIONS_PER_FILE:
                    self._histories[file_name] = history[-REDUCED_VERSIONS_PER_FILE:]
        return before - self._count()

    def stats(self) -> SnapshotStats:
        total_versions = 0
        oldest: int | None = None
        newest: int | None = None
        estimated = 0
        for history in self._histories.values():
            total_versions += len(history)
            for snapshot in history:
                estimated += snapshot.estimated_bytes()
                if oldest is None or snapshot.timestamp < oldest:
                    oldest = snapshot.timestamp
                if newest is None or snapshot.timestamp > newest:
                    newest = snapshot.timestamp
        return SnapshotStats(
            total_files=len(self._histories),
            total_versions=total_versions,
            oldest_timestamp=oldest,
            newest_timestamp=newest,
            estimated_bytes=estimated,
        )

    def forget(self, file_name: str) -> None:
        self._histories.pop(file_name, None)

    def clear(self) -> None:
        self._histories.clear()

    def _expire(self, file_name: str, now: int) -> None:
        # The latest snapshot mirrors the live document and never ages out.
        history = self._histories.get(file_name)
        if not history:
            return
        cutoff = now - self._max_history_ms
        kept = [s for s in history[:-1] if s.timestamp >= cutoff]
        kept.append(history[-1])
        self._histories[file_name] = kept

    def _count(self) -> int:
        return sum(len(history) for history in self._histories.values())
