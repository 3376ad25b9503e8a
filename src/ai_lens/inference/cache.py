"""Per-file line record cache with a bounded hash-to-result lookup."""

from __future__ import annotations

from ai_lens.hashing import Operation, calculate_code_hash
from ai_lens.inference.models import (
    SOURCE_DELETED_FRAGMENT,
    SOURCE_FULL_LINE,
    InferenceResult,
    LineCacheStats,
    LineRecord,
)
from ai_lens.workspace import is_absolute_path, is_file_name_related, to_workspace_relative

DEFAULT_MAX_LINES_PER_FILE = 1_000
DEFAULT_MAX_CACHE_SIZE = 5_000


class ResultCache:
    """Insertion-ordered hash -> result map that keeps the newest half on overflow."""

    def __init__(self, max_size: int = DEFAULT_MAX_CACHE_SIZE) -> None:
        if max_size < 2:
            raise ValueError("max_size must be >= 2")
        self._max_size = max_size
        self._entries: dict[str, InferenceResult] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item_hash: object) -> bool:
        return item_hash in self._entries

    def get(self, item_hash: str) -> InferenceResult | None:
        return self._entries.get(item_hash)

    def put(self, result: InferenceResult) -> InferenceResult:
        """Store ``result`` unless its hash is already cached; return the cached value."""
        existing = self._entries.get(result.hash)
        if existing is not None:
            return existing
        self._entries[result.hash] = result
        if len(self._entries) > self._max_size:
            keep = self._max_size // 2
            survivors = list(self._entries.items())[-keep:]
            self._entries = dict(survivors)
        return result

    def clear(self) -> None:
        self._entries.clear()


class LineRecordCache:
    """Bounded store of observed line contents, keyed by file spelling."""

    def __init__(
        self,
        max_lines_per_file: int = DEFAULT_MAX_LINES_PER_FILE,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
        workspace_roots: tuple[str, ...] = (),
    ) -> None:
        if max_lines_per_file < 1:
            raise ValueError("max_lines_per_file must be >= 1")
        self._max_lines_per_file = max_lines_per_file
        self._workspace_roots = workspace_roots
        self._records: dict[str, list[LineRecord]] = {}
        self._results = ResultCache(max_cache_size)

    def record(
        self,
        file_name: str,
        line_number: int,
        content: str,
        operation: Operation,
        timestamp: int,
    ) -> LineRecord:
        """Append one line record and trim the file's oldest entries beyond the cap."""
        return self.add(
            LineRecord(
                file_name=file_name,
                line_number=line_number,
                content=content,
                operation=operation,
                timestamp=timestamp,
            )
        )

    def add(self, line_record: LineRecord) -> LineRecord:
        lines = self._records.setdefault(line_record.file_name, [])
        lines.append(line_record)
        overflow = len(lines) - self._max_lines_per_file
        if overflow > 0:
            del lines[:overflow]
        return line_record

    def records_for(self, file_name: str) -> tuple[LineRecord, ...]:
        return tuple(self._records.get(file_name, ()))

    def file_names(self) -> tuple[str, ...]:
        return tuple(self._records.keys())

    def name_spellings(self, file_name: str) -> tuple[str, ...]:
        """Return the spellings a feed producer may have hashed for ``file_name``."""
        if not is_absolute_path(file_name):
            return (file_name,)
        relative = to_workspace_relative(file_name, self._workspace_roots)
        if relative == file_name:
            return (file_name,)
        return (file_name, relative)

    def cached_result(self, item_hash: str) -> InferenceResult | None:
        return self._results.get(item_hash)

    def remember(self, result: InferenceResult) -> InferenceResult:
        """Cache a result produced outside ``find_match`` (e.g. intermediate states)."""
        return self._results.put(result)

    def find_match(self, item_hash: str, file_name: str) -> InferenceResult | None:
        """Find the first unused record whose hash equals ``item_hash``.

        Only files related to ``file_name`` are scanned. Each candidate is
        hashed with the feed's spelling first, then with the workspace-relative
        spelling when the feed name is absolute. The consumed record is marked
        used so it cannot resolve a second item.
        """
        spellings = self.name_spellings(file_name)
        for record_file_name, lines in self._records.items():
            if not is_file_name_related(file_name, record_file_name):
                continue
            for line in lines:
                if line.used:
                    continue
                for spelling in spellings:
                    if calculate_code_hash(spelling, line.operation, line.content) != item_hash:
                        continue
                    line.used = True
                    source_tag = (
                        SOURCE_FULL_LINE if line.operation == "+" else SOURCE_DELETED_FRAGMENT
                    )
                    return self._results.put(
                        InferenceResult(
                            hash=item_hash,
                            content=line.content,
                            operation=line.operation,
                            source_tag=source_tag,
                            file_name=spelling,
                            line_number=line.line_number,
                        )
                    )
        return None

    def prune(self, now: int, retention_ms: int) -> int:
        """Drop used records older than the retention window; unused records stay.

        Returns the number of records removed.
        """
        cutoff = now - retention_ms
        removed = 0
        for file_name in list(self._records.keys()):
            lines = self._records[file_name]
            kept = [line for line in lines if not line.used or line.timestamp >= cutoff]
            removed += len(lines) - len(kept)
            if kept:
                self._records[file_name] = kept
            else:
                del self._records[file_name]
        return removed

    def stats(self) -> LineCacheStats:
        total_lines = 0
        used_lines = 0
        oldest: int | None = None
        newest: int | None = None
        for lines in self._records.values():
            total_lines += len(lines)
            for line in lines:
                if line.used:
                    used_lines += 1
                if oldest is None or line.timestamp < oldest:
                    oldest = line.timestamp
                if newest is None or line.timestamp > newest:
                    newest = line.timestamp
        return LineCacheStats(
            total_files=len(self._records),
            total_lines=total_lines,
            used_lines=used_lines,
            cache_size=len(self._results),
            oldest_timestamp=oldest,
            newest_timestamp=newest,
        )

    def clear(self) -> None:
        self._records.clear()
        self._results.clear()
