"""Persistent per-file store of agent-attributed lines."""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path, PurePosixPath

from ai_lens.hashing import Operation
from ai_lens.inference.models import InferenceResult, OpaqueItem
from ai_lens.logging import JsonlEventLogger
from ai_lens.workspace import is_absolute_path, normalize_separators, to_workspace_relative

STORE_FILE_NAME = "ai-stats.json"
DEFAULT_CLEANUP_AGE_MS = 30 * 24 * 60 * 60 * 1000


@dataclass(slots=True, frozen=True)
class AttributedLine:
    """One resolved line attributed to an agent source."""

    hash: str
    operation: Operation
    content: str
    timestamp: int
    source: str
    line: int | None = None


@dataclass(slots=True)
class FileAttribution:
    """All attributed lines for one file, with running counts."""

    absolute_path: str
    relative_path: str
    total_ai_lines: int = 0
    added_lines: int = 0
    deleted_lines: int = 0
    last_update: int = 0
    code_lines: list[AttributedLine] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class StoreTotals:
    """Aggregate counts across every stored file."""

    total_files: int
    total_ai_lines: int
    total_added_lines: int
    total_deleted_lines: int
    file_breakdown: tuple[tuple[str, int], ...]


class AttributionStore:
    """JSON-backed map of absolute path to attributed lines.

    Every accepted line is written through to ``ai-stats.json`` so the file's
    modification time doubles as a coarse version stamp for dependent caches.
    """

    def __init__(self, data_dir: Path, event_logger: JsonlEventLogger | None = None) -> None:
        self._data_dir = data_dir
        self._path = data_dir / STORE_FILE_NAME
        self._event_logger = event_logger
        self._files: dict[str, FileAttribution] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def store_line(self, absolute_path: str, relative_path: str, line: AttributedLine) -> bool:
        """Add ``line`` unless its hash is already stored for the file."""
        stats = self._files.get(absolute_path)
        if stats is None:
            stats = FileAttribution(absolute_path=absolute_path, relative_path=relative_path)
            self._files[absolute_path] = stats
        if any(existing.hash == line.hash for existing in stats.code_lines):
            return False
        stats.code_lines.append(line)
        stats.total_ai_lines += 1
        if line.operation == "+":
            stats.added_lines += 1
        else:
            stats.deleted_lines += 1
        stats.last_update = _now_ms()
        self._save()
        return True

    def file_stats(self, absolute_path: str) -> FileAttribution | None:
        return self._files.get(absolute_path)

    def all_file_stats(self) -> dict[str, FileAttribution]:
        return dict(self._files)

    def find_by_hash(self, target_hash: str) -> AttributedLine | None:
        for stats in self._files.values():
            for line in stats.code_lines:
                if line.hash == target_hash:
                    return line
        return None

    def total_stats(self) -> StoreTotals:
        breakdown = sorted(
            ((stats.relative_path, stats.total_ai_lines) for stats in self._files.values()),
            key=lambda entry: (-entry[1], entry[0]),
        )
        return StoreTotals(
            total_files=len(self._files),
            total_ai_lines=sum(stats.total_ai_lines for stats in self._files.values()),
            total_added_lines=sum(stats.added_lines for stats in self._files.values()),
            total_deleted_lines=sum(stats.deleted_lines for stats in self._files.values()),
            file_breakdown=tuple(breakdown),
        )

    def version_stamp(self) -> str:
        """Return a stamp that changes whenever the on-disk store changes."""
        if not self._path.exists():
            return "absent"
        stat = self._path.stat()
        return f"{stat.st_mtime_ns}:{stat.st_size}"

    def cleanup(self, now: int, max_age_ms: int = DEFAULT_CLEANUP_AGE_MS) -> int:
        """Drop files not updated within ``max_age_ms``; return how many were removed."""
        cutoff = now - max_age_ms
        stale = [path for path, stats in self._files.items() if stats.last_update < cutoff]
        for path in stale:
            del self._files[path]
        if stale:
            self._save()
        return len(stale)

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            self._emit_error("store.load_failed", exc)
            return
        if not isinstance(payload, dict):
            return
        for absolute_path, raw in payload.items():
            stats = _file_from_payload(absolute_path, raw)
            if stats is not None:
                self._files[absolute_path] = stats

    def _save(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        payload = {path: asdict(stats) for path, stats in sorted(self._files.items())}
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(payload, handle, sort_keys=True, indent=2)
                handle.write("\n")
            tmp.replace(self._path)
        except OSError as exc:
            self._emit_error("store.save_failed", exc)

    def _emit_error(self, kind: str, exc: Exception) -> None:
        if self._event_logger is not None:
            self._event_logger.emit(
                kind,
                {"path": str(self._path), "error_type": type(exc).__name__},
                ok=False,
            )


class MatchRecorder:
    """Match listener that persists each newly resolved line."""

    def __init__(self, store: AttributionStore, workspace_root: Path) -> None:
        self._store = store
        self._workspace_root = workspace_root

    def __call__(self, item: OpaqueItem, result: InferenceResult, file_name: str) -> None:
        absolute_path, relative_path = self.resolve_paths(file_name)
        self._store.store_line(
            absolute_path,
            relative_path,
            AttributedLine(
                hash=result.hash,
                operation=result.operation,
                content=result.content,
                timestamp=item.timestamp,
                source=item.source,
                line=result.line_number,
            ),
        )

    def resolve_paths(self, file_name: str) -> tuple[str, str]:
        """Return ``(absolute, workspace-relative)`` spellings for ``file_name``."""
        root = str(self._workspace_root)
        if is_absolute_path(file_name):
            relative = to_workspace_relative(file_name, (root,))
            return file_name, normalize_separators(relative)
        relative = normalize_separators(file_name)
        absolute = str(PurePosixPath(normalize_separators(root)) / relative)
        return absolute, relative


def _file_from_payload(absolute_path: str, raw: object) -> FileAttribution | None:
    if not isinstance(raw, dict):
        return None
    relative_path = raw.get("relative_path")
    if not isinstance(relative_path, str):
        relative_path = absolute_path
    lines: list[AttributedLine] = []
    raw_lines = raw.get("code_lines")
    if isinstance(raw_lines, list):
        for entry in raw_lines:
            line = _line_from_payload(entry)
            if line is not None:
                lines.append(line)
    last_update = raw.get("last_update")
    return FileAttribution(
        absolute_path=absolute_path,
        relative_path=relative_path,
        total_ai_lines=len(lines),
        added_lines=sum(1 for line in lines if line.operation == "+"),
        deleted_lines=sum(1 for line in lines if line.operation == "-"),
        last_update=last_update if isinstance(last_update, int) else 0,
        code_lines=lines,
    )


def _line_from_payload(entry: object) -> AttributedLine | None:
    if not isinstance(entry, dict):
        return None
    line_hash = entry.get("hash")
    operation = entry.get("operation")
    content = entry.get("content")
    timestamp = entry.get("timestamp")
    if not isinstance(line_hash, str) or operation not in ("+", "-"):
        return None
    if not isinstance(content, str) or not isinstance(timestamp, int):
        return None
    source = entry.get("source")
    line_number = entry.get("line")
    return AttributedLine(
        hash=line_hash,
        operation=operation,
        content=content,
        timestamp=timestamp,
        source=source if isinstance(source, str) else "unknown",
        line=line_number if isinstance(line_number, int) else None,
    )


def _now_ms() -> int:
    return time.time_ns() // 1_000_000
