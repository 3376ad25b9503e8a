"""Attribute commit diff lines to stored agent lines."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from ai_lens.analysis.diff import (
    DEFAULT_CODE_EXTENSIONS,
    UNCOMMITTED_HASH,
    CommitAnalysis,
    DiffLine,
    FileChange,
    RecentAnalysis,
    commit_analysis_from_dict,
    contribution_percentage,
    extract_file_diff,
    is_code_file,
    parse_commit_header,
    parse_diff_lines,
    parse_numstat,
)
from ai_lens.analysis.git import DiffSource, GitCommandError
from ai_lens.hashing import Operation
from ai_lens.logging import JsonlEventLogger
from ai_lens.storage import AttributedLine, AttributionStore
from ai_lens.workspace import is_path_suffix_match

CACHE_FILE_NAME = "git-commit-analysis.json"
DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_CAUSALITY_WINDOW_DAYS = 7
DEFAULT_RECENT_COMMIT_COUNT = 3
DEFAULT_CACHE_MAX_AGE_MS = 30 * DAY_MS


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class DiffCorrelator:
    """Match diff lines against the attribution store under a causality window.

    A diff line counts as agent-written when a stored line for a path-suffix
    matching file has the same operation, the same trimmed content, and a
    timestamp no later than the commit and no older than the window. Commit
    analyses are cached on disk and reused while the store's version stamp is
    unchanged.
    """

    def __init__(
        self,
        store: AttributionStore,
        source: DiffSource,
        cache_path: Path,
        *,
        causality_window_days: int = DEFAULT_CAUSALITY_WINDOW_DAYS,
        code_extensions: tuple[str, ...] = DEFAULT_CODE_EXTENSIONS,
        event_logger: JsonlEventLogger | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._source = source
        self._cache_path = cache_path
        self._window_ms = causality_window_days * DAY_MS
        self._code_extensions = code_extensions
        self._event_logger = event_logger
        self._clock = clock
        self._cache: dict[str, dict[str, object]] = self._load_cache()
        self._warnings: list[str] = []

    def drain_warnings(self) -> list[str]:
        """Return and clear warnings collected since the last drain."""
        warnings = self._warnings
        self._warnings = []
        return warnings

    def match_line(
        self,
        content: str,
        operation: Operation,
        file_name: str,
        commit_timestamp: int,
    ) -> AttributedLine | None:
        normalized = content.strip()
        for stored_path, stats in self._store.all_file_stats().items():
            if not is_path_suffix_match(file_name, stored_path):
                continue
            for line in stats.code_lines:
                if line.operation != operation or line.content.strip() != normalized:
                    continue
                if line.timestamp > commit_timestamp:
                    continue
                if commit_timestamp - line.timestamp > self._window_ms:
                    continue
                return line
        return None

    def analyze_commit(self, commit_hash: str) -> CommitAnalysis | None:
        """Analyze one commit, reusing the cached result while the store is unchanged."""
        cached = self._cached_analysis(commit_hash)
        if cached is not None:
            return cached
        try:
            header = parse_commit_header(self._source.commit_header(commit_hash))
            if header is None:
                self._warn("analysis.commit_unreadable", commit_hash, "header")
                return None
            numstat = parse_numstat(self._source.commit_numstat(commit_hash))
            diff_text = self._source.commit_diff(commit_hash)
        except GitCommandError as exc:
            self._warn("analysis.commit_failed", commit_hash, "git", exc)
            return None

        files: list[FileChange] = []
        for entry in numstat:
            if not is_code_file(entry.file_name, self._code_extensions):
                continue
            file_diff = extract_file_diff(diff_text, entry.file_name)
            if file_diff is None:
                continue
            files.append(
                self._file_change(
                    entry.file_name,
                    entry.additions,
                    entry.deletions,
                    file_diff,
                    header.timestamp,
                )
            )
        analysis = _build_analysis(
            commit_hash=header.hash or commit_hash,
            short_hash=header.short_hash or commit_hash[:8],
            author=header.author or "Unknown",
            date=header.date,
            timestamp=header.timestamp,
            message=header.message or "No message",
            files=files,
        )
        self._store_analysis(commit_hash, analysis)
        return analysis

    def analyze_uncommitted(self, now: int | None = None) -> CommitAnalysis | None:
        """Analyze working tree, index and untracked files; None when the tree is clean."""
        reference = self._clock() if now is None else now
        try:
            if not self._source.status_porcelain().strip():
                return None
            numstat = parse_numstat(self._source.working_numstat())
            numstat.extend(parse_numstat(self._source.staged_numstat()))
            untracked = self._source.untracked_files()
        except GitCommandError as exc:
            self._warn("analysis.uncommitted_failed", UNCOMMITTED_HASH, "git", exc)
            return None

        files: list[FileChange] = []
        for file_name in untracked:
            if not is_code_file(file_name, self._code_extensions):
                continue
            change = self._untracked_change(file_name, reference)
            if change is not None:
                files.append(change)

        seen: set[str] = set()
        for entry in numstat:
            if entry.file_name in seen or not is_code_file(entry.file_name, self._code_extensions):
                continue
            seen.add(entry.file_name)
            if entry.additions == 0 and entry.deletions == 0:
                continue
            try:
                file_diff = self._source.working_file_diff(entry.file_name)
            except GitCommandError as exc:
                self._warn("analysis.file_failed", UNCOMMITTED_HASH, entry.file_name, exc)
                files.append(
                    FileChange(
                        file_name=entry.file_name,
                        additions=entry.additions,
                        deletions=entry.deletions,
                        ai_additions=0,
                        ai_deletions=0,
                    )
                )
                continue
            files.append(
                self._file_change(
                    entry.file_name, entry.additions, entry.deletions, file_diff, reference
                )
            )

        timestamp = self._latest_stored_timestamp() or reference
        return _build_analysis(
            commit_hash=UNCOMMITTED_HASH,
            short_hash=UNCOMMITTED_HASH,
            author="-",
            date=datetime.fromtimestamp(timestamp / 1000, tz=UTC).isoformat(),
            timestamp=timestamp,
            message="-",
            files=files,
        )

    def analyze_recent(self, count: int = DEFAULT_RECENT_COMMIT_COUNT) -> RecentAnalysis:
        """Analyze the uncommitted tree (when dirty) followed by the last ``count`` commits."""
        now = self._clock()
        try:
            branch = self._source.current_branch()
            hashes = self._source.recent_commit_hashes(count)
        except GitCommandError as exc:
            self._warn("analysis.recent_failed", "", "git", exc)
            return RecentAnalysis(current_branch="unknown", commits=(), last_analyzed_at=now)

        commits: list[CommitAnalysis] = []
        uncommitted = self.analyze_uncommitted(now)
        if uncommitted is not None:
            commits.append(uncommitted)
        for commit_hash in hashes:
            analysis = self.analyze_commit(commit_hash)
            if analysis is not None:
                commits.append(analysis)
        return RecentAnalysis(current_branch=branch, commits=tuple(commits), last_analyzed_at=now)

    def cleanup_cache(self, now: int, max_age_ms: int = DEFAULT_CACHE_MAX_AGE_MS) -> int:
        cutoff = now - max_age_ms
        stale: list[str] = []
        for commit_hash, entry in self._cache.items():
            analyzed_at = entry.get("analyzed_at")
            if not isinstance(analyzed_at, int) or analyzed_at < cutoff:
                stale.append(commit_hash)
        for commit_hash in stale:
            del self._cache[commit_hash]
        if stale:
            self._save_cache()
        return len(stale)

    def _file_change(
        self,
        file_name: str,
        additions: int,
        deletions: int,
        file_diff: str,
        commit_timestamp: int,
    ) -> FileChange:
        added, removed = parse_diff_lines(file_diff)
        added_lines = tuple(
            self._diff_line(text, "+", file_name, commit_timestamp) for text in added
        )
        deleted_lines = tuple(
            self._diff_line(text, "-", file_name, commit_timestamp) for text in removed
        )
        return FileChange(
            file_name=file_name,
            additions=additions,
            deletions=deletions,
            ai_additions=sum(1 for line in added_lines if line.is_ai_generated),
            ai_deletions=sum(1 for line in deleted_lines if line.is_ai_generated),
            added_lines=added_lines,
            deleted_lines=deleted_lines,
        )

    def _diff_line(
        self, content: str, operation: Operation, file_name: str, commit_timestamp: int
    ) -> DiffLine:
        match = self.match_line(content, operation, file_name, commit_timestamp)
        return DiffLine(
            content=content,
            is_ai_generated=match is not None,
            ai_item_hash=match.hash if match is not None else None,
        )

    def _untracked_change(self, file_name: str, reference: int) -> FileChange | None:
        try:
            text = self._source.read_file(file_name)
        except OSError as exc:
            self._warn("analysis.file_failed", UNCOMMITTED_HASH, file_name, exc)
            return None
        lines = text.split("\n")
        added_lines = tuple(
            self._diff_line(line, "+", file_name, reference) for line in lines if line.strip()
        )
        return FileChange(
            file_name=file_name,
            additions=len(lines),
            deletions=0,
            ai_additions=sum(1 for line in added_lines if line.is_ai_generated),
            ai_deletions=0,
            added_lines=added_lines,
        )

    def _latest_stored_timestamp(self) -> int | None:
        latest: int | None = None
        for stats in self._store.all_file_stats().values():
            for line in stats.code_lines:
                if latest is None or line.timestamp > latest:
                    latest = line.timestamp
        return latest

    def _cached_analysis(self, commit_hash: str) -> CommitAnalysis | None:
        entry = self._cache.get(commit_hash)
        if entry is None or entry.get("store_version") != self._store.version_stamp():
            return None
        payload = entry.get("analysis")
        if not isinstance(payload, dict):
            return None
        return commit_analysis_from_dict(payload)

    def _store_analysis(self, commit_hash: str, analysis: CommitAnalysis) -> None:
        self._cache[commit_hash] = {
            "hash": commit_hash,
            "analyzed_at": self._clock(),
            "store_version": self._store.version_stamp(),
            "analysis": analysis.to_dict(),
        }
        self._save_cache()

    def _load_cache(self) -> dict[str, dict[str, object]]:
        if not self._cache_path.exists():
            return {}
        try:
            with self._cache_path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            self._emit("analysis.cache_load_failed", {"error_type": type(exc).__name__}, ok=False)
            return {}
        if not isinstance(payload, dict):
            return {}
        return {key: value for key, value in payload.items() if isinstance(value, dict)}

    def _save_cache(self) -> None:
        self._cache_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._cache_path.with_suffix(self._cache_path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(self._cache, handle, sort_keys=True)
                handle.write("\n")
            tmp.replace(self._cache_path)
        except OSError as exc:
            self._emit("analysis.cache_save_failed", {"error_type": type(exc).__name__}, ok=False)

    def _warn(
        self, kind: str, commit_hash: str, stage: str, exc: Exception | None = None
    ) -> None:
        message = f"{kind}: {commit_hash or '-'} ({stage})"
        if exc is not None:
            message = f"{message}: {exc}"
        self._warnings.append(message)
        metadata: dict[str, object] = {"commit": commit_hash, "stage": stage}
        if exc is not None:
            metadata["error_type"] = type(exc).__name__
        self._emit(kind, metadata, ok=False)

    def _emit(self, kind: str, metadata: dict[str, object], *, ok: bool = True) -> None:
        if self._event_logger is not None:
            self._event_logger.emit(kind, metadata, ok=ok)


def _build_analysis(
    *,
    commit_hash: str,
    short_hash: str,
    author: str,
    date: str,
    timestamp: int,
    message: str,
    files: list[FileChange],
) -> CommitAnalysis:
    total_additions = sum(change.additions for change in files)
    total_deletions = sum(change.deletions for change in files)
    ai_additions = sum(change.ai_additions for change in files)
    ai_deletions = sum(change.ai_deletions for change in files)
    return CommitAnalysis(
        hash=commit_hash,
        short_hash=short_hash,
        author=author,
        date=date,
        timestamp=timestamp,
        message=message,
        total_files=len(files),
        total_additions=total_additions,
        total_deletions=total_deletions,
        ai_additions=ai_additions,
        ai_deletions=ai_deletions,
        ai_contribution_percentage=contribution_percentage(
            ai_additions + ai_deletions, total_additions + total_deletions
        ),
        files=tuple(files),
    )
