"""One monitoring session: all per-instance state wired together."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import asdict

from ai_lens.analysis import CACHE_FILE_NAME, DiffCorrelator, DiffSource, GitDiffSource
from ai_lens.analysis.diff import CommitAnalysis, RecentAnalysis
from ai_lens.config import LensConfig
from ai_lens.inference import (
    FeedCursor,
    InferenceEngine,
    InferenceResult,
    IntermediateStateSolver,
    LineRecordCache,
    OpaqueItem,
    parse_feed_payload,
)
from ai_lens.logging import JsonlEventLogger
from ai_lens.runtime import CaptureOutcome, EditEvent, EditRecorder, VersionSnapshotStore
from ai_lens.storage import AttributionStore, MatchRecorder

EVENT_LOG_FILE_NAME = "events.jsonl"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class LensSession:
    """Owns the caches, engine, store and correlator for one workspace."""

    def __init__(
        self,
        config: LensConfig,
        diff_source: DiffSource | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._clock = clock
        self._event_logger = JsonlEventLogger(path=config.data_dir / EVENT_LOG_FILE_NAME)

        workspace_roots = (str(config.workspace_root),)
        self._cache = LineRecordCache(
            max_lines_per_file=config.inference.max_lines_per_file,
            max_cache_size=config.inference.max_cache_size,
            workspace_roots=workspace_roots,
        )
        self._snapshots = VersionSnapshotStore(
            max_versions_per_file=config.snapshots.max_versions_per_file,
            max_history_ms=config.snapshots.max_history_ms,
        )
        self._recorder = EditRecorder(self._cache, self._snapshots)
        self._engine = InferenceEngine(
            self._cache,
            IntermediateStateSolver(max_prefix_steps=config.inference.max_prefix_steps),
            max_tracked_items=config.inference.max_tracked_items,
            record_retention_ms=config.inference.record_retention_ms,
            event_logger=self._event_logger,
        )
        self._store = AttributionStore(config.data_dir, event_logger=self._event_logger)
        self._engine.add_match_listener(MatchRecorder(self._store, config.workspace_root))
        self._feed_cursor = FeedCursor()
        self._correlator = DiffCorrelator(
            self._store,
            diff_source or GitDiffSource(config.workspace_root),
            config.data_dir / CACHE_FILE_NAME,
            causality_window_days=config.analysis.causality_window_days,
            code_extensions=config.analysis.code_extensions,
            event_logger=self._event_logger,
            clock=clock,
        )

    @property
    def config(self) -> LensConfig:
        return self._config

    @property
    def engine(self) -> InferenceEngine:
        return self._engine

    @property
    def store(self) -> AttributionStore:
        return self._store

    @property
    def snapshots(self) -> VersionSnapshotStore:
        return self._snapshots

    @property
    def event_logger(self) -> JsonlEventLogger:
        return self._event_logger

    def now(self) -> int:
        return self._clock()

    def open_document(
        self,
        file_name: str,
        version: int,
        lines: Sequence[str],
        timestamp: int | None = None,
    ) -> int:
        snapshot = self._recorder.open_document(
            file_name, version, lines, self._clock() if timestamp is None else timestamp
        )
        return snapshot.line_count

    def record_edit(
        self,
        event: EditEvent,
        document_lines: Sequence[str] | None = None,
    ) -> tuple[CaptureOutcome, list[InferenceResult]]:
        """Capture evidence for one edit, then retry items waiting on that file."""
        outcome = self._recorder.record_edit(event, document_lines)
        retried: list[InferenceResult] = []
        if outcome.records:
            retried = self._engine.notify_new_records(event.file_name)
        return outcome, retried

    def resolve_batch(
        self, items: Sequence[OpaqueItem], now: int | None = None
    ) -> list[InferenceResult]:
        return self._engine.resolve_batch(items, self._clock() if now is None else now)

    def ingest_feed(
        self, payload: object, now: int | None = None
    ) -> tuple[list[InferenceResult], int, int]:
        """Parse a full feed read, resolve only the new items.

        Returns ``(results, new_item_count, skipped_count)``.
        """
        reference = self._clock() if now is None else now
        parsed = parse_feed_payload(payload, default_timestamp=reference)
        new_items = self._feed_cursor.advance(parsed.items)
        results = self._engine.resolve_batch(new_items, reference)
        return results, len(new_items), parsed.skipped

    def maintenance(self, now: int | None = None) -> dict[str, int]:
        reference = self._clock() if now is None else now
        summary = dict(self._engine.perform_maintenance(reference))
        summary["removed_snapshots"] = self._snapshots.perform_maintenance(reference)
        summary["removed_store_files"] = self._store.cleanup(reference)
        summary["removed_commit_cache_entries"] = self._correlator.cleanup_cache(reference)
        return summary

    def analyze_commit(self, commit_hash: str) -> tuple[CommitAnalysis | None, list[str]]:
        analysis = self._correlator.analyze_commit(commit_hash)
        return analysis, self._correlator.drain_warnings()

    def analyze_recent(self, count: int | None = None) -> tuple[RecentAnalysis, list[str]]:
        analysis = self._correlator.analyze_recent(
            count if count is not None else self._config.analysis.recent_commit_count
        )
        return analysis, self._correlator.drain_warnings()

    def read_events(
        self, since: str | None, limit: int, kind: str | None = None
    ) -> list[dict[str, object]]:
        return self._event_logger.read(since=since, limit=limit, kind=kind)

    def status(self) -> dict[str, object]:
        """Counts-only snapshot of every component."""
        engine_stats = self._engine.stats()
        store_totals = self._store.total_stats()
        return {
            "workspace_root": str(self._config.workspace_root),
            "engine": {
                "resolved_count": engine_stats.resolved_count,
                "unresolved_count": engine_stats.unresolved_count,
                "pending_intermediate_count": engine_stats.pending_intermediate_count,
                "tracked_item_count": engine_stats.tracked_item_count,
                "listener_failures": self._engine.listener_failures,
            },
            "lines": asdict(engine_stats.lines),
            "snapshots": asdict(self._snapshots.stats()),
            "store": {
                "total_files": store_totals.total_files,
                "total_ai_lines": store_totals.total_ai_lines,
                "total_added_lines": store_totals.total_added_lines,
                "total_deleted_lines": store_totals.total_deleted_lines,
            },
            "effective_config": self._config.to_public_dict(),
        }
