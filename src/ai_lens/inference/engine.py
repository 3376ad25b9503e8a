"""Resolve opaque feed items against recorded line evidence."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace

from ai_lens.hashing import is_valid_hash
from ai_lens.inference.cache import LineRecordCache
from ai_lens.inference.intermediate import IntermediateSolution, IntermediateStateSolver
from ai_lens.inference.models import (
    SOURCE_FULL_LINE,
    EngineStats,
    InferenceResult,
    OpaqueItem,
)
from ai_lens.logging import JsonlEventLogger
from ai_lens.workspace import is_file_name_related

MatchListener = Callable[[OpaqueItem, InferenceResult, str], None]

DEFAULT_MAX_TRACKED_ITEMS = 10_000
DEFAULT_RECORD_RETENTION_MS = 300_000


class InferenceEngine:
    """Chronological resolver with an unresolved queue and evidence-driven retry.

    Every newly resolved hash is announced to match listeners exactly once.
    Items that fail direct lookup wait in an unresolved queue keyed by hash and
    are retried only when new records arrive for a related file. When a full
    added line resolves, the nearest earlier unresolved item for the same file
    is treated as a possible partial typing state of that line.
    """

    def __init__(
        self,
        cache: LineRecordCache,
        solver: IntermediateStateSolver | None = None,
        *,
        max_tracked_items: int = DEFAULT_MAX_TRACKED_ITEMS,
        record_retention_ms: int = DEFAULT_RECORD_RETENTION_MS,
        event_logger: JsonlEventLogger | None = None,
    ) -> None:
        if max_tracked_items < 1:
            raise ValueError("max_tracked_items must be >= 1")
        self._cache = cache
        self._solver = solver or IntermediateStateSolver()
        self._max_tracked_items = max_tracked_items
        self._record_retention_ms = record_retention_ms
        self._event_logger = event_logger
        self._listeners: list[MatchListener] = []
        self._unresolved: dict[str, OpaqueItem] = {}
        self._pending_intermediates: dict[str, OpaqueItem] = {}
        self._notified: dict[str, None] = {}
        self._consumed: dict[OpaqueItem, None] = {}
        self._resolved_count = 0
        self._listener_failures = 0

    @property
    def cache(self) -> LineRecordCache:
        return self._cache

    @property
    def listener_failures(self) -> int:
        return self._listener_failures

    def add_match_listener(self, listener: MatchListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_match_listener(self, listener: MatchListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def unresolved_items(self) -> tuple[OpaqueItem, ...]:
        return tuple(self._unresolved.values())

    def pending_intermediates(self) -> tuple[OpaqueItem, ...]:
        return tuple(self._pending_intermediates.values())

    def resolve_batch(self, items: Iterable[OpaqueItem], now: int) -> list[InferenceResult]:
        """Resolve ``items`` in the given order and return every result produced.

        Results derived for earlier partial states are appended right after the
        full-line result that revealed them. Malformed items are skipped.
        """
        results: list[InferenceResult] = []
        processed = 0
        skipped = 0
        for item in items:
            if not is_valid_hash(item.hash) or not item.file_name:
                skipped += 1
                continue
            processed += 1
            results.extend(self._resolve_item(item))
        self._emit(
            "engine.batch",
            {
                "items": processed,
                "skipped": skipped,
                "resolved": len(results),
                "unresolved": len(self._unresolved),
                "now": now,
            },
        )
        return results

    def notify_new_records(self, file_name: str) -> list[InferenceResult]:
        """Retry unresolved items whose file is related to ``file_name``."""
        candidates = sorted(
            (
                item
                for item in self._unresolved.values()
                if is_file_name_related(item.file_name, file_name)
            ),
            key=lambda item: item.timestamp,
        )
        results: list[InferenceResult] = []
        for item in candidates:
            if item.hash not in self._unresolved:
                continue
            result = self._cache.find_match(item.hash, item.file_name)
            if result is None:
                continue
            results.extend(self._on_resolved(item, result))
        if results:
            self._emit("engine.retry", {"file_name": file_name, "resolved": len(results)})
        return results

    def perform_maintenance(self, now: int) -> dict[str, int]:
        """Prune consumed records past the retention window."""
        removed = self._cache.prune(now, self._record_retention_ms)
        for item_hash in list(self._pending_intermediates.keys()):
            if item_hash not in self._unresolved:
                del self._pending_intermediates[item_hash]
        summary = {
            "removed_records": removed,
            "unresolved": len(self._unresolved),
            "pending_intermediates": len(self._pending_intermediates),
        }
        self._emit("engine.maintenance", summary)
        return summary

    def stats(self) -> EngineStats:
        return EngineStats(
            resolved_count=self._resolved_count,
            unresolved_count=len(self._unresolved),
            pending_intermediate_count=len(self._pending_intermediates),
            tracked_item_count=len(self._notified),
            lines=self._cache.stats(),
        )

    def clear(self) -> None:
        self._cache.clear()
        self._unresolved.clear()
        self._pending_intermediates.clear()
        self._notified.clear()
        self._consumed.clear()
        self._resolved_count = 0

    def _resolve_item(self, item: OpaqueItem) -> list[InferenceResult]:
        # A re-delivered item is answered from the result cache. A distinct item
        # sharing the hash consumes its own record while one is left.
        cached = self._cache.cached_result(item.hash)
        if cached is not None and item in self._consumed:
            return [cached]
        result = self._cache.find_match(item.hash, item.file_name)
        if result is None and cached is not None:
            self._mark_consumed(item)
            self._unresolved.pop(item.hash, None)
            self._pending_intermediates.pop(item.hash, None)
            return [cached]
        if result is None:
            self._track(self._unresolved, item)
            return []
        return self._on_resolved(item, result)

    def _on_resolved(self, item: OpaqueItem, result: InferenceResult) -> list[InferenceResult]:
        self._mark_consumed(item)
        self._unresolved.pop(item.hash, None)
        self._pending_intermediates.pop(item.hash, None)
        self._notify(item, result)
        results = [result]
        if result.operation == "+" and result.source_tag == SOURCE_FULL_LINE:
            results.extend(self._infer_intermediates(item, result))
        return results

    def _infer_intermediates(
        self, item: OpaqueItem, result: InferenceResult
    ) -> list[InferenceResult]:
        derived: list[InferenceResult] = []
        preceding = self._preceding_unresolved(item)
        if preceding is not None:
            solved = self._try_intermediate(preceding, result)
            if solved is None:
                self._track(self._pending_intermediates, preceding)
            else:
                derived.append(solved)

        for pending in list(self._pending_intermediates.values()):
            if pending.hash not in self._pending_intermediates:
                continue
            if not is_file_name_related(pending.file_name, item.file_name):
                continue
            solved = self._try_intermediate(pending, result)
            if solved is not None:
                derived.append(solved)
        return derived

    def _preceding_unresolved(self, item: OpaqueItem) -> OpaqueItem | None:
        best: OpaqueItem | None = None
        for candidate in self._unresolved.values():
            if candidate.hash == item.hash or candidate.timestamp > item.timestamp:
                continue
            if not is_file_name_related(candidate.file_name, item.file_name):
                continue
            if best is None or candidate.timestamp >= best.timestamp:
                best = candidate
        return best

    def _try_intermediate(
        self, candidate: OpaqueItem, full_result: InferenceResult
    ) -> InferenceResult | None:
        solution = self._solver.solve(
            candidate.hash,
            full_result.content,
            self._cache.name_spellings(candidate.file_name),
        )
        if solution is None:
            return None
        derived = self._cache.remember(self._to_result(candidate, full_result, solution))
        self._mark_consumed(candidate)
        self._unresolved.pop(candidate.hash, None)
        self._pending_intermediates.pop(candidate.hash, None)
        self._notify(candidate, derived)
        self._emit(
            "engine.intermediate",
            {
                "hash": candidate.hash,
                "source_tag": derived.source_tag,
                "derived_from": full_result.hash,
            },
        )
        return derived

    @staticmethod
    def _to_result(
        candidate: OpaqueItem,
        full_result: InferenceResult,
        solution: IntermediateSolution,
    ) -> InferenceResult:
        return replace(
            full_result,
            hash=candidate.hash,
            content=solution.content,
            operation="-",
            source_tag=solution.source_tag,
            file_name=solution.file_name,
            derived_from_hash=full_result.hash,
        )

    def _notify(self, item: OpaqueItem, result: InferenceResult) -> None:
        if result.hash in self._notified:
            return
        self._notified[result.hash] = None
        overflow = len(self._notified) - self._max_tracked_items
        if overflow > 0:
            for stale in list(self._notified.keys())[:overflow]:
                del self._notified[stale]
        self._resolved_count += 1
        for listener in list(self._listeners):
            try:
                listener(item, result, result.file_name)
            except Exception as exc:
                self._listener_failures += 1
                self._emit(
                    "engine.listener_error",
                    {"hash": result.hash, "error_type": type(exc).__name__},
                    ok=False,
                )

    def _mark_consumed(self, item: OpaqueItem) -> None:
        self._consumed[item] = None
        overflow = len(self._consumed) - self._max_tracked_items
        if overflow > 0:
            for stale in list(self._consumed.keys())[:overflow]:
                del self._consumed[stale]

    def _track(self, queue: dict[str, OpaqueItem], item: OpaqueItem) -> None:
        if item.hash in queue:
            return
        queue[item.hash] = item
        overflow = len(queue) - self._max_tracked_items
        if overflow > 0:
            for stale in list(queue.keys())[:overflow]:
                del queue[stale]

    def _emit(self, kind: str, metadata: dict[str, object], *, ok: bool = True) -> None:
        if self._event_logger is not None:
            self._event_logger.emit(kind, metadata, ok=ok)
