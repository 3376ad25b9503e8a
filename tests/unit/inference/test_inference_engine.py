from __future__ import annotations

import json
from pathlib import Path

from ai_lens.hashing import calculate_code_hash
from ai_lens.inference import (
    InferenceEngine,
    InferenceResult,
    LineRecordCache,
    OpaqueItem,
)
from ai_lens.logging import JsonlEventLogger


def _item(file_name: str, operation: str, content: str, timestamp: int) -> OpaqueItem:
    return OpaqueItem(
        hash=calculate_code_hash(file_name, operation, content),
        file_name=file_name,
        source="composer",
        timestamp=timestamp,
    )


def _collect(engine: InferenceEngine) -> list[tuple[OpaqueItem, InferenceResult, str]]:
    seen: list[tuple[OpaqueItem, InferenceResult, str]] = []
    engine.add_match_listener(lambda item, result, name: seen.append((item, result, name)))
    return seen


def test_batch_resolves_recorded_line_and_notifies_once() -> None:
    cache = LineRecordCache()
    cache.record("main.ts", 0, "const x = 1;", "+", 1_000)
    engine = InferenceEngine(cache)
    seen = _collect(engine)
    item = _item("main.ts", "+", "const x = 1;", 1_100)

    first = engine.resolve_batch([item], now=2_000)
    second = engine.resolve_batch([item], now=3_000)

    assert [result.content for result in first] == ["const x = 1;"]
    assert second == first
    assert len(seen) == 1
    assert seen[0][2] == "main.ts"
    assert engine.stats().resolved_count == 1


def test_distinct_items_with_same_hash_consume_distinct_records() -> None:
    cache = LineRecordCache()
    cache.record("main.ts", 4, "return 0;", "+", 1_000)
    cache.record("main.ts", 9, "return 0;", "+", 1_050)
    engine = InferenceEngine(cache)
    seen = _collect(engine)
    first = _item("main.ts", "+", "return 0;", 1_100)
    second = _item("main.ts", "+", "return 0;", 1_200)

    results = engine.resolve_batch([first, second], now=2_000)

    assert [result.content for result in results] == ["return 0;", "return 0;"]
    assert [record.used for record in cache.records_for("main.ts")] == [True, True]
    assert len(seen) == 1


def test_redelivered_item_does_not_consume_another_record() -> None:
    cache = LineRecordCache()
    cache.record("main.ts", 4, "return 0;", "+", 1_000)
    cache.record("main.ts", 9, "return 0;", "+", 1_050)
    engine = InferenceEngine(cache)
    item = _item("main.ts", "+", "return 0;", 1_100)

    engine.resolve_batch([item], now=2_000)
    again = engine.resolve_batch([item], now=3_000)

    assert [result.line_number for result in again] == [4]
    assert [record.used for record in cache.records_for("main.ts")] == [True, False]


def test_same_hash_falls_back_to_cached_result_when_records_run_out() -> None:
    cache = LineRecordCache()
    cache.record("main.ts", 4, "return 0;", "+", 1_000)
    engine = InferenceEngine(cache)
    first = _item("main.ts", "+", "return 0;", 1_100)
    second = _item("main.ts", "+", "return 0;", 1_200)

    results = engine.resolve_batch([first, second], now=2_000)

    assert len(results) == 2
    assert results[1] is results[0]
    assert engine.unresolved_items() == ()


def test_unresolved_item_is_retried_when_related_records_arrive() -> None:
    cache = LineRecordCache()
    engine = InferenceEngine(cache)
    seen = _collect(engine)
    item = _item("src/main.ts", "+", "let y = 2;", 1_000)

    assert engine.resolve_batch([item], now=1_000) == []
    assert engine.unresolved_items() == (item,)

    cache.record("other.ts", 0, "let y = 2;", "+", 1_500)
    assert engine.notify_new_records("other.ts") == []

    cache.record("src/main.ts", 3, "let y = 2;", "+", 1_600)
    results = engine.notify_new_records("src/main.ts")

    assert [result.hash for result in results] == [item.hash]
    assert engine.unresolved_items() == ()
    assert len(seen) == 1


def test_unresolved_queue_is_deduplicated_by_hash() -> None:
    engine = InferenceEngine(LineRecordCache())
    item = _item("a.py", "+", "x = 1", 1_000)

    engine.resolve_batch([item, item], now=1_000)

    assert len(engine.unresolved_items()) == 1


def test_full_line_resolution_solves_preceding_partial_state() -> None:
    cache = LineRecordCache()
    engine = InferenceEngine(cache)
    seen = _collect(engine)
    partial = _item("app.js", "-", 'console.log("hel")', 1_000)
    full = _item("app.js", "+", 'console.log("hello")', 1_200)
    cache.record("app.js", 0, 'console.log("hello")', "+", 1_200)

    results = engine.resolve_batch([partial, full], now=2_000)

    assert [result.hash for result in results] == [full.hash, partial.hash]
    derived = results[1]
    assert derived.content == 'console.log("hel")'
    assert derived.operation == "-"
    assert derived.source_tag == "paired_symbol_intermediate"
    assert derived.derived_from_hash == full.hash
    assert derived.line_number == 0
    assert engine.unresolved_items() == ()
    assert [entry[1].hash for entry in seen] == [full.hash, partial.hash]


def test_unsolved_preceding_item_waits_as_pending_intermediate() -> None:
    cache = LineRecordCache()
    engine = InferenceEngine(cache)
    mystery = _item("app.js", "-", "unrelated text", 1_000)
    first_full = _item("app.js", "+", "alpha()", 1_100)
    cache.record("app.js", 0, "alpha()", "+", 1_100)

    engine.resolve_batch([mystery, first_full], now=1_500)

    assert engine.pending_intermediates() == (mystery,)

    later = OpaqueItem(
        hash=calculate_code_hash("app.js", "-", "unrel"),
        file_name="app.js",
        source="tab",
        timestamp=900,
    )
    engine.resolve_batch([later], now=1_600)
    cache.record("app.js", 1, "unrelated text", "+", 1_700)
    second_full = _item("app.js", "+", "unrelated text", 1_700)

    results = engine.resolve_batch([second_full], now=1_800)

    # Only the nearest earlier item is attempted; the older one keeps waiting.
    assert [result.hash for result in results] == [second_full.hash, mystery.hash]
    assert results[1].source_tag == "intermediate_state"
    assert engine.unresolved_items() == (later,)
    assert engine.pending_intermediates() == ()


def test_pending_intermediate_retried_on_later_full_line() -> None:
    cache = LineRecordCache()
    engine = InferenceEngine(cache)
    pending = _item("app.js", "-", "fetch(u", 1_000)
    unrelated_full = _item("app.js", "+", "done()", 1_100)
    cache.record("app.js", 0, "done()", "+", 1_100)
    engine.resolve_batch([pending, unrelated_full], now=1_200)
    assert engine.pending_intermediates() == (pending,)

    cache.record("app.js", 1, "fetch(url)", "+", 1_300)
    full = _item("app.js", "+", "fetch(url)", 1_300)
    results = engine.resolve_batch([full], now=1_400)

    assert [result.hash for result in results] == [full.hash, pending.hash]
    assert results[1].content == "fetch(u"
    assert engine.pending_intermediates() == ()


def test_removed_line_resolution_does_not_trigger_intermediate_search() -> None:
    cache = LineRecordCache()
    engine = InferenceEngine(cache)
    earlier = _item("a.py", "-", "pri", 1_000)
    removed = _item("a.py", "-", "print(x)", 1_100)
    cache.record("a.py", 0, "print(x)", "-", 1_100)

    results = engine.resolve_batch([earlier, removed], now=1_200)

    assert [result.hash for result in results] == [removed.hash]
    assert engine.unresolved_items() == (earlier,)
    assert engine.pending_intermediates() == ()


def test_malformed_items_are_skipped_individually() -> None:
    cache = LineRecordCache()
    cache.record("a.py", 0, "ok", "+", 1_000)
    engine = InferenceEngine(cache)
    bad_hash = OpaqueItem(hash="zz", file_name="a.py", source="tab", timestamp=1)
    no_file = OpaqueItem(hash="0000abcd", file_name="", source="tab", timestamp=1)
    good = _item("a.py", "+", "ok", 1_000)

    results = engine.resolve_batch([bad_hash, no_file, good], now=2_000)

    assert [result.hash for result in results] == [good.hash]
    assert engine.unresolved_items() == ()


def test_listener_failure_is_logged_and_batch_continues(tmp_path: Path) -> None:
    logger = JsonlEventLogger(tmp_path / "events.jsonl")
    cache = LineRecordCache()
    cache.record("a.py", 0, "one", "+", 1_000)
    cache.record("a.py", 1, "two", "+", 1_001)
    engine = InferenceEngine(cache, event_logger=logger)

    def broken(item: OpaqueItem, result: InferenceResult, name: str) -> None:
        raise RuntimeError("listener exploded")

    engine.add_match_listener(broken)
    seen = _collect(engine)

    results = engine.resolve_batch(
        [_item("a.py", "+", "one", 1_000), _item("a.py", "+", "two", 1_001)], now=2_000
    )

    assert len(results) == 2
    assert len(seen) == 2
    assert engine.listener_failures == 2
    kinds = [json.loads(line)["kind"] for line in logger.path.read_text().splitlines()]
    assert kinds.count("engine.listener_error") == 2
    assert "listener exploded" not in logger.path.read_text()


def test_removed_listener_is_not_called() -> None:
    cache = LineRecordCache()
    cache.record("a.py", 0, "one", "+", 1_000)
    engine = InferenceEngine(cache)
    calls: list[str] = []

    def listener(item: OpaqueItem, result: InferenceResult, name: str) -> None:
        calls.append(result.hash)

    engine.add_match_listener(listener)
    engine.remove_match_listener(listener)
    engine.resolve_batch([_item("a.py", "+", "one", 1_000)], now=2_000)

    assert calls == []


def test_tracked_queues_are_bounded() -> None:
    engine = InferenceEngine(LineRecordCache(), max_tracked_items=3)
    items = [_item("a.py", "+", f"line {index}", 1_000 + index) for index in range(5)]

    engine.resolve_batch(items, now=2_000)

    assert engine.unresolved_items() == tuple(items[2:])


def test_maintenance_prunes_used_records() -> None:
    cache = LineRecordCache()
    cache.record("a.py", 0, "one", "+", 1_000)
    cache.record("a.py", 1, "two", "+", 1_000)
    engine = InferenceEngine(cache, record_retention_ms=500)
    engine.resolve_batch([_item("a.py", "+", "one", 1_000)], now=1_000)

    summary = engine.perform_maintenance(now=5_000)

    assert summary == {"removed_records": 1, "unresolved": 0, "pending_intermediates": 0}
    assert [record.content for record in cache.records_for("a.py")] == ["two"]
