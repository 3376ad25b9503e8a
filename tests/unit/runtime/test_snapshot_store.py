from __future__ import annotations

import pytest

from ai_lens.runtime import EditRange, VersionSnapshotStore, deleted_placeholder, extract_span
from ai_lens.runtime.snapshots import REDUCED_VERSIONS_PER_FILE


def test_extract_span_single_line_substring() -> None:
    lines = ["hello world", "second"]

    assert extract_span(lines, EditRange(0, 6, 0, 11)) == "world"
    assert extract_span(lines, EditRange(0, 0, 0, 0)) == ""


def test_extract_span_multi_line_keeps_interior_boundaries() -> None:
    lines = ["alpha", "beta", "gamma", "delta"]

    assert extract_span(lines, EditRange(0, 2, 2, 3)) == "pha\nbeta\ngam"


def test_extract_span_counts_columns_in_utf16_units() -> None:
    # The emoji occupies two UTF-16 units, so "ok" starts at column 6.
    lines = ["x = \U0001F600ok", "\U0001F600\U0001F600 end"]

    assert extract_span(lines, EditRange(0, 6, 0, 8)) == "ok"
    assert extract_span(lines, EditRange(0, 4, 1, 4)) == "\U0001F600ok\n\U0001F600\U0001F600"
    assert extract_span(lines, EditRange(0, 8, 0, 8)) is None


def test_extract_span_out_of_range_returns_none() -> None:
    lines = ["abc"]

    assert extract_span(lines, EditRange(1, 0, 1, 1)) is None
    assert extract_span(lines, EditRange(0, 5, 0, 6)) is None
    assert extract_span(lines, EditRange(0, 1, 0, 9)) is None


def test_extract_span_drops_overlong_columns_on_multi_line_ranges() -> None:
    lines = ["ab", "cd"]

    assert extract_span(lines, EditRange(0, 9, 1, 1)) == "\nc"
    assert extract_span(lines, EditRange(0, 1, 1, 9)) == "b"


def test_reconstruct_uses_exact_then_closest_earlier_version() -> None:
    store = VersionSnapshotStore()
    store.capture_snapshot("a.py", 1, ["one", "two"], 1_000)
    store.capture_snapshot("a.py", 4, ["uno", "dos"], 1_100)

    exact = store.reconstruct_removed_span("a.py", EditRange(1, 0, 1, 3), 4)
    earlier = store.reconstruct_removed_span("a.py", EditRange(1, 0, 1, 3), 3)
    missing = store.reconstruct_removed_span("a.py", EditRange(1, 0, 1, 3), 0)

    assert exact is not None and (exact.content, exact.version) == ("dos", 4)
    assert earlier is not None and (earlier.content, earlier.version) == ("two", 1)
    assert missing is None


def test_placeholder_when_no_snapshot_covers_the_range() -> None:
    store = VersionSnapshotStore()

    span = store.removed_span_or_placeholder("a.py", EditRange(0, 0, 0, 5), 3, 5)

    assert span.content == deleted_placeholder(5) == "[deleted:5chars]"
    assert span.version is None


def test_history_is_bounded_by_count() -> None:
    store = VersionSnapshotStore(max_versions_per_file=3)
    for version in range(6):
        store.capture_snapshot("a.py", version, [f"v{version}"], 1_000 + version)

    assert [snapshot.version for snapshot in store.history("a.py")] == [3, 4, 5]
    assert store.latest("a.py") is not None
    assert store.get("a.py", 1) is None


def test_history_is_bounded_by_age_except_latest() -> None:
    store = VersionSnapshotStore(max_history_ms=1_000)
    store.capture_snapshot("a.py", 1, ["old"], 1_000)
    store.capture_snapshot("a.py", 2, ["mid"], 2_500)
    store.capture_snapshot("a.py", 3, ["new"], 2_600)

    assert [snapshot.version for snapshot in store.history("a.py")] == [2, 3]

    removed = store.perform_maintenance(now=10_000)

    assert removed == 1
    assert [snapshot.version for snapshot in store.history("a.py")] == [3]
    assert store.stats().total_files == 1


def test_snapshots_are_copied_on_capture() -> None:
    store = VersionSnapshotStore()
    lines = ["a", "b"]
    store.capture_snapshot("a.py", 1, lines, 1_000)
    lines.append("c")

    snapshot = store.latest("a.py")
    assert snapshot is not None
    assert snapshot.lines == ("a", "b")


def test_maintenance_shrinks_histories_under_memory_pressure(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr("ai_lens.runtime.snapshots.MEMORY_PRESSURE_BYTES", 10)
    store = VersionSnapshotStore()
    for version in range(REDUCED_VERSIONS_PER_FILE + 5):
        store.capture_snapshot("a.py", version, ["payload"], 1_000)

    removed = store.perform_maintenance(now=1_000)

    assert removed == 5
    assert len(store.history("a.py")) == REDUCED_VERSIONS_PER_FILE


def test_stats_are_counts_only() -> None:
    store = VersionSnapshotStore()
    store.capture_snapshot("a.py", 1, ["ab"], 100)
    store.capture_snapshot("b.py", 1, ["cdef"], 300)

    stats = store.stats()

    assert stats.total_files == 2
    assert stats.total_versions == 2
    assert stats.oldest_timestamp == 100
    assert stats.newest_timestamp == 300
    assert stats.estimated_bytes == 12
