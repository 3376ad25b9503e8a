from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from ai_lens.analysis import GitCommandError
from ai_lens.hashing import calculate_code_hash
from ai_lens.server import StdioServer, create_server


class FailingDiffSource:
    """Diff source whose every git call fails."""

    def __getattr__(self, name: str) -> Callable[..., str]:
        def fail(*args: object) -> str:
            raise GitCommandError(args_text=name, returncode=128, detail="not a git repository")

        return fail


def _server(tmp_path: Path) -> StdioServer:
    return create_server(workspace_root=str(tmp_path), diff_source=FailingDiffSource())


def _call(server: StdioServer, method: str, params: dict[str, object]) -> dict[str, object]:
    return server.handle_payload({"id": f"t-{method}", "method": method, "params": params})


def _range(line: int, start: int, end_line: int, end: int) -> dict[str, int]:
    return {
        "start_line": line,
        "start_character": start,
        "end_line": end_line,
        "end_character": end,
    }


def _feed_item(file_name: str, operation: str, content: str, ts: int) -> dict[str, object]:
    return {
        "hash": calculate_code_hash(file_name, operation, content),
        "metadata": {"fileName": file_name, "source": "composer", "timestamp": ts},
    }


def test_record_edit_then_resolve_batch_reports_lengths_only(tmp_path: Path) -> None:
    server = _server(tmp_path)
    opened = _call(
        server,
        "lens.open_document",
        {"file_name": "main.ts", "version": 1, "lines": ["const x"], "timestamp": 1_000},
    )
    assert opened["result"] == {"file_name": "main.ts", "version": 1, "line_count": 1}

    edited = _call(
        server,
        "lens.record_edit",
        {
            "file_name": "main.ts",
            "range": _range(0, 7, 0, 7),
            "range_length": 0,
            "text": " = 1;",
            "document_version": 2,
            "timestamp": 1_100,
        },
    )
    assert edited["ok"] is True
    assert edited["result"]["kind"] == "insert"
    assert (edited["result"]["added_records"], edited["result"]["removed_records"]) == (1, 1)

    resolved = _call(
        server,
        "lens.resolve_batch",
        {"items": [_feed_item("main.ts", "+", "const x = 1;", 1_150)], "now": 1_200},
    )

    assert resolved["ok"] is True
    assert resolved["result"]["item_count"] == 1
    summary = resolved["result"]["resolved"][0]
    assert summary["operation"] == "+"
    assert summary["source_tag"] == "full_line"
    assert summary["content_length"] == len("const x = 1;")
    assert "content" not in summary


def test_waiting_item_resolves_when_edit_arrives(tmp_path: Path) -> None:
    server = _server(tmp_path)
    item = _feed_item("main.ts", "+", "let y = 2;", 1_000)

    first = _call(server, "lens.resolve_batch", {"items": [item], "now": 1_000})
    assert first["result"]["resolved"] == []

    edited = _call(
        server,
        "lens.record_edit",
        {
            "file_name": "main.ts",
            "range": _range(0, 0, 0, 0),
            "range_length": 0,
            "text": "let y = 2;",
            "document_version": 1,
            "timestamp": 1_100,
            "document_lines": ["let y = 2;"],
        },
    )

    assert [entry["hash"] for entry in edited["result"]["resolved"]] == [item["hash"]]
    status = _call(server, "lens.status", {})
    assert status["result"]["store"]["total_ai_lines"] == 1
    assert status["result"]["engine"]["unresolved_count"] == 0


def test_ingest_feed_only_processes_new_items(tmp_path: Path) -> None:
    server = _server(tmp_path)
    items = [_feed_item("a.py", "+", "x = 1", 1_000), {"hash": "nope"}]

    first = _call(server, "lens.ingest_feed", {"items": items, "now": 2_000})
    second = _call(server, "lens.ingest_feed", {"items": items, "now": 3_000})

    assert (first["result"]["new_item_count"], first["result"]["skipped"]) == (1, 1)
    assert second["result"]["new_item_count"] == 0


def test_record_edit_validates_range(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(
        server,
        "lens.record_edit",
        {
            "file_name": "a.py",
            "range": _range(3, 0, 1, 0),
            "range_length": 0,
            "text": "x",
            "document_version": 1,
        },
    )

    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "lens.record_edit range.end_line must be >= start_line.",
    }


def test_analyze_commit_failure_surfaces_warning(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(server, "lens.analyze_commit", {"commit": "abc123"})

    assert response["ok"] is True
    assert response["result"] == {"analysis": None}
    assert len(response["warnings"]) == 1
    assert response["warnings"][0].startswith("analysis.commit_failed: abc123")


def test_analyze_commit_rejects_option_like_values(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(server, "lens.analyze_commit", {"commit": "--output=/tmp/x"})

    assert response["error"]["code"] == "INVALID_PARAMS"


def test_analyze_recent_validates_count(tmp_path: Path) -> None:
    server = _server(tmp_path)

    invalid = _call(server, "lens.analyze_recent", {"count": 0})
    failed = _call(server, "lens.analyze_recent", {"count": 2})

    assert invalid["error"]["code"] == "INVALID_PARAMS"
    assert failed["ok"] is True
    assert failed["result"]["current_branch"] == "unknown"
    assert failed["result"]["commits"] == []
    assert failed["warnings"][0].startswith("analysis.recent_failed")


def test_maintenance_reports_every_component(tmp_path: Path) -> None:
    server = _server(tmp_path)

    response = _call(server, "lens.maintenance", {"now": 10_000})

    assert set(response["result"].keys()) == {
        "removed_records",
        "unresolved",
        "pending_intermediates",
        "removed_snapshots",
        "removed_store_files",
        "removed_commit_cache_entries",
    }


def test_event_log_clamps_limit(tmp_path: Path) -> None:
    server = _server(tmp_path)
    for _ in range(3):
        _call(server, "lens.status", {})

    response = _call(server, "lens.event_log", {"limit": 0, "kind": "request"})

    assert len(response["result"]["entries"]) == 1
    assert response["result"]["entries"][0]["metadata"]["tool"] == "lens.status"
