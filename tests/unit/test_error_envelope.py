from __future__ import annotations

import json
from pathlib import Path

from ai_lens.server import create_server


def test_malformed_json_returns_invalid_json_error(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_json_line("{not-json")

    assert response["ok"] is False
    assert response["error"] == {
        "code": "INVALID_JSON",
        "message": "Request must be valid JSON.",
    }
    assert str(response["request_id"]).startswith("req-")


def test_unknown_tool_returns_explicit_error(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_payload(
        {"id": "abc-123", "method": "lens.unknown", "params": {"k": "v"}}
    )

    assert response["ok"] is False
    assert response["request_id"] == "abc-123"
    assert response["error"] == {
        "code": "UNKNOWN_TOOL",
        "message": "Unknown tool: lens.unknown",
    }


def test_invalid_tools_call_params_returns_invalid_params_error(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))
    payload = {"id": 7, "method": "tools/call", "params": {"name": "lens.status", "arguments": []}}

    response = server.handle_payload(json.loads(json.dumps(payload)))

    assert response["ok"] is False
    assert response["request_id"] == "7"
    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "tools/call params.arguments must be an object.",
    }


def test_non_object_request_is_invalid(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_payload(["lens.status"])

    assert response["ok"] is False
    assert response["error"]["code"] == "INVALID_REQUEST"


def test_missing_method_is_invalid(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_payload({"id": "r-1", "params": {}})

    assert response["request_id"] == "r-1"
    assert response["error"]["code"] == "INVALID_REQUEST"


def test_tool_argument_errors_map_to_invalid_params(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_payload(
        {
            "id": "r-2",
            "method": "lens.open_document",
            "params": {"file_name": "a.py", "lines": [], "version": "1"},
        }
    )

    assert response["ok"] is False
    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "lens.open_document version must be an integer.",
    }


def test_unexpected_tool_failure_maps_to_internal_error(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    def explode(_: dict[str, object]) -> dict[str, object]:
        raise RuntimeError("boom")

    server._registry.register("lens.explode", explode)

    response = server.handle_payload({"id": "r-3", "method": "lens.explode", "params": {}})

    assert response["ok"] is False
    assert response["error"] == {
        "code": "INTERNAL_ERROR",
        "message": "Unhandled server error while executing tool.",
    }
    events = (tmp_path / ".ai_lens" / "events.jsonl").read_text(encoding="utf-8").splitlines()
    last = json.loads(events[-1])
    assert last["ok"] is False
    assert last["metadata"]["error_code"] == "INTERNAL_ERROR"


def test_success_envelope_shape(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_payload({"id": "r-4", "method": "lens.status", "params": {}})

    assert set(response.keys()) == {"request_id", "ok", "result", "warnings"}
    assert response["warnings"] == []
    assert [tool["name"] for tool in response["result"]["tools"]] == [
        "lens.status",
        "lens.open_document",
        "lens.record_edit",
        "lens.resolve_batch",
        "lens.ingest_feed",
        "lens.maintenance",
        "lens.analyze_commit",
        "lens.analyze_recent",
        "lens.event_log",
    ]


def test_missing_required_arguments_are_listed_before_the_tool_runs(tmp_path: Path) -> None:
    server = create_server(workspace_root=str(tmp_path))

    response = server.handle_payload(
        {"id": "r-5", "method": "lens.record_edit", "params": {"file_name": "a.py", "text": "x"}}
    )

    assert response["error"] == {
        "code": "INVALID_PARAMS",
        "message": "lens.record_edit missing required arguments: range, range_length, "
        "document_version.",
    }
    assert server.session.snapshots.stats().total_files == 0
