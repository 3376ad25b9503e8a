"""Built-in lens tools exposed over the STDIO server."""

from __future__ import annotations

from ai_lens.analysis.diff import CommitAnalysis
from ai_lens.config import MAX_RECENT_COMMIT_COUNT_CAP
from ai_lens.inference import InferenceResult, parse_feed_payload
from ai_lens.runtime import EditEvent, EditRange
from ai_lens.session import LensSession
from ai_lens.tools.registry import ToolDispatchError, ToolHandler, ToolRegistry

DEFAULT_EVENT_LOG_LIMIT = 50
MAX_EVENT_LOG_LIMIT = 200


def register_builtin_tools(registry: ToolRegistry, session: LensSession) -> None:
    """Register the lens tool set in a fixed order."""
    registry.register(
        "lens.status",
        _status_handler(registry, session),
        "Counts for the engine, line cache, snapshots and store.",
    )
    registry.register(
        "lens.open_document",
        _open_document_handler(session),
        "Seed the snapshot for an opened document.",
        required=("file_name", "version", "lines"),
    )
    registry.register(
        "lens.record_edit",
        _record_edit_handler(session),
        "Record one editor change and retry items waiting on the file.",
        required=("file_name", "range", "range_length", "document_version"),
    )
    registry.register(
        "lens.resolve_batch",
        _resolve_batch_handler(session),
        "Resolve an ordered batch of opaque feed items.",
        required=("items",),
    )
    registry.register(
        "lens.ingest_feed",
        _ingest_feed_handler(session),
        "Resolve the items appended since the previous feed read.",
        required=("items",),
    )
    registry.register(
        "lens.maintenance",
        _maintenance_handler(session),
        "Prune consumed records, expired snapshots and stale caches.",
    )
    registry.register(
        "lens.analyze_commit",
        _analyze_commit_handler(session),
        "Attribute one commit's diff lines.",
        required=("commit",),
    )
    registry.register(
        "lens.analyze_recent",
        _analyze_recent_handler(session),
        "Attribute uncommitted changes and recent commits.",
    )
    registry.register(
        "lens.event_log",
        _event_log_handler(session),
        "Read recent sanitized events.",
    )


def result_summary(result: InferenceResult) -> dict[str, object]:
    """Content-opaque view of one inference result."""
    return {
        "hash": result.hash,
        "operation": result.operation,
        "source_tag": result.source_tag,
        "file_name": result.file_name,
        "line_number": result.line_number,
        "content_length": len(result.content),
        "derived_from_hash": result.derived_from_hash,
    }


def _status_handler(registry: ToolRegistry, session: LensSession) -> ToolHandler:
    def handler(_: dict[str, object]) -> dict[str, object]:
        payload = session.status()
        payload["tools"] = registry.describe()
        return payload

    return handler


def _open_document_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        file_name = _required_str(arguments, "file_name", "lens.open_document")
        version = _required_int(arguments, "version", "lens.open_document")
        lines = _string_list(arguments.get("lines"), "lens.open_document", "lines")
        timestamp = _optional_int(arguments, "timestamp", "lens.open_document")
        line_count = session.open_document(file_name, version, lines, timestamp)
        return {"file_name": file_name, "version": version, "line_count": line_count}

    return handler


def _record_edit_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        tool = "lens.record_edit"
        file_name = _required_str(arguments, "file_name", tool)
        edit_range = _edit_range(arguments.get("range"), tool)
        range_length = _required_int(arguments, "range_length", tool)
        if range_length < 0:
            raise ToolDispatchError(
                code="INVALID_PARAMS", message=f"{tool} range_length must be >= 0."
            )
        text = arguments.get("text", "")
        if not isinstance(text, str):
            raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} text must be a string.")
        document_version = _required_int(arguments, "document_version", tool)
        timestamp = _optional_int(arguments, "timestamp", tool)
        document_lines: list[str] | None = None
        if arguments.get("document_lines") is not None:
            document_lines = _string_list(arguments.get("document_lines"), tool, "document_lines")

        event = EditEvent(
            file_name=file_name,
            range=edit_range,
            range_length=range_length,
            text=text,
            document_version=document_version,
            timestamp=session.now() if timestamp is None else timestamp,
        )
        outcome, retried = session.record_edit(event, document_lines)
        return {
            "file_name": file_name,
            "kind": outcome.kind,
            "added_records": sum(1 for record in outcome.records if record.operation == "+"),
            "removed_records": sum(1 for record in outcome.records if record.operation == "-"),
            "snapshot_version": outcome.snapshot_version,
            "resolved": [result_summary(result) for result in retried],
        }

    return handler


def _resolve_batch_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        tool = "lens.resolve_batch"
        items = arguments.get("items")
        if not isinstance(items, list):
            raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} items must be a list.")
        now = _optional_int(arguments, "now", tool)
        reference = session.now() if now is None else now
        parsed = parse_feed_payload(items, default_timestamp=reference)
        results = session.resolve_batch(parsed.items, reference)
        return {
            "item_count": len(parsed.items),
            "skipped": parsed.skipped,
            "resolved": [result_summary(result) for result in results],
        }

    return handler


def _ingest_feed_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        tool = "lens.ingest_feed"
        items = arguments.get("items")
        if not isinstance(items, list):
            raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} items must be a list.")
        now = _optional_int(arguments, "now", tool)
        results, new_items, skipped = session.ingest_feed(items, now)
        return {
            "new_item_count": new_items,
            "skipped": skipped,
            "resolved": [result_summary(result) for result in results],
        }

    return handler


def _maintenance_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        now = _optional_int(arguments, "now", "lens.maintenance")
        return dict(session.maintenance(now))

    return handler


def _analyze_commit_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        commit = _required_str(arguments, "commit", "lens.analyze_commit")
        if commit.startswith("-"):
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message="lens.analyze_commit commit must not start with '-'.",
            )
        analysis, warnings = session.analyze_commit(commit)
        return {
            "analysis": _analysis_summary(analysis),
            "__warnings__": warnings,
        }

    return handler


def _analyze_recent_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        tool = "lens.analyze_recent"
        count = _optional_int(arguments, "count", tool)
        if count is not None and not 1 <= count <= MAX_RECENT_COMMIT_COUNT_CAP:
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message=f"{tool} count must be between 1 and {MAX_RECENT_COMMIT_COUNT_CAP}.",
            )
        recent, warnings = session.analyze_recent(count)
        return {
            "current_branch": recent.current_branch,
            "commits": [analysis.summary() for analysis in recent.commits],
            "last_analyzed_at": recent.last_analyzed_at,
            "__warnings__": warnings,
        }

    return handler


def _event_log_handler(session: LensSession) -> ToolHandler:
    def handler(arguments: dict[str, object]) -> dict[str, object]:
        since_value = arguments.get("since")
        kind_value = arguments.get("kind")
        limit_value = arguments.get("limit", DEFAULT_EVENT_LOG_LIMIT)

        since: str | None = since_value if isinstance(since_value, str) else None
        kind: str | None = kind_value if isinstance(kind_value, str) else None
        limit = limit_value if isinstance(limit_value, int) else DEFAULT_EVENT_LOG_LIMIT
        if limit < 1:
            limit = 1
        if limit > MAX_EVENT_LOG_LIMIT:
            limit = MAX_EVENT_LOG_LIMIT

        return {"entries": session.read_events(since, limit, kind)}

    return handler


def _analysis_summary(analysis: CommitAnalysis | None) -> dict[str, object] | None:
    if analysis is None:
        return None
    return analysis.summary()


def _edit_range(value: object, tool: str) -> EditRange:
    if not isinstance(value, dict):
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} range must be an object.")
    fields = ("start_line", "start_character", "end_line", "end_character")
    numbers: list[int] = []
    for name in fields:
        raw = value.get(name)
        if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message=f"{tool} range.{name} must be a non-negative integer.",
            )
        numbers.append(raw)
    start_line, start_character, end_line, end_character = numbers
    if end_line < start_line:
        raise ToolDispatchError(
            code="INVALID_PARAMS", message=f"{tool} range.end_line must be >= start_line."
        )
    return EditRange(start_line, start_character, end_line, end_character)


def _required_str(arguments: dict[str, object], key: str, tool: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolDispatchError(
            code="INVALID_PARAMS", message=f"{tool} {key} must be a non-empty string."
        )
    return value


def _required_int(arguments: dict[str, object], key: str, tool: str) -> int:
    value = arguments.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ToolDispatchError(code="INVALID_PARAMS", message=f"{tool} {key} must be an integer.")
    return value


def _optional_int(arguments: dict[str, object], key: str, tool: str) -> int | None:
    if arguments.get(key) is None:
        return None
    return _required_int(arguments, key, tool)


def _string_list(value: object, tool: str, key: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ToolDispatchError(
            code="INVALID_PARAMS", message=f"{tool} {key} must be a list of strings."
        )
    return [str(item) for item in value]
