"""Structured JSONL event log utilities."""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path

# String values that identify state without revealing line content.
_PLAIN_STRING_KEYS = frozenset(
    {
        "commit",
        "derived_from",
        "error_code",
        "error_type",
        "file_name",
        "hash",
        "operation",
        "path",
        "source",
        "source_tag",
        "stage",
        "tool",
    }
)


@dataclass(slots=True, frozen=True)
class LensEvent:
    """Sanitized representation of one request or engine event."""

    timestamp: str
    kind: str
    request_id: str | None
    ok: bool
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_metadata(metadata: dict[str, object]) -> dict[str, object]:
    """Sanitize metadata so no line content or document text reaches disk.

    Scalars and identifying strings pass through. Any other value is replaced
    by a description of its shape: presence and length for strings, length
    for lists, key names for objects.
    """
    sanitized: dict[str, object] = {}
    for key in sorted(metadata):
        sanitized.update(_describe(key, metadata[key]))
    return sanitized


def _describe(key: str, value: object) -> dict[str, object]:
    if value is None or isinstance(value, (bool, int, float)):
        return {key: value}
    if isinstance(value, str):
        if key in _PLAIN_STRING_KEYS:
            return {key: value}
        return {f"{key}_present": True, f"{key}_length": len(value)}
    if isinstance(value, (list, tuple)):
        return {f"{key}_type": "list", f"{key}_length": len(value)}
    if isinstance(value, dict):
        return {f"{key}_type": "dict", f"{key}_keys": sorted(map(str, value))}
    return {f"{key}_type": type(value).__name__}


class JsonlEventLogger:
    """Append-only JSONL event log with a bounded, filtered reader."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def append(self, event: LensEvent) -> None:
        line = json.dumps(asdict(event), sort_keys=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def emit(
        self,
        kind: str,
        metadata: dict[str, object],
        *,
        request_id: str | None = None,
        ok: bool = True,
    ) -> LensEvent:
        """Sanitize ``metadata``, append the event and return it."""
        event = LensEvent(
            timestamp=utc_timestamp(),
            kind=kind,
            request_id=request_id,
            ok=ok,
            metadata=sanitize_metadata(metadata),
        )
        self.append(event)
        return event

    def read(
        self,
        since: str | None = None,
        limit: int = 50,
        kind: str | None = None,
    ) -> list[dict[str, object]]:
        """Return the newest ``limit`` events at or after ``since`` matching ``kind``."""
        if limit < 1:
            return []
        selected: deque[dict[str, object]] = deque(maxlen=limit)
        for record in self._records():
            if kind is not None and record.get("kind") != kind:
                continue
            if since is not None and not _at_or_after(record.get("timestamp"), since):
                continue
            selected.append(record)
        return list(selected)

    def _records(self) -> Iterator[dict[str, object]]:
        """Yield decodable event objects; torn or foreign lines are ignored."""
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as handle:
            for raw in handle:
                if not raw.strip():
                    continue
                try:
                    record = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if isinstance(record, dict):
                    yield record


def _at_or_after(timestamp: object, since: str) -> bool:
    # ISO-8601 UTC strings with a fixed layout compare chronologically.
    return isinstance(timestamp, str) and timestamp >= since
