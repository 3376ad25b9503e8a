"""Decompose editor edit events into per-line ``+``/``-`` evidence."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from ai_lens.inference.cache import LineRecordCache
from ai_lens.inference.models import LineRecord
from ai_lens.runtime.snapshots import (
    DocumentSnapshot,
    EditRange,
    VersionSnapshotStore,
    utf16_column_to_index,
)

EditKind = Literal["delete", "insert", "replace", "noop"]


@dataclass(slots=True, frozen=True)
class EditEvent:
    """One content change reported by the editor for a single document."""

    file_name: str
    range: EditRange
    range_length: int
    text: str
    document_version: int
    timestamp: int

    @property
    def kind(self) -> EditKind:
        if self.range_length > 0 and self.text == "":
            return "delete"
        if self.range_length == 0 and self.text:
            return "insert"
        if self.range_length > 0 and self.text:
            return "replace"
        return "noop"


@dataclass(slots=True, frozen=True)
class CaptureOutcome:
    """Records produced for one edit and whether the snapshot was refreshed."""

    file_name: str
    kind: EditKind
    records: tuple[LineRecord, ...]
    snapshot_version: int | None


def apply_edit(lines: Sequence[str], edit_range: EditRange, text: str) -> list[str]:
    """Return ``lines`` after replacing ``edit_range`` with ``text``.

    Columns count UTF-16 code units. Columns and line numbers past the end
    are clamped so a slightly stale snapshot still yields a usable post-edit
    view.
    """
    line_count = len(lines)
    start_line = min(edit_range.start_line, line_count)
    end_line = min(max(edit_range.end_line, start_line), line_count)

    start_text = lines[start_line] if start_line < line_count else ""
    end_text = lines[end_line] if end_line < line_count else ""
    prefix = start_text[: utf16_column_to_index(start_text, edit_range.start_character)]
    suffix = end_text[utf16_column_to_index(end_text, edit_range.end_character) :]

    replaced = f"{prefix}{text}{suffix}".split("\n")
    return [*lines[:start_line], *replaced, *lines[end_line + 1 :]]


def build_delete_records(
    snapshot: DocumentSnapshot | None,
    start_line: int,
    end_line: int,
    timestamp: int,
    file_name: str,
) -> list[LineRecord]:
    """One ``-`` record per pre-edit line in ``start_line..end_line``."""
    if snapshot is None:
        return []
    records: list[LineRecord] = []
    for line_number in range(start_line, end_line + 1):
        if line_number < snapshot.line_count:
            records.append(
                LineRecord(
                    file_name=file_name,
                    line_number=line_number,
                    content=snapshot.lines[line_number],
                    operation="-",
                    timestamp=timestamp,
                )
            )
    return records


def build_added_records(
    post_lines: Sequence[str],
    start_line: int,
    inserted_line_count: int,
    timestamp: int,
    file_name: str,
) -> list[LineRecord]:
    """One ``+`` record per post-edit line touched by the inserted text."""
    records: list[LineRecord] = []
    for offset in range(inserted_line_count):
        line_number = start_line + offset
        if line_number < len(post_lines):
            records.append(
                LineRecord(
                    file_name=file_name,
                    line_number=line_number,
                    content=post_lines[line_number],
                    operation="+",
                    timestamp=timestamp,
                )
            )
    return records


def build_insert_records(
    event: EditEvent,
    snapshot: DocumentSnapshot | None,
    post_lines: Sequence[str],
) -> list[LineRecord]:
    """``-`` for the target line as it was, then ``+`` for each resulting line."""
    target_line = event.range.start_line
    records = build_delete_records(
        snapshot, target_line, target_line, event.timestamp, event.file_name
    )
    records.extend(
        build_added_records(
            post_lines,
            target_line,
            len(event.text.split("\n")),
            event.timestamp,
            event.file_name,
        )
    )
    return records


def build_replace_records(
    event: EditEvent,
    snapshot: DocumentSnapshot | None,
    post_lines: Sequence[str],
) -> list[LineRecord]:
    """``-`` for every replaced pre-edit line, then ``+`` for the new lines."""
    records = build_delete_records(
        snapshot,
        event.range.start_line,
        event.range.end_line,
        event.timestamp,
        event.file_name,
    )
    records.extend(
        build_added_records(
            post_lines,
            event.range.start_line,
            len(event.text.split("\n")),
            event.timestamp,
            event.file_name,
        )
    )
    return records


class EditRecorder:
    """Feed line evidence into the cache and keep the document snapshot current."""

    def __init__(self, cache: LineRecordCache, snapshots: VersionSnapshotStore) -> None:
        self._cache = cache
        self._snapshots = snapshots

    def open_document(
        self,
        file_name: str,
        version: int,
        lines: Sequence[str],
        timestamp: int,
    ) -> DocumentSnapshot:
        """Seed the snapshot for a document that was opened or first seen."""
        return self._snapshots.capture_snapshot(file_name, version, lines, timestamp)

    def close_document(self, file_name: str) -> None:
        self._snapshots.forget(file_name)

    def record_edit(
        self,
        event: EditEvent,
        document_lines: Sequence[str] | None = None,
    ) -> CaptureOutcome:
        """Record evidence for ``event`` and refresh the file's snapshot.

        ``document_lines`` is the post-edit document when the caller has it;
        otherwise it is derived by applying the edit to the latest snapshot.
        Without either, only the inserted text itself is recorded.
        """
        kind = event.kind
        snapshot = self._snapshots.latest(event.file_name)
        post_lines = self._post_edit_lines(event, snapshot, document_lines)

        records: list[LineRecord] = []
        if kind == "delete":
            records.extend(
                build_delete_records(
                    snapshot,
                    event.range.start_line,
                    event.range.end_line,
                    event.timestamp,
                    event.file_name,
                )
            )
        elif kind == "insert":
            records.extend(build_insert_records(event, snapshot, post_lines))
        elif kind == "replace":
            records.extend(build_replace_records(event, snapshot, post_lines))

        if kind in ("delete", "replace"):
            fragment = self._removed_fragment(event, snapshot)
            if fragment is not None:
                records.append(fragment)

        for line_record in records:
            self._cache.add(line_record)

        snapshot_version: int | None = None
        if snapshot is not None or document_lines is not None:
            refreshed = self._snapshots.capture_snapshot(
                event.file_name, event.document_version, post_lines, event.timestamp
            )
            snapshot_version = refreshed.version
        return CaptureOutcome(
            file_name=event.file_name,
            kind=kind,
            records=tuple(records),
            snapshot_version=snapshot_version,
        )

    def _post_edit_lines(
        self,
        event: EditEvent,
        snapshot: DocumentSnapshot | None,
        document_lines: Sequence[str] | None,
    ) -> list[str]:
        if document_lines is not None:
            return list(document_lines)
        if snapshot is not None:
            return apply_edit(snapshot.lines, event.range, event.text)
        # Position the inserted lines at their target so line numbers still line up.
        return [""] * event.range.start_line + event.text.split("\n")

    def _removed_fragment(
        self, event: EditEvent, snapshot: DocumentSnapshot | None
    ) -> LineRecord | None:
        """Sub-line deleted text, or a placeholder when no history covers the edit."""
        span = self._snapshots.removed_span_or_placeholder(
            event.file_name,
            event.range,
            event.document_version - 1,
            event.range_length,
        )
        if span.version is not None:
            if not event.range.is_single_line or not span.content:
                return None
            start_line = event.range.start_line
            if (
                snapshot is not None
                and start_line < snapshot.line_count
                and span.content == snapshot.lines[start_line]
            ):
                return None
        elif snapshot is not None:
            return None
        return LineRecord(
            file_name=event.file_name,
            line_number=event.range.start_line,
            content=span.content,
            operation="-",
            timestamp=event.timestamp,
        )
