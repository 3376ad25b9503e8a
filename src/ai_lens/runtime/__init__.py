"""Editor-side evidence capture and document history."""

from .capture import (
    CaptureOutcome,
    EditEvent,
    EditRecorder,
    apply_edit,
    build_added_records,
    build_delete_records,
    build_insert_records,
    build_replace_records,
)
from .snapshots import (
    DocumentSnapshot,
    EditRange,
    RemovedSpan,
    SnapshotStats,
    VersionSnapshotStore,
    deleted_placeholder,
    extract_span,
)

__all__ = [
    "CaptureOutcome",
    "DocumentSnapshot",
    "EditEvent",
    "EditRange",
    "EditRecorder",
    "RemovedSpan",
    "SnapshotStats",
    "VersionSnapshotStore",
    "apply_edit",
    "build_added_records",
    "build_delete_records",
    "build_insert_records",
    "build_replace_records",
    "deleted_placeholder",
    "extract_span",
]
