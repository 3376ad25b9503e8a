"""Typed models for hash inference state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from ai_lens.hashing import Operation

SOURCE_FULL_LINE: Final = "full_line"
SOURCE_DELETED_FRAGMENT: Final = "deleted_fragment"
SOURCE_INTERMEDIATE_STATE: Final = "intermediate_state"
SOURCE_PAIRED_SYMBOL_INTERMEDIATE: Final = "paired_symbol_intermediate"

SOURCE_TAGS: Final[tuple[str, ...]] = (
    SOURCE_FULL_LINE,
    SOURCE_DELETED_FRAGMENT,
    SOURCE_INTERMEDIATE_STATE,
    SOURCE_PAIRED_SYMBOL_INTERMEDIATE,
)

SOURCE_KINDS: Final[tuple[str, ...]] = ("tab", "composer", "unknown")


@dataclass(slots=True)
class LineRecord:
    """One observed line add/remove, eligible to resolve a single opaque item."""

    file_name: str
    line_number: int
    content: str
    operation: Operation
    timestamp: int
    used: bool = False


@dataclass(slots=True, frozen=True)
class OpaqueItem:
    """Feed entry asserting an agent produced the line behind ``hash``."""

    hash: str
    file_name: str
    source: str
    timestamp: int


@dataclass(slots=True, frozen=True)
class InferenceResult:
    """Recovered ``(operation, content)`` for one opaque hash."""

    hash: str
    content: str
    operation: Operation
    source_tag: str
    file_name: str
    line_number: int | None = None
    derived_from_hash: str | None = None


@dataclass(slots=True, frozen=True)
class LineCacheStats:
    """Counts-only view of the line record cache."""

    total_files: int
    total_lines: int
    used_lines: int
    cache_size: int
    oldest_timestamp: int | None
    newest_timestamp: int | None


@dataclass(slots=True, frozen=True)
class EngineStats:
    """Counts-only view of inference engine state."""

    resolved_count: int
    unresolved_count: int
    pending_intermediate_count: int
    tracked_item_count: int
    lines: LineCacheStats
