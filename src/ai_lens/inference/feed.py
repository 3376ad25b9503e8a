"""Parse agent-tracking feed payloads into opaque items."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ai_lens.hashing import normalize_hash
from ai_lens.inference.models import SOURCE_KINDS, OpaqueItem


@dataclass(slots=True, frozen=True)
class FeedParseResult:
    """Valid items in feed order plus a count of skipped entries."""

    items: tuple[OpaqueItem, ...]
    skipped: int


def parse_opaque_item(raw: object, default_timestamp: int) -> OpaqueItem | None:
    """Validate one ``{hash, metadata: {fileName, source, timestamp}}`` entry.

    Returns None when the entry is malformed. Unknown source kinds become
    ``"unknown"`` and a missing timestamp falls back to ``default_timestamp``.
    """
    if not isinstance(raw, dict):
        return None
    raw_hash = raw.get("hash")
    if not isinstance(raw_hash, str):
        return None
    try:
        item_hash = normalize_hash(raw_hash)
    except ValueError:
        return None

    metadata = raw.get("metadata")
    if not isinstance(metadata, dict):
        return None
    file_name = metadata.get("fileName")
    if not isinstance(file_name, str) or not file_name.strip():
        return None

    source = metadata.get("source")
    if not isinstance(source, str) or source not in SOURCE_KINDS:
        source = "unknown"

    timestamp = metadata.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        timestamp = default_timestamp

    return OpaqueItem(
        hash=item_hash,
        file_name=file_name,
        source=source,
        timestamp=int(timestamp),
    )


def parse_feed_payload(payload: object, default_timestamp: int) -> FeedParseResult:
    """Parse a feed array, skipping malformed entries individually."""
    if not isinstance(payload, list):
        return FeedParseResult(items=(), skipped=0)
    items: list[OpaqueItem] = []
    skipped = 0
    for raw in payload:
        item = parse_opaque_item(raw, default_timestamp)
        if item is None:
            skipped += 1
            continue
        items.append(item)
    return FeedParseResult(items=tuple(items), skipped=skipped)


class FeedCursor:
    """Track the last feed snapshot and yield only newly appended items.

    The feed is re-read whole on each change. New items are those after the
    previous last hash; when that hash has vanished (the feed was rotated),
    every item whose hash was not in the previous snapshot is new.
    """

    def __init__(self) -> None:
        self._last_hash: str | None = None
        self._known_hashes: frozenset[str] = frozenset()

    @property
    def last_hash(self) -> str | None:
        return self._last_hash

    def advance(self, current: Sequence[OpaqueItem]) -> list[OpaqueItem]:
        """Return the items new since the previous call and remember ``current``."""
        current_last = current[-1].hash if current else None
        if self._last_hash is None:
            new_items = list(current)
        elif current_last == self._last_hash:
            new_items = []
        else:
            last_index = _index_of(current, self._last_hash)
            if last_index is None:
                new_items = [item for item in current if item.hash not in self._known_hashes]
            else:
                new_items = list(current[last_index + 1 :])

        self._known_hashes = frozenset(item.hash for item in current)
        if current_last is not None:
            self._last_hash = current_last
        return new_items

    def reset(self) -> None:
        self._last_hash = None
        self._known_hashes = frozenset()


def _index_of(items: Iterable[OpaqueItem], item_hash: str) -> int | None:
    for index, item in enumerate(items):
        if item.hash == item_hash:
            return index
    return None
