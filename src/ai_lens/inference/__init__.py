"""Opaque hash inference: line evidence, resolution and partial-state recovery."""

from .cache import LineRecordCache, ResultCache
from .engine import InferenceEngine, MatchListener
from .feed import FeedCursor, FeedParseResult, parse_feed_payload, parse_opaque_item
from .intermediate import (
    PAIRED_SYMBOLS,
    IntermediateSolution,
    IntermediateStateSolver,
    SymbolPair,
    find_symbol_pairs,
)
from .models import (
    SOURCE_DELETED_FRAGMENT,
    SOURCE_FULL_LINE,
    SOURCE_INTERMEDIATE_STATE,
    SOURCE_KINDS,
    SOURCE_PAIRED_SYMBOL_INTERMEDIATE,
    SOURCE_TAGS,
    EngineStats,
    InferenceResult,
    LineCacheStats,
    LineRecord,
    OpaqueItem,
)

__all__ = [
    "EngineStats",
    "FeedCursor",
    "FeedParseResult",
    "InferenceEngine",
    "InferenceResult",
    "IntermediateSolution",
    "IntermediateStateSolver",
    "LineCacheStats",
    "LineRecord",
    "LineRecordCache",
    "MatchListener",
    "OpaqueItem",
    "PAIRED_SYMBOLS",
    "ResultCache",
    "SOURCE_DELETED_FRAGMENT",
    "SOURCE_FULL_LINE",
    "SOURCE_INTERMEDIATE_STATE",
    "SOURCE_KINDS",
    "SOURCE_PAIRED_SYMBOL_INTERMEDIATE",
    "SOURCE_TAGS",
    "SymbolPair",
    "find_symbol_pairs",
    "parse_feed_payload",
    "parse_opaque_item",
]
