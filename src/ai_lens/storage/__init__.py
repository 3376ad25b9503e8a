"""Persistence for attributed lines."""

from .store import (
    STORE_FILE_NAME,
    AttributedLine,
    AttributionStore,
    FileAttribution,
    MatchRecorder,
    StoreTotals,
)

__all__ = [
    "STORE_FILE_NAME",
    "AttributedLine",
    "AttributionStore",
    "FileAttribution",
    "MatchRecorder",
    "StoreTotals",
]
