"""Structured logging utilities."""

from .events import JsonlEventLogger, LensEvent, sanitize_metadata, utc_timestamp

__all__ = ["JsonlEventLogger", "LensEvent", "sanitize_metadata", "utc_timestamp"]
