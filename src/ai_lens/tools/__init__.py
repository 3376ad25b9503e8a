"""STDIO tool interfaces and registrations."""

from .registry import LensTool, ToolDispatchError, ToolHandler, ToolRegistry

__all__ = ["LensTool", "ToolDispatchError", "ToolHandler", "ToolRegistry"]
