"""Lens tool table: named handlers with their argument contracts."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

ToolHandler = Callable[[dict[str, object]], dict[str, object]]

TOOL_NAMESPACE = "lens."


@dataclass(slots=True, frozen=True)
class ToolDispatchError(Exception):
    """Request-level failure reported back to the caller as an error envelope."""

    code: str
    message: str


@dataclass(slots=True, frozen=True)
class LensTool:
    """One registered tool and the arguments it cannot run without."""

    name: str
    handler: ToolHandler
    summary: str = ""
    required: tuple[str, ...] = ()

    def describe(self) -> dict[str, object]:
        return {"name": self.name, "summary": self.summary, "required": list(self.required)}

    def missing_arguments(self, arguments: dict[str, object]) -> list[str]:
        return [key for key in self.required if arguments.get(key) is None]


@dataclass(slots=True)
class ToolRegistry:
    """Lens tools in registration order, which is also the listing order."""

    _tools: dict[str, LensTool] = field(default_factory=dict)

    def register(
        self,
        name: str,
        handler: ToolHandler,
        summary: str = "",
        *,
        required: tuple[str, ...] = (),
    ) -> LensTool:
        """Add a ``lens.``-namespaced tool; names are unique."""
        if not name.startswith(TOOL_NAMESPACE) or name == TOOL_NAMESPACE:
            raise ValueError(f"Tool name must start with {TOOL_NAMESPACE!r}: {name}")
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")
        tool = LensTool(name=name, handler=handler, summary=summary, required=required)
        self._tools[name] = tool
        return tool

    def get(self, name: str) -> LensTool | None:
        return self._tools.get(name)

    def names(self) -> tuple[str, ...]:
        return tuple(self._tools.keys())

    def describe(self) -> list[dict[str, object]]:
        return [tool.describe() for tool in self._tools.values()]

    def dispatch(self, name: str, arguments: dict[str, object]) -> dict[str, object]:
        """Check the tool's required arguments, then run its handler."""
        tool = self.get(name)
        if tool is None:
            raise ToolDispatchError(code="UNKNOWN_TOOL", message=f"Unknown tool: {name}")
        missing = tool.missing_arguments(arguments)
        if missing:
            raise ToolDispatchError(
                code="INVALID_PARAMS",
                message=f"{name} missing required arguments: {', '.join(missing)}.",
            )
        return tool.handler(arguments)
