"""Tool registry — one namespace of tools across many sources.

Each tool name is owned by exactly one source (usually a peer name). The
registry keeps its own copies of tool definitions and validates call
arguments before handing a call to the injected invoker.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from peerlink.errors import DuplicateToolError, PeerlinkError, ToolNotFoundError, ValidationError
from peerlink.rwlock import RWLock
from peerlink.types import CallToolResult, ToolCall, ToolDefinition, parse_call_result, validate_arguments

logger = logging.getLogger(__name__)

# (source, tool name, arguments) -> raw result
ToolInvoker = Callable[[str, str, dict[str, Any]], Any]


class ToolRegistry:
    """Registry of tool definitions and the source that owns each one.

    Lookups share a reader lock; register/unregister take the writer lock.
    """

    def __init__(self, invoker: ToolInvoker | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._sources: dict[str, str] = {}
        self._invoker = invoker
        self._lock = RWLock()

    def set_invoker(self, invoker: ToolInvoker) -> None:
        self._invoker = invoker

    # ── Registration ─────────────────────────────────────────────

    def register(self, tool: ToolDefinition, source: str) -> None:
        """Register ``tool`` as owned by ``source``.

        Re-registering under the same source replaces the definition.

        Raises:
            ValidationError: Empty name or missing input schema.
            DuplicateToolError: The name is owned by a different source.
        """
        if not tool.name:
            raise ValidationError("name", "tool name cannot be empty")
        if tool.input_schema is None:
            raise ValidationError("input_schema", "tool input schema cannot be None")

        stored = tool.copy()
        with self._lock.write():
            owner = self._sources.get(tool.name)
            if owner is not None and owner != source:
                raise DuplicateToolError(tool.name, owner)
            self._tools[tool.name] = stored
            self._sources[tool.name] = source
        logger.debug(f"Registered tool {tool.name} (source: {source})")

    def unregister(self, name: str) -> None:
        """Remove a tool. Unknown names are ignored."""
        with self._lock.write():
            self._tools.pop(name, None)
            self._sources.pop(name, None)

    def unregister_source(self, source: str) -> list[str]:
        """Remove every tool ``source`` owns. Returns the removed names."""
        with self._lock.write():
            names = [n for n, s in self._sources.items() if s == source]
            for name in names:
                del self._tools[name]
                del self._sources[name]
        return names

    # ── Lookup ───────────────────────────────────────────────────

    def get(self, name: str) -> ToolDefinition:
        """Raises ToolNotFoundError for unknown names."""
        with self._lock.read():
            tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def get_source(self, name: str) -> str:
        """Raises ToolNotFoundError for unknown names."""
        with self._lock.read():
            source = self._sources.get(name)
        if source is None:
            raise ToolNotFoundError(name)
        return source

    def list(self) -> list[ToolDefinition]:
        with self._lock.read():
            return list(self._tools.values())

    def list_by_source(self, source: str) -> list[ToolDefinition]:
        with self._lock.read():
            return [self._tools[n] for n, s in self._sources.items() if s == source]

    def list_names(self) -> list[str]:
        with self._lock.read():
            return list(self._tools)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._tools)

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._tools

    # ── Execution ────────────────────────────────────────────────

    def execute(self, call: ToolCall, invoker: ToolInvoker | None = None) -> CallToolResult:
        """Validate ``call`` against its tool's schema, then invoke it.

        ``invoker`` overrides the registry's own invoker for this call.

        Raises:
            ToolNotFoundError: No tool by that name.
            ValidationError: Arguments do not match the input schema.
            PeerlinkError: No invoker is configured, or the invoker failed.
        """
        with self._lock.read():
            tool = self._tools.get(call.name)
            source = self._sources.get(call.name)
        if tool is None or source is None:
            raise ToolNotFoundError(call.name)

        validate_arguments(tool.input_schema, call.arguments)

        invoke = invoker or self._invoker
        if invoke is None:
            raise PeerlinkError(f"no invoker configured for tool {call.name}")
        raw = invoke(source, call.name, call.arguments)
        return parse_call_result(raw)
