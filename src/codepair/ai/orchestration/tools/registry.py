"""Name-keyed tool registry.

New tools register by supplying a definition and an ``execute``; nothing
else in the pipeline changes.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from .types import AsyncToolHandler, SimpleTool, Tool, ToolDefinition, ToolHandler

__all__ = ["ToolRegistry", "DuplicateToolError", "ToolNotFoundError"]

LOGGER = logging.getLogger(__name__)


class DuplicateToolError(Exception):
    """Raised when registering a name that is already taken."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is already registered")


class ToolNotFoundError(Exception):
    """Raised when a requested tool is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' not found")


class ToolRegistry:
    """Registry of tools available to the scheduler.

    Registration is guarded by a lock so a host can add tools while a UI
    thread lists them.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._lock = threading.RLock()

    def register(self, tool: Tool, *, replace: bool = False) -> None:
        name = tool.definition.name
        if not name:
            raise ValueError("Tool definitions require a name")
        with self._lock:
            if name in self._tools and not replace:
                raise DuplicateToolError(name)
            self._tools[name] = tool
        LOGGER.debug("Registered tool %s", name)

    def register_function(
        self,
        definition: ToolDefinition,
        handler: ToolHandler | AsyncToolHandler,
        *,
        replace: bool = False,
    ) -> Tool:
        tool = SimpleTool(definition=definition, handler=handler)
        self.register(tool, replace=replace)
        return tool

    def unregister(self, name: str) -> bool:
        with self._lock:
            removed = self._tools.pop(name, None)
        if removed is not None:
            LOGGER.debug("Unregistered tool %s", name)
        return removed is not None

    def get(self, name: str) -> Tool | None:
        with self._lock:
            return self._tools.get(name)

    def get_required(self, name: str) -> Tool:
        tool = self.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def names(self) -> list[str]:
        with self._lock:
            return list(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        with self._lock:
            return [tool.definition for tool in self._tools.values()]

    def to_openai_tools(self) -> list[dict[str, Any]]:
        return [definition.to_openai_tool() for definition in self.definitions()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)
