"""``str_replace_editor``: search/replace edits proposed for confirmation.

The tool never writes. Each successful call computes a :class:`CodeDiff`
through the workspace :class:`CodeMatcher` and queues it on an
:class:`EditProposals` queue; the orchestrator drains the queue into the
turn's pending change set.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, ClassVar, Mapping

from ....editor.matcher import CodeMatcher
from ....editor.modifications import ModifyOp
from ....editor.pending import PendingChange
from ...errors import PatchMatchError
from .registry import ToolRegistry
from .types import ToolDefinition, ToolOutput, ToolParameter

__all__ = ["EditProposals", "StrReplaceEditorTool", "register_edit_tools"]

LOGGER = logging.getLogger(__name__)


class EditProposals:
    """Thread-safe queue of proposed changes awaiting the end of the turn."""

    def __init__(self) -> None:
        self._items: list[PendingChange] = []
        self._lock = threading.Lock()

    def add(self, change: PendingChange) -> None:
        with self._lock:
            self._items.append(change)

    def drain(self) -> tuple[PendingChange, ...]:
        with self._lock:
            items = tuple(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


@dataclass(slots=True)
class StrReplaceEditorTool:
    """Replace ``old_str`` with ``new_str`` in a workspace file, as a proposal."""

    matcher: CodeMatcher
    proposals: EditProposals = field(default_factory=EditProposals)
    preview_context: int = 2
    name: ClassVar[str] = "str_replace_editor"

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=(
                "Propose replacing text in a file. old_str should quote the existing code; "
                "small whitespace differences are tolerated. The change is shown to the user "
                "for confirmation and is not written immediately."
            ),
            parameters=(
                ToolParameter("path", "string", "Workspace-relative file path", required=True),
                ToolParameter("old_str", "string", "Existing text to replace", required=True),
                ToolParameter("new_str", "string", "Replacement text", required=True),
                ToolParameter("replace_all", "boolean", "Replace every exact occurrence"),
            ),
            is_write=True,
        )

    async def execute(self, arguments: Mapping[str, Any]) -> ToolOutput:
        path = str(arguments.get("path") or "").strip()
        old_str = str(arguments.get("old_str") or "")
        new_str = str(arguments.get("new_str") or "")
        replace_all = bool(arguments.get("replace_all", False))
        if not path:
            return ToolOutput.fail("path must not be empty")
        if not old_str:
            return ToolOutput.fail("old_str must not be empty")

        operation = ModifyOp(path=path, search=old_str, replace=new_str)
        try:
            diff = self.matcher.compute_diff(operation, replace_all=replace_all)
        except PatchMatchError as exc:
            return ToolOutput.fail(exc.message, path=path)
        if diff.is_noop:
            return ToolOutput.ok(f"No changes: {path} already contains the replacement", path=path)

        self.proposals.add(PendingChange(operation=operation, diff=diff))
        LOGGER.debug("Queued %s edit proposal for %s (tier=%s)", self.name, path, diff.match_tier)
        preview = diff.unified_diff(self.preview_context)
        return ToolOutput.ok(
            f"Proposed change to {path} (awaiting user confirmation):\n{preview}",
            path=path,
            match_tier=diff.match_tier,
        )


def register_edit_tools(registry: ToolRegistry, matcher: CodeMatcher, *, replace: bool = False) -> EditProposals:
    """Register ``str_replace_editor`` and return the queue it fills."""

    tool = StrReplaceEditorTool(matcher=matcher)
    registry.register(tool, replace=replace)
    return tool.proposals
