"""Code modification detection, matching and the confirmation gate."""

from .matcher import CodeDiff, CodeMatcher, MatchResult, replace_in_content
from .modifications import (
    CodeBlock,
    CodeModificationOp,
    CreateOp,
    DeleteOp,
    ModifyOp,
    detect_modifications,
    extract_code_blocks,
)
from .pending import ApplyReport, Decision, FileOperations, PendingChange, PendingChangeSet

__all__ = [
    "ApplyReport",
    "CodeBlock",
    "CodeDiff",
    "CodeMatcher",
    "CodeModificationOp",
    "CreateOp",
    "Decision",
    "DeleteOp",
    "FileOperations",
    "MatchResult",
    "ModifyOp",
    "PendingChange",
    "PendingChangeSet",
    "detect_modifications",
    "extract_code_blocks",
    "replace_in_content",
]
