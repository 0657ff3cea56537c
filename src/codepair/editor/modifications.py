"""Detect file-operation directives in a model reply.

The directive surface is a loose textual convention, for example::

    Create file `src/main.rs`:

    ```rust
    fn main() {}
    ```

Explicit directives are parsed conservatively (no match beats a wrong
path). When a reply has code blocks but no directive, a permissive
fallback guesses one Create from a filename mentioned near words such as
"save" or "file". Every detected operation still needs user confirmation
before anything touches the filesystem.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import ClassVar, Union

__all__ = [
    "CodeBlock",
    "CreateOp",
    "ModifyOp",
    "DeleteOp",
    "CodeModificationOp",
    "extract_code_blocks",
    "detect_modifications",
    "detect_explicit_modifications",
    "detect_implicit_modifications",
    "split_search_replace",
]

LOGGER = logging.getLogger(__name__)

_CODE_BLOCK_PATTERN = re.compile(r"```([\w+#.\-]*)[^\S\n]*\n([\s\S]*?)```")
_DIRECTIVE_PATTERN = re.compile(
    r"\b(?P<verb>create|new|modify|update|change|edit|replace|delete|remove)\s+(?:file\s+)?`(?P<path>[^`]+)`",
    re.IGNORECASE,
)
_IMPLICIT_PATTERN = re.compile(
    r"\b(?:file|path|save|write|create|add)\b[^\n]*?(?<![\w/.\-])([a-zA-Z0-9_\-./]+\.[a-zA-Z0-9]+)\b",
    re.IGNORECASE,
)
_SEARCH_REPLACE_PATTERN = re.compile(
    r"^<{5,9} ?SEARCH[^\n]*\n(?P<search>[\s\S]*?)^={5,9}[^\S\n]*\n(?P<replace>[\s\S]*?)^>{5,9} ?REPLACE[^\n]*$",
    re.MULTILINE,
)

_CREATE_VERBS = frozenset({"create", "new"})
_MODIFY_VERBS = frozenset({"modify", "update", "change", "edit", "replace"})
_DELETE_VERBS = frozenset({"delete", "remove"})


@dataclass(slots=True, frozen=True)
class CodeBlock:
    """A fenced block; ``language`` defaults to ``"text"``."""

    index: int
    language: str
    content: str
    start: int = 0


@dataclass(slots=True, frozen=True)
class CreateOp:
    kind: ClassVar[str] = "create"

    path: str
    content: str


@dataclass(slots=True, frozen=True)
class ModifyOp:
    """Replace ``search`` with ``replace``; an empty ``search`` replaces the whole file."""

    kind: ClassVar[str] = "modify"

    path: str
    search: str
    replace: str


@dataclass(slots=True, frozen=True)
class DeleteOp:
    kind: ClassVar[str] = "delete"

    path: str


CodeModificationOp = Union[CreateOp, ModifyOp, DeleteOp]


def extract_code_blocks(text: str) -> list[CodeBlock]:
    blocks: list[CodeBlock] = []
    for match in _CODE_BLOCK_PATTERN.finditer(text or ""):
        language = match.group(1) or "text"
        blocks.append(
            CodeBlock(index=len(blocks), language=language, content=match.group(2).strip(), start=match.start())
        )
    return blocks


def detect_modifications(text: str) -> list[CodeModificationOp]:
    """Explicit directives when present, else the implicit fallback."""
    blocks = extract_code_blocks(text)
    operations = detect_explicit_modifications(text, blocks)
    if operations:
        return operations
    if not blocks:
        return []
    return detect_implicit_modifications(text, blocks)


def detect_explicit_modifications(text: str, blocks: list[CodeBlock] | None = None) -> list[CodeModificationOp]:
    """Parse directives; the Nth create/modify directive takes the Nth code block.

    Delete directives consume no block. Directives inside code blocks are
    ignored, as are create/modify directives with no block left to pair.
    """
    text = text or ""
    if blocks is None:
        blocks = extract_code_blocks(text)
    fenced = _fenced_ranges(text)

    operations: list[CodeModificationOp] = []
    block_ordinal = 0
    for match in _DIRECTIVE_PATTERN.finditer(text):
        if _inside(match.start(), fenced):
            continue
        path = match.group("path").strip()
        if not _plausible_path(path):
            LOGGER.debug("Ignoring directive with implausible path %r", path)
            continue
        verb = match.group("verb").lower()
        if verb in _DELETE_VERBS:
            operations.append(DeleteOp(path=path))
            continue

        block = blocks[block_ordinal] if block_ordinal < len(blocks) else None
        block_ordinal += 1
        if block is None:
            LOGGER.debug("Directive %s `%s` has no code block to pair with", verb, path)
            continue
        if verb in _CREATE_VERBS:
            operations.append(CreateOp(path=path, content=block.content))
        elif verb in _MODIFY_VERBS:
            search, replace = split_search_replace(block.content)
            operations.append(ModifyOp(path=path, search=search, replace=replace))
    return operations


def detect_implicit_modifications(text: str, blocks: list[CodeBlock] | None = None) -> list[CodeModificationOp]:
    """Guess a single Create from a filename mentioned outside code blocks."""
    text = text or ""
    if blocks is None:
        blocks = extract_code_blocks(text)
    if not blocks:
        return []
    fenced = _fenced_ranges(text)
    for match in _IMPLICIT_PATTERN.finditer(text):
        if _inside(match.start(1), fenced):
            continue
        path = match.group(1).rstrip(".")
        if not _plausible_path(path) or "." not in path.strip("."):
            continue
        LOGGER.debug("Implicit create detected for %s", path)
        return [CreateOp(path=path, content=blocks[0].content)]
    return []


def split_search_replace(content: str) -> tuple[str, str]:
    """Split a ``SEARCH``/``REPLACE`` marker block; otherwise ``("", content)``."""
    match = _SEARCH_REPLACE_PATTERN.search(content)
    if match is None:
        return "", content
    search = match.group("search").rstrip("\n")
    replace = match.group("replace").rstrip("\n")
    return search, replace


def _plausible_path(path: str) -> bool:
    if not path or any(char.isspace() for char in path):
        return False
    if path.startswith("-") or "://" in path:
        return False
    return any(char.isalnum() for char in path)


def _fenced_ranges(text: str) -> list[tuple[int, int]]:
    return [match.span() for match in _CODE_BLOCK_PATTERN.finditer(text)]


def _inside(position: int, ranges: list[tuple[int, int]]) -> bool:
    return any(start <= position < end for start, end in ranges)
