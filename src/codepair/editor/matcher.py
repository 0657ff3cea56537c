"""Locate modification targets in real files and compute old/new diffs.

Matching tiers, first success wins:

1. ``exact``: the search text occurs verbatim.
2. ``whitespace``: after trimming every line and dropping blank lines the
   search text is contained in the file; the real span is recovered by
   aligning the trimmed lines back onto the original ones.
3. ``fuzzy``: a window of ``len(search_lines)`` lines is scored line by line
   and accepted when the lines above :data:`LINE_SIMILARITY_FLOOR` average at
   least :data:`ACCEPT_THRESHOLD`.

Nothing is written here: the result is a :class:`CodeDiff` for the user to
confirm.
"""

from __future__ import annotations

import difflib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Sequence

from ..ai.errors import PatchMatchError
from .modifications import CodeModificationOp, CreateOp, DeleteOp, ModifyOp

__all__ = [
    "CodeDiff",
    "CodeMatcher",
    "MatchResult",
    "MatchTier",
    "replace_in_content",
    "line_similarity",
    "normalize_whitespace",
    "LINE_SIMILARITY_FLOOR",
    "ACCEPT_THRESHOLD",
]

LOGGER = logging.getLogger(__name__)

LINE_SIMILARITY_FLOOR = 0.7
ACCEPT_THRESHOLD = 0.8
_DELETE_PLACEHOLDER = "[File will be deleted: {path}]"

MatchTier = Literal["exact", "whitespace", "fuzzy", "whole_file", "create", "delete"]


@dataclass(slots=True, frozen=True)
class CodeDiff:
    """Proposed content change for one file; the only thing a writer may apply."""

    file_path: str
    old_content: str
    new_content: str
    operation: Literal["create", "modify", "delete"] = "modify"
    match_tier: MatchTier | None = None

    @property
    def is_noop(self) -> bool:
        return self.operation == "modify" and self.old_content == self.new_content

    def unified_diff(self, context: int = 3) -> str:
        old_label = "/dev/null" if self.operation == "create" else f"a/{self.file_path}"
        new_label = "/dev/null" if self.operation == "delete" else f"b/{self.file_path}"
        old_lines = [] if self.operation == "create" else self.old_content.splitlines(keepends=True)
        new_lines = self.new_content.splitlines(keepends=True)
        diff = difflib.unified_diff(old_lines, new_lines, fromfile=old_label, tofile=new_label, n=context)
        return "".join(line if line.endswith("\n") else line + "\n" for line in diff)


@dataclass(slots=True, frozen=True)
class MatchResult:
    new_content: str
    tier: MatchTier
    spans: tuple[tuple[int, int], ...]
    score: float = 1.0


# -----------------------------------------------------------------------------
# Pure matching helpers
# -----------------------------------------------------------------------------


def normalize_whitespace(text: str) -> str:
    """Trim every line and drop blank ones."""
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def line_similarity(a: str, b: str) -> float:
    """1.0 when trimmed lines match, 0.95 when only inner whitespace differs,
    else the share of equal characters at equal positions."""
    a_trimmed = a.strip()
    b_trimmed = b.strip()
    if a_trimmed == b_trimmed:
        return 1.0
    if " ".join(a_trimmed.split()) == " ".join(b_trimmed.split()):
        return 0.95
    longest = max(len(a_trimmed), len(b_trimmed))
    if longest == 0:
        return 1.0
    matches = sum(1 for left, right in zip(a_trimmed, b_trimmed) if left == right)
    return matches / longest


def replace_in_content(
    content: str,
    search: str,
    replace: str,
    *,
    replace_all: bool = False,
    path: str = "<buffer>",
) -> MatchResult:
    """Replace ``search`` in ``content`` using the three matching tiers.

    Raises:
        PatchMatchError: No tier located the search text.
    """
    if not search:
        raise PatchMatchError("Search text is empty", path=path)

    newline = _detect_newline(content)
    replacement = _convert_newlines(replace, newline)

    if search in content:
        return _exact(content, search, replacement, replace_all=replace_all)

    lines = content.splitlines(keepends=True)
    search_lines = _trim_blank_edges(search.splitlines())
    if not search_lines:
        raise PatchMatchError("Search text only contains whitespace", path=path, search=search)

    normalized_search = normalize_whitespace(search)
    if normalized_search and normalized_search in normalize_whitespace(content):
        span = _align_trimmed(lines, [line.strip() for line in search_lines if line.strip()])
        if span is not None:
            return _splice(content, lines, span, replacement, tier="whitespace", score=1.0)

    fuzzy = _best_fuzzy_window(lines, search_lines)
    if fuzzy is not None:
        span, score = fuzzy
        return _splice(content, lines, span, replacement, tier="fuzzy", score=score)

    LOGGER.debug("No match for search text in %s", path)
    raise PatchMatchError(
        f"Could not find the code to replace in {path}:\n{search}",
        path=path,
        search=search,
        suggestion="Quote the existing code exactly as it appears in the file.",
    )


def _exact(content: str, search: str, replacement: str, *, replace_all: bool) -> MatchResult:
    if replace_all:
        spans: list[tuple[int, int]] = []
        start = content.find(search)
        while start != -1:
            spans.append((start, start + len(search)))
            start = content.find(search, start + len(search))
        return MatchResult(content.replace(search, replacement), "exact", tuple(spans))
    start = content.find(search)
    end = start + len(search)
    return MatchResult(content[:start] + replacement + content[end:], "exact", ((start, end),))


def _align_trimmed(lines: Sequence[str], needle: Sequence[str]) -> tuple[int, int] | None:
    """Line range ``[first, last]`` whose non-blank trimmed lines equal ``needle``."""
    indexed = [(index, line.strip()) for index, line in enumerate(lines) if line.strip()]
    count = len(needle)
    if count == 0 or count > len(indexed):
        return None
    for offset in range(len(indexed) - count + 1):
        if all(indexed[offset + k][1] == needle[k] for k in range(count)):
            return indexed[offset][0], indexed[offset + count - 1][0]
    return None


def _best_fuzzy_window(lines: Sequence[str], search_lines: Sequence[str]) -> tuple[tuple[int, int], float] | None:
    size = len(search_lines)
    if size == 0 or size > len(lines):
        return None
    required = (size + 1) // 2
    best: tuple[tuple[int, int], float, int] | None = None
    for start in range(len(lines) - size + 1):
        scores = [
            line_similarity(search_line, _strip_eol(lines[start + offset]))
            for offset, search_line in enumerate(search_lines)
        ]
        accepted = [score for score in scores if score > LINE_SIMILARITY_FLOOR]
        if len(accepted) < required:
            continue
        average = sum(accepted) / len(accepted)
        if average < ACCEPT_THRESHOLD:
            continue
        if best is None or (len(accepted), average) > (best[2], best[1]):
            best = ((start, start + size - 1), average, len(accepted))
    if best is None:
        return None
    return best[0], best[1]


def _splice(
    content: str,
    lines: Sequence[str],
    span: tuple[int, int],
    replacement: str,
    *,
    tier: MatchTier,
    score: float,
) -> MatchResult:
    first, last = span
    start = sum(len(line) for line in lines[:first])
    end = sum(len(line) for line in lines[:last]) + len(_strip_eol(lines[last]))
    return MatchResult(content[:start] + replacement + content[end:], tier, ((start, end),), score)


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def _trim_blank_edges(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def _detect_newline(text: str) -> str:
    if "\r\n" in text:
        return "\r\n"
    if "\n" in text:
        return "\n"
    if "\r" in text:
        return "\r"
    return "\n"


def _convert_newlines(text: str, newline: str) -> str:
    if newline == "\n":
        return text
    return newline.join(text.replace("\r\n", "\n").split("\n"))


# -----------------------------------------------------------------------------
# Matcher
# -----------------------------------------------------------------------------


class CodeMatcher:
    """Compute :class:`CodeDiff` objects for operations against a workspace."""

    def __init__(self, root: Path | str = ".", *, max_file_bytes: int = 200_000, encoding: str = "utf-8") -> None:
        self._root = Path(root).expanduser().resolve()
        self._max_file_bytes = max_file_bytes
        self._encoding = encoding

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str) -> Path:
        candidate = Path(path).expanduser()
        resolved = (candidate if candidate.is_absolute() else self._root / candidate).resolve()
        if resolved != self._root and self._root not in resolved.parents:
            raise PatchMatchError(f"Path {path} is outside the workspace", path=path)
        return resolved

    def read(self, path: str) -> str | None:
        """File contents, or ``None`` when the file does not exist."""
        target = self.resolve(path)
        if not target.is_file():
            return None
        size = target.stat().st_size
        if size > self._max_file_bytes:
            raise PatchMatchError(
                f"{path} is too large to edit ({size} bytes > {self._max_file_bytes})",
                path=path,
            )
        with target.open("r", encoding=self._encoding, newline="") as handle:
            return handle.read()

    def compute_diff(self, operation: CodeModificationOp, *, replace_all: bool = False) -> CodeDiff:
        if isinstance(operation, CreateOp):
            self.resolve(operation.path)
            return CodeDiff(operation.path, "", operation.content, operation="create", match_tier="create")
        if isinstance(operation, DeleteOp):
            self.resolve(operation.path)
            return CodeDiff(
                operation.path,
                _DELETE_PLACEHOLDER.format(path=operation.path),
                "",
                operation="delete",
                match_tier="delete",
            )
        if isinstance(operation, ModifyOp):
            return self.find_and_replace(
                operation.path, operation.search, operation.replace, replace_all=replace_all
            )
        raise TypeError(f"Unsupported modification operation: {operation!r}")

    def find_and_replace(self, path: str, search: str, replace: str, *, replace_all: bool = False) -> CodeDiff:
        old_content = self.read(path)
        if old_content is None:
            raise PatchMatchError(f"Cannot modify {path}: file not found", path=path, search=search)
        if not search:
            return CodeDiff(path, old_content, _whole_file(old_content, replace), match_tier="whole_file")
        result = replace_in_content(old_content, search, replace, replace_all=replace_all, path=path)
        LOGGER.debug("Matched %s via %s tier (score %.2f)", path, result.tier, result.score)
        return CodeDiff(path, old_content, result.new_content, match_tier=result.tier)


def _whole_file(old_content: str, replace: str) -> str:
    newline = _detect_newline(old_content)
    new_content = _convert_newlines(replace, newline)
    if old_content.endswith(("\n", "\r")) and new_content and not new_content.endswith(("\n", "\r")):
        new_content += newline
    return new_content
