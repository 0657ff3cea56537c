"""Intent recognition for raw user input.

:func:`recognize_intent` is a pure, total function: every string maps to
exactly one intent and the same string always maps to the same intent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import ClassVar, Union

__all__ = [
    "Intent",
    "ChatIntent",
    "FileMentionIntent",
    "CommandIntent",
    "CodeReviewIntent",
    "DebugIntent",
    "CodeGenerationIntent",
    "recognize_intent",
    "REVIEW_KEYWORDS",
    "DEBUG_KEYWORDS",
    "GENERATION_KEYWORDS",
    "KNOWN_LANGUAGES",
]

REVIEW_KEYWORDS: tuple[str, ...] = ("review", "审查", "检查", "问题", "bug", "错误")
DEBUG_KEYWORDS: tuple[str, ...] = ("debug", "调试", "错误", "问题", "为什么", "怎么")
GENERATION_KEYWORDS: tuple[str, ...] = ("生成", "写", "create", "generate", "写一个", "创建")
KNOWN_LANGUAGES: tuple[str, ...] = ("rust", "python", "javascript", "go", "java")

_MENTION_PREFIX = "@"
_COMMAND_PREFIX = "/"
_TRAILING_PUNCTUATION = ",;:!?)]}'\""
_FILE_TOKEN_PATTERN = re.compile(
    r"(?<![A-Za-z0-9_@/.\-])((?:[A-Za-z0-9_\-]+/)*[A-Za-z0-9_\-]+\.[A-Za-z][A-Za-z0-9]{0,7})(?![A-Za-z0-9_/])"
)
_LANGUAGE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (language, re.compile(rf"(?<![a-z]){language}(?![a-z])")) for language in KNOWN_LANGUAGES
)


@dataclass(slots=True, frozen=True)
class ChatIntent:
    kind: ClassVar[str] = "chat"

    query: str = ""
    context_files: tuple[str, ...] = ()

    @property
    def prompt(self) -> str:
        return self.query


@dataclass(slots=True, frozen=True)
class FileMentionIntent:
    """``@path`` mentions; ``query`` is the input with the mentions removed."""

    kind: ClassVar[str] = "file_mention"

    paths: tuple[str, ...]
    query: str = ""

    @property
    def prompt(self) -> str:
        return self.query


@dataclass(slots=True, frozen=True)
class CommandIntent:
    kind: ClassVar[str] = "command"

    name: str
    args: tuple[str, ...] = ()

    @property
    def prompt(self) -> str:
        return " ".join((f"{_COMMAND_PREFIX}{self.name}", *self.args))


@dataclass(slots=True, frozen=True)
class CodeReviewIntent:
    kind: ClassVar[str] = "code_review"

    focus: str
    files: tuple[str, ...] = ()

    @property
    def prompt(self) -> str:
        return self.focus


@dataclass(slots=True, frozen=True)
class DebugIntent:
    kind: ClassVar[str] = "debug"

    issue: str
    files: tuple[str, ...] = ()

    @property
    def prompt(self) -> str:
        return self.issue


@dataclass(slots=True, frozen=True)
class CodeGenerationIntent:
    kind: ClassVar[str] = "code_generation"

    description: str
    language: str | None = None

    @property
    def prompt(self) -> str:
        return self.description


Intent = Union[
    ChatIntent,
    FileMentionIntent,
    CommandIntent,
    CodeReviewIntent,
    DebugIntent,
    CodeGenerationIntent,
]


def recognize_intent(text: str) -> Intent:
    """Classify ``text``; first match wins.

    Order: ``@path`` mentions, then a leading ``/`` command, then the review,
    debug and generation keyword lists (case-insensitive substring match),
    otherwise plain chat.
    """

    text = text or ""
    stripped = text.strip()

    mention = _extract_file_mentions(stripped)
    if mention is not None:
        return mention

    if stripped.startswith(_COMMAND_PREFIX):
        return _extract_command(stripped)

    lowered = stripped.lower()
    if _contains_any(lowered, REVIEW_KEYWORDS):
        return CodeReviewIntent(focus=stripped, files=_extract_file_tokens(stripped))
    if _contains_any(lowered, DEBUG_KEYWORDS):
        return DebugIntent(issue=stripped, files=_extract_file_tokens(stripped))
    if _contains_any(lowered, GENERATION_KEYWORDS):
        return CodeGenerationIntent(description=stripped, language=_detect_language(lowered))
    return ChatIntent(query=stripped)


def _extract_file_mentions(text: str) -> FileMentionIntent | None:
    paths: list[str] = []
    words: list[str] = []
    for token in text.split():
        if token.startswith(_MENTION_PREFIX) and len(token) > 1:
            path = token[1:].rstrip(_TRAILING_PUNCTUATION)
            if path and path not in paths:
                paths.append(path)
            continue
        words.append(token)
    if not paths:
        return None
    return FileMentionIntent(paths=tuple(paths), query=" ".join(words))


def _extract_command(text: str) -> CommandIntent:
    parts = text.split()
    name = parts[0][len(_COMMAND_PREFIX):] if parts else ""
    return CommandIntent(name=name, args=tuple(parts[1:]))


def _contains_any(lowered: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in lowered for keyword in keywords)


def _detect_language(lowered: str) -> str | None:
    for language, pattern in _LANGUAGE_PATTERNS:
        if pattern.search(lowered):
            return language
    return None


def _extract_file_tokens(text: str) -> tuple[str, ...]:
    found: list[str] = []
    for match in _FILE_TOKEN_PATTERN.finditer(text):
        candidate = match.group(1)
        if candidate not in found:
            found.append(candidate)
    return tuple(found)
