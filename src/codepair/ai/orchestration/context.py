"""Per-turn conversation context: intent, referenced files and project rules."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Mapping, Sequence

from ...editor.matcher import CodeMatcher
from ..errors import CodepairError
from ..prompts import system_prompt_for
from .intents import (
    CodeGenerationIntent,
    CodeReviewIntent,
    CommandIntent,
    DebugIntent,
    FileMentionIntent,
    Intent,
)
from .types import Message

__all__ = ["FileContent", "ConversationContext", "ContextBuilder", "intent_metadata"]

LOGGER = logging.getLogger(__name__)

_FALLBACK_RULE_FILES: tuple[str, ...] = ("AI.md",)
_MENTION_ONLY_PROMPT = "Please take a look at the referenced files."


@dataclass(slots=True, frozen=True)
class FileContent:
    path: str
    content: str

    @property
    def language(self) -> str:
        suffix = PurePosixPath(self.path).suffix.lstrip(".")
        return suffix or "text"


@dataclass(slots=True, frozen=True)
class ConversationContext:
    """Everything assembled for one turn before budgeting.

    Attributes:
        user_input: Raw text typed by the user.
        intent: Recognized intent.
        files: Contents of files the turn references.
        rules: Project rules text (may be empty).
        metadata: Intent-derived annotations for logging and the UI.
        missing_files: Referenced paths that could not be read.
    """

    user_input: str
    intent: Intent
    files: tuple[FileContent, ...] = ()
    rules: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict)
    missing_files: tuple[str, ...] = ()

    def user_message(self) -> Message:
        prompt = self.intent.prompt.strip() or (self.user_input.strip() if not self.files else _MENTION_ONLY_PROMPT)
        if not self.files:
            return Message.user(prompt)
        sections = [prompt, "## Referenced files"]
        for item in self.files:
            sections.append(f"### {item.path}\n```{item.language}\n{item.content.rstrip()}\n```")
        if self.missing_files:
            sections.append("Could not read: " + ", ".join(self.missing_files))
        return Message.user("\n\n".join(sections))

    def system_message(self, message_count: int = 0) -> Message:
        return Message.system(system_prompt_for(self.intent, message_count, rules=self.rules))

    def build_messages(self, history: Sequence[Message]) -> list[Message]:
        """System prompt, prior conversation, then this turn's user message."""
        return [self.system_message(len(history)), *history, self.user_message()]


def intent_metadata(intent: Intent) -> dict[str, str]:
    metadata: dict[str, str] = {"intent": intent.kind}
    if isinstance(intent, FileMentionIntent):
        metadata["file_count"] = str(len(intent.paths))
    elif isinstance(intent, CommandIntent):
        metadata["command"] = intent.name
        metadata["arg_count"] = str(len(intent.args))
    elif isinstance(intent, CodeReviewIntent):
        metadata["review_files"] = str(len(intent.files))
    elif isinstance(intent, DebugIntent):
        metadata["mode"] = "debug"
    elif isinstance(intent, CodeGenerationIntent) and intent.language:
        metadata["language"] = intent.language
    return metadata


class ContextBuilder:
    """Assemble :class:`ConversationContext` objects for a workspace."""

    def __init__(self, matcher: CodeMatcher, *, rules_path: str | None = ".codepair/rules.md") -> None:
        self._matcher = matcher
        self._rules_path = rules_path

    def build(self, text: str, intent: Intent) -> ConversationContext:
        files: list[FileContent] = []
        missing: list[str] = []
        for path in _referenced_paths(intent):
            content = self._read(path)
            if content is None:
                missing.append(path)
            else:
                files.append(FileContent(path=path, content=content))
        if missing:
            LOGGER.info("Referenced file(s) not readable: %s", ", ".join(missing))
        metadata = intent_metadata(intent)
        LOGGER.debug("Built context for %s intent with %s file(s)", intent.kind, len(files))
        return ConversationContext(
            user_input=text,
            intent=intent,
            files=tuple(files),
            rules=self.load_rules(),
            metadata=metadata,
            missing_files=tuple(missing),
        )

    def load_rules(self) -> str:
        candidates = [self._rules_path] if self._rules_path else []
        candidates.extend(_FALLBACK_RULE_FILES)
        for candidate in candidates:
            content = self._read(candidate)
            if content and content.strip():
                LOGGER.debug("Loaded project rules from %s", candidate)
                return content.strip()
        return ""

    def _read(self, path: str) -> str | None:
        try:
            return self._matcher.read(path)
        except CodepairError as exc:
            LOGGER.debug("Skipping %s: %s", path, exc.message)
            return None
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.debug("Skipping %s: %s", path, exc)
            return None


def _referenced_paths(intent: Intent) -> tuple[str, ...]:
    if isinstance(intent, FileMentionIntent):
        return intent.paths
    if isinstance(intent, (CodeReviewIntent, DebugIntent)):
        return intent.files
    return ()
