"""Tests for per-turn context assembly and system prompt selection."""

from __future__ import annotations

from pathlib import Path

from codepair.ai.orchestration.context import ContextBuilder
from codepair.ai.orchestration.intents import recognize_intent
from codepair.ai.prompts import FILE_OPERATIONS_GUIDE, system_prompt_for
from codepair.editor.matcher import CodeMatcher


def _build(matcher: CodeMatcher, text: str):
    return ContextBuilder(matcher).build(text, recognize_intent(text))


def test_mentioned_files_are_inlined(matcher: CodeMatcher) -> None:
    context = _build(matcher, "@src/app.py explain this")

    assert [item.path for item in context.files] == ["src/app.py"]
    content = context.user_message().content
    assert content.startswith("explain this")
    assert "### src/app.py\n```py\ndef greet():" in content
    assert context.metadata == {"intent": "file_mention", "file_count": "1"}


def test_missing_files_are_reported(matcher: CodeMatcher) -> None:
    context = _build(matcher, "@src/app.py @nope.py what changed")

    assert context.missing_files == ("nope.py",)
    assert "Could not read: nope.py" in context.user_message().content


def test_plain_chat_has_no_file_section(matcher: CodeMatcher) -> None:
    context = _build(matcher, "hello there friend")

    assert context.files == ()
    assert context.user_message().content == "hello there friend"


def test_project_rules_lead_the_system_prompt(workspace: Path, matcher: CodeMatcher) -> None:
    (workspace / ".codepair").mkdir()
    (workspace / ".codepair" / "rules.md").write_text("Use tabs.\n", encoding="utf-8")

    system = _build(matcher, "hello there friend").system_message().content

    assert system.startswith("## Project Rules\n\nUse tabs.")


def test_fallback_rules_file(workspace: Path, matcher: CodeMatcher) -> None:
    (workspace / "AI.md").write_text("Prefer small functions.", encoding="utf-8")

    assert ContextBuilder(matcher).load_rules() == "Prefer small functions."
    assert ContextBuilder(matcher, rules_path=None).load_rules() == "Prefer small functions."


def test_prompt_follows_intent_and_conversation_length() -> None:
    review = system_prompt_for(recognize_intent("review the parser"), 0)
    debug = system_prompt_for(recognize_intent("help me debug the parser"), 0)
    chat_early = system_prompt_for(recognize_intent("hi"), 0)
    chat_late = system_prompt_for(recognize_intent("hi"), 20)

    assert review.startswith("You are an expert code reviewer.")
    assert "new session" in chat_early
    assert "extensive context" in chat_late
    assert all(FILE_OPERATIONS_GUIDE in prompt for prompt in (review, debug, chat_early, chat_late))
