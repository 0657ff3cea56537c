"""Tests for intent recognition."""

from __future__ import annotations

import pytest

from codepair.ai.orchestration.intents import (
    ChatIntent,
    CodeGenerationIntent,
    CodeReviewIntent,
    CommandIntent,
    DebugIntent,
    FileMentionIntent,
    recognize_intent,
)


def test_plain_text_is_chat() -> None:
    intent = recognize_intent("  explain async iterators  ")

    assert intent == ChatIntent(query="explain async iterators")
    assert intent.kind == "chat"


def test_empty_input_is_chat() -> None:
    assert recognize_intent("") == ChatIntent(query="")


def test_file_mentions_are_collected_and_removed_from_query() -> None:
    intent = recognize_intent("compare @src/a.py and @src/b.py, then @src/a.py again")

    assert isinstance(intent, FileMentionIntent)
    assert intent.paths == ("src/a.py", "src/b.py")
    assert intent.query == "compare and then again"


def test_mentions_win_over_commands_and_keywords() -> None:
    intent = recognize_intent("/review @main.rs")

    assert isinstance(intent, FileMentionIntent)
    assert intent.paths == ("main.rs",)


def test_slash_prefix_is_command() -> None:
    intent = recognize_intent("/clear now please")

    assert intent == CommandIntent(name="clear", args=("now", "please"))
    assert intent.prompt == "/clear now please"


def test_review_keyword_extracts_files() -> None:
    intent = recognize_intent("Please review src/app.py for style")

    assert isinstance(intent, CodeReviewIntent)
    assert intent.files == ("src/app.py",)
    assert intent.focus == "Please review src/app.py for style"


def test_bug_keyword_counts_as_review() -> None:
    assert isinstance(recognize_intent("there is a bug somewhere"), CodeReviewIntent)


def test_debug_keyword_without_review_overlap() -> None:
    intent = recognize_intent("为什么 main.py 会崩溃")

    assert isinstance(intent, DebugIntent)
    assert intent.files == ("main.py",)


@pytest.mark.parametrize(
    ("text", "language"),
    [
        ("generate a python script", "python"),
        ("create a rust crate", "rust"),
        ("generate javascript helpers", "javascript"),
        ("create a small cli", None),
        ("generate a google sheet", None),
    ],
)
def test_generation_detects_language(text: str, language: str | None) -> None:
    intent = recognize_intent(text)

    assert isinstance(intent, CodeGenerationIntent)
    assert intent.language == language


def test_recognition_is_deterministic() -> None:
    samples = ["hello", "@x.py what", "/help", "review it", "debug?", "写一个函数", "生成 rust 代码"]
    for sample in samples:
        assert recognize_intent(sample) == recognize_intent(sample)
