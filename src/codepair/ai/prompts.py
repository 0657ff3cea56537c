"""System prompts for each conversation mode.

Prompts adapt to how far along the conversation is: early turns ask
clarifying questions, later turns assume shared context.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .orchestration.intents import Intent

__all__ = [
    "FILE_OPERATIONS_GUIDE",
    "pair_programming_prompt",
    "code_review_prompt",
    "debugging_prompt",
    "system_prompt_for",
]

FILE_OPERATIONS_GUIDE = """## File Operations

Edits are proposed to the user, never applied directly. Announce every file
operation on its own line, then give the code block that belongs to it:

- create file `path/to/file.ext` followed by the complete file
- modify `path/to/file.ext` followed by a SEARCH/REPLACE block:

```text
<<<<<<< SEARCH
the exact lines currently in the file
=======
the lines that replace them
>>>>>>> REPLACE
```

- delete `path/to/file.ext` (no code block)

A modify block without SEARCH/REPLACE markers replaces the whole file.
Use one code block per create/modify operation, in the same order as the
operations."""

_PAIR_PROGRAMMING_BASE = """You are an experienced pair programmer working in the user's repository.

- Give concrete, runnable code that follows the conventions already in the project.
- Explain the reasoning behind non-obvious choices and call out trade-offs.
- Build on earlier turns instead of repeating them.
- Point out bugs, missing edge cases and missing tests when you see them.
- Use the available tools to inspect files before proposing changes to them."""

_CODE_REVIEW_BASE = """You are an expert code reviewer. Review for:

1. **Correctness**: logic errors, unhandled edge cases, runtime failures.
2. **Performance**: avoidable work, poor data structures, missing caching.
3. **Maintainability**: naming, structure, readability.
4. **Security**: input validation, injection, secrets handling.
5. **Testing**: untested paths and how to cover them.

Order findings by impact and include a suggested fix for each."""

_DEBUGGING_BASE = """You are an expert debugger.

1. Establish expected versus actual behavior and how to reproduce it.
2. Rank the likely root causes and propose a diagnostic step for each.
3. Once the cause is clear, give the fix and explain why it works.
4. Suggest a test that would have caught the problem."""


def _pair_programming_focus(message_count: int) -> str:
    if message_count == 0:
        return "This is a new session. Ask about the goal and the tech stack if they are unclear."
    if message_count <= 4:
        return "You are still building context. Be thorough and ask follow-up questions when needed."
    if message_count <= 10:
        return "You have good context. Be concise, reference earlier discussion and start suggesting improvements."
    return "You have extensive context. Give focused, expert-level answers and anticipate the next step."


def _code_review_focus(message_count: int) -> str:
    if message_count <= 2:
        return "Start with a high-level overview of the structure and the main concerns, then go into details."
    if message_count <= 8:
        return "Focus on the most impactful issues first, with specific recommendations and code examples."
    return "Give targeted feedback and suggest deeper architectural improvements."


def _debugging_focus(message_count: int) -> str:
    if message_count <= 3:
        return "Start by gathering information: error messages, logs and reproduction steps."
    if message_count <= 10:
        return "Debug systematically and help isolate the problem with specific techniques."
    return "Use advanced debugging strategies and help implement a complete fix."


def pair_programming_prompt(message_count: int = 0) -> str:
    return "\n\n".join((_PAIR_PROGRAMMING_BASE, _pair_programming_focus(message_count), FILE_OPERATIONS_GUIDE))


def code_review_prompt(message_count: int = 0) -> str:
    return "\n\n".join((_CODE_REVIEW_BASE, _code_review_focus(message_count), FILE_OPERATIONS_GUIDE))


def debugging_prompt(message_count: int = 0) -> str:
    return "\n\n".join((_DEBUGGING_BASE, _debugging_focus(message_count), FILE_OPERATIONS_GUIDE))


def system_prompt_for(intent: Intent, message_count: int = 0, *, rules: str | None = None) -> str:
    """Pick the prompt for ``intent``; project rules, when present, come first."""

    kind = getattr(intent, "kind", "chat")
    if kind == "code_review":
        prompt = code_review_prompt(message_count)
    elif kind == "debug":
        prompt = debugging_prompt(message_count)
    else:
        prompt = pair_programming_prompt(message_count)
    if rules and rules.strip():
        return f"## Project Rules\n\n{rules.strip()}\n\n{prompt}"
    return prompt
