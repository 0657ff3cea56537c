"""Tests for code modification detection."""

from __future__ import annotations

from codepair.editor.modifications import (
    CreateOp,
    DeleteOp,
    ModifyOp,
    detect_explicit_modifications,
    detect_modifications,
    extract_code_blocks,
    split_search_replace,
)


def test_create_file_directive() -> None:
    text = "Create file `src/main.rs`:\n\n```rust\nfn main() {}\n```"

    assert detect_modifications(text) == [CreateOp(path="src/main.rs", content="fn main() {}")]


def test_implicit_filename_fallback() -> None:
    text = "Here is a tiny script, save it as app.py\n```py\nprint(1)\n```"

    assert detect_modifications(text) == [CreateOp(path="app.py", content="print(1)")]


def test_no_code_blocks_means_no_operations() -> None:
    assert detect_modifications("You could save this as app.py later.") == []


def test_directives_pair_with_blocks_in_order() -> None:
    text = (
        "Delete `old.py`.\n"
        "Create file `a.py`:\n```python\nA = 1\n```\n"
        "Modify `b.py`:\n"
        "```python\n<<<<<<< SEARCH\nB = 1\n=======\nB = 2\n>>>>>>> REPLACE\n```\n"
    )

    assert detect_modifications(text) == [
        DeleteOp(path="old.py"),
        CreateOp(path="a.py", content="A = 1"),
        ModifyOp(path="b.py", search="B = 1", replace="B = 2"),
    ]


def test_create_and_modify_share_block_order() -> None:
    text = (
        "Modify `b.py`:\n```python\nB = 2\n```\n"
        "Create file `a.py`:\n```python\nA = 1\n```\n"
        "Update `c.py`:\n```python\nC = 3\n```\n"
    )

    assert detect_modifications(text) == [
        ModifyOp(path="b.py", search="", replace="B = 2"),
        CreateOp(path="a.py", content="A = 1"),
        ModifyOp(path="c.py", search="", replace="C = 3"),
    ]


def test_modify_without_markers_replaces_whole_file() -> None:
    text = "Update `config.toml`:\n```toml\nname = \"demo\"\n```"

    assert detect_modifications(text) == [ModifyOp(path="config.toml", search="", replace='name = "demo"')]


def test_directives_inside_code_blocks_are_ignored() -> None:
    text = "Run this:\n```bash\ndelete `important.db`\n```"

    assert detect_explicit_modifications(text) == []


def test_directive_without_block_is_skipped() -> None:
    assert detect_explicit_modifications("Create file `lonely.py` please") == []


def test_implausible_paths_are_rejected() -> None:
    text = "Create file `my file.py`:\n```python\nx = 1\n```"

    assert detect_explicit_modifications(text) == []


def test_extract_code_blocks_defaults_language() -> None:
    blocks = extract_code_blocks("```\nplain\n```\n```python\ncode\n```")

    assert [(block.language, block.content) for block in blocks] == [("text", "plain"), ("python", "code")]


def test_split_search_replace_without_markers() -> None:
    assert split_search_replace("whole file") == ("", "whole file")
