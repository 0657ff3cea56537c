"""Tests for the stream delta accumulator."""

from __future__ import annotations

from codepair.ai.orchestration.streaming import StreamAccumulator, StreamDelta


def test_content_fragments_are_appended_in_order() -> None:
    accumulator = StreamAccumulator()
    forwarded = [accumulator.feed(StreamDelta(content=part)) for part in ("Hel", "lo", " world")]
    accumulator.feed(StreamDelta(finish_reason="stop"))

    response = accumulator.finish(model="fast-model")

    assert forwarded == ["Hel", "lo", " world"]
    assert response.text == "Hello world"
    assert response.finish_reason == "stop"
    assert response.model == "fast-model"
    assert response.tool_calls == ()


def test_tool_call_fragments_merge_by_index() -> None:
    accumulator = StreamAccumulator()
    accumulator.feed(StreamDelta(tool_index=1, tool_call_id="call_b", tool_name="list_files", arguments="{}"))
    accumulator.feed(StreamDelta(tool_index=0, tool_call_id="call_a", tool_name="read_", arguments='{"pa'))
    accumulator.feed(StreamDelta(tool_index=0, tool_name="file", arguments='th": "a.py"}'))
    accumulator.feed(StreamDelta(tool_index=0, tool_call_id="ignored"))
    accumulator.feed(StreamDelta(finish_reason="tool_calls"))

    response = accumulator.finish()

    assert [call.name for call in response.tool_calls] == ["read_file", "list_files"]
    assert response.tool_calls[0].call_id == "call_a"
    assert response.tool_calls[0].arguments == {"path": "a.py"}
    assert response.has_tool_calls is True


def test_fragments_after_completion_are_ignored_but_usage_is_kept() -> None:
    accumulator = StreamAccumulator()
    accumulator.feed(StreamDelta(content="done"))
    accumulator.feed(StreamDelta(finish_reason="stop"))

    assert accumulator.complete is True
    assert accumulator.feed(StreamDelta(content="late")) is None
    accumulator.feed(StreamDelta(prompt_tokens=12, completion_tokens=3))

    response = accumulator.finish()

    assert response.text == "done"
    assert response.prompt_tokens == 12
    assert response.completion_tokens == 3


def test_end_of_stream_without_finish_reason() -> None:
    accumulator = StreamAccumulator()
    accumulator.feed(StreamDelta(tool_index=0, tool_name="list_files"))
    accumulator.feed(StreamDelta(tool_index=2, arguments="{}"))

    response = accumulator.finish()

    assert len(response.tool_calls) == 1
    assert response.tool_calls[0].call_id.startswith("call_")
    assert response.finish_reason == "tool_calls"
