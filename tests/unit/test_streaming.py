"""Unit tests for streaming primitives."""

import json
from datetime import datetime
from decimal import Decimal

import pytest
from pydantic import BaseModel

from tributary.streaming import (
    FinishReason,
    StreamState,
    ToolCall,
    ToolCallFragment,
    ToolResult,
    Usage,
)


class TestToolCallAccumulation:
    def test_single_tool_call_single_fragment(self):
        state = StreamState()
        state.feed(ToolCallFragment(index=0, call_id="c1", name="echo", arguments_delta='{"text": "hi"}'))
        result = state.tool_calls()

        assert len(result) == 1
        assert result[0] == ToolCall(id="c1", name="echo", arguments='{"text": "hi"}')

    def test_arguments_concatenated_in_arrival_order(self):
        state = StreamState()
        state.feed(ToolCallFragment(index=0, name="search"))
        state.feed(ToolCallFragment(index=0, arguments_delta='{"query":'))
        state.feed(ToolCallFragment(index=0, arguments_delta='"weather"}'))
        call = state.tool_calls()[0]

        assert call.arguments == '{"query":"weather"}'
        assert call.parsed_arguments() == {"query": "weather"}

    def test_later_fragment_does_not_overwrite_name_or_id(self):
        state = StreamState()
        state.feed(ToolCallFragment(index=0, call_id="c1", name="echo"))
        state.feed(ToolCallFragment(index=0, call_id=None, name="", arguments_delta="{}"))

        assert state.tool_calls()[0] == ToolCall(id="c1", name="echo", arguments="{}")

    def test_multiple_interleaved_tool_calls(self):
        state = StreamState()
        state.feed(ToolCallFragment(index=0, call_id="c1", name="foo", arguments_delta='{"a":'))
        state.feed(ToolCallFragment(index=1, call_id="c2", name="bar", arguments_delta='{"b":'))
        state.feed(ToolCallFragment(index=0, arguments_delta=' 1}'))
        state.feed(ToolCallFragment(index=1, arguments_delta=' 2}'))
        result = state.tool_calls()

        assert result == [
            ToolCall(id="c1", name="foo", arguments='{"a": 1}'),
            ToolCall(id="c2", name="bar", arguments='{"b": 2}'),
        ]

    def test_tool_calls_returned_in_index_order(self):
        state = StreamState()
        state.feed(ToolCallFragment(index=2, call_id="c3", name="c"))
        state.feed(ToolCallFragment(index=0, call_id="c1", name="a"))
        state.feed(ToolCallFragment(index=1, call_id="c2", name="b"))

        assert [tc.name for tc in state.tool_calls()] == ["a", "b", "c"]

    def test_empty_state(self):
        assert StreamState().tool_calls() == []


class TestFinishPredicates:
    def test_tool_use_finish_needs_reason_and_calls(self):
        state = StreamState()
        state.set_stop_reason(FinishReason.TOOL_CALLS)
        assert not state.is_tool_use_finish()

        state.feed(ToolCallFragment(index=0, name="x"))
        assert state.has_tool_calls()
        assert state.is_tool_use_finish()

    def test_calls_without_tool_reason_is_not_tool_finish(self):
        state = StreamState()
        state.feed(ToolCallFragment(index=0, name="x"))
        state.set_stop_reason(FinishReason.STOP)
        assert not state.is_tool_use_finish()

    def test_reset_clears_everything(self):
        state = StreamState()
        state.append_text("hi")
        state.append_thinking("hmm")
        state.append_thinking_signature("sig")
        state.feed(ToolCallFragment(index=0, name="x"))
        state.set_stop_reason(FinishReason.TOOL_CALLS)
        state.add_usage(Usage(1, 2))
        state.start_block("text", 0)

        state.reset()

        assert state.text == ""
        assert state.thinking == ""
        assert state.thinking_signature == ""
        assert state.tool_calls() == []
        assert state.stop_reason is None
        assert state.usage is None
        assert state.block_type is None


class TestThinking:
    def test_thinking_is_appended(self):
        state = StreamState()
        assert state.append_thinking("Let me ")
        assert state.append_thinking("think.")
        assert state.thinking == "Let me think."

    def test_placeholder_suppressed_after_first(self):
        state = StreamState()
        assert state.append_thinking("Thinking...")
        assert not state.append_thinking("Thinking...")
        assert state.thinking == "Thinking..."

    def test_placeholder_state_is_per_stream(self):
        first = StreamState()
        first.append_thinking("Thinking...")

        second = StreamState()
        assert second.append_thinking("Thinking...")

    def test_additional_content_carries_signature(self):
        state = StreamState()
        state.append_thinking("hmm")
        state.append_thinking_signature("ab")
        state.append_thinking_signature("cd")

        assert state.build_additional_content() == {
            "thinking": "hmm", "thinking_signature": "abcd",
        }

    def test_no_additional_content_without_thinking(self):
        assert StreamState().build_additional_content() == {}


class TestToolCall:
    @pytest.mark.parametrize("raw", ["", "   "])
    def test_empty_arguments_decode_to_empty_dict(self, raw):
        assert ToolCall(name="t", arguments=raw).parsed_arguments() == {}

    def test_decoding_is_repeatable(self):
        call = ToolCall(name="t", arguments='{"x": 1}')
        assert call.parsed_arguments() == call.parsed_arguments() == {"x": 1}
        assert call.arguments == '{"x": 1}'

    def test_dict_arguments(self):
        call = ToolCall(name="t", arguments={"x": 1})
        assert call.parsed_arguments() == {"x": 1}
        assert json.loads(call.raw_arguments()) == {"x": 1}

    def test_malformed_arguments_raise(self):
        with pytest.raises(json.JSONDecodeError):
            ToolCall(name="t", arguments='{"x":').parsed_arguments()

    def test_non_object_arguments_raise(self):
        with pytest.raises(json.JSONDecodeError):
            ToolCall(name="t", arguments="[1, 2]").parsed_arguments()


def test_tool_result_text():
    assert ToolResult("c1", "t", {}, "plain").result_text() == "plain"
    assert ToolResult("c1", "t", {}, {"a": [1]}).result_text() == '{"a": [1]}'


def test_tool_result_text_for_non_json_values():
    class Forecast(BaseModel):
        city: str
        celsius: float

    assert ToolResult("c1", "t", {}, datetime(2026, 1, 1)).result_text() == '"2026-01-01T00:00:00"'
    assert ToolResult("c1", "t", {}, Decimal("1.5")).result_text() == '"1.5"'
    assert ToolResult("c1", "t", {}, {3}).result_text() == "[3]"
    assert (
        ToolResult("c1", "t", {}, Forecast(city="Oslo", celsius=3.5)).result_text()
        == '{"city": "Oslo", "celsius": 3.5}'
    )
