"""Streaming primitives shared by every provider.

The driver yields :class:`Chunk` objects.  :class:`StreamState` is the
per-round accumulator: it collects text, thinking and tool calls whose
arguments arrive in fragments across many events.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic_core import to_jsonable_python

from tributary.errors import ProviderRateLimit


class ChunkType(Enum):
    TEXT = "text"
    THINKING = "thinking"
    META = "meta"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"


class FinishReason(Enum):
    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    ERROR = "error"
    OTHER = "other"
    UNKNOWN = "unknown"


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def add(self, other: Usage) -> None:
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens


@dataclass
class Meta:
    id: str = ""
    model: str = ""
    rate_limits: list[ProviderRateLimit] = field(default_factory=list)


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming event."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class ToolCall:
    """A tool call requested by the model.

    ``arguments`` holds the raw JSON text exactly as streamed, or an
    already decoded mapping for vendors that send one.
    """

    id: str = ""
    name: str = ""
    arguments: str | dict = ""

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the arguments.

        Empty arguments decode to ``{}``.  Malformed JSON raises
        :class:`json.JSONDecodeError`; decoding never mutates the call,
        so it can be repeated.
        """
        if isinstance(self.arguments, dict):
            return dict(self.arguments)
        if not self.arguments.strip():
            return {}
        decoded = json.loads(self.arguments)
        if not isinstance(decoded, dict):
            raise json.JSONDecodeError(
                "Tool arguments must be a JSON object", self.arguments, 0,
            )
        return decoded

    def raw_arguments(self) -> str:
        if isinstance(self.arguments, dict):
            return json.dumps(self.arguments)
        return self.arguments


@dataclass
class ToolResult:
    """The outcome of running one :class:`ToolCall`."""

    tool_call_id: str
    tool_name: str
    args: dict[str, Any]
    result: Any
    is_error: bool = False

    def result_text(self) -> str:
        """The result as message content; non-JSON values fall back to ``str``."""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(to_jsonable_python(self.result, fallback=str))


@dataclass
class Chunk:
    """One caller-visible unit of streamed output.

    Only the payload matching ``chunk_type`` is populated; the other
    fields stay empty.
    """

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    finish_reason: FinishReason | None = None
    meta: Meta | None = None
    usage: Usage | None = None
    additional_content: dict[str, Any] = field(default_factory=dict)
    chunk_type: ChunkType = ChunkType.TEXT


class StreamState:
    """Mutable accumulator for a single streaming round.

    Created fresh (or :meth:`reset`) at the start of every round and
    owned by exactly one stream.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.model = ""
        self.request_id = ""
        self.text = ""
        self.thinking = ""
        self.thinking_signature = ""
        self.stop_reason: FinishReason | None = None
        self.usage: Usage | None = None
        self.block_type: str | None = None
        self.block_index: int | None = None
        self._tool_calls: dict[int, ToolCall] = {}

    def append_text(self, text: str) -> None:
        self.text += text

    def append_thinking(self, thinking: str) -> bool:
        """Append a thinking delta, returning ``False`` if it was dropped.

        A bare ``Thinking...`` placeholder is dropped once this stream
        has already produced thinking text mentioning ``Thinking``.
        """
        if thinking.strip() == "Thinking..." and "Thinking" in self.thinking:
            return False
        self.thinking += thinking
        return True

    def append_thinking_signature(self, signature: str) -> None:
        self.thinking_signature += signature

    def feed(self, fragment: ToolCallFragment) -> None:
        """Upsert a tool-call fragment; argument deltas are concatenated."""
        if fragment.index not in self._tool_calls:
            self._tool_calls[fragment.index] = ToolCall()
        tc = self._tool_calls[fragment.index]
        if fragment.call_id:
            tc.id = fragment.call_id
        if fragment.name:
            tc.name = fragment.name
        if fragment.arguments_delta:
            tc.arguments += fragment.arguments_delta

    def set_stop_reason(self, reason: FinishReason) -> None:
        self.stop_reason = reason

    def add_usage(self, usage: Usage) -> None:
        if self.usage is None:
            self.usage = Usage()
        self.usage.add(usage)

    def start_block(self, block_type: str | None, index: int | None) -> None:
        self.block_type = block_type
        self.block_index = index

    def reset_block(self) -> None:
        self.block_type = None
        self.block_index = None

    def has_tool_calls(self) -> bool:
        return bool(self._tool_calls)

    def is_tool_use_finish(self) -> bool:
        return self.stop_reason is FinishReason.TOOL_CALLS and self.has_tool_calls()

    def tool_calls(self) -> list[ToolCall]:
        """Return the accumulated tool calls in index order."""
        return [self._tool_calls[i] for i in sorted(self._tool_calls)]

    def build_additional_content(self) -> dict[str, Any]:
        additional: dict[str, Any] = {}
        if self.thinking:
            additional["thinking"] = self.thinking
            if self.thinking_signature:
                additional["thinking_signature"] = self.thinking_signature
        return additional
