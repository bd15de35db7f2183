from dataclasses import dataclass, field
from typing import Any

from tributary.message import Message
from tributary.streaming import (
    Chunk,
    ChunkType,
    FinishReason,
    Meta,
    ToolCall,
    ToolResult,
    Usage,
)


@dataclass
class Step:
    """One round of a drained stream."""

    text: str = ""
    thinking: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    finish_reason: FinishReason | None = None
    usage: Usage | None = None
    meta: Meta | None = None
    additional_content: dict[str, Any] = field(default_factory=dict)


@dataclass
class TextResponse:
    """The result of draining a stream with :meth:`StreamDriver.run`."""

    steps: list[Step] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)

    @property
    def text(self) -> str:
        return self.steps[-1].text if self.steps else ""

    @property
    def finish_reason(self) -> FinishReason:
        if self.steps and self.steps[-1].finish_reason is not None:
            return self.steps[-1].finish_reason
        return FinishReason.UNKNOWN

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [tc for step in self.steps for tc in step.tool_calls]

    @property
    def tool_results(self) -> list[ToolResult]:
        return [tr for step in self.steps for tr in step.tool_results]

    @property
    def usage(self) -> Usage:
        total = Usage()
        for step in self.steps:
            if step.usage is not None:
                total.add(step.usage)
        return total

    @property
    def meta(self) -> Meta | None:
        return self.steps[-1].meta if self.steps else None


class ResponseBuilder:
    """Folds chunks into :class:`Step` objects, one per round."""

    def __init__(self) -> None:
        self.steps: list[Step] = []
        self._current = Step()

    def add(self, chunk: Chunk) -> None:
        step = self._current
        if chunk.chunk_type is ChunkType.TEXT:
            step.text += chunk.text
        elif chunk.chunk_type is ChunkType.THINKING:
            step.thinking += chunk.text
        elif chunk.chunk_type is ChunkType.TOOL_CALL:
            step.tool_calls = list(chunk.tool_calls)
            step.finish_reason = FinishReason.TOOL_CALLS
        elif chunk.chunk_type is ChunkType.TOOL_RESULT:
            step.tool_results = list(chunk.tool_results)
            self._close()
        elif chunk.chunk_type is ChunkType.META:
            if chunk.meta is not None:
                step.meta = chunk.meta
            if chunk.usage is not None:
                step.usage = chunk.usage
            if chunk.finish_reason is not None:
                step.finish_reason = chunk.finish_reason
                step.additional_content = dict(chunk.additional_content)
                self._close()

    def _close(self) -> None:
        self.steps.append(self._current)
        self._current = Step()

    def build(self, messages: list[Message]) -> TextResponse:
        return TextResponse(steps=list(self.steps), messages=list(messages))
