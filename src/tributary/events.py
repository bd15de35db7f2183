"""Vendor-neutral events produced by classifying one SSE payload."""

from __future__ import annotations

from dataclasses import dataclass, field

from tributary.errors import TributaryError
from tributary.streaming import FinishReason, Meta, ToolCallFragment, Usage


@dataclass
class StreamEvent:
    """Base for all classified events."""


@dataclass
class MetaEvent(StreamEvent):
    """Response identity announced at the start of a round."""

    meta: Meta = field(default_factory=Meta)


@dataclass
class TextDelta(StreamEvent):
    text: str = ""


@dataclass
class ThinkingDelta(StreamEvent):
    """Reasoning text, or a signature fragment when ``signature`` is set."""

    text: str = ""
    signature: str = ""


@dataclass
class ToolCallDelta(StreamEvent):
    fragments: list[ToolCallFragment] = field(default_factory=list)


@dataclass
class BlockStart(StreamEvent):
    """A typed content block opened (``text``, ``thinking``, ``tool_use``)."""

    block_type: str | None = None
    index: int | None = None


@dataclass
class BlockStop(StreamEvent):
    """The current content block closed."""


@dataclass
class UsageEvent(StreamEvent):
    usage: Usage = field(default_factory=Usage)


@dataclass
class Finish(StreamEvent):
    """The vendor reported why generation stopped."""

    reason: FinishReason = FinishReason.UNKNOWN


@dataclass
class ErrorEvent(StreamEvent):
    """An in-band error envelope; ``error`` is raised by the driver."""

    error: TributaryError | None = None
