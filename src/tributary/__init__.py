from tributary.driver import StreamDriver
from tributary.errors import (
    ChunkDecodeError,
    MaxDepthExceededError,
    ProviderOverloadedError,
    ProviderRequestError,
    ProviderResponseError,
    RateLimitedError,
    RequestTooLargeError,
    ToolInvocationError,
    TributaryError,
    UnsupportedActionError,
)
from tributary.instrumentation import instrument, uninstrument
from tributary.log import configure_logging
from tributary.message import (
    AssistantMessage,
    SystemMessage,
    ToolResultMessage,
    UserMessage,
)
from tributary.provider import (
    AnthropicProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
    OpenRouter,
    VLLMProvider,
)
from tributary.request import Request, ToolChoice
from tributary.response import TextResponse
from tributary.streaming import Chunk, ChunkType, FinishReason, ToolCall, ToolResult
from tributary.tools import LLMRecoverableError, Tool, tool

__all__ = [
    "AnthropicProvider",
    "AssistantMessage",
    "Chunk",
    "ChunkDecodeError",
    "ChunkType",
    "FinishReason",
    "LLMRecoverableError",
    "MaxDepthExceededError",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "OpenRouter",
    "ProviderOverloadedError",
    "ProviderRequestError",
    "ProviderResponseError",
    "RateLimitedError",
    "Request",
    "RequestTooLargeError",
    "StreamDriver",
    "SystemMessage",
    "TextResponse",
    "Tool",
    "ToolCall",
    "ToolChoice",
    "ToolInvocationError",
    "ToolResult",
    "ToolResultMessage",
    "TributaryError",
    "UnsupportedActionError",
    "UserMessage",
    "VLLMProvider",
    "configure_logging",
    "instrument",
    "tool",
    "uninstrument",
]
