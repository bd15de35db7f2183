"""Chat-completions SSE dialect (OpenAI, OpenRouter, vLLM and friends)."""

from typing import Any

from tributary.adapters.base import VendorAdapter, error_from_envelope
from tributary.events import (
    ErrorEvent,
    Finish,
    MetaEvent,
    StreamEvent,
    TextDelta,
    ThinkingDelta,
    ToolCallDelta,
    UsageEvent,
)
from tributary.message import (
    AssistantMessage,
    Message,
    ToolResultMessage,
)
from tributary.request import Request, ToolChoice
from tributary.streaming import (
    FinishReason,
    Meta,
    StreamState,
    ToolCallFragment,
    Usage,
)


def map_messages(messages: list[Message]) -> list[dict]:
    mapped = []
    for message in messages:
        if isinstance(message, ToolResultMessage):
            mapped.extend(
                {
                    "role": "tool",
                    "tool_call_id": result.tool_call_id,
                    "content": result.result_text(),
                }
                for result in message.tool_results
            )
        elif isinstance(message, AssistantMessage) and message.tool_calls:
            mapped.append({
                "role": "assistant",
                "content": message.content or None,
                "tool_calls": [
                    {
                        "id": t.id,
                        "type": "function",
                        "function": {
                            "arguments": t.raw_arguments(),
                            "name": t.name,
                        },
                    }
                    for t in message.tool_calls
                ],
            })
        else:
            mapped.append({"role": message.role.value, "content": message.content})
    return mapped


def map_tool_choice(choice: ToolChoice | str | None) -> str | dict | None:
    if choice is None:
        return None
    if choice is ToolChoice.ANY:
        return "required"
    if isinstance(choice, ToolChoice):
        return choice.value
    return {"type": "function", "function": {"name": choice}}


class OpenAIAdapter(VendorAdapter):
    """Adapter for ``/chat/completions`` streams.

    Reasoning deltas are read from ``reasoning_content`` (DeepSeek,
    vLLM, xAI) or ``reasoning`` (OpenRouter).  Servers that finish a
    tool-calling turn with ``stop`` instead of ``tool_calls`` are
    treated as having requested tools.
    """

    finish_reasons = {
        "stop": FinishReason.STOP,
        "tool_calls": FinishReason.TOOL_CALLS,
        "function_call": FinishReason.TOOL_CALLS,
        "length": FinishReason.LENGTH,
        "content_filter": FinishReason.CONTENT_FILTER,
    }

    def __init__(self, name: str = "openai"):
        self.name = name

    def build_payload(self, request: Request) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": map_messages(request.messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        optional = {
            "temperature": request.temperature,
            "top_p": request.top_p,
            "max_tokens": request.max_tokens,
            "tools": [t.model_dump() for t in request.tools] or None,
            "tool_choice": map_tool_choice(request.tool_choice) if request.tools else None,
            "metadata": request.provider_option("metadata"),
            "user": request.provider_option("user"),
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload

    def extract_finish_reason(self, data: dict[str, Any]) -> str | None:
        choices = data.get("choices") or []
        return choices[0].get("finish_reason") if choices else None

    def classify_event(
        self, data: dict[str, Any], state: StreamState, request: Request,
    ) -> list[StreamEvent]:
        if data.get("error"):
            error = data["error"]
            if isinstance(error, dict):
                code = error.get("code") or error.get("type")
                message = error.get("message")
            else:
                code, message = None, str(error)
            return [ErrorEvent(error_from_envelope(
                self.name, state.model or request.model, code, message,
            ))]

        events: list[StreamEvent] = []
        if data.get("id") and not state.request_id:
            events.append(MetaEvent(Meta(id=data["id"], model=data.get("model", ""))))

        choices = data.get("choices") or []
        delta = (choices[0].get("delta") or {}) if choices else {}

        if delta.get("tool_calls"):
            events.append(ToolCallDelta([
                ToolCallFragment(
                    index=tc.get("index", i),
                    call_id=tc.get("id"),
                    name=(tc.get("function") or {}).get("name"),
                    arguments_delta=(tc.get("function") or {}).get("arguments"),
                )
                for i, tc in enumerate(delta["tool_calls"])
            ]))

        reasoning = delta.get("reasoning_content") or delta.get("reasoning")
        if reasoning:
            events.append(ThinkingDelta(text=reasoning))

        if delta.get("content"):
            events.append(TextDelta(delta["content"]))

        raw_reason = self.extract_finish_reason(data)
        if raw_reason:
            reason = self.map_finish_reason(raw_reason)
            has_calls = state.has_tool_calls() or any(
                isinstance(e, ToolCallDelta) for e in events
            )
            if reason is FinishReason.STOP and has_calls:
                reason = FinishReason.TOOL_CALLS
            events.append(Finish(reason))

        usage = data.get("usage")
        if usage:
            events.append(UsageEvent(Usage(
                prompt_tokens=usage.get("prompt_tokens") or 0,
                completion_tokens=usage.get("completion_tokens") or 0,
            )))
        return events
