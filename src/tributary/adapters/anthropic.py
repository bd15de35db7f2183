"""Messages-API SSE dialect (Anthropic)."""

import json
from typing import Any

from tributary.adapters.base import VendorAdapter, error_from_envelope
from tributary.events import (
    BlockStart,
    BlockStop,
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
    SystemMessage,
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

DEFAULT_MAX_TOKENS = 4096
DEFAULT_THINKING_BUDGET = 1024


def _tool_input(arguments) -> dict:
    if isinstance(arguments, dict):
        return arguments
    try:
        decoded = json.loads(arguments) if arguments.strip() else {}
    except json.JSONDecodeError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def map_messages(messages: list[Message]) -> list[dict]:
    mapped = []
    for message in messages:
        if isinstance(message, SystemMessage):
            continue
        if isinstance(message, ToolResultMessage):
            mapped.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.tool_call_id,
                        "content": result.result_text(),
                    }
                    for result in message.tool_results
                ],
            })
        elif isinstance(message, AssistantMessage):
            blocks = []
            thinking = message.additional_content.get("thinking")
            signature = message.additional_content.get("thinking_signature")
            if thinking and signature:
                blocks.append({
                    "type": "thinking", "thinking": thinking, "signature": signature,
                })
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            blocks.extend(
                {
                    "type": "tool_use",
                    "id": t.id,
                    "name": t.name,
                    "input": _tool_input(t.arguments),
                }
                for t in message.tool_calls
            )
            mapped.append({"role": "assistant", "content": blocks})
        else:
            mapped.append({"role": message.role.value, "content": message.content})
    return mapped


def map_tool_choice(choice: ToolChoice | str | None) -> dict | None:
    if choice is None:
        return None
    if isinstance(choice, ToolChoice):
        return {"type": choice.value}
    return {"type": "tool", "name": choice}


class AnthropicAdapter(VendorAdapter):
    finish_reasons = {
        "end_turn": FinishReason.STOP,
        "stop_sequence": FinishReason.STOP,
        "tool_use": FinishReason.TOOL_CALLS,
        "max_tokens": FinishReason.LENGTH,
        "refusal": FinishReason.CONTENT_FILTER,
    }

    def __init__(self, name: str = "anthropic"):
        self.name = name

    def build_payload(self, request: Request) -> dict[str, Any]:
        system = "\n".join(
            m.content for m in request.messages if isinstance(m, SystemMessage)
        )
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": map_messages(request.messages),
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "stream": True,
        }
        thinking = None
        if request.thinking_enabled:
            thinking = {
                "type": "enabled",
                "budget_tokens": request.provider_option(
                    "thinking.budget_tokens", DEFAULT_THINKING_BUDGET,
                ),
            }
        optional = {
            "system": system or None,
            "temperature": request.temperature,
            "top_p": request.top_p,
            "tools": [
                {
                    "name": t.name,
                    "description": t.description,
                    "input_schema": t.parameters_schema,
                }
                for t in request.tools
            ] or None,
            "tool_choice": map_tool_choice(request.tool_choice) if request.tools else None,
            "thinking": thinking,
            "metadata": request.provider_option("metadata"),
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        return payload

    def extract_finish_reason(self, data: dict[str, Any]) -> str | None:
        if data.get("type") == "message_delta":
            return (data.get("delta") or {}).get("stop_reason")
        return None

    def classify_event(
        self, data: dict[str, Any], state: StreamState, request: Request,
    ) -> list[StreamEvent]:
        event_type = data.get("type")

        if event_type == "error":
            error = data.get("error") or {}
            return [ErrorEvent(error_from_envelope(
                self.name, state.model or request.model,
                error.get("type"), error.get("message"),
            ))]

        if event_type == "message_start":
            message = data.get("message") or {}
            usage = message.get("usage") or {}
            return [
                MetaEvent(Meta(id=message.get("id", ""), model=message.get("model", ""))),
                UsageEvent(Usage(
                    prompt_tokens=usage.get("input_tokens") or 0,
                    completion_tokens=usage.get("output_tokens") or 0,
                )),
            ]

        if event_type == "content_block_start":
            block = data.get("content_block") or {}
            index = data.get("index")
            events: list[StreamEvent] = [BlockStart(block.get("type"), index)]
            if block.get("type") == "tool_use":
                events.insert(0, ToolCallDelta([ToolCallFragment(
                    index=index if index is not None else 0,
                    call_id=block.get("id"),
                    name=block.get("name"),
                )]))
            return events

        if event_type == "content_block_delta":
            return self._classify_delta(data, state)

        if event_type == "content_block_stop":
            return [BlockStop()]

        if event_type == "message_delta":
            events = []
            raw_reason = self.extract_finish_reason(data)
            if raw_reason:
                events.append(Finish(self.map_finish_reason(raw_reason)))
            output_tokens = (data.get("usage") or {}).get("output_tokens")
            if output_tokens:
                events.append(UsageEvent(Usage(completion_tokens=output_tokens)))
            return events

        # message_stop, ping and unknown event types carry nothing.
        return []

    def _classify_delta(self, data: dict[str, Any], state: StreamState) -> list[StreamEvent]:
        delta = data.get("delta") or {}
        delta_type = delta.get("type")
        index = data.get("index", state.block_index)

        if delta_type == "input_json_delta":
            if index is None:
                return []
            return [ToolCallDelta([ToolCallFragment(
                index=index, arguments_delta=delta.get("partial_json", ""),
            )])]
        if delta_type == "thinking_delta":
            return [ThinkingDelta(text=delta.get("thinking", ""))]
        if delta_type == "signature_delta":
            return [ThinkingDelta(signature=delta.get("signature", ""))]
        if delta_type == "text_delta":
            return [TextDelta(delta.get("text", ""))]
        return []
