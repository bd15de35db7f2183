from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_serializer

from tributary.streaming import ToolCall, ToolResult


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


class Message(BaseModel):
    role: MessageRole
    content: str = ""

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class SystemMessage(Message):
    role: MessageRole = MessageRole.SYSTEM


class UserMessage(Message):
    role: MessageRole = MessageRole.USER


class AssistantMessage(Message):
    """Assistant turn, optionally carrying the tool calls it requested.

    ``additional_content`` keeps vendor extras such as the thinking text
    and signature that must be replayed on the next round.
    """

    role: MessageRole = MessageRole.ASSISTANT
    tool_calls: list[ToolCall] = Field(default_factory=list)
    additional_content: dict[str, Any] = Field(default_factory=dict)


class ToolResultMessage(Message):
    role: MessageRole = MessageRole.TOOL
    tool_results: list[ToolResult] = Field(default_factory=list)
