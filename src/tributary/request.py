from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tributary.message import Message
from tributary.tools import Tool


class ToolChoice(Enum):
    AUTO = "auto"
    ANY = "any"
    NONE = "none"


class Request(BaseModel):
    """A vendor-neutral generation request.

    Built once and handed to a provider.  The fields are frozen; the
    only mutation during a stream is the driver appending the assistant
    and tool-result messages of each tool round to ``messages``.

    Args:
        model: Model identifier understood by the provider.
        messages: Conversation so far, in order.
        tools: Tools the model may call during this request.
        tool_choice: A :class:`ToolChoice` or the name of one tool.
        max_steps: Maximum number of tool-call rounds.
        tool_error_handling: When ``False``, a call naming an unknown
            tool raises instead of producing an error result.
        provider_options: Vendor-specific knobs, looked up by dotted
            path with :meth:`provider_option`.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    model: str
    messages: list[Message] = Field(default_factory=list)
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    tools: list[Tool] = Field(default_factory=list)
    tool_choice: ToolChoice | str | None = None
    max_steps: int = Field(default=4, ge=1)
    tool_error_handling: bool = True
    provider_options: dict[str, Any] = Field(default_factory=dict)

    def add_message(self, message: Message) -> None:
        self.messages.append(message)

    def provider_option(self, path: str, default: Any = None) -> Any:
        value: Any = self.provider_options
        for key in path.split("."):
            if not isinstance(value, dict) or key not in value:
                return default
            value = value[key]
        return value

    @property
    def thinking_enabled(self) -> bool:
        return bool(self.provider_option("thinking.enabled", False))
