"""Exception taxonomy for tributary.

Every error raised by the package derives from :class:`TributaryError`,
so callers can catch the whole family at once and branch on the
subclasses when they need to tell "retry later" from "fatal".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class ProviderRateLimit:
    """One named rate-limit bucket reported by a provider.

    Args:
        name: Bucket name, e.g. ``"requests"`` or ``"input-tokens"``.
        limit: Maximum allowed in the window, if reported.
        remaining: Remaining allowance, if reported.
        resets_at: When the bucket resets, if reported as a timestamp.
    """

    name: str
    limit: int | None = None
    remaining: int | None = None
    resets_at: datetime | None = None


class TributaryError(Exception):
    """Base class for all tributary errors."""


class ChunkDecodeError(TributaryError):
    """A single SSE ``data:`` line could not be decoded as JSON."""

    def __init__(self, vendor: str, cause: Exception):
        super().__init__(f"Could not decode stream chunk from {vendor}: {cause}")
        self.vendor = vendor
        self.__cause__ = cause


class ProviderResponseError(TributaryError):
    """The provider's payload itself encoded an error envelope."""


class ProviderRequestError(TributaryError):
    """The HTTP request failed with a status that has no dedicated type."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitedError(TributaryError):
    """The provider rejected the request with a rate limit (HTTP 429).

    Args:
        rate_limits: Parsed rate-limit buckets, possibly empty.
        retry_after: Seconds the provider asked us to wait, if given.
    """

    def __init__(
        self,
        rate_limits: list[ProviderRateLimit] | None = None,
        retry_after: float | None = None,
    ):
        message = "You hit a provider rate limit"
        if retry_after is not None:
            message += f" (retry after {retry_after:g}s)"
        super().__init__(message)
        self.rate_limits = rate_limits or []
        self.retry_after = retry_after


class ProviderOverloadedError(TributaryError):
    def __init__(self, provider: str):
        super().__init__(f"The provider {provider} is overloaded")
        self.provider = provider


class RequestTooLargeError(TributaryError):
    def __init__(self, provider: str):
        super().__init__(f"The request to {provider} is too large")
        self.provider = provider


class MaxDepthExceededError(TributaryError):
    """The tool-call round count reached the request's ``max_steps``."""

    def __init__(self, max_steps: int):
        super().__init__(
            f"Maximum tool call chain depth exceeded (max_steps={max_steps})"
        )
        self.max_steps = max_steps


class ToolInvocationError(TributaryError):
    """A tool with error handling disabled failed.

    ``kind`` is ``"validation"`` when the arguments did not fit the
    tool's signature and ``"runtime"`` when the tool body raised.
    """

    def __init__(self, tool_name: str, kind: str, message: str):
        super().__init__(message)
        self.tool_name = tool_name
        self.kind = kind

    @classmethod
    def invalid_parameters(cls, tool_name: str, detail: str) -> ToolInvocationError:
        return cls(
            tool_name, "validation",
            f"Invalid parameters for tool : {tool_name}. {detail}",
        )

    @classmethod
    def failed(cls, tool_name: str, cause: BaseException) -> ToolInvocationError:
        return cls(
            tool_name, "runtime",
            f"Tool {tool_name} failed: {cause}",
        )

    @classmethod
    def not_found(cls, tool_name: str) -> ToolInvocationError:
        return cls(
            tool_name, "validation",
            f"Tool call requested an unknown tool: {tool_name}",
        )


class UnsupportedActionError(TributaryError):
    """A capability was invoked on a provider that does not implement it."""

    def __init__(self, action: str, provider: str):
        super().__init__(f"{action} is not supported by {provider}")
        self.action = action
        self.provider = provider
