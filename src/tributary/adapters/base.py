from typing import Any

from tributary.errors import (
    ProviderOverloadedError,
    ProviderResponseError,
    RateLimitedError,
    TributaryError,
)
from tributary.events import StreamEvent
from tributary.request import Request
from tributary.streaming import FinishReason, StreamState

RATE_LIMIT_CODES = {"rate_limit_exceeded", "rate_limit_error"}
OVERLOADED_CODES = {"overloaded_error", "server_overloaded"}


def error_from_envelope(
    vendor: str, model: str, code: str | None, message: str | None,
) -> TributaryError:
    """Build the typed error for an in-band error payload."""
    if code in RATE_LIMIT_CODES:
        return RateLimitedError()
    if code in OVERLOADED_CODES:
        return ProviderOverloadedError(vendor)
    return ProviderResponseError(
        f"Sending to model {model} failed. "
        f"Code: {code or 'unknown_error'}. "
        f"Message: {message or 'No error message provided'}"
    )


class VendorAdapter:
    """Translates between the neutral request/event vocabulary and one
    vendor's SSE dialect.

    Subclasses implement payload building and event classification; the
    :class:`~tributary.driver.StreamDriver` does everything else.
    """

    name: str = "vendor"
    finish_reasons: dict[str, FinishReason] = {}

    def build_payload(self, request: Request) -> dict[str, Any]:
        raise NotImplementedError

    def classify_event(
        self, data: dict[str, Any], state: StreamState, request: Request,
    ) -> list[StreamEvent]:
        """Classify one decoded SSE payload.

        Events are returned in the order the driver must apply them:
        error, tool-call delta, thinking, text, finish.
        """
        raise NotImplementedError

    def extract_finish_reason(self, data: dict[str, Any]) -> str | None:
        raise NotImplementedError

    def map_finish_reason(self, raw: str | None) -> FinishReason:
        if not raw:
            return FinishReason.UNKNOWN
        return self.finish_reasons.get(raw, FinishReason.OTHER)
