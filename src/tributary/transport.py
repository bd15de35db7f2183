"""HTTP transports that open a provider's SSE byte stream.

A transport owns the connection for exactly one round: the context
manager returned by :meth:`Transport.stream` releases it on every exit
path, including a caller abandoning the stream early.  Non-success
statuses are mapped onto the tributary error taxonomy before any byte
reaches the driver.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from tributary.errors import (
    ProviderOverloadedError,
    ProviderRateLimit,
    ProviderRequestError,
    RateLimitedError,
    RequestTooLargeError,
    TributaryError,
)

logger = logging.getLogger(__name__)

_RATE_LIMIT_FIELDS = ("limit", "remaining", "reset")


@dataclass
class StreamResponse:
    """A live streaming response: its byte body plus header metadata."""

    body: AsyncIterator[bytes]
    headers: Mapping[str, str] = field(default_factory=dict)
    rate_limits: list[ProviderRateLimit] = field(default_factory=list)


def _parse_int(value: str | None) -> int | None:
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_rate_limits(headers: Mapping[str, str]) -> list[ProviderRateLimit]:
    """Collect rate-limit buckets from response headers.

    Understands ``anthropic-ratelimit-<name>-<field>`` and
    ``x-ratelimit-<field>-<name>``.
    """
    buckets: dict[str, dict[str, str]] = {}
    for header, value in headers.items():
        header = header.lower()
        if header.startswith("anthropic-ratelimit-"):
            name, _, fld = header[len("anthropic-ratelimit-"):].rpartition("-")
        elif header.startswith("x-ratelimit-"):
            fld, _, name = header[len("x-ratelimit-"):].partition("-")
        else:
            continue
        if name and fld in _RATE_LIMIT_FIELDS:
            buckets.setdefault(name, {})[fld] = value

    return [
        ProviderRateLimit(
            name=name,
            limit=_parse_int(fields.get("limit")),
            remaining=_parse_int(fields.get("remaining")),
            resets_at=_parse_timestamp(fields.get("reset")),
        )
        for name, fields in buckets.items()
    ]


def parse_retry_after(headers: Mapping[str, str]) -> float | None:
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _status_error(
    provider: str, status_code: int, headers: Mapping[str, str], body: str,
) -> TributaryError:
    if status_code == 413:
        return RequestTooLargeError(provider)
    if status_code == 429:
        return RateLimitedError(
            rate_limits=parse_rate_limits(headers),
            retry_after=parse_retry_after(headers),
        )
    if status_code == 529:
        return ProviderOverloadedError(provider)
    return ProviderRequestError(
        f"Sending to {provider} failed with status {status_code}: {body[:500]}",
        status_code=status_code,
    )


def raise_for_status(
    provider: str,
    status_code: int,
    headers: Mapping[str, str],
    body: str = "",
    cause: BaseException | None = None,
) -> None:
    """Raise the typed error for a non-success HTTP status.

    *cause*, when given, becomes the raised error's ``__cause__``.
    """
    if status_code < 400:
        return
    error = _status_error(provider, status_code, headers, body)
    if cause is not None:
        raise error from cause
    raise error


class Transport:
    """Opens one streaming POST per round."""

    name: str = "transport"

    def stream(self, payload: dict[str, Any]):
        """Return an async context manager yielding a :class:`StreamResponse`."""
        raise NotImplementedError


@asynccontextmanager
async def _shared_or_ephemeral(
    client: httpx.AsyncClient | None, timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield a shared client if available, otherwise create a short-lived one."""
    if client is not None:
        yield client
    else:
        async with httpx.AsyncClient(timeout=timeout) as ephemeral:
            yield ephemeral


class HttpxTransport(Transport):
    """Streams a JSON POST with ``httpx``.

    Args:
        name: Provider name used in error messages.
        url: Endpoint receiving the payload.
        headers: Static headers (authentication, API version).
        client: Optional shared ``httpx.AsyncClient``.
        timeout: Timeout for ephemeral clients.
    """

    def __init__(
        self,
        name: str,
        url: str,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 600.0,
    ):
        self.name = name
        self.url = url
        self.headers = headers or {}
        self.client = client
        self.timeout = timeout

    @asynccontextmanager
    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[StreamResponse]:
        try:
            async with _shared_or_ephemeral(self.client, self.timeout) as client:
                async with client.stream(
                    "POST", self.url, json=payload, headers=self.headers,
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise_for_status(
                            self.name, response.status_code,
                            response.headers, response.text,
                        )
                    logger.debug(f"{self.name} stream opened ({response.status_code})")
                    yield StreamResponse(
                        body=response.aiter_bytes(),
                        headers=response.headers,
                        rate_limits=parse_rate_limits(response.headers),
                    )
        except httpx.HTTPError as e:
            raise ProviderRequestError(
                f"Sending to {self.name} failed: {e}",
            ) from e


class OpenAITransport(Transport):
    """Streams raw chat-completion bytes through the ``openai`` SDK.

    The SDK keeps its own retry and timeout policy; its status errors
    are translated into the tributary taxonomy.
    """

    def __init__(self, client: AsyncOpenAI, name: str = "openai"):
        self.client = client
        self.name = name

    @asynccontextmanager
    async def stream(self, payload: dict[str, Any]) -> AsyncIterator[StreamResponse]:
        try:
            async with self.client.chat.completions.with_streaming_response.create(
                **payload,
            ) as response:
                yield StreamResponse(
                    body=response.iter_bytes(),
                    headers=response.headers,
                    rate_limits=parse_rate_limits(response.headers),
                )
        except TributaryError:
            raise
        except openai.APIStatusError as e:
            raise_for_status(
                self.name, e.status_code, e.response.headers, e.message, cause=e,
            )
        except (openai.APIError, httpx.HTTPError) as e:
            raise ProviderRequestError(f"Sending to {self.name} failed: {e}") from e
