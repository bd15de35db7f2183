"""Incremental Server-Sent Events parser for provider streams."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from tributary.errors import ChunkDecodeError

logger = logging.getLogger(__name__)

DATA_PREFIX = b"data:"
DONE_MARKER = "[DONE]"


async def iter_lines(byte_stream: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """Split an arbitrarily chunked byte stream into lines.

    Lines keep no trailing newline.  A final line without a newline is
    still yielded when the stream is exhausted.
    """
    buffer = b""
    async for data in byte_stream:
        lines = (buffer + data).split(b"\n")
        # The last piece has no newline yet.
        buffer = lines.pop()
        for line in lines:
            yield line.rstrip(b"\r")
    if buffer:
        yield buffer.rstrip(b"\r")


async def iter_events(
    byte_stream: AsyncIterable[bytes], vendor: str,
) -> AsyncIterator[dict[str, Any]]:
    """Yield one decoded JSON object per ``data:`` line.

    Comments, ``event:`` lines, keepalives, blank payloads and the
    ``[DONE]`` marker produce nothing.  A payload that is not valid JSON
    raises :class:`ChunkDecodeError` and ends the sequence.
    """
    async for line in iter_lines(byte_stream):
        if not line.startswith(DATA_PREFIX):
            continue
        try:
            payload = line[len(DATA_PREFIX):].decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise ChunkDecodeError(vendor, e) from e
        if not payload or payload == DONE_MARKER:
            continue
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ChunkDecodeError(vendor, e) from e
        logger.debug(f"{vendor} event: {payload[:200]}")
        yield event
