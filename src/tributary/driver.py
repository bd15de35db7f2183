"""The streaming state machine and multi-round tool loop.

One :class:`StreamDriver` serves every vendor: the
:class:`~tributary.adapters.VendorAdapter` builds payloads and classifies
events, the :class:`~tributary.transport.Transport` opens the byte
stream, and the driver does the rest::

    STREAMING -> (THINKING | TEXT | TOOL_ACCUM) -> FINISH
        FINISH(tool_calls) -> TOOL_DISPATCH -> next round
        FINISH(other)      -> TERMINAL

Rounds are strictly sequential and the caller sees a single lazy
sequence of :class:`~tributary.streaming.Chunk` values across all of
them.
"""

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

from tributary import instrumentation
from tributary.adapters.base import VendorAdapter
from tributary.errors import ChunkDecodeError, MaxDepthExceededError
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
from tributary.invoker import call_tools
from tributary.message import AssistantMessage, ToolResultMessage
from tributary.request import Request
from tributary.response import ResponseBuilder, TextResponse
from tributary.sse import iter_events
from tributary.streaming import (
    Chunk,
    ChunkType,
    FinishReason,
    Meta,
    StreamState,
)
from tributary.transport import StreamResponse, Transport

logger = logging.getLogger(__name__)


class StreamDriver:
    """Drives streaming rounds for one vendor.

    ``stream()`` is the streaming entry point; ``run()`` drains it.

    Args:
        adapter: Vendor dialect used to build payloads and classify events.
        transport: Opens the HTTP byte stream for each round.
    """

    def __init__(self, adapter: VendorAdapter, transport: Transport):
        self.adapter = adapter
        self.transport = transport

    async def run(self, request: Request) -> TextResponse:
        """Stream *request* to completion and aggregate the chunks."""
        builder = ResponseBuilder()
        async for chunk in self.stream(request):
            builder.add(chunk)
        return builder.build(request.messages)

    async def stream(self, request: Request) -> AsyncIterator[Chunk]:
        """Yield chunks for *request*, running tool rounds as requested.

        The assistant and tool-result messages of every tool round are
        appended to ``request.messages`` before the next round starts.

        Raises:
            MaxDepthExceededError: A tool round was requested after
                ``request.max_steps`` rounds.
        """
        async with instrumentation.stream_span(self.adapter.name, request.model) as span:
            depth = 0
            try:
                while True:
                    state = StreamState()
                    # aclosing releases the round's connection as soon as
                    # the caller stops iterating.
                    async with aclosing(self._stream_round(request, state, depth)) as chunks:
                        async for chunk in chunks:
                            yield chunk

                    if not state.is_tool_use_finish():
                        return

                    async for chunk in self._dispatch_tools(request, state):
                        yield chunk

                    depth += 1
                    if depth >= request.max_steps:
                        raise MaxDepthExceededError(request.max_steps)
                    logger.info(f"Starting tool round {depth} for {request.model}")
            except Exception as e:
                instrumentation.record_error(span, e)
                raise

    async def _stream_round(
        self, request: Request, state: StreamState, depth: int,
    ) -> AsyncIterator[Chunk]:
        async with instrumentation.round_span(
            self.adapter.name, request.model, depth,
        ) as span:
            payload = self.adapter.build_payload(request)
            logger.debug(f"Sending round {depth} to {self.adapter.name}")
            async with self.transport.stream(payload) as response:
                async for data in iter_events(response.body, self.adapter.name):
                    for event in self.adapter.classify_event(data, state, request):
                        chunk = self._apply(event, state, request, response)
                        if chunk is not None:
                            yield chunk
            instrumentation.record_usage(span, state.usage, state.model)

        if state.is_tool_use_finish():
            return

        yield Chunk(
            finish_reason=state.stop_reason or FinishReason.UNKNOWN,
            meta=Meta(
                id=state.request_id, model=state.model,
                rate_limits=response.rate_limits,
            ),
            usage=state.usage,
            additional_content=state.build_additional_content(),
            chunk_type=ChunkType.META,
        )

    def _apply(
        self,
        event: StreamEvent,
        state: StreamState,
        request: Request,
        response: StreamResponse,
    ) -> Chunk | None:
        """Fold one classified event into *state*, returning a chunk to emit."""
        if isinstance(event, ErrorEvent):
            raise event.error

        if isinstance(event, ToolCallDelta):
            for fragment in event.fragments:
                state.feed(fragment)
            return None

        if isinstance(event, ThinkingDelta):
            if not request.thinking_enabled:
                return None
            if event.signature:
                state.append_thinking_signature(event.signature)
            if event.text and state.append_thinking(event.text):
                return Chunk(text=event.text, chunk_type=ChunkType.THINKING)
            return None

        if isinstance(event, TextDelta):
            if not event.text:
                return None
            state.append_text(event.text)
            return Chunk(text=event.text, chunk_type=ChunkType.TEXT)

        if isinstance(event, Finish):
            state.set_stop_reason(event.reason)
            return None

        if isinstance(event, MetaEvent):
            state.request_id = event.meta.id
            state.model = event.meta.model
            return Chunk(
                meta=Meta(
                    id=event.meta.id, model=event.meta.model,
                    rate_limits=response.rate_limits,
                ),
                chunk_type=ChunkType.META,
            )

        if isinstance(event, UsageEvent):
            state.add_usage(event.usage)
        elif isinstance(event, BlockStart):
            state.start_block(event.block_type, event.index)
        elif isinstance(event, BlockStop):
            state.reset_block()
        return None

    async def _dispatch_tools(
        self, request: Request, state: StreamState,
    ) -> AsyncIterator[Chunk]:
        calls = state.tool_calls()
        for call in calls:
            try:
                call.parsed_arguments()
            except json.JSONDecodeError as e:
                raise ChunkDecodeError(self.adapter.name, e) from e

        logger.info(f"Dispatching {len(calls)} tool call(s): {[c.name for c in calls]}")
        yield Chunk(tool_calls=calls, chunk_type=ChunkType.TOOL_CALL)

        results = await call_tools(request.tools, calls, request.tool_error_handling)
        yield Chunk(tool_results=results, chunk_type=ChunkType.TOOL_RESULT)

        request.add_message(AssistantMessage(
            content=state.text,
            tool_calls=calls,
            additional_content=state.build_additional_content(),
        ))
        request.add_message(ToolResultMessage(tool_results=results))
