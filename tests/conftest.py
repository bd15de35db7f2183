import copy
import json
from contextlib import asynccontextmanager

import pytest

from tributary.adapters import AnthropicAdapter, OpenAIAdapter
from tributary.driver import StreamDriver
from tributary.message import UserMessage
from tributary.request import Request
from tributary.tools import tool
from tributary.transport import StreamResponse, Transport, parse_rate_limits


# ---------------------------------------------------------------------------
# Scripted transport (no network)
# ---------------------------------------------------------------------------

class ScriptedTransport(Transport):
    """Replays one canned SSE body per round and records each payload.

    A round body is either ``bytes`` or a list of byte pieces, which
    lets tests split lines at awkward boundaries.
    """

    name = "scripted"

    def __init__(self, rounds: list, headers: dict | None = None):
        self.rounds = list(rounds)
        self.headers = headers or {}
        self.payloads: list[dict] = []
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def stream(self, payload):
        self.payloads.append(copy.deepcopy(payload))
        body = self.rounds.pop(0)
        pieces = body if isinstance(body, list) else [body]

        async def _body():
            for piece in pieces:
                yield piece

        self.opened += 1
        try:
            yield StreamResponse(
                body=_body(),
                headers=self.headers,
                rate_limits=parse_rate_limits(self.headers),
            )
        finally:
            self.closed += 1


# ---------------------------------------------------------------------------
# SSE builders
# ---------------------------------------------------------------------------

def openai_sse(*events: dict, done: bool = True) -> bytes:
    """Chat-completions style body, ``[DONE]``-terminated."""
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode()


def anthropic_sse(*events: dict) -> bytes:
    """Messages-API style body with ``event:`` lines."""
    return "".join(
        f"event: {e['type']}\ndata: {json.dumps(e)}\n\n" for e in events
    ).encode()


def oa_text(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}, "finish_reason": None}]}


def oa_reasoning(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"reasoning_content": text}, "finish_reason": None}]}


def oa_tool(index: int = 0, call_id=None, name=None, args=None) -> dict:
    function = {}
    if name is not None:
        function["name"] = name
    if args is not None:
        function["arguments"] = args
    call = {"index": index, "function": function}
    if call_id is not None:
        call["id"] = call_id
    return {"choices": [{"index": 0, "delta": {"tool_calls": [call]}, "finish_reason": None}]}


def oa_finish(reason: str) -> dict:
    return {"choices": [{"index": 0, "delta": {}, "finish_reason": reason}]}


def openai_tool_round(name: str, args: dict, call_id: str = "call_1") -> bytes:
    """A full round requesting a single tool call."""
    return openai_sse(
        oa_tool(0, call_id=call_id, name=name),
        oa_tool(0, args=json.dumps(args)),
        oa_finish("tool_calls"),
    )


def openai_text_round(text: str) -> bytes:
    return openai_sse(oa_text(text), oa_finish("stop"))


def an_start(msg_id: str = "msg_1", model: str = "claude-test") -> dict:
    return {
        "type": "message_start",
        "message": {
            "id": msg_id, "model": model,
            "usage": {"input_tokens": 12, "output_tokens": 1},
        },
    }


def an_block_start(index: int, block: dict) -> dict:
    return {"type": "content_block_start", "index": index, "content_block": block}


def an_delta(index: int, delta: dict) -> dict:
    return {"type": "content_block_delta", "index": index, "delta": delta}


def an_block_stop(index: int) -> dict:
    return {"type": "content_block_stop", "index": index}


def an_message_delta(stop_reason: str, output_tokens: int = 5) -> dict:
    return {
        "type": "message_delta",
        "delta": {"stop_reason": stop_reason},
        "usage": {"output_tokens": output_tokens},
    }


def an_stop() -> dict:
    return {"type": "message_stop"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_request():
    def _make(tools=None, **kwargs):
        kwargs.setdefault("messages", [UserMessage(content="What's the weather?")])
        return Request(model="test-model", tools=tools or [], **kwargs)
    return _make


@pytest.fixture
def make_driver():
    """Factory returning ``(driver, transport)`` for scripted rounds."""
    def _make(rounds, vendor="openai", headers=None):
        transport = ScriptedTransport(rounds, headers=headers)
        adapter = OpenAIAdapter() if vendor == "openai" else AnthropicAdapter()
        return StreamDriver(adapter, transport), transport
    return _make


@pytest.fixture
def search_tool():
    @tool
    def search(q: str):
        """Search the web."""
        return "ok"
    return search


@pytest.fixture
def sample_tool():
    @tool
    def greet(name: str):
        """Say hello."""
        return f"Hello {name}"
    return greet


@pytest.fixture
def sample_async_tool():
    @tool
    async def async_greet(name: str):
        """Async greeting."""
        return f"Hello async {name}"
    return async_greet
