"""Unit tests for the instrumentation module.

OTel interactions are mocked with ``unittest.mock``; ``opentelemetry-api``
is a test dependency so ``SpanKind`` and ``StatusCode`` can be imported
for exact assertions.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import tributary.instrumentation as inst
from tributary.instrumentation import (
    record_error,
    record_usage,
    round_span,
    stream_span,
    tool_span,
    uninstrument,
)
from tributary.streaming import Usage
from tests.conftest import openai_text_round, openai_tool_round


@pytest.fixture(autouse=True)
def _reset_tracer():
    inst._tracer = None
    yield
    inst._tracer = None


def _mock_tracer():
    span = MagicMock()
    tracer = MagicMock()
    tracer.start_as_current_span.return_value.__enter__ = MagicMock(return_value=span)
    tracer.start_as_current_span.return_value.__exit__ = MagicMock(return_value=False)
    return tracer, span


# -------------------------------------------------------------------
# instrument() / uninstrument()
# -------------------------------------------------------------------


class TestInstrument:
    def test_raises_without_otel_installed(self):
        with patch("importlib.util.find_spec", return_value=None):
            with pytest.raises(ImportError, match="pip install"):
                inst.instrument()

    def _mock_otel(self, mock_trace):
        return (
            patch("importlib.util.find_spec", return_value=MagicMock()),
            patch.dict(
                "sys.modules",
                {
                    "opentelemetry": MagicMock(trace=mock_trace),
                    "opentelemetry.trace": mock_trace,
                },
            ),
        )

    @pytest.mark.parametrize("kwargs, expected_name", [
        ({}, "tributary"),
        ({"tracer_name": "my-app"}, "my-app"),
    ])
    def test_sets_global_tracer(self, kwargs, expected_name):
        tracer = MagicMock()
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = tracer
        mock_trace.NoOpTracer = type("NoOpTracer", (), {})

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            inst.instrument(**kwargs)

        assert inst._tracer is tracer
        mock_trace.get_tracer.assert_called_once_with(expected_name)

    def test_logs_hint_for_noop_tracer(self, caplog):
        NoOpTracer = type("NoOpTracer", (), {})
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = NoOpTracer()
        mock_trace.NoOpTracer = NoOpTracer

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            with caplog.at_level(logging.INFO, logger="tributary.instrumentation"):
                inst.instrument()

        assert any("No TracerProvider configured" in r.message for r in caplog.records)

    def test_uninstrument_clears_tracer(self):
        inst._tracer = MagicMock()
        uninstrument()
        assert inst._tracer is None


# -------------------------------------------------------------------
# Span helpers
# -------------------------------------------------------------------


class TestSpans:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "span_fn, args",
        [
            (stream_span, ("openai", "m")),
            (round_span, ("openai", "m", 0)),
            (tool_span, ("t", "call_1")),
        ],
        ids=["stream_span", "round_span", "tool_span"],
    )
    async def test_span_yields_none_without_tracer(self, span_fn, args):
        async with span_fn(*args) as s:
            assert s is None

    @pytest.mark.asyncio
    async def test_stream_span_attributes(self):
        tracer, span = _mock_tracer()
        inst._tracer = tracer

        async with stream_span("anthropic", "claude-test") as s:
            assert s is span

        tracer.start_as_current_span.assert_called_once_with(
            "stream claude-test",
            attributes={
                "gen_ai.operation.name": "chat",
                "gen_ai.provider.name": "anthropic",
                "gen_ai.request.model": "claude-test",
            },
        )

    @pytest.mark.asyncio
    async def test_round_span_is_client_kind(self):
        tracer, _ = _mock_tracer()
        inst._tracer = tracer

        async with round_span("openai", "gpt-test", 2):
            pass

        tracer.start_as_current_span.assert_called_once_with(
            "chat gpt-test",
            kind=SpanKind.CLIENT,
            attributes={
                "gen_ai.operation.name": "chat",
                "gen_ai.provider.name": "openai",
                "gen_ai.request.model": "gpt-test",
                "tributary.round": 2,
            },
        )

    @pytest.mark.asyncio
    async def test_tool_span_attributes(self):
        tracer, _ = _mock_tracer()
        inst._tracer = tracer

        async with tool_span("lookup", "call_42"):
            pass

        tracer.start_as_current_span.assert_called_once_with(
            "execute_tool lookup",
            attributes={
                "gen_ai.operation.name": "execute_tool",
                "gen_ai.tool.name": "lookup",
                "gen_ai.tool.call.id": "call_42",
            },
        )


# -------------------------------------------------------------------
# record_usage / record_error
# -------------------------------------------------------------------


class TestRecording:
    def test_usage_noop_on_none_span(self):
        record_usage(None, Usage(10, 5))

    def test_usage_sets_tokens_and_model(self):
        span = MagicMock()
        record_usage(span, Usage(100, 50), response_model="gpt-test-2026")

        span.set_attribute.assert_any_call("gen_ai.usage.input_tokens", 100)
        span.set_attribute.assert_any_call("gen_ai.usage.output_tokens", 50)
        span.set_attribute.assert_any_call("gen_ai.response.model", "gpt-test-2026")

    def test_usage_skipped_when_not_reported(self):
        span = MagicMock()
        record_usage(span, None)
        span.set_attribute.assert_not_called()

    def test_error_sets_status(self):
        span = MagicMock()
        exc = RuntimeError("boom")
        record_error(span, exc)

        span.set_status.assert_called_once_with(StatusCode.ERROR, "boom")
        span.record_exception.assert_called_once_with(exc)
        span.set_attribute.assert_called_once_with("error.type", "RuntimeError")

    def test_error_noop_on_none_span(self):
        record_error(None, RuntimeError("boom"))


# -------------------------------------------------------------------
# Driver integration
# -------------------------------------------------------------------


@pytest.mark.asyncio
async def test_driver_opens_stream_round_and_tool_spans(make_driver, make_request, search_tool):
    tracer, _ = _mock_tracer()
    inst._tracer = tracer
    driver, _ = make_driver([
        openai_tool_round("search", {"q": "x"}, call_id="call_7"),
        openai_text_round("done"),
    ])

    async for _ in driver.stream(make_request(tools=[search_tool])):
        pass

    names = [c.args[0] for c in tracer.start_as_current_span.call_args_list]
    assert names == [
        "stream test-model",
        "chat test-model",
        "execute_tool search",
        "chat test-model",
    ]
