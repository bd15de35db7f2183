"""Optional OpenTelemetry tracing.

Nothing is traced until :func:`instrument` is called.  Spans follow the
GenAI semantic conventions: one ``stream`` span per caller-visible
stream, one ``chat`` span per HTTP round inside it and one
``execute_tool`` span per tool call.
"""

import importlib.util
import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)

_tracer = None


def instrument(*, tracer_name: str = "tributary") -> None:
    """Start emitting spans through the globally configured TracerProvider.

    Configure the provider first::

        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())
        tributary.instrument()

    Raises:
        ImportError: ``opentelemetry-api`` is missing
            (``pip install tributary[otel]``).
    """
    global _tracer
    if importlib.util.find_spec("opentelemetry.trace") is None:
        raise ImportError(
            "Tracing needs opentelemetry-api. "
            "Install it with: pip install tributary[otel]"
        )
    from opentelemetry import trace

    _tracer = trace.get_tracer(tracer_name)
    if isinstance(_tracer, trace.NoOpTracer):
        logger.info(
            "No TracerProvider configured, so tributary spans will be dropped"
        )
    else:
        logger.info(f"Tracing enabled with tracer {tracer_name}")


def uninstrument() -> None:
    """Stop emitting spans; streams already running keep theirs."""
    global _tracer
    _tracer = None


@asynccontextmanager
async def _span(name: str, attributes: dict, client: bool = False):
    if _tracer is None:
        yield None
        return
    kwargs = {"attributes": attributes}
    if client:
        from opentelemetry.trace import SpanKind

        kwargs["kind"] = SpanKind.CLIENT
    with _tracer.start_as_current_span(name, **kwargs) as span:
        yield span


def _chat_attributes(provider: str, model: str) -> dict:
    return {
        "gen_ai.operation.name": "chat",
        "gen_ai.provider.name": provider,
        "gen_ai.request.model": model,
    }


def stream_span(provider: str, model: str):
    return _span(f"stream {model}", _chat_attributes(provider, model))


def round_span(provider: str, model: str, depth: int):
    attributes = _chat_attributes(provider, model)
    attributes["tributary.round"] = depth
    return _span(f"chat {model}", attributes, client=True)


def tool_span(tool_name: str, call_id: str):
    return _span(f"execute_tool {tool_name}", {
        "gen_ai.operation.name": "execute_tool",
        "gen_ai.tool.name": tool_name,
        "gen_ai.tool.call.id": call_id,
    })


def record_usage(span, usage, response_model: str | None = None) -> None:
    if span is None:
        return
    if usage is not None:
        span.set_attribute("gen_ai.usage.input_tokens", usage.prompt_tokens)
        span.set_attribute("gen_ai.usage.output_tokens", usage.completion_tokens)
    if response_model:
        span.set_attribute("gen_ai.response.model", response_model)


def record_error(span, exception: BaseException) -> None:
    """Mark *span* failed and attach *exception*; no-op without a span."""
    if span is None:
        return
    from opentelemetry.trace import StatusCode

    span.set_status(StatusCode.ERROR, str(exception))
    span.record_exception(exception)
    span.set_attribute("error.type", type(exception).__qualname__)
