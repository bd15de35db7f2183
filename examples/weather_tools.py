"""Streaming chat with tool rounds.

Demonstrates:

- Defining tools with ``@tool`` and per-tool failure policies

- Consuming one lazy chunk sequence across several tool rounds

- OpenTelemetry tracing with ConsoleSpanExporter

Usage:
    Add OPENAI_API_KEY=sk-... (or ANTHROPIC_API_KEY=...) to .env, then:
    uv run --env-file=.env examples/weather_tools.py [anthropic]
"""

import asyncio
import random
import sys

from tributary import (
    AnthropicProvider,
    ChunkType,
    LLMRecoverableError,
    OpenAIProvider,
    Request,
    SystemMessage,
    UserMessage,
    configure_logging,
    instrument,
    tool,
    uninstrument,
)

_CITIES = {"oslo": 3, "lisbon": 19, "nairobi": 24}


@tool
def current_temperature(city: str) -> dict:
    """Look up the current temperature for a city.

    Args:
        city: City name, e.g. ``Oslo``.
    """
    key = city.lower()
    if key not in _CITIES:
        raise LLMRecoverableError(
            f"Unknown city {city!r}. Known cities: {', '.join(_CITIES)}"
        )
    return {"city": city, "celsius": _CITIES[key] + random.randint(-2, 2)}


@tool
def convert(celsius: float) -> float:
    """Convert Celsius to Fahrenheit.

    Args:
        celsius: Temperature in degrees Celsius.
    """
    return celsius * 9 / 5 + 32


async def main():
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import SimpleSpanProcessor, ConsoleSpanExporter

    tracer_provider = TracerProvider(
        resource=Resource({SERVICE_NAME: "weather-tools"})
    )
    tracer_provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tracer_provider)

    configure_logging()
    instrument()

    if sys.argv[1:] == ["anthropic"]:
        provider, model = AnthropicProvider(), "claude-sonnet-4-5"
    else:
        provider, model = OpenAIProvider(), "gpt-4o-mini"

    request = Request(
        model=model,
        messages=[
            SystemMessage(content="Answer with one short sentence."),
            UserMessage(content="How warm is it in Oslo and Lisbon, in Fahrenheit?"),
        ],
        tools=[current_temperature, convert],
        max_steps=6,
    )

    async for chunk in provider.stream(request):
        if chunk.chunk_type is ChunkType.TEXT:
            print(chunk.text, end="", flush=True)
        elif chunk.chunk_type is ChunkType.TOOL_CALL:
            for call in chunk.tool_calls:
                print(f"\n[calling {call.name}({call.raw_arguments()})]")
        elif chunk.chunk_type is ChunkType.TOOL_RESULT:
            for result in chunk.tool_results:
                print(f"[{result.tool_name} -> {result.result_text()}]")
        elif chunk.finish_reason is not None:
            print(f"\n\nfinished: {chunk.finish_reason.value}")

    uninstrument()


if __name__ == "__main__":
    asyncio.run(main())
