import logging
import os
from collections.abc import AsyncIterator

import httpx
from openai import AsyncOpenAI
from pydantic import BaseModel

from tributary.adapters import AnthropicAdapter, OpenAIAdapter
from tributary.driver import StreamDriver
from tributary.errors import UnsupportedActionError
from tributary.request import Request
from tributary.response import TextResponse
from tributary.streaming import Chunk
from tributary.transport import HttpxTransport, OpenAITransport

logger = logging.getLogger(__name__)


class ModelProvider:
    """Base class for providers.

    Every capability raises :class:`UnsupportedActionError` unless the
    provider overrides it, so unsupported calls fail before any request
    is sent.  Providers that stream set ``self.driver``.
    """

    name = "provider"
    driver: StreamDriver | None = None

    def stream(self, request: Request) -> AsyncIterator[Chunk]:
        if self.driver is None:
            raise UnsupportedActionError("stream", self.name)
        return self.driver.stream(request)

    async def text(self, request: Request) -> TextResponse:
        if self.driver is None:
            raise UnsupportedActionError("text", self.name)
        return await self.driver.run(request)

    async def structured(self, request: Request, response_model: type[BaseModel]):
        raise UnsupportedActionError("structured", self.name)

    async def embeddings(self, model: str, inputs: list[str]) -> list[list[float]]:
        raise UnsupportedActionError("embeddings", self.name)

    async def images(self, model: str, prompt: str):
        raise UnsupportedActionError("images", self.name)

    async def speech_to_text(self, model: str, audio: bytes):
        raise UnsupportedActionError("speech_to_text", self.name)

    async def text_to_speech(self, model: str, text: str) -> bytes:
        raise UnsupportedActionError("text_to_speech", self.name)


class OpenAICompatibleProvider(ModelProvider):
    """Any backend speaking the OpenAI chat-completions protocol."""

    name = "openai"

    def __init__(self, client: AsyncOpenAI, name: str | None = None):
        if name:
            self.name = name
        self.client = client
        self.driver = StreamDriver(
            OpenAIAdapter(self.name), OpenAITransport(client, self.name),
        )

    async def structured(self, request: Request, response_model: type[BaseModel]):
        payload = self.driver.adapter.build_payload(request)
        response = await self.client.beta.chat.completions.parse(
            model=request.model,
            messages=payload["messages"],
            response_format=response_model,
        )
        return response.choices[0].message.parsed

    async def embeddings(self, model: str, inputs: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(model=model, input=inputs)
        return [item.embedding for item in response.data]


class OpenAIProvider(OpenAICompatibleProvider):

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        client = AsyncOpenAI(
            api_key=api_key,
            max_retries=5,
            timeout=600.0
        )
        super().__init__(client, name="openai")


class OpenRouter(OpenAICompatibleProvider):

    def __init__(self, api_key: str | None = None):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        client = AsyncOpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
            max_retries=5,
            timeout=180.0
        )
        super().__init__(client, name="openrouter")


class VLLMProvider(OpenAICompatibleProvider):

    def __init__(self, url: str, port: int):
        self.base_url = f"http://{url}:{port}/v1"
        super().__init__(
            AsyncOpenAI(base_url=self.base_url, api_key="DUMMY"),
            name="vllm",
        )

    async def embeddings(self, model: str, inputs: list[str]) -> list[list[float]]:
        raise UnsupportedActionError("embeddings", self.name)


class AnthropicProvider(ModelProvider):
    """Anthropic Messages API over raw ``httpx`` streaming."""

    name = "anthropic"
    api_version = "2023-06-01"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://api.anthropic.com/v1",
        client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            api_key = os.getenv("ANTHROPIC_API_KEY")
        self.base_url = base_url.rstrip("/")
        transport = HttpxTransport(
            name=self.name,
            url=f"{self.base_url}/messages",
            headers={
                "x-api-key": api_key or "",
                "anthropic-version": self.api_version,
                "content-type": "application/json",
            },
            client=client,
        )
        self.driver = StreamDriver(AnthropicAdapter(self.name), transport)
