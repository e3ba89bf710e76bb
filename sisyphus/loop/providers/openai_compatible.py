"""
OpenAI-Compatible Provider

For any service that implements the OpenAI chat completions API:
- OpenAI itself
- Local inference (vLLM, llama.cpp, text-generation-webui)
- Ollama
- Together AI, Groq and similar hosts

The system prompt goes in as the first message. Usage is requested with
``stream_options.include_usage`` and arrives on the last chunk.
"""

import logging
from typing import AsyncIterator, Optional

from .base import (
    InferenceParams,
    ModelProvider,
    StreamEvent,
    StreamUsage,
    TextDelta,
    UpstreamError,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleProvider(ModelProvider):
    """OpenAI-compatible chat completions provider."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        params: InferenceParams | None = None,
        provider_name: str = "openai",
    ):
        """
        Initialize OpenAI-compatible provider.

        Args:
            model: Model identifier
            api_key: API key (local servers often accept anything)
            base_url: Base URL for the API; None means api.openai.com
            params: Sampling parameters applied to every request
            provider_name: Name for logging/identification
        """
        self._model = model
        self._api_key = api_key or "not-needed"
        self._base_url = base_url.rstrip("/") if base_url else None
        self._params = params or InferenceParams()
        self._provider_name = provider_name
        self._client = None

    @property
    def name(self) -> str:
        return f"{self._provider_name}/{self._model}"

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self):
        """Lazy-load the OpenAI client with optional custom base URL."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
                self._client = AsyncOpenAI(
                    api_key=self._api_key,
                    base_url=self._base_url,
                )
            except ImportError:
                raise ImportError(
                    "openai package required. Install with: pip install openai"
                )
        return self._client

    def build_request(self, system: str, messages: list[dict]) -> dict:
        return {
            "model": self._model,
            "messages": [{"role": "system", "content": system}, *messages],
            "max_tokens": self._params.max_tokens,
            "temperature": self._params.temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

    async def stream(self, system: str, messages: list[dict]) -> AsyncIterator[StreamEvent]:
        from openai import OpenAIError

        client = self._get_client()
        usage = None

        try:
            response = await client.chat.completions.create(**self.build_request(system, messages))
            async for chunk in response:
                if chunk.usage is not None:
                    usage = chunk.usage
                for choice in chunk.choices:
                    text = choice.delta.content if choice.delta else None
                    if text:
                        yield TextDelta(text=text)
        except OpenAIError as e:
            logger.error(f"OpenAI-compatible API error: {e}")
            raise UpstreamError(str(e), provider=self.name) from e

        yield StreamUsage(
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
