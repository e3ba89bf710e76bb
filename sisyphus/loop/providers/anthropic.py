"""
Anthropic Provider

Claude access over the Messages streaming API. Text deltas are forwarded as
they arrive; usage comes from the final message once the stream closes.

Extended thinking can be switched on. Thinking blocks are not part of the
text stream, so only the visible answer reaches viewers.
"""

import logging
from typing import AsyncIterator

from .base import (
    InferenceParams,
    ModelProvider,
    StreamEvent,
    StreamUsage,
    TextDelta,
    UpstreamError,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(ModelProvider):
    """
    Anthropic Claude API provider.

    Temperature is only sent when it differs from the API default of 1.0,
    and never with thinking enabled (the API requires the default then).
    """

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        params: InferenceParams | None = None,
    ):
        """
        Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Model identifier (e.g., claude-sonnet-4-5-20250929)
            params: Sampling parameters applied to every request
        """
        self._api_key = api_key
        self._model = model
        self._params = params or InferenceParams()
        self._client = None

    @property
    def name(self) -> str:
        return f"anthropic/{self._model}"

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self):
        """Lazy-load the Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
                self._client = AsyncAnthropic(api_key=self._api_key)
            except ImportError:
                raise ImportError(
                    "anthropic package required. Install with: pip install anthropic"
                )
        return self._client

    def build_request(self, system: str, messages: list[dict]) -> dict:
        """Keyword arguments for ``messages.stream``."""
        kwargs = {
            "model": self._model,
            "max_tokens": self._params.max_tokens,
            "system": system,
            "messages": messages,
        }

        if self._params.thinking:
            kwargs["thinking"] = {
                "type": "enabled",
                "budget_tokens": self._params.thinking_budget_tokens,
            }
        elif self._params.temperature != 1.0:
            kwargs["temperature"] = self._params.temperature

        return kwargs

    async def stream(self, system: str, messages: list[dict]) -> AsyncIterator[StreamEvent]:
        from anthropic import APIError

        client = self._get_client()

        try:
            async with client.messages.stream(**self.build_request(system, messages)) as stream:
                async for text in stream.text_stream:
                    yield TextDelta(text=text)

                message = await stream.get_final_message()
        except APIError as e:
            logger.error(f"Anthropic API error: {e}")
            raise UpstreamError(str(e), provider=self.name) from e

        yield StreamUsage(
            input_tokens=message.usage.input_tokens,
            output_tokens=message.usage.output_tokens,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
