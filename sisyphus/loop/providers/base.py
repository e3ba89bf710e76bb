"""
Abstract Model Provider

Base class for the upstream language-model clients. A provider takes a
system prompt and the ordered conversation, and streams back text deltas
followed by one final usage record. Any failure surfaces as UpstreamError,
whether it happens before the first delta or in the middle of the stream.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Union
import logging
import time

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """The model call was rejected or the stream failed."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


@dataclass
class InferenceParams:
    """Sampling parameters for every request."""
    max_tokens: int = 4096
    temperature: float = 1.0
    thinking: bool = False
    thinking_budget_tokens: int = 2000

    def validate(self) -> None:
        """Validate parameter ranges."""
        if not (0.0 <= self.temperature <= 2.0):
            raise ValueError(f"temperature must be 0.0-2.0, got {self.temperature}")
        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.thinking and self.thinking_budget_tokens >= self.max_tokens:
            raise ValueError(
                f"thinking budget ({self.thinking_budget_tokens}) must be below "
                f"max_tokens ({self.max_tokens})"
            )


@dataclass
class TextDelta:
    """A piece of streamed response text."""
    text: str


@dataclass
class StreamUsage:
    """Final token usage, sent once at the end of a stream."""
    input_tokens: int
    output_tokens: int


StreamEvent = Union[TextDelta, StreamUsage]


@dataclass
class CompletionResult:
    """A fully buffered response."""
    text: str
    input_tokens: int
    output_tokens: int
    model: str
    latency_ms: float
    chunks: int = 0

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


class ModelProvider(ABC):
    """
    Abstract base for all upstream model clients.

    Implementations translate the unified interface to a provider API and
    wrap provider exceptions in UpstreamError.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier for logging."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """The model identifier being used."""
        ...

    @abstractmethod
    def stream(self, system: str, messages: list[dict]) -> AsyncIterator[StreamEvent]:
        """
        Stream a response.

        Args:
            system: The system prompt
            messages: Ordered ``{"role", "content"}`` dicts, ending with a user turn

        Yields:
            TextDelta events, then a single StreamUsage

        Raises:
            UpstreamError: On any failure of the call or stream
        """
        ...

    async def complete(self, system: str, messages: list[dict]) -> CompletionResult:
        """
        Run a stream to completion and buffer it.

        Nothing is forwarded while the stream runs; the caller gets the whole
        text plus usage at the end.
        """
        start_time = time.time()
        parts: list[str] = []
        usage: Optional[StreamUsage] = None
        chunks = 0

        try:
            async for event in self.stream(system, messages):
                if isinstance(event, TextDelta):
                    parts.append(event.text)
                    chunks += 1
                elif isinstance(event, StreamUsage):
                    usage = event
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(str(e) or type(e).__name__, provider=self.name) from e

        if usage is None:
            logger.warning(f"{self.name}: stream ended without usage, counting 0 tokens")
            usage = StreamUsage(input_tokens=0, output_tokens=0)

        return CompletionResult(
            text="".join(parts),
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            model=self.model,
            latency_ms=(time.time() - start_time) * 1000,
            chunks=chunks,
        )

    async def close(self) -> None:
        """Clean up resources. Override if provider needs cleanup."""
        pass
