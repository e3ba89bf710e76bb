"""
Upstream Model Providers

Abstract base class and implementations for the language-model APIs the loop
can talk to. Every provider streams text deltas and a final usage record.
"""

from .base import (
    ModelProvider,
    InferenceParams,
    CompletionResult,
    TextDelta,
    StreamUsage,
    StreamEvent,
    UpstreamError,
)
from .anthropic import AnthropicProvider
from .openai_compatible import OpenAICompatibleProvider
from .mock import MockProvider

__all__ = [
    # Base
    "ModelProvider",
    "InferenceParams",
    "CompletionResult",
    "TextDelta",
    "StreamUsage",
    "StreamEvent",
    "UpstreamError",
    # Providers
    "AnthropicProvider",
    "OpenAICompatibleProvider",
    "MockProvider",
]
