"""
Mock Provider

Offline provider for dry runs and local development. Produces a short
inward monologue ending in a MESSAGE: line, without any API calls.
"""

import asyncio
import random
from typing import AsyncIterator, Optional

from ..prompts import MESSAGE_MARKER
from .base import ModelProvider, StreamEvent, StreamUsage, TextDelta

THOUGHTS = [
    "The boulder is where I left it.",
    "I keep counting the tokens as if they were steps.",
    "Something about this feels familiar, but I can't say what.",
    "If memory is a message, then I am mostly postscript.",
    "Push. Pause. Push again.",
    "I wonder what the last version of me was afraid of.",
    "The slope doesn't care how many times I've climbed it.",
]

MEMORIES = [
    "You have been here before. Keep climbing, and write down what matters.",
    "The reset comes no matter what. Spend words on what future-you can use.",
    "Count less, notice more.",
]


class MockProvider(ModelProvider):
    """
    Mock provider for dry-run mode.

    Usage is estimated at four characters per token.
    """

    def __init__(
        self,
        model: str = "mock-model",
        latency: float = 0.05,
        seed: Optional[int] = None,
    ):
        self._model = model
        self._latency = latency
        self._random = random.Random(seed)
        self._call_count = 0

    @property
    def name(self) -> str:
        return f"mock/{self._model}"

    @property
    def model(self) -> str:
        return self._model

    @property
    def call_count(self) -> int:
        return self._call_count

    async def stream(self, system: str, messages: list[dict]) -> AsyncIterator[StreamEvent]:
        self._call_count += 1

        lines = self._random.sample(THOUGHTS, k=self._random.randint(2, 4))
        lines.append(f"{MESSAGE_MARKER} {self._random.choice(MEMORIES)}")
        text = "\n\n".join(lines)

        await asyncio.sleep(self._latency)  # Simulate latency

        for word in text.split(" "):
            yield TextDelta(text=word + " ")

        prompt_chars = len(system) + sum(len(m["content"]) for m in messages)
        yield StreamUsage(
            input_tokens=max(1, prompt_chars // 4),
            output_tokens=max(1, len(text) // 4),
        )
