import asyncio

import pytest

from sisyphus.loop import Clock, LoopConfig, Runtime
from sisyphus.loop.providers.base import (
    ModelProvider,
    StreamUsage,
    TextDelta,
    UpstreamError,
)


class VirtualClock(Clock):
    """
    Clock whose sleeps advance time instantly.

    Each sleep still yields to the event loop once, so other tasks get a
    chance to run in between, but no real time passes.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = start
        self.sleeps = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        seconds = max(0.0, seconds)
        self.sleeps.append(seconds)
        self._now += seconds
        await asyncio.sleep(0)


class ScriptedProvider(ModelProvider):
    """
    Provider that plays back a script of responses.

    Each script entry is ``(text, input_tokens, output_tokens)`` or an
    exception to raise. The last entry repeats once the script runs out.
    ``before_reply`` is awaited before each reply, so tests can block or
    disconnect viewers while a call is in flight.
    """

    def __init__(self, script, before_reply=None):
        self.script = list(script)
        self.before_reply = before_reply
        self.calls = []

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def model(self) -> str:
        return "scripted-model"

    async def stream(self, system, messages):
        self.calls.append({"system": system, "messages": [dict(m) for m in messages]})
        index = min(len(self.calls), len(self.script)) - 1
        entry = self.script[index]

        if self.before_reply is not None:
            await self.before_reply(len(self.calls))

        if isinstance(entry, Exception):
            raise entry

        text, input_tokens, output_tokens = entry
        half = len(text) // 2
        for piece in (text[:half], text[half:]):
            if piece:
                yield TextDelta(text=piece)
        yield StreamUsage(input_tokens=input_tokens, output_tokens=output_tokens)


def make_config(**overrides) -> LoopConfig:
    settings = dict(
        provider="mock",
        batch_delay_ms=0,
        reschedule_delay_ms=100,
        retry_delay_seconds=5.0,
        chars_per_batch=4,
    )
    settings.update(overrides)
    return LoopConfig(**settings)


def make_runtime(script, config=None, clock=None, before_reply=None) -> Runtime:
    return Runtime.build(
        config or make_config(),
        provider=ScriptedProvider(script, before_reply=before_reply),
        clock=clock or VirtualClock(),
    )


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def upstream_error():
    return UpstreamError("overloaded", provider="scripted")
