"""
Runtime

Wires one session together: state, hub, pacer, loop and provider, built
from a LoopConfig. The web app holds exactly one of these.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .broadcaster import BroadcastHub
from .clock import Clock
from .config import LoopConfig
from .generator import GenerationLoop
from .providers.base import ModelProvider
from .state import SessionState, StatsSnapshot

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything the HTTP layer needs to serve one broadcast."""
    config: LoopConfig
    provider: ModelProvider
    clock: Clock
    state: SessionState
    hub: BroadcastHub
    loop: GenerationLoop

    @classmethod
    def build(
        cls,
        config: LoopConfig,
        provider: Optional[ModelProvider] = None,
        clock: Optional[Clock] = None,
    ) -> "Runtime":
        """
        Assemble a runtime.

        Prompt templates are validated and the provider is created here, so
        bad templates or missing credentials fail before serving starts.

        Raises:
            TemplateError: A prompt template uses an unknown token
            ValueError: Missing credentials or unknown provider
        """
        clock = clock or Clock()
        _ = config.prompts
        provider = provider or config.create_provider()

        state = SessionState(
            max_output_history=config.max_output_history,
            max_saved_messages=config.max_saved_messages,
            start_time=clock.now(),
        )
        hub = BroadcastHub(state, clock=clock, buffer_size=config.viewer_buffer_size)
        loop = GenerationLoop(config, provider, state, hub, clock=clock)

        return cls(
            config=config,
            provider=provider,
            clock=clock,
            state=state,
            hub=hub,
            loop=loop,
        )

    def start(self) -> None:
        """Start background tasks. Needs a running event loop."""
        self.hub.start_timer()
        for line in self.config.describe():
            logger.info(line)

    async def shutdown(self) -> None:
        await self.loop.stop()
        await self.hub.close()
        await self.provider.close()
        logger.info("Runtime stopped")

    def snapshot(self) -> StatsSnapshot:
        return self.state.snapshot(self.clock.now(), self.hub.client_count)

    def get_stats(self) -> dict:
        """Component statistics for the status endpoint."""
        return {
            "loop": self.loop.get_stats(),
            "hub": self.hub.get_stats(),
            "pacer": self.loop.pacer.get_stats(),
            "model": self.provider.model,
        }
