"""
Generation Loop

The state machine that keeps the model talking to itself:

    IDLE -> PROMPT_BUILD -> AWAITING_MODEL -> PACING -> RESET_CHECK -> RESCHEDULE
              ^                                                          |
              +----------------------------------------------------------+

It runs as one asyncio task while viewers are connected and idles when the
last one leaves. Every mutation of the session happens on that task, one
exchange at a time, guarded by ``state.is_generating``.

Failures of the upstream call are reported to viewers as error events and
retried after a fixed delay for as long as anyone is watching.
"""

import asyncio
import logging
from typing import Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    wait_fixed,
)

from .broadcaster import BroadcastHub
from .clock import Clock
from .config import LoopConfig
from .memory import extract_persistent_memory
from .models import (
    CompleteEvent,
    DoneEvent,
    ErrorEvent,
    MetadataEvent,
    TokenUsage,
)
from .pacer import Pacer
from .prompts import PromptFields
from .providers.base import ModelProvider, UpstreamError
from .state import SessionState

logger = logging.getLogger(__name__)


class GenerationLoop:
    """
    Drives the perpetual self-conversation.

    Responsibilities:
    - Choose the next prompt (first-ever, post-reset or continuation)
    - Call the provider and buffer its whole response
    - Hand the response to the pacer
    - Cut the context over when the conversation gets too long
    - Retry failed calls, and idle when nobody is watching
    """

    def __init__(
        self,
        config: LoopConfig,
        provider: ModelProvider,
        state: SessionState,
        hub: BroadcastHub,
        pacer: Optional[Pacer] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize loop.

        Args:
            config: Loop configuration (prompts, thresholds, delays)
            provider: Upstream model client
            state: The session this loop owns
            hub: Where events are broadcast
            pacer: Typewriter emitter; built from config if omitted
            clock: Time source; real time if omitted
        """
        self.config = config
        self.provider = provider
        self.state = state
        self.hub = hub
        self.clock = clock or Clock()
        self.pacer = pacer or Pacer(
            hub,
            state,
            clock=self.clock,
            chars_per_batch=config.chars_per_batch,
            batch_delay=config.batch_delay,
            early_continue_ratio=config.early_continue_ratio,
        )

        self._task: Optional[asyncio.Task] = None

        # Statistics
        self._exchanges_completed = 0
        self._failures = 0
        self._resets = 0

    @property
    def is_running(self) -> bool:
        """Whether the loop task is alive (generating, pacing or waiting)."""
        return self._task is not None and not self._task.done()

    # ==================== Lifecycle ====================

    def ensure_running(self) -> bool:
        """
        Start the loop if viewers are present and it isn't already running.

        Returns:
            True if a new loop task was started
        """
        if self.is_running or not self.state.should_continue:
            return False

        logger.info("Starting conversation loop...")
        self._task = asyncio.create_task(self.run())
        return True

    async def stop(self) -> None:
        """Cancel the loop task (shutdown only)."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    def request_reset(self) -> None:
        """
        Reset the whole session.

        Applied right away when the loop is idle, otherwise at the start of
        its next exchange so the session is never mutated mid-exchange.
        """
        if self.is_running:
            self.state.reset_requested = True
            logger.info("Session reset requested, applying before next exchange")
        else:
            self.state.clear()
            logger.info("Session reset")

    # ==================== Main Loop ====================

    async def run(self) -> None:
        """
        Exchange after exchange while viewers remain.

        Reschedules immediately when the pacer crossed its watermark,
        otherwise after a short delay.
        """
        try:
            while self.state.should_continue:
                continue_now = await self._exchange_with_retry()

                if not self.state.should_continue:
                    break

                delay = 0.0 if continue_now else self.config.reschedule_delay
                await self.clock.sleep(delay)

        except UpstreamError:
            logger.info("Viewers left while retrying")

        finally:
            # A reset requested during the last exchange must not outlive the loop
            self._apply_pending_reset()
            logger.info("Conversation loop idle")

    def _stop_when_idle(self, retry_state: RetryCallState) -> bool:
        return not self.state.should_continue

    async def _exchange_with_retry(self) -> bool:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(UpstreamError),
            wait=wait_fixed(self.config.retry_delay_seconds),
            stop=self._stop_when_idle,
            sleep=self.clock.sleep,
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                return await self.run_exchange()

        return False

    async def run_exchange(self) -> bool:
        """
        Run one exchange under the generation flag.

        A call while another exchange is in flight, or with no viewers, is
        ignored.

        Returns:
            Whether the next exchange may start immediately

        Raises:
            UpstreamError: After reporting the failure to viewers
        """
        if self.state.is_generating or not self.state.should_continue:
            return False

        self.state.is_generating = True
        try:
            return await self._exchange()

        except UpstreamError as e:
            self._report_failure(e)
            raise

        except Exception as e:
            logger.exception("Unexpected error during exchange")
            error = UpstreamError(str(e) or type(e).__name__, provider=self.provider.name)
            self._report_failure(error)
            raise error from e

        finally:
            self.state.is_generating = False

    # ==================== Exchange Steps ====================

    def build_prompt(self) -> tuple[str, bool]:
        """
        Pick and render the user turn for the next exchange.

        Returns:
            (prompt text, is_continuation)
        """
        state = self.state
        prompts = self.config.prompts
        exchange_number = state.exchange_number

        if state.cycle == 1 and exchange_number == 1:
            # Very first exchange ever
            return prompts.first.render(), False

        if exchange_number == 1:
            # First exchange of a new cycle - show persistent context
            return prompts.reset.render(PromptFields(
                cycle=state.cycle,
                total_tokens=state.total_tokens,
                context=state.persistent_context,
                prev_context=state.previous_context,
            )), False

        return prompts.cont.render(), True

    def build_system_prompt(self) -> str:
        return self.config.prompts.system.render(PromptFields(
            cycle=self.state.cycle,
            total_tokens=self.state.total_tokens,
            group_thousands=True,
        ))

    async def _exchange(self) -> bool:
        state = self.state

        # PROMPT_BUILD
        self._apply_pending_reset()
        state.begin_cycle()
        pruned_before = state.pruned_events

        exchange_number = state.exchange_number
        prompt, is_continuation = self.build_prompt()
        messages = [turn.to_message() for turn in state.current_conversation]
        messages.append({"role": "user", "content": prompt})

        metadata = MetadataEvent(
            cycle=state.cycle,
            is_continuation=is_continuation,
            start_time=int(self.clock.now() * 1000),
        )

        logger.info(f"Cycle {state.cycle}, Exchange {exchange_number}")

        # AWAITING_MODEL
        result = await self.provider.complete(self.build_system_prompt(), messages)
        state.add_usage(result.input_tokens, result.output_tokens)
        tokens_before = state.total_tokens - result.tokens_used

        logger.debug(
            f"Received {len(result.text)} chars in {result.latency_ms:.0f}ms "
            f"({result.input_tokens} in / {result.output_tokens} out)"
        )

        # PACING
        continue_now = await self.pacer.play(
            result.text,
            metadata,
            tokens_before,
            result.input_tokens,
            result.output_tokens,
        )

        # RESET_CHECK
        self.hub.broadcast(CompleteEvent(
            total_tokens=state.total_tokens,
            conversation_tokens=state.conversation_token_count,
            usage=TokenUsage(
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
            ),
        ))

        state.add_exchange(prompt, result.text)

        should_reset = state.conversation_token_count >= self.config.context_reset_tokens
        if should_reset:
            self._reset_context()

        self.hub.broadcast(DoneEvent(
            should_reset=should_reset,
            persistent_context=state.persistent_context if should_reset else None,
            previous_context=state.previous_context if should_reset else None,
            saved_messages=list(state.saved_messages),
        ))

        pruned = state.pruned_events - pruned_before
        if pruned:
            logger.info(f"Pruned {pruned} events, output history at {len(state.output_history)}")

        self._exchanges_completed += 1
        return continue_now

    def _reset_context(self) -> None:
        state = self.state
        logger.info(f"Context full at {state.conversation_token_count} tokens. Resetting...")

        memory = extract_persistent_memory(
            state.current_conversation,
            self.config.persistent_token_limit,
        )
        state.reset_context(memory)
        self._resets += 1

        logger.info(
            f"Context reset. Last: {memory[:50]!r} "
            f"Previous: {state.previous_context[:30]!r}"
        )

    def _apply_pending_reset(self) -> None:
        if self.state.reset_requested:
            self.state.clear()
            logger.info("Session reset")

    def _report_failure(self, error: UpstreamError) -> None:
        self._failures += 1
        logger.error(f"API Error: {error}")
        self.hub.broadcast(ErrorEvent(message=str(error)))

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get loop statistics."""
        return {
            "is_running": self.is_running,
            "is_generating": self.state.is_generating,
            "provider": self.provider.name,
            "exchanges_completed": self._exchanges_completed,
            "failures": self._failures,
            "resets": self._resets,
        }
