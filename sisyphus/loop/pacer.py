"""
Pacer - Typewriter output for viewers

Responses arrive from the model as fast (or slow) as the API produces them.
The pacer replays each finished response at a steady rate instead, so every
viewer sees the same typewriter cadence regardless of upstream speed.

Design:
- Fixed-width slices with a fixed delay between them
- Each slice carries a token count interpolated across the response
- Time spent pacing is the session's "streaming time"
- Crossing the watermark (80% by default) tells the loop it can queue the
  next generation as soon as this one finishes
"""

import logging
import math
from typing import Optional

from .broadcaster import BroadcastHub
from .clock import Clock
from .models import ContentEvent, MetadataEvent
from .state import SessionState

logger = logging.getLogger(__name__)


def interpolate_tokens(
    tokens_before: int,
    input_tokens: int,
    output_tokens: int,
    progress: float,
) -> int:
    """Running token total at ``progress`` (0..1) through a response."""
    return (
        tokens_before
        + math.floor(input_tokens * progress)
        + math.floor(output_tokens * progress)
    )


class Pacer:
    """
    Paces a complete response out to the hub.

    Usage:
        pacer = Pacer(hub, state, chars_per_batch=1, batch_delay=0.053)
        early = await pacer.play(text, metadata, tokens_before, 1200, 350)
    """

    DEFAULT_CHARS_PER_BATCH = 1
    DEFAULT_BATCH_DELAY = 0.053
    DEFAULT_EARLY_CONTINUE_RATIO = 0.8

    def __init__(
        self,
        hub: BroadcastHub,
        state: SessionState,
        clock: Optional[Clock] = None,
        chars_per_batch: int = DEFAULT_CHARS_PER_BATCH,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        early_continue_ratio: float = DEFAULT_EARLY_CONTINUE_RATIO,
    ):
        """
        Initialize pacer.

        Args:
            hub: Where paced events go
            state: Session whose streaming time is accounted
            clock: Time source for delays
            chars_per_batch: Slice width in characters
            batch_delay: Seconds between slices
            early_continue_ratio: Fraction of the text after which the next
                generation may be queued immediately
        """
        self.hub = hub
        self.state = state
        self.clock = clock or Clock()
        self.chars_per_batch = max(1, chars_per_batch)
        self.batch_delay = max(0.0, batch_delay)
        self.early_continue_ratio = early_continue_ratio

        # Statistics
        self._responses_paced = 0
        self._slices_sent = 0

    async def play(
        self,
        text: str,
        metadata: MetadataEvent,
        tokens_before: int,
        input_tokens: int,
        output_tokens: int,
    ) -> bool:
        """
        Replay ``text`` to viewers.

        Args:
            text: The complete response
            metadata: Event announcing the response, sent first
            tokens_before: Session token total before this response
            input_tokens: The response's prompt tokens
            output_tokens: The response's completion tokens

        Returns:
            True if the watermark was crossed while viewers were present
        """
        self.state.start_streaming(self.clock.now())
        early_continue = False

        try:
            self.hub.broadcast(metadata)

            total_chars = len(text)
            watermark = math.floor(total_chars * self.early_continue_ratio)
            last_start = ((total_chars - 1) // self.chars_per_batch) * self.chars_per_batch

            for start in range(0, total_chars, self.chars_per_batch):
                chunk = text[start:start + self.chars_per_batch]
                # Endpoint: the last slice reports the full before + input + output total, not start/len
                progress = 1.0 if start == last_start else start / total_chars

                self.hub.broadcast(ContentEvent(
                    text=chunk,
                    current_tokens=interpolate_tokens(
                        tokens_before, input_tokens, output_tokens, progress,
                    ),
                ))
                self._slices_sent += 1

                if start >= watermark and not early_continue and self.state.should_continue:
                    early_continue = True
                    logger.info(f"{int(self.early_continue_ratio * 100)}% done, queuing next...")

                await self.clock.sleep(self.batch_delay)

        finally:
            self.state.stop_streaming(self.clock.now())

        self._responses_paced += 1
        return early_continue

    def get_stats(self) -> dict:
        """Get pacing statistics."""
        return {
            "chars_per_batch": self.chars_per_batch,
            "batch_delay_ms": round(self.batch_delay * 1000),
            "responses_paced": self._responses_paced,
            "slices_sent": self._slices_sent,
        }
