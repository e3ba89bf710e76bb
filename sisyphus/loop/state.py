"""
Session State

The single mutable record behind the broadcast: cycle and token counters,
the active conversation, the persistent memory, and the bounded logs used
for replay and display.

Only the generation loop mutates it. HTTP handlers read it through
``snapshot()`` and touch nothing but ``should_continue`` (viewer presence)
and ``reset_requested`` (reset command).
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from .models import Role, SavedMessage, Turn


@dataclass
class Exchange:
    """A user turn and the assistant's answer to it."""
    user: Turn
    assistant: Turn


@dataclass(frozen=True)
class StatsSnapshot:
    """Read-only view of the counters, as served by /stats."""
    cycle: int
    total_tokens: int
    conversation_tokens: int
    uptime_ms: int
    streaming_time_s: int
    client_count: int

    def to_dict(self) -> dict:
        return {
            "cycle": self.cycle,
            "totalTokens": self.total_tokens,
            "conversationTokens": self.conversation_tokens,
            "uptime": self.uptime_ms,
            "streamingTime": self.streaming_time_s,
            "clientCount": self.client_count,
        }


@dataclass
class SessionState:
    """State of the one global session."""

    max_output_history: int = 3000
    max_saved_messages: int = 5
    start_time: float = field(default_factory=time.time)

    cycle: int = 0
    total_tokens: int = 0
    conversation_token_count: int = 0

    # Whole exchanges, so the flattened turn list is always user/assistant pairs
    exchanges: list[Exchange] = field(default_factory=list)
    # True once the current cycle's number has been claimed
    cycle_open: bool = False

    persistent_context: str = ""
    previous_context: str = ""
    saved_messages: list[SavedMessage] = field(default_factory=list)

    output_history: deque = field(init=False, repr=False)
    pruned_events: int = 0

    is_generating: bool = False
    should_continue: bool = False
    reset_requested: bool = False

    last_stream_start: Optional[float] = None
    streaming_time: float = 0.0  # seconds

    def __post_init__(self):
        self.output_history = deque(maxlen=max(1, self.max_output_history))

    # ==================== Conversation ====================

    @property
    def current_conversation(self) -> list[Turn]:
        """Flattened turns of the active cycle, oldest first."""
        turns: list[Turn] = []
        for exchange in self.exchanges:
            turns.append(exchange.user)
            turns.append(exchange.assistant)
        return turns

    @property
    def exchange_number(self) -> int:
        """1-based index of the exchange about to be generated."""
        return len(self.exchanges) + 1

    def add_exchange(self, user_prompt: str, response: str) -> None:
        self.exchanges.append(Exchange(
            user=Turn(role=Role.USER, content=user_prompt),
            assistant=Turn(role=Role.ASSISTANT, content=response),
        ))

    def begin_cycle(self) -> bool:
        """
        Claim a new cycle number if the conversation is fresh.

        Returns:
            True if a new cycle started
        """
        if self.exchanges or self.cycle_open:
            return False
        self.cycle += 1
        self.conversation_token_count = 0
        self.cycle_open = True
        return True

    def add_usage(self, input_tokens: int, output_tokens: int) -> None:
        used = input_tokens + output_tokens
        self.total_tokens += used
        self.conversation_token_count += used

    def reset_context(self, memory: str) -> None:
        """
        Cut over to a fresh conversation, carrying ``memory`` forward.

        Shifts the contexts by one, clears the conversation and its token
        count together, and files the memory under the closing cycle.
        """
        self.previous_context = self.persistent_context
        self.persistent_context = memory
        self.exchanges = []
        self.conversation_token_count = 0
        self.cycle_open = False
        self.save_message(memory)

    def save_message(self, message: str) -> None:
        self.saved_messages.append(SavedMessage(cycle=self.cycle, message=message))
        overflow = len(self.saved_messages) - self.max_saved_messages
        if overflow > 0:
            del self.saved_messages[:overflow]

    # ==================== Replay Log ====================

    def record(self, event: dict) -> None:
        """Append a serialized event to the replay log, dropping the oldest past the cap."""
        if len(self.output_history) == self.output_history.maxlen:
            self.pruned_events += 1
        self.output_history.append(event)

    # ==================== Streaming Time ====================

    def start_streaming(self, now: float) -> None:
        self.last_stream_start = now

    def stop_streaming(self, now: float) -> None:
        if self.last_stream_start is not None:
            self.streaming_time += now - self.last_stream_start
            self.last_stream_start = None

    def current_streaming_time(self, now: float) -> float:
        """Streaming seconds including a pacing run still in progress."""
        if self.last_stream_start is not None:
            return self.streaming_time + (now - self.last_stream_start)
        return self.streaming_time

    # ==================== Reset Command ====================

    def clear(self) -> None:
        """Forget everything: counters, conversation, memory and logs."""
        self.cycle = 0
        self.total_tokens = 0
        self.conversation_token_count = 0
        self.exchanges = []
        self.cycle_open = False
        self.persistent_context = ""
        self.previous_context = ""
        self.saved_messages = []
        self.output_history.clear()
        self.pruned_events = 0
        self.streaming_time = 0.0
        self.last_stream_start = None
        self.reset_requested = False

    def snapshot(self, now: float, client_count: int) -> StatsSnapshot:
        return StatsSnapshot(
            cycle=self.cycle,
            total_tokens=self.total_tokens,
            conversation_tokens=self.conversation_token_count,
            uptime_ms=int((now - self.start_time) * 1000),
            streaming_time_s=int(self.current_streaming_time(now)),
            client_count=client_count,
        )
