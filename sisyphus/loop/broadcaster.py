"""
Broadcast Hub

Fans loop events out to every connected viewer and keeps the bounded replay
log, so a viewer joining late first sees everything since the last prune and
then continues live with the rest.

Each viewer gets a ViewerChannel: a bounded queue drained by its transport
(SSE or WebSocket). Broadcasting never awaits, so a broadcast reaches every
channel before anything else can run, and a connecting viewer's replay plus
registration happen in one step with no gap or duplicate.
"""

import asyncio
import itertools
import logging
from typing import Optional, Set

from .clock import Clock
from .models import SavedMessagesEvent, TimerEvent, ViewerEventBase
from .state import SessionState

logger = logging.getLogger(__name__)

_channel_ids = itertools.count(1)


class ViewerChannel:
    """
    One viewer's outbound event buffer.

    A send fails when the channel is closed or its buffer is full; the hub
    then drops the channel.
    """

    def __init__(self, maxsize: int = 10000):
        self.id = next(_channel_ids)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Events waiting to be written to the transport."""
        return self._queue.qsize()

    def send(self, payload: dict) -> bool:
        """
        Queue a payload for delivery.

        Returns:
            True if queued, False if the channel is dead
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(payload)
            return True
        except asyncio.QueueFull:
            return False

    async def receive(self) -> dict:
        return await self._queue.get()

    def drain(self) -> list[dict]:
        """Take everything queued right now without waiting."""
        items = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        return items

    def close(self) -> None:
        self._closed = True

    def __repr__(self) -> str:
        return f"ViewerChannel(id={self.id}, pending={self.pending})"


class BroadcastHub:
    """
    Central hub for viewer channels.

    Responsibilities:
    - Replay history to connecting viewers, then register them
    - Push every event to all viewers, dropping the ones that fail
    - Record events into the session's bounded replay log
    - Track viewer presence in ``state.should_continue``
    - Tick a timer event every second
    """

    def __init__(
        self,
        state: SessionState,
        clock: Optional[Clock] = None,
        buffer_size: int = 10000,
        timer_interval: float = 1.0,
    ):
        """
        Initialize hub.

        Args:
            state: The session whose replay log and presence flag the hub maintains
            clock: Time source for the timer ticker
            buffer_size: Per-viewer queue capacity
            timer_interval: Seconds between timer events
        """
        self.state = state
        self.clock = clock or Clock()
        # A fresh viewer must at least fit the full replay
        self.buffer_size = max(buffer_size, state.output_history.maxlen + 16)
        self.timer_interval = timer_interval

        self._clients: Set[ViewerChannel] = set()
        self._timer_task: Optional[asyncio.Task] = None

    @property
    def client_count(self) -> int:
        """Number of connected viewers."""
        return len(self._clients)

    @property
    def is_ticking(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    # ==================== Connection Management ====================

    def connect(self) -> ViewerChannel:
        """
        Register a new viewer.

        The channel is preloaded with the replay log in original order,
        followed by the saved-messages snapshot when there is one.
        """
        channel = ViewerChannel(maxsize=self.buffer_size)

        for payload in self.state.output_history:
            channel.send(payload)

        if self.state.saved_messages:
            snapshot = SavedMessagesEvent(saved_messages=list(self.state.saved_messages))
            channel.send(snapshot.to_broadcast())

        self._clients.add(channel)
        self.state.should_continue = True

        logger.info(
            f"Viewer {channel.id} connected, replayed {len(self.state.output_history)} events. "
            f"Total viewers: {self.client_count}"
        )
        return channel

    def disconnect(self, channel: ViewerChannel) -> None:
        """Remove a viewer; the loop pauses once nobody is left."""
        channel.close()
        if channel not in self._clients:
            return

        self._clients.discard(channel)
        logger.info(f"Viewer {channel.id} disconnected. {self.client_count} viewers remaining.")

        if not self._clients:
            self.state.should_continue = False
            logger.info("No viewers connected. Pausing loop...")

    # ==================== Broadcasting ====================

    def broadcast(self, event: ViewerEventBase, record: bool = True) -> int:
        """
        Send an event to every viewer.

        Args:
            event: The event to send
            record: Whether to append it to the replay log

        Returns:
            Number of viewers the event was queued for
        """
        payload = event.to_broadcast()
        if record:
            self.state.record(payload)

        if not self._clients:
            return 0

        delivered = 0
        dead_clients: Set[ViewerChannel] = set()

        for client in list(self._clients):
            if client.send(payload):
                delivered += 1
            else:
                dead_clients.add(client)

        # Clean up dead connections
        for client in dead_clients:
            logger.debug(f"Dropping viewer {client.id}: write failed")
            self.disconnect(client)

        return delivered

    # ==================== Timer ====================

    def start_timer(self) -> None:
        """Start the timer ticker as a background task."""
        if self.is_ticking:
            return
        self._timer_task = asyncio.create_task(self._timer_loop())

    async def stop_timer(self) -> None:
        if self._timer_task and not self._timer_task.done():
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
        self._timer_task = None

    def tick(self) -> bool:
        """
        Broadcast the streaming time if anyone can see it.

        Timer events are transient and stay out of the replay log.
        """
        if self.state.last_stream_start is None and not self._clients:
            return False
        streaming_time = self.state.current_streaming_time(self.clock.now())
        self.broadcast(TimerEvent(streaming_time=int(streaming_time)), record=False)
        return True

    async def _timer_loop(self) -> None:
        while True:
            await self.clock.sleep(self.timer_interval)
            self.tick()

    async def close(self) -> None:
        """Stop ticking and drop every viewer."""
        await self.stop_timer()
        for client in list(self._clients):
            self.disconnect(client)

    # ==================== Statistics ====================

    def get_stats(self) -> dict:
        """Get hub statistics."""
        return {
            "client_count": self.client_count,
            "history_size": len(self.state.output_history),
            "history_cap": self.state.output_history.maxlen,
            "pruned_events": self.state.pruned_events,
            "timer_running": self.is_ticking,
        }
