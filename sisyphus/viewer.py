"""
Terminal Viewer

Tails a running broadcast's /stream endpoint and prints it like the web
page would: cycle headers, the paced text, resets and errors.

Usage:
    sisyphus-watch                              # Watch http://localhost:3000
    sisyphus-watch --url http://host:3000       # Watch another server
    sisyphus-watch --raw                        # Print raw JSON events
"""

import argparse
import sys
from typing import Iterable, Iterator, Optional

import httpx

from sisyphus.loop.models import (
    CompleteEvent,
    ContentEvent,
    DoneEvent,
    ErrorEvent,
    MetadataEvent,
    SavedMessagesEvent,
    ViewerEventBase,
    parse_event,
)

DEFAULT_URL = "http://localhost:3000"


def iter_sse_data(lines: Iterable[str]) -> Iterator[str]:
    """
    Yield the payload of each SSE message.

    Multi-line ``data:`` fields are joined with newlines; comments and other
    fields are skipped.
    """
    buffer: list[str] = []
    for line in lines:
        if line == "":
            if buffer:
                yield "\n".join(buffer)
                buffer = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            value = line[5:]
            buffer.append(value[1:] if value.startswith(" ") else value)
    if buffer:
        yield "\n".join(buffer)


def render_event(event: ViewerEventBase) -> Optional[str]:
    """Text to print for an event, or None for events that show nothing."""
    if isinstance(event, MetadataEvent):
        if event.is_continuation:
            return "\n\n"
        return f"\n\n=== Cycle {event.cycle} ===\n\n"

    if isinstance(event, ContentEvent):
        return event.text

    if isinstance(event, CompleteEvent):
        return f"\n[{event.total_tokens:,} tokens total, {event.conversation_tokens or 0:,} this cycle]"

    if isinstance(event, DoneEvent):
        if not event.should_reset:
            return None
        return f"\n\n*** Context reset. Carried forward: {event.persistent_context or ''}"

    if isinstance(event, ErrorEvent):
        return f"\n!!! {event.message}"

    if isinstance(event, SavedMessagesEvent):
        lines = [f"  [cycle {m.cycle}] {m.message}" for m in event.saved_messages]
        return "\nSaved messages:\n" + "\n".join(lines) + "\n"

    return None


def watch(url: str, raw: bool = False) -> None:
    """Stream events from ``url`` until interrupted."""
    stream_url = url.rstrip("/") + "/stream"

    with httpx.stream("GET", stream_url, timeout=httpx.Timeout(10.0, read=None)) as response:
        response.raise_for_status()

        for data in iter_sse_data(response.iter_lines()):
            if raw:
                print(data, flush=True)
                continue

            event = parse_event(data)
            if event is None:
                continue

            text = render_event(event)
            if text:
                sys.stdout.write(text)
                sys.stdout.flush()


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Watch a sisyphus broadcast in the terminal",
    )
    parser.add_argument("--url", default=DEFAULT_URL, help=f"Server base URL (default: {DEFAULT_URL})")
    parser.add_argument("--raw", action="store_true", help="Print raw JSON events")

    args = parser.parse_args(argv)

    try:
        watch(args.url, raw=args.raw)
    except KeyboardInterrupt:
        print()
        return 0
    except httpx.HTTPError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
