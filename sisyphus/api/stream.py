"""
Broadcast API Routes

Provides endpoints for:
- SSE stream (main broadcast)
- WebSocket stream (same events, JSON frames)
- Stats and status (read-only)
- Session reset

Every viewer first receives the replay log, then the live events. The loop
starts when the first viewer arrives and idles when the last one leaves.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse
from starlette.requests import HTTPConnection

from sisyphus.loop import Runtime, ViewerChannel

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])

SEND_TIMEOUT = 5.0


def get_runtime(connection: HTTPConnection) -> Runtime:
    """The app's runtime, set up by the lifespan handler."""
    return connection.app.state.runtime


# ==================== SSE Endpoint ====================

async def event_stream(runtime: Runtime):
    """
    Yield one SSE message per event for a new viewer.

    Registration happens when the response starts streaming, and the viewer
    is removed however the stream ends.
    """
    channel = runtime.hub.connect()
    runtime.loop.ensure_running()

    try:
        while True:
            payload = await channel.receive()
            yield {"data": json.dumps(payload)}
    finally:
        runtime.hub.disconnect(channel)


@router.get("/stream")
async def stream(runtime: Runtime = Depends(get_runtime)):
    """
    Server-Sent Events endpoint for the broadcast.

    Each message is a single ``data:`` line holding one JSON event.
    """
    return EventSourceResponse(
        event_stream(runtime),
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ==================== WebSocket Endpoint ====================

async def _pump(websocket: WebSocket, channel: ViewerChannel) -> None:
    while True:
        payload = await channel.receive()
        await asyncio.wait_for(websocket.send_json(payload), timeout=SEND_TIMEOUT)


@router.websocket("/ws")
async def ws_stream(websocket: WebSocket, runtime: Runtime = Depends(get_runtime)):
    """
    WebSocket endpoint for the broadcast.

    Messages sent (server -> client) are the same JSON events as /stream.
    Client messages are ignored.
    """
    await websocket.accept()

    channel = runtime.hub.connect()
    runtime.loop.ensure_running()
    sender = asyncio.create_task(_pump(websocket, channel))

    try:
        while True:
            receiver = asyncio.ensure_future(websocket.receive_text())
            done, _ = await asyncio.wait(
                {receiver, sender}, return_when=asyncio.FIRST_COMPLETED
            )
            if sender in done:
                receiver.cancel()
                # Surfaces the send failure, if any
                sender.result()
                break
            # Keep connection alive, ignore client messages
            receiver.result()

    except WebSocketDisconnect:
        pass

    except Exception as e:
        logger.error(f"WebSocket viewer {channel.id} error: {e}")

    finally:
        sender.cancel()
        runtime.hub.disconnect(channel)


# ==================== Read-Only Endpoints ====================

@router.get("/stats")
async def stats(runtime: Runtime = Depends(get_runtime)):
    """Counters for the broadcast page."""
    return runtime.snapshot().to_dict()


@router.get("/api/status")
async def status(runtime: Runtime = Depends(get_runtime)):
    """
    Detailed status of the loop, hub and pacer.

    Read-only endpoint, safe to expose publicly.
    """
    details = runtime.get_stats()
    return JSONResponse({
        "status": "running" if details["loop"]["is_running"] else "idle",
        "provider": details["loop"]["provider"],
        "model": details["model"],
        "session": runtime.snapshot().to_dict(),
        "loop": details["loop"],
        "clients": details["hub"],
        "pacing": details["pacer"],
    })


# ==================== Control ====================

@router.post("/reset")
async def reset(runtime: Runtime = Depends(get_runtime)):
    """
    Reset the whole session.

    Counters, conversation, memory and replay log are cleared. While an
    exchange is running the reset waits for the next one to begin.
    """
    runtime.loop.request_reset()
    return {"success": True}
