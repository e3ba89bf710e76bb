import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from sisyphus.api.stream import event_stream
from sisyphus.loop import ErrorEvent
from sisyphus.main import create_app

from conftest import ScriptedProvider, make_config, make_runtime


async def _never_reply(call_number):
    await asyncio.Event().wait()


@pytest.fixture
def provider():
    return ScriptedProvider([("unused", 1, 1)], before_reply=_never_reply)


@pytest.fixture
def client(provider):
    app = create_app(config=make_config(), provider=provider)
    with TestClient(app) as client:
        yield client


def test_health_check(client: TestClient):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_stats_start_at_zero(client: TestClient):
    response = client.get("/stats")
    assert response.status_code == 200

    stats = response.json()
    assert stats["cycle"] == 0
    assert stats["totalTokens"] == 0
    assert stats["conversationTokens"] == 0
    assert stats["streamingTime"] == 0
    assert stats["clientCount"] == 0
    assert stats["uptime"] >= 0


def test_reset_clears_counters_and_history(client: TestClient):
    runtime = client.app.state.runtime
    runtime.state.cycle = 4
    runtime.state.total_tokens = 12345
    runtime.hub.broadcast(ErrorEvent(message="old"))

    response = client.post("/reset")
    assert response.status_code == 200
    assert response.json() == {"success": True}

    stats = client.get("/stats").json()
    assert stats["cycle"] == 0
    assert stats["totalTokens"] == 0
    assert len(runtime.state.output_history) == 0


def test_status_reports_components(client: TestClient):
    status = client.get("/api/status").json()

    assert status["status"] == "idle"
    assert status["provider"] == "scripted"
    assert status["model"] == "scripted-model"
    assert status["clients"]["client_count"] == 0
    assert status["session"]["cycle"] == 0


def test_websocket_replays_history_then_starts_loop(client: TestClient, provider):
    runtime = client.app.state.runtime
    runtime.hub.broadcast(ErrorEvent(message="first"))
    runtime.hub.broadcast(ErrorEvent(message="second"))

    with client.websocket_connect("/ws") as websocket:
        assert websocket.receive_json() == {"type": "error", "message": "first"}
        assert websocket.receive_json() == {"type": "error", "message": "second"}

        assert client.get("/stats").json()["clientCount"] == 1
        assert runtime.loop.is_running


def test_sse_stream_replays_then_disconnects():
    async def _run():
        blocked = asyncio.Event()

        async def block(call_number):
            await blocked.wait()

        runtime = make_runtime([("unused", 1, 1)], before_reply=block)
        runtime.hub.broadcast(ErrorEvent(message="before"))

        stream = event_stream(runtime)
        message = await stream.__anext__()

        assert json.loads(message["data"]) == {"type": "error", "message": "before"}
        assert runtime.hub.client_count == 1
        assert runtime.loop.is_running

        await stream.aclose()

        assert runtime.hub.client_count == 0
        assert runtime.state.should_continue is False
        await runtime.loop.stop()

    asyncio.run(_run())


def test_missing_credentials_fail_at_startup():
    with pytest.raises(ValueError):
        create_app(config=make_config(provider="anthropic", anthropic_api_key=None))
