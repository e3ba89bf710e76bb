import asyncio

from sisyphus.loop import BroadcastHub, Pacer, SessionState
from sisyphus.loop.models import MetadataEvent
from sisyphus.loop.pacer import interpolate_tokens

from conftest import VirtualClock


def make_pacer(chars_per_batch=1, batch_delay=0.053, clock=None):
    clock = clock or VirtualClock(start=500.0)
    state = SessionState(start_time=500.0)
    hub = BroadcastHub(state, clock=clock)
    pacer = Pacer(hub, state, clock=clock, chars_per_batch=chars_per_batch, batch_delay=batch_delay)
    return pacer, hub, state, clock


def metadata():
    return MetadataEvent(cycle=1, is_continuation=False, start_time=500000)


def test_interpolation_endpoints():
    assert interpolate_tokens(1000, 300, 110, 0.0) == 1000
    assert interpolate_tokens(1000, 300, 110, 1.0) == 1410
    assert interpolate_tokens(1000, 300, 110, 0.5) == 1000 + 150 + 55


def test_slices_carry_interpolated_tokens():
    async def _run():
        pacer, hub, state, clock = make_pacer(chars_per_batch=3)
        channel = hub.connect()

        await pacer.play("abcdefgh", metadata(), 1000, 300, 100)

        payloads = channel.drain()
        assert payloads[0]["type"] == "metadata"
        slices = payloads[1:]
        assert [p["text"] for p in slices] == ["abc", "def", "gh"]
        assert slices[0]["currentTokens"] == 1000
        assert slices[-1]["currentTokens"] == 1400
        counts = [p["currentTokens"] for p in slices]
        assert counts == sorted(counts)

    asyncio.run(_run())


def test_single_slice_reports_final_total():
    async def _run():
        pacer, hub, state, clock = make_pacer(chars_per_batch=10)
        channel = hub.connect()

        await pacer.play("short", metadata(), 50, 10, 5)

        slices = channel.drain()[1:]
        assert len(slices) == 1
        assert slices[0]["currentTokens"] == 65

    asyncio.run(_run())


def test_pacing_delays_and_streaming_time():
    async def _run():
        pacer, hub, state, clock = make_pacer(chars_per_batch=1, batch_delay=0.5)
        hub.connect()

        await pacer.play("abcd", metadata(), 0, 4, 4)

        assert clock.sleeps == [0.5, 0.5, 0.5, 0.5]
        assert state.streaming_time == 2.0
        assert state.last_stream_start is None

    asyncio.run(_run())


def test_watermark_requests_early_continue_only_with_viewers():
    async def _run():
        pacer, hub, state, clock = make_pacer(chars_per_batch=1, batch_delay=0.0)

        hub.connect()
        assert await pacer.play("0123456789", metadata(), 0, 1, 1) is True

        pacer2, hub2, state2, clock2 = make_pacer(chars_per_batch=1, batch_delay=0.0)
        assert await pacer2.play("0123456789", metadata(), 0, 1, 1) is False

    asyncio.run(_run())


def test_viewer_leaving_mid_pacing_does_not_stop_others():
    async def _run():
        pacer, hub, state, clock = make_pacer(chars_per_batch=1, batch_delay=0.1)
        leaver = hub.connect()
        stayer = hub.connect()

        play = asyncio.create_task(pacer.play("abcdef", metadata(), 0, 6, 6))
        for _ in range(3):
            await asyncio.sleep(0)
        hub.disconnect(leaver)
        await play

        received = [p["text"] for p in stayer.drain() if p["type"] == "content"]
        assert "".join(received) == "abcdef"
        assert hub.client_count == 1

    asyncio.run(_run())
