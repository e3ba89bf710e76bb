from sisyphus.loop.state import SessionState


def test_reset_context_shifts_and_zeroes_together():
    state = SessionState()
    state.begin_cycle()
    state.add_exchange("prompt", "response")
    state.add_usage(100, 50)
    state.persistent_context = "older"

    state.reset_context("newest")

    assert state.previous_context == "older"
    assert state.persistent_context == "newest"
    assert state.exchanges == []
    assert state.conversation_token_count == 0
    assert state.total_tokens == 150


def test_saved_messages_keep_newest_in_cycle_order():
    state = SessionState(max_saved_messages=3)

    for cycle in range(1, 5):
        state.cycle = cycle
        state.reset_context(f"memory {cycle}")

    assert len(state.saved_messages) == 3
    assert [m.cycle for m in state.saved_messages] == [2, 3, 4]
    assert [m.message for m in state.saved_messages] == ["memory 2", "memory 3", "memory 4"]


def test_output_history_keeps_most_recent_in_order():
    state = SessionState(max_output_history=5)

    for i in range(12):
        state.record({"type": "content", "text": str(i)})

    assert len(state.output_history) == 5
    assert [e["text"] for e in state.output_history] == ["7", "8", "9", "10", "11"]
    assert state.pruned_events == 7


def test_begin_cycle_only_for_fresh_conversation():
    state = SessionState()

    assert state.begin_cycle() is True
    assert state.cycle == 1

    # A retry of the same first exchange doesn't claim another number
    assert state.begin_cycle() is False
    assert state.cycle == 1

    state.add_exchange("p", "r")
    assert state.begin_cycle() is False
    assert state.exchange_number == 2

    state.reset_context("memory")
    assert state.begin_cycle() is True
    assert state.cycle == 2


def test_conversation_alternates_roles():
    state = SessionState()
    state.add_exchange("p1", "r1")
    state.add_exchange("p2", "r2")

    messages = [turn.to_message() for turn in state.current_conversation]
    assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
    assert [m["content"] for m in messages] == ["p1", "r1", "p2", "r2"]


def test_streaming_time_accumulates():
    state = SessionState(start_time=1000.0)

    state.start_streaming(1000.0)
    assert state.current_streaming_time(1002.5) == 2.5
    state.stop_streaming(1003.0)
    state.start_streaming(1010.0)
    state.stop_streaming(1011.0)

    assert state.streaming_time == 4.0
    assert state.last_stream_start is None


def test_clear_forgets_everything():
    state = SessionState()
    state.begin_cycle()
    state.add_exchange("p", "r")
    state.add_usage(10, 10)
    state.reset_context("memory")
    state.record({"type": "error", "message": "x"})
    state.reset_requested = True

    state.clear()

    assert state.cycle == 0
    assert state.total_tokens == 0
    assert state.persistent_context == ""
    assert state.saved_messages == []
    assert len(state.output_history) == 0
    assert state.reset_requested is False


def test_snapshot_uses_camel_case():
    state = SessionState(start_time=1000.0)
    state.cycle = 2
    state.total_tokens = 1234
    state.conversation_token_count = 34
    state.streaming_time = 7.9

    stats = state.snapshot(now=1001.5, client_count=3).to_dict()

    assert stats == {
        "cycle": 2,
        "totalTokens": 1234,
        "conversationTokens": 34,
        "uptime": 1500,
        "streamingTime": 7,
        "clientCount": 3,
    }
