import json

from sisyphus.loop.models import (
    CompleteEvent,
    ContentEvent,
    DoneEvent,
    MetadataEvent,
    SavedMessage,
    TokenUsage,
    parse_event,
)


def test_events_serialize_with_camel_case_keys():
    payload = MetadataEvent(cycle=2, is_continuation=True, start_time=1700000000000).to_broadcast()
    assert payload == {
        "type": "metadata",
        "cycle": 2,
        "isContinuation": True,
        "startTime": 1700000000000,
    }

    payload = CompleteEvent(
        total_tokens=4100,
        conversation_tokens=4100,
        usage=TokenUsage(input_tokens=3000, output_tokens=1100),
    ).to_broadcast()
    assert payload["usage"] == {"input_tokens": 3000, "output_tokens": 1100}
    assert payload["totalTokens"] == 4100


def test_done_event_without_reset_has_null_contexts():
    payload = DoneEvent(
        should_reset=False,
        saved_messages=[SavedMessage(cycle=1, message="m")],
    ).to_broadcast()

    assert payload["shouldReset"] is False
    assert payload["persistentContext"] is None
    assert payload["savedMessages"] == [{"cycle": 1, "message": "m"}]


def test_parse_event_from_dict_and_json():
    event = parse_event({"type": "content", "text": "a", "currentTokens": 5})
    assert isinstance(event, ContentEvent)
    assert event.current_tokens == 5

    event = parse_event(json.dumps({"type": "done", "shouldReset": True, "persistentContext": "x"}))
    assert isinstance(event, DoneEvent)
    assert event.persistent_context == "x"


def test_parse_event_skips_unknown_and_invalid():
    assert parse_event({"type": "heartbeat"}) is None
    assert parse_event(json.dumps({"type": "heartbeat"})) is None
    assert parse_event({"type": "content"}) is None
    assert parse_event("not json") is None
    assert parse_event(["content"]) is None
