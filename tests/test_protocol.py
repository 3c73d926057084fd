import json

from termhub.broker.protocol import decode_data, decode_message, encode_event
from termhub.core import events


def test_byte_payloads_are_base64_encoded() -> None:
    frame = json.loads(encode_event(events.output("s1", "héllo".encode("utf-8")[:2])))
    assert frame["type"] == "output"
    assert frame["encoding"] == "base64"
    assert decode_data(frame) == b"h\xc3"


def test_events_without_bytes_pass_through() -> None:
    frame = json.loads(encode_event(events.resized("s1", 80, 24)))
    assert frame == {"type": "resized", "sessionId": "s1", "cols": 80, "rows": 24}


def test_encode_does_not_mutate_event() -> None:
    event = events.history("s1", b"abc")
    encode_event(event)
    assert event["data"] == b"abc"


def test_decode_rejects_untyped_frames() -> None:
    assert decode_message('{"type": "input", "data": "x"}') == {"type": "input", "data": "x"}
    assert decode_message("not json") is None
    assert decode_message("[1, 2]") is None
    assert decode_message('{"data": "x"}') is None
    assert decode_message('{"type": 5}') is None
