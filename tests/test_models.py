from __future__ import annotations

import pytest

from pyliveupdate.exceptions import LiveUpdateProtocolError
from pyliveupdate.models import (
    SetRequest,
    SubscribeRequest,
    UnsubscribeRequest,
    ValueChange,
    make_key,
    parse_inbound,
)


def test_parse_snapshot_maps_camel_case_fields() -> None:
    message = parse_inbound(
        '{"subscriptions": [{"id": 0, "objectPath": "screen2:surface_1", "propertyPath": "object.offset"}]}'
    )

    assert message.subscriptions is not None
    entry = message.subscriptions[0]
    assert entry.id == 0
    assert entry.object_path == "screen2:surface_1"
    assert entry.key == "screen2:surface_1/object.offset"
    assert message.values_changed is None
    assert message.error is None


def test_parse_values_changed_and_bytes_frame() -> None:
    message = parse_inbound(b'{"valuesChanged": [{"id": 3, "value": {"x": 1}}, {"id": 4}]}')

    assert message.values_changed is not None
    assert [(c.id, c.value) for c in message.values_changed] == [(3, {"x": 1}), (4, None)]


def test_parse_error_message() -> None:
    assert parse_inbound('{"error": "propertyPath \'invalid.path\' not found"}').error == (
        "propertyPath 'invalid.path' not found"
    )
    assert parse_inbound('{"error": {"code": 4}}').error == '{"code": 4}'


@pytest.mark.parametrize(
    "frame",
    [
        "not json",
        "[1, 2, 3]",
        '{"subscriptions": [{"id": "abc", "objectPath": "o", "propertyPath": "p"}]}',
        '{"valuesChanged": [{"value": 1}]}',
    ],
)
def test_malformed_frames_raise_protocol_error(frame: str) -> None:
    with pytest.raises(LiveUpdateProtocolError) as excinfo:
        parse_inbound(frame)
    assert excinfo.value.frame == frame


def test_unknown_keys_are_ignored() -> None:
    message = parse_inbound('{"hello": "world"}')
    assert message.subscriptions is None
    assert message.values_changed is None
    assert message.error is None


def test_outbound_wire_shapes() -> None:
    assert SubscribeRequest(object_path="obj", properties=["a", "b"]).to_wire() == {
        "subscribe": {"object": "obj", "properties": ["a", "b"]}
    }
    assert UnsubscribeRequest(ids=[1, 2]).to_wire() == {"unsubscribe": {"ids": [1, 2]}}
    assert SetRequest(changes=[ValueChange(id=7, value={"x": 1})]).to_wire() == {"set": [{"id": 7, "value": {"x": 1}}]}


def test_make_key() -> None:
    assert make_key("screen2:surface_1", "object.offset") == "screen2:surface_1/object.offset"
