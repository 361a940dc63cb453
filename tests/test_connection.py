from __future__ import annotations

import json

import pytest

from pyliveupdate._constants import describe_close_code
from pyliveupdate._transport import ChannelHandler
from pyliveupdate.connection import Connection, ConnectionStatus
from pyliveupdate.exceptions import LiveUpdateTransportError

URL = "ws://localhost/api/session/liveupdate"


class _StubChannel:
    """Channel double that lets the test fire events by hand."""

    def __init__(self) -> None:
        self.handlers: list[ChannelHandler] = []
        self.sent: list[str] = []
        self.fail_next_connect = False
        self.closed = 0

    @property
    def handler(self) -> ChannelHandler:
        return self.handlers[-1]

    async def connect(self, url: str, handler: ChannelHandler) -> None:
        if self.fail_next_connect:
            self.fail_next_connect = False
            raise LiveUpdateTransportError("refused", close_code=1006, url=url)
        self.handlers.append(handler)

    def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed += 1


@pytest.mark.parametrize(
    ("code", "reason"),
    [
        (1000, "Normal closure"),
        (1001, "Going away"),
        (1006, "Could not establish connection"),
        (1011, "Internal error"),
        (1015, "TLS handshake"),
        (4001, "4001"),
        (None, "Could not establish connection"),
    ],
)
def test_describe_close_code(code: int | None, reason: str) -> None:
    assert describe_close_code(code) == reason


def test_initial_state_is_closed_and_send_is_dropped() -> None:
    channel = _StubChannel()
    connection = Connection(channel, URL)

    assert connection.status == ConnectionStatus.CLOSED
    assert connection.send({"subscribe": {"object": "o", "properties": ["p"]}}) is False
    assert channel.sent == []


@pytest.mark.asyncio
async def test_open_runs_on_open_before_status_listeners() -> None:
    channel = _StubChannel()
    order: list[str] = []
    connection = Connection(channel, URL, on_open=lambda: order.append("resync"))
    connection.add_status_listener(lambda status: order.append(f"status:{status}"))

    await connection.open()

    assert connection.status == ConnectionStatus.OPEN
    assert order == ["status:CONNECTING", "resync", "status:OPEN"]


@pytest.mark.asyncio
async def test_send_while_open_serializes_json() -> None:
    channel = _StubChannel()
    connection = Connection(channel, URL)
    await connection.open()

    assert connection.send({"unsubscribe": {"ids": [1, 2]}}) is True
    assert [json.loads(frame) for frame in channel.sent] == [{"unsubscribe": {"ids": [1, 2]}}]


@pytest.mark.asyncio
async def test_messages_forwarded_only_while_open() -> None:
    channel = _StubChannel()
    received: list[str] = []
    connection = Connection(channel, URL, on_message=received.append)
    await connection.open()

    channel.handler.on_message('{"error": "x"}')
    channel.handler.on_close(1001)
    channel.handler.on_message('{"error": "late"}')

    assert received == ['{"error": "x"}']


@pytest.mark.asyncio
async def test_error_sets_info_without_state_change() -> None:
    channel = _StubChannel()
    errors: list[str] = []
    connection = Connection(channel, URL)
    connection.add_error_listener(errors.append)
    await connection.open()

    channel.handler.on_error()

    assert connection.status == ConnectionStatus.OPEN
    assert connection.info == "WebSocket error"
    assert errors == ["WebSocket error"]

    channel.handler.on_close(1011)

    assert connection.status == ConnectionStatus.CLOSED
    assert connection.info == "Internal error"


@pytest.mark.asyncio
async def test_unknown_close_code_surfaces_raw_number() -> None:
    channel = _StubChannel()
    connection = Connection(channel, URL)
    await connection.open()

    channel.handler.on_close(4321)

    assert connection.info == "4321"


@pytest.mark.asyncio
async def test_failed_connect_reports_error_then_close() -> None:
    channel = _StubChannel()
    channel.fail_next_connect = True
    statuses: list[ConnectionStatus] = []
    errors: list[str] = []
    opened: list[bool] = []
    connection = Connection(channel, URL, on_open=lambda: opened.append(True))
    connection.add_status_listener(statuses.append)
    connection.add_error_listener(errors.append)

    await connection.open()

    assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CLOSED]
    assert errors == ["WebSocket error"]
    assert connection.info == "Could not establish connection"
    assert opened == []


@pytest.mark.asyncio
async def test_reconnect_triggers_on_open_each_time() -> None:
    channel = _StubChannel()
    opened: list[int] = []
    connection = Connection(channel, URL, on_open=lambda: opened.append(len(opened)))
    await connection.open()

    await connection.reconnect()  # already open
    assert opened == [0]

    channel.handler.on_close(1006)
    await connection.reconnect()

    assert connection.status == ConnectionStatus.OPEN
    assert connection.info == ""
    assert opened == [0, 1]


@pytest.mark.asyncio
async def test_events_from_previous_channel_are_ignored() -> None:
    channel = _StubChannel()
    received: list[str] = []
    connection = Connection(channel, URL, on_message=received.append)
    await connection.open()
    stale = channel.handler

    await connection.close()
    assert connection.status == ConnectionStatus.CLOSED
    assert connection.info == "Normal closure"
    await connection.open()

    stale.on_message('{"error": "stale"}')
    stale.on_close(1006)

    assert received == []
    assert connection.status == ConnectionStatus.OPEN


@pytest.mark.asyncio
async def test_removed_listener_is_not_called() -> None:
    channel = _StubChannel()
    statuses: list[ConnectionStatus] = []
    connection = Connection(channel, URL)
    remove = connection.add_status_listener(statuses.append)
    remove()

    await connection.open()

    assert statuses == []
