from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from pyliveupdate._transport import ChannelHandler
from pyliveupdate.exceptions import LiveUpdateTransportError

_MISSING = object()


def _lookup(root: Any, property_path: str) -> Any:
    path = property_path[len("object.") :] if property_path.startswith("object.") else property_path
    current = root
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


@dataclass
class _ServerSubscription:
    id: int
    object_path: str
    property_path: str
    count: int = 0


@dataclass(eq=False)
class ServerSocket:
    """Server side of one fake connection, with its own subscriptions."""

    server: MockLiveUpdateServer
    channel: FakeChannel
    subscriptions: dict[str, _ServerSubscription] = field(default_factory=dict)
    closed: bool = False

    def push(self, message: dict[str, Any]) -> None:
        if not self.closed:
            self.channel.deliver(json.dumps(message))

    def send_snapshot(self) -> None:
        self.push(
            {
                "subscriptions": [
                    {"id": sub.id, "objectPath": sub.object_path, "propertyPath": sub.property_path}
                    for sub in self.subscriptions.values()
                ]
            }
        )

    def receive(self, data: str) -> None:
        if self.closed:
            return
        message = json.loads(data)
        self.server.received.append(message)

        if "subscribe" in message:
            object_path = message["subscribe"]["object"]
            properties = message["subscribe"]["properties"]
            accepted: list[_ServerSubscription] = []
            for property_path in properties:
                if self.server.get_property(object_path, property_path) is _MISSING:
                    self.push({"error": f"propertyPath '{property_path}' not found"})
                    continue
                key = f"{object_path}:{property_path}"
                sub = self.subscriptions.get(key)
                if sub is None:
                    sub = _ServerSubscription(self.server.allocate_id(), object_path, property_path)
                    self.subscriptions[key] = sub
                sub.count += 1
                accepted.append(sub)
            self.send_snapshot()
            # Values only for successful subscriptions.
            self.push(
                {
                    "valuesChanged": [
                        {"id": sub.id, "value": self.server.get_property(sub.object_path, sub.property_path)}
                        for sub in accepted
                    ]
                }
            )

        if "unsubscribe" in message:
            ids = set(message["unsubscribe"]["ids"])
            for key, sub in list(self.subscriptions.items()):
                if sub.id in ids:
                    sub.count -= 1
                    if sub.count <= 0:
                        del self.subscriptions[key]
            self.send_snapshot()

        if "set" in message:
            for change in message["set"]:
                for sub in self.subscriptions.values():
                    if sub.id == change["id"]:
                        self.server.simulate_change(sub.object_path, sub.property_path, change["value"])

    def on_value_changed(self, object_path: str, property_path: str, value: Any) -> None:
        for sub in self.subscriptions.values():
            if sub.object_path == object_path and sub.property_path == property_path:
                self.push({"valuesChanged": [{"id": sub.id, "value": value}]})


class MockLiveUpdateServer:
    """In-memory live update server with per-connection reference counts.

    Ids are allocated from one counter shared by all connections.  Value
    changes are pushed to subscribers as the partial value that was set,
    while the server keeps the merged value.
    """

    def __init__(self, objects: dict[str, dict[str, Any]]) -> None:
        self.objects = copy.deepcopy(objects)
        self.sockets: list[ServerSocket] = []
        self.received: list[dict[str, Any]] = []
        self.refuse_connections = False
        self._next_id = 0

    def allocate_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    def accept(self, channel: FakeChannel) -> ServerSocket:
        socket = ServerSocket(server=self, channel=channel)
        self.sockets.append(socket)
        return socket

    def disconnect(self, socket: ServerSocket) -> None:
        socket.closed = True
        if socket in self.sockets:
            self.sockets.remove(socket)

    @property
    def active_socket(self) -> ServerSocket:
        return self.sockets[-1]

    def get_property(self, object_path: str, property_path: str) -> Any:
        obj = self.objects.get(object_path)
        if obj is None:
            return _MISSING
        return _lookup(obj, property_path)

    def simulate_change(self, object_path: str, property_path: str, value: Any) -> None:
        obj = self.objects[object_path]
        name = property_path[len("object.") :] if property_path.startswith("object.") else property_path
        current = obj.get(name)
        if isinstance(value, dict) and isinstance(current, dict):
            obj[name] = {**current, **value}
        else:
            obj[name] = value
        for socket in list(self.sockets):
            socket.on_value_changed(object_path, property_path, value)

    def subscription_snapshot(self) -> list[dict[str, Any]]:
        """Subscriptions of the active connection, as the client would see them."""
        return [
            {"id": sub.id, "objectPath": sub.object_path, "propertyPath": sub.property_path}
            for sub in self.active_socket.subscriptions.values()
        ]


class FakeChannel:
    """In-memory channel; every frame is delivered on a later loop iteration."""

    def __init__(self, server: MockLiveUpdateServer) -> None:
        self.server = server
        self.sent: list[dict[str, Any]] = []
        self.urls: list[str] = []
        self._handler: ChannelHandler | None = None
        self._socket: ServerSocket | None = None

    async def connect(self, url: str, handler: ChannelHandler) -> None:
        self.urls.append(url)
        if self.server.refuse_connections:
            raise LiveUpdateTransportError("connection refused", close_code=1006, url=url)
        self._handler = handler
        self._socket = self.server.accept(self)

    def send(self, data: str) -> None:
        self.sent.append(json.loads(data))
        socket = self._socket
        if socket is not None:
            asyncio.get_running_loop().call_soon(socket.receive, data)

    async def close(self) -> None:
        self._teardown(1000, error=False)

    def deliver(self, data: str) -> None:
        handler = self._handler
        if handler is not None:
            asyncio.get_running_loop().call_soon(handler.on_message, data)

    def drop(self, code: int = 1006) -> None:
        """Simulate the network dropping the connection."""
        self._teardown(code, error=True)

    def _teardown(self, code: int, *, error: bool) -> None:
        socket, handler = self._socket, self._handler
        self._socket = None
        self._handler = None
        if socket is not None:
            self.server.disconnect(socket)
        if handler is not None:
            if error:
                handler.on_error()
            handler.on_close(code)

    def sent_of(self, kind: str) -> list[Any]:
        return [message[kind] for message in self.sent if kind in message]


OBJECTS: dict[str, dict[str, Any]] = {
    "screen2:surface_1": {
        "offset": {"x": 0, "y": 0, "z": 0},
        "rotation": {"x": 0, "y": 0, "z": 0},
        "scale": {"x": 1, "y": 1, "z": 1},
    },
}


@pytest.fixture
def server() -> MockLiveUpdateServer:
    return MockLiveUpdateServer(OBJECTS)


@pytest.fixture
def channel(server: MockLiveUpdateServer) -> FakeChannel:
    return FakeChannel(server)


@pytest.fixture
def settle() -> Callable[[], Awaitable[None]]:
    """Let queued fake-channel deliveries run."""

    async def _settle() -> None:
        for _ in range(20):
            await asyncio.sleep(0)

    return _settle
