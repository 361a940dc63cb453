"""High-level async client for live update servers."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from pyliveupdate._transport import AiohttpChannel, Channel
from pyliveupdate.binding import Binding, BindingGroup
from pyliveupdate.config import LiveUpdateConfig
from pyliveupdate.connection import Connection, ConnectionStatus
from pyliveupdate.exceptions import LiveUpdateError
from pyliveupdate.models import SubscriptionEntry
from pyliveupdate.state.registry import SubscriptionRegistry
from pyliveupdate.state.resync import ResyncCoordinator

_logger = logging.getLogger(__name__)

_OBJECT_PREFIX = "object."


def ref_name_for(property_path: str) -> str:
    """Derive a caller-facing name from a property path.

    ``"object.offset"`` -> ``"offset"``, ``"object.offset.x"`` -> ``"offset_x"``.
    """
    if property_path.startswith(_OBJECT_PREFIX):
        property_path = property_path[len(_OBJECT_PREFIX) :]
    return property_path.replace(".", "_")


@dataclass(frozen=True)
class DebugInfo:
    """Point-in-time view of the client's protocol state."""

    status: ConnectionStatus
    info: str
    subscriptions: tuple[SubscriptionEntry, ...]
    values: dict[str, Any] = field(default_factory=dict)
    last_error: str | None = None


class LiveUpdateClient:
    """Async client for a live update server.

    Usage::

        async with LiveUpdateClient(LiveUpdateConfig(director="localhost:8080")) as client:
            with client.auto_subscribe("screen2:surface_1", ["object.offset"]) as props:
                await client.wait_for_snapshot(5.0)
                print(props["offset"].read())

    Parameters
    ----------
    config : LiveUpdateConfig or str
        Configuration, or a bare ``host:port`` director.
    session : aiohttp.ClientSession, optional
        Externally owned HTTP session; the client creates (and closes) its
        own when omitted.
    channel : Channel, optional
        Custom duplex channel replacing the aiohttp WebSocket.
    """

    def __init__(
        self,
        config: LiveUpdateConfig | str,
        *,
        session: aiohttp.ClientSession | None = None,
        channel: Channel | None = None,
    ) -> None:
        if isinstance(config, str):
            config = LiveUpdateConfig(director=config)
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._external_channel = channel is not None
        self._channel = channel
        self._registry = SubscriptionRegistry(self._send)
        self._resync = ResyncCoordinator(self._registry)
        self._connection: Connection | None = None
        self._status_listeners: list[Callable[[ConnectionStatus], None]] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LiveUpdateClient:
        if self._channel is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._channel = AiohttpChannel(
                self._http_session,
                connect_timeout=self._config.connect_timeout,
                heartbeat=self._config.heartbeat,
            )
        self._connection = Connection(
            self._channel,
            self._config.url,
            on_open=self._resync,
            on_message=self._registry.handle_frame,
        )
        for listener in self._status_listeners:
            self._connection.add_status_listener(listener)
        if self._config.auto_connect:
            await self._connection.open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if self._connection is not None:
            await self._connection.close()
        self._connection = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_channel:
            self._channel = None

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def config(self) -> LiveUpdateConfig:
        return self._config

    @property
    def status(self) -> ConnectionStatus:
        if self._connection is None:
            return ConnectionStatus.CLOSED
        return self._connection.status

    @property
    def connection_info(self) -> str:
        """Diagnostic text for the last connection error or close."""
        if self._connection is None:
            return ""
        return self._connection.info

    @property
    def last_error(self) -> str | None:
        """Most recent protocol error reported by the server."""
        return self._registry.last_error

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    async def open(self) -> None:
        await self._require_connection().open()

    async def reconnect(self) -> None:
        """Re-open a closed connection; all known subscriptions are re-established."""
        await self._require_connection().reconnect()

    async def close(self) -> None:
        await self._require_connection().close()

    def add_status_listener(self, listener: Callable[[ConnectionStatus], None]) -> Callable[[], None]:
        """Register *listener* for connection status changes; returns a remover."""
        self._status_listeners.append(listener)
        remove_from_connection = (
            self._connection.add_status_listener(listener) if self._connection is not None else None
        )

        def _remove() -> None:
            if listener in self._status_listeners:
                self._status_listeners.remove(listener)
            if remove_from_connection is not None:
                remove_from_connection()

        return _remove

    async def wait_for_snapshot(self, timeout: float) -> bool:
        """Wait for the next subscription snapshot from the server."""
        return await self._registry.wait_for_snapshot(timeout)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, object_path: str, ref_names_to_property_paths: Mapping[str, str]) -> BindingGroup:
        """Bind properties of *object_path* under caller-chosen names.

        Sends one subscribe request for all property paths, even for keys
        other bindings already follow.
        """
        _logger.debug("Subscribe object=%s refs=%s", object_path, dict(ref_names_to_property_paths))
        self._registry.request_subscribe(object_path, list(ref_names_to_property_paths.values()))
        bindings = {
            ref_name: Binding(self._registry, object_path, property_path, ref_name=ref_name)
            for ref_name, property_path in ref_names_to_property_paths.items()
        }
        return BindingGroup(self._registry, bindings)

    def auto_subscribe(self, object_path: str, property_paths: Iterable[str]) -> BindingGroup:
        """Like :meth:`subscribe`, naming each binding with :func:`ref_name_for`."""
        return self.subscribe(object_path, {ref_name_for(path): path for path in property_paths})

    def set_values(self, values: Mapping[str, Any]) -> None:
        """Write several properties at once, keyed by ``objectPath/propertyPath``.

        Keys without an active subscription are skipped.
        """
        changes: list[tuple[int, Any]] = []
        for key, value in values.items():
            subscription_id = self._registry.id_for(key)
            if subscription_id is not None:
                changes.append((subscription_id, value))
        self._registry.request_set_many(changes)

    def debug_info(self) -> DebugInfo:
        return DebugInfo(
            status=self.status,
            info=self.connection_info,
            subscriptions=self._registry.subscriptions,
            values=self._registry.values(),
            last_error=self._registry.last_error,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise LiveUpdateError("Client not initialized. Use 'async with LiveUpdateClient(...) as client:'")
        return self._connection

    def _send(self, message: Mapping[str, Any]) -> bool:
        connection = self._connection
        if connection is None:
            return False
        return connection.send(message)
