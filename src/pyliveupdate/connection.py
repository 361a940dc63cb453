"""Connection lifecycle for the live update channel.

Owns one :class:`~pyliveupdate._transport.Channel` and tracks a small
state machine::

    CLOSED --open()--> CONNECTING --connected--> OPEN --close event--> CLOSED

Errors are a transient signal: they update the diagnostic text and notify
error listeners, but only the close event that follows changes the status.
Nothing reconnects on a timer; :meth:`Connection.reconnect` is called by
the owner.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from pyliveupdate._constants import ERROR_INFO, NORMAL_CLOSURE, describe_close_code
from pyliveupdate._transport import Channel
from pyliveupdate.exceptions import LiveUpdateTransportError

_logger = logging.getLogger(__name__)


class ConnectionStatus(StrEnum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


StatusListener = Callable[[ConnectionStatus], None]
ErrorListener = Callable[[str], None]


class _ChannelEvents:
    """Channel handler bound to one connect attempt."""

    def __init__(self, connection: Connection, generation: int) -> None:
        self._connection = connection
        self._generation = generation

    def on_message(self, data: str) -> None:
        self._connection._handle_message(self._generation, data)  # noqa: SLF001

    def on_error(self) -> None:
        self._connection._handle_error(self._generation)  # noqa: SLF001

    def on_close(self, code: int | None) -> None:
        self._connection._handle_close(self._generation, code)  # noqa: SLF001


class Connection:
    """State machine around a duplex channel.

    Parameters
    ----------
    channel : Channel
        Transport to drive.
    url : str
        Endpoint passed to ``channel.connect``.
    on_open : callable, optional
        Invoked on every transition into OPEN, before status listeners
        are notified and before :meth:`open` returns.  The client uses it
        to resubscribe, so no consumer observes OPEN without active
        subscriptions being requested.
    on_message : callable, optional
        Invoked with every inbound text frame while OPEN.
    """

    def __init__(
        self,
        channel: Channel,
        url: str,
        *,
        on_open: Callable[[], None] | None = None,
        on_message: Callable[[str], None] | None = None,
    ) -> None:
        self._channel = channel
        self._url = url
        self._on_open = on_open
        self._on_message = on_message
        self._status = ConnectionStatus.CLOSED
        self._info = ""
        self._generation = 0
        self._status_listeners: list[StatusListener] = []
        self._error_listeners: list[ErrorListener] = []

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def info(self) -> str:
        """Human-readable reason for the last error or close ("" while healthy)."""
        return self._info

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_open(self) -> bool:
        return self._status == ConnectionStatus.OPEN

    def add_status_listener(self, listener: StatusListener) -> Callable[[], None]:
        """Register *listener* for status changes; returns a remover."""
        self._status_listeners.append(listener)
        return lambda: self._discard(self._status_listeners, listener)

    def add_error_listener(self, listener: ErrorListener) -> Callable[[], None]:
        """Register *listener* for channel error signals; returns a remover."""
        self._error_listeners.append(listener)
        return lambda: self._discard(self._error_listeners, listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the channel.  No-op while CONNECTING or OPEN.

        A failed attempt is reported like the browser reports it: an
        error signal followed by a close with code 1006.  It does not
        raise.
        """
        if self._status != ConnectionStatus.CLOSED:
            _logger.debug("Open ignored, connection is %s", self._status)
            return

        self._generation += 1
        generation = self._generation
        self._set_status(ConnectionStatus.CONNECTING)
        try:
            await self._channel.connect(self._url, _ChannelEvents(self, generation))
        except LiveUpdateTransportError as exc:
            _logger.debug("Live update connect failed: %s", exc)
            self._handle_error(generation)
            self._handle_close(generation, exc.close_code)
            return

        if generation != self._generation:
            # close() ran while the handshake was in flight.
            await self._channel.close()
            return

        _logger.debug("Live update connection open url=%s", self._url)
        self._status = ConnectionStatus.OPEN
        self._info = ""
        if self._on_open is not None:
            self._on_open()
        self._notify_status()

    async def reconnect(self) -> None:
        """Re-open the channel if it is closed."""
        await self.open()

    async def close(self) -> None:
        """Close the channel on request of the owner."""
        self._generation += 1
        was_closed = self._status == ConnectionStatus.CLOSED
        await self._channel.close()
        if not was_closed:
            self._info = describe_close_code(NORMAL_CLOSURE)
            self._set_status(ConnectionStatus.CLOSED)

    def send(self, message: Mapping[str, Any]) -> bool:
        """Send one JSON message.

        Returns ``True`` when the frame was handed to the channel.  When
        the connection is not OPEN the message is dropped and ``False``
        is returned; this is not an error.
        """
        text = json.dumps(message, separators=(",", ":"))
        if self._status != ConnectionStatus.OPEN:
            _logger.debug("Send dropped, connection is %s: %s", self._status, text[:200])
            return False
        _logger.debug("-> %s", text[:200])
        self._channel.send(text)
        return True

    # ------------------------------------------------------------------
    # Channel events
    # ------------------------------------------------------------------

    def _handle_message(self, generation: int, data: str) -> None:
        if generation != self._generation or self._status != ConnectionStatus.OPEN:
            return
        _logger.debug("<- %s", data[:200])
        if self._on_message is not None:
            self._on_message(data)

    def _handle_error(self, generation: int) -> None:
        if generation != self._generation:
            return
        # Usually immediately followed by a close; the event itself
        # carries no information about the error.
        self._info = ERROR_INFO
        for listener in list(self._error_listeners):
            try:
                listener(self._info)
            except Exception:
                _logger.debug("Error listener failed", exc_info=True)

    def _handle_close(self, generation: int, code: int | None) -> None:
        if generation != self._generation:
            return
        self._info = describe_close_code(code)
        _logger.debug("Live update connection closed code=%s reason=%s", code, self._info)
        self._set_status(ConnectionStatus.CLOSED)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        self._notify_status()

    def _notify_status(self) -> None:
        status = self._status
        for listener in list(self._status_listeners):
            try:
                listener(status)
            except Exception:
                _logger.debug("Status listener failed", exc_info=True)

    @staticmethod
    def _discard(listeners: list[Any], listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)
