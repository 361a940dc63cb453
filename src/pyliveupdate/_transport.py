"""Duplex WebSocket channel used by :class:`pyliveupdate.connection.Connection`."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Protocol

import aiohttp

from pyliveupdate._constants import ABNORMAL_CLOSURE, NORMAL_CLOSURE
from pyliveupdate.exceptions import LiveUpdateTransportError

_logger = logging.getLogger(__name__)


class ChannelHandler(Protocol):
    """Receiver of channel events after a successful connect."""

    def on_message(self, data: str) -> None: ...

    def on_error(self) -> None: ...

    def on_close(self, code: int | None) -> None: ...


class Channel(Protocol):
    """Structural channel interface used by the connection.

    ``connect`` either returns with the channel open, or raises
    :class:`LiveUpdateTransportError`.  After it returns, the channel
    reports inbound frames, errors and exactly one close to *handler*.
    ``send`` is fire-and-forget and preserves call order.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`AiohttpChannel`) concrete.
    """

    async def connect(self, url: str, handler: ChannelHandler) -> None: ...

    def send(self, data: str) -> None: ...

    async def close(self) -> None: ...


class AiohttpChannel:
    """WebSocket channel on top of an ``aiohttp.ClientSession``."""

    def __init__(
        self,
        http_session: aiohttp.ClientSession,
        *,
        connect_timeout: float = 10.0,
        heartbeat: float | None = None,
    ) -> None:
        self._http = http_session
        self._connect_timeout = connect_timeout
        self._heartbeat = heartbeat
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbox: asyncio.Queue[str] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def connect(self, url: str, handler: ChannelHandler) -> None:
        """Open the WebSocket and start the reader/writer tasks."""
        await self.close()
        _logger.debug("WS connect %s", url)
        try:
            ws = await asyncio.wait_for(
                self._http.ws_connect(url, heartbeat=self._heartbeat, autoclose=True, autoping=True),
                self._connect_timeout,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise LiveUpdateTransportError(
                f"WebSocket connect to {url} failed: {exc}",
                close_code=ABNORMAL_CLOSURE,
                url=url,
            ) from exc

        self._ws = ws
        self._outbox = asyncio.Queue()
        self._reader_task = asyncio.create_task(self._read_loop(ws, handler), name="liveupdate-ws-reader")
        self._writer_task = asyncio.create_task(self._write_loop(ws, self._outbox), name="liveupdate-ws-writer")

    def send(self, data: str) -> None:
        outbox = self._outbox
        if outbox is None or not self.is_open:
            _logger.debug("WS send dropped, channel not open: %s", data[:200])
            return
        outbox.put_nowait(data)

    async def close(self) -> None:
        """Close the socket; the reader reports the close to its handler."""
        ws = self._ws
        writer = self._writer_task
        reader = self._reader_task
        self._ws = None
        self._outbox = None
        self._writer_task = None
        self._reader_task = None

        if writer is not None:
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
        if ws is not None and not ws.closed:
            await ws.close(code=NORMAL_CLOSURE)
        if reader is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await reader

    async def _write_loop(self, ws: aiohttp.ClientWebSocketResponse, outbox: asyncio.Queue[str]) -> None:
        while True:
            data = await outbox.get()
            try:
                await ws.send_str(data)
            except (aiohttp.ClientError, ConnectionError) as exc:
                # The reader sees the same failure and reports the close.
                _logger.debug("WS send failed: %s", exc)
                return

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse, handler: ChannelHandler) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    handler.on_message(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    handler.on_message(msg.data.decode("utf-8", errors="replace"))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    _logger.debug("WS error: %s", ws.exception())
                    handler.on_error()
        finally:
            code = ws.close_code
            _logger.debug("WS read loop ended close_code=%s", code)
            handler.on_close(code if code is not None else ABNORMAL_CLOSURE)
