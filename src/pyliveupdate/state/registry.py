"""Subscription registry.

This is the only component allowed to mutate the key <-> id maps and the
value cache.  It is built entirely from server frames:

- a ``subscriptions`` snapshot replaces the maps wholesale,
- a ``valuesChanged`` batch updates cached values,
- an ``error`` is logged and kept as :attr:`SubscriptionRegistry.last_error`.

The client never allocates ids and never deduplicates requests; every
subscribe request is sent as-is and the server's reference count decides
whether an unsubscribe actually removes a subscription.

The registry does remember the outstanding interest, i.e. subscribe
requests issued minus keys released, whether or not they reached the
server.  After a reconnect the server session starts empty, and that
interest is what gets replayed.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pyliveupdate.exceptions import LiveUpdateProtocolError
from pyliveupdate.models import (
    InboundMessage,
    SetRequest,
    SubscribeRequest,
    SubscriptionEntry,
    UnsubscribeRequest,
    ValueChange,
    make_key,
    parse_inbound,
)

_logger = logging.getLogger(__name__)

Sender = Callable[[Mapping[str, Any]], bool]
ValueListener = Callable[[Any], None]


def merge_value(previous: Any, incoming: Any) -> Any:
    """Merge a pushed value into the cached one.

    A mapping pushed over a cached mapping updates the top-level fields it
    carries and keeps the others; nested mappings are replaced, not merged.
    Anything else replaces the cached value.
    """
    if isinstance(incoming, dict) and isinstance(previous, dict):
        merged = dict(previous)
        merged.update(copy.deepcopy(incoming))
        return merged
    return copy.deepcopy(incoming)


@dataclass
class _Interest:
    object_path: str
    property_path: str
    count: int = 0


class SubscriptionRegistry:
    """Client-side view of the server's subscriptions and values.

    Parameters
    ----------
    send : callable
        Sends one JSON message; returns ``False`` when the message could
        not be handed to an open connection.
    """

    def __init__(self, send: Sender) -> None:
        self._send = send
        self._entries: tuple[SubscriptionEntry, ...] = ()
        self._key_to_id: dict[str, int] = {}
        self._id_to_key: dict[int, str] = {}
        self._values: dict[str, Any] = {}
        self._interest: dict[str, _Interest] = {}
        self._listeners: dict[str, list[ValueListener]] = {}
        self._last_error: str | None = None
        self._snapshot_version = 0
        self._snapshot_waiters: list[asyncio.Event] = []

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def subscriptions(self) -> tuple[SubscriptionEntry, ...]:
        """Last received subscription snapshot."""
        return self._entries

    @property
    def last_error(self) -> str | None:
        """Text of the most recent server ``error`` message."""
        return self._last_error

    @property
    def snapshot_version(self) -> int:
        """Number of snapshots applied so far."""
        return self._snapshot_version

    def interest(self) -> list[tuple[str, str]]:
        """Outstanding ``(object_path, property_path)`` interest.

        A pair appears once per subscribe not yet released, in the order
        keys were first subscribed.
        """
        return [
            (entry.object_path, entry.property_path)
            for entry in self._interest.values()
            for _ in range(entry.count)
        ]

    def id_for(self, key: str) -> int | None:
        return self._key_to_id.get(key)

    def key_for(self, subscription_id: int) -> str | None:
        return self._id_to_key.get(subscription_id)

    def has_value(self, key: str) -> bool:
        return key in self._values

    def value(self, key: str) -> Any:
        """Cached value for *key*, or ``None`` when unresolved."""
        return copy.deepcopy(self._values.get(key))

    def values(self) -> dict[str, Any]:
        """Copy of the whole value cache."""
        return copy.deepcopy(self._values)

    def watch(self, key: str, listener: ValueListener) -> Callable[[], None]:
        """Call *listener* with the new value whenever *key* changes.

        Returns a callable that removes the listener.
        """
        self._listeners.setdefault(key, []).append(listener)

        def _remove() -> None:
            listeners = self._listeners.get(key)
            if listeners is not None and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(key, None)

        return _remove

    # ------------------------------------------------------------------
    # Outbound requests
    # ------------------------------------------------------------------

    def request_subscribe(self, object_path: str, property_paths: Sequence[str]) -> None:
        """Send one subscribe request for all *property_paths* of *object_path*.

        The interest is recorded even when the request cannot be sent
        (connection not open); the next resync sends it.
        """
        if not property_paths:
            return
        for property_path in property_paths:
            key = make_key(object_path, property_path)
            entry = self._interest.get(key)
            if entry is None:
                entry = self._interest[key] = _Interest(object_path, property_path)
            entry.count += 1
        if not self.send_subscribe(object_path, property_paths):
            _logger.debug("Subscribe deferred until open object=%s properties=%s", object_path, list(property_paths))

    def send_subscribe(self, object_path: str, property_paths: Sequence[str]) -> bool:
        """Send a subscribe request without recording interest (used by resync)."""
        request = SubscribeRequest(object_path=object_path, properties=list(property_paths))
        return self._send(request.to_wire())

    def request_unsubscribe(self, keys: Iterable[str]) -> None:
        """Release one interest per key and unsubscribe the known ids.

        Keys without a known id are skipped; nothing is sent when none
        resolves.  The release is recorded even when nothing is sent, so a
        key released while disconnected is not resubscribed.
        """
        ids: list[int] = []
        for key in keys:
            self._release(key)
            subscription_id = self._key_to_id.get(key)
            if subscription_id is not None:
                ids.append(subscription_id)
        if not ids:
            return
        self._send(UnsubscribeRequest(ids=ids).to_wire())

    def request_set(self, subscription_id: int, value: Any) -> None:
        """Fire-and-forget write; the new value arrives as a normal push."""
        self.request_set_many([(subscription_id, value)])

    def request_set_many(self, changes: Iterable[tuple[int, Any]]) -> None:
        batch = [ValueChange(id=subscription_id, value=value) for subscription_id, value in changes]
        if not batch:
            return
        self._send(SetRequest(changes=batch).to_wire())

    def forget_ids(self) -> None:
        """Drop the snapshot and key <-> id maps of a previous server session.

        Cached values of keys that still have interest stay readable until
        the new snapshot decides which keys survive; the others are purged.
        """
        self._entries = ()
        self._key_to_id.clear()
        self._id_to_key.clear()
        for key in [key for key in self._values if key not in self._interest]:
            del self._values[key]

    # ------------------------------------------------------------------
    # Inbound frames
    # ------------------------------------------------------------------

    def handle_frame(self, frame: str | bytes) -> None:
        """Decode and apply one inbound frame; malformed frames are dropped."""
        try:
            message = parse_inbound(frame)
        except LiveUpdateProtocolError as exc:
            _logger.warning("Dropping malformed live update frame: %s", exc)
            return
        self.apply_message(message)

    def apply_message(self, message: InboundMessage) -> None:
        if message.error is not None:
            self.apply_error(message.error)
            return
        if message.subscriptions is not None:
            self.apply_snapshot(message.subscriptions)
        if message.values_changed is not None:
            self.apply_values(message.values_changed)

    def apply_snapshot(self, entries: Sequence[SubscriptionEntry]) -> None:
        """Replace the key <-> id maps with *entries* and purge stale values."""
        key_to_id: dict[str, int] = {}
        id_to_key: dict[int, str] = {}
        for entry in entries:
            key_to_id[entry.key] = entry.id
            id_to_key[entry.id] = entry.key

        self._entries = tuple(entries)
        self._key_to_id = key_to_id
        self._id_to_key = id_to_key
        for key in [key for key in self._values if key not in key_to_id]:
            del self._values[key]
        _logger.debug("Applied subscription snapshot entries=%d", len(self._entries))

        self._snapshot_version += 1
        waiters = self._snapshot_waiters
        self._snapshot_waiters = []
        for waiter in waiters:
            waiter.set()

    def apply_values(self, changes: Sequence[ValueChange]) -> None:
        for change in changes:
            key = self._id_to_key.get(change.id)
            if key is None:
                _logger.debug("Ignoring value for unknown subscription id=%s", change.id)
                continue
            value = merge_value(self._values.get(key), change.value)
            self._values[key] = value
            self._notify(key, value)

    def apply_error(self, error: str) -> None:
        # The message does not say which in-flight request failed.
        self._last_error = error
        _logger.warning("Live update error: %s", error)

    async def wait_for_snapshot(self, timeout: float) -> bool:
        """Wait until the next snapshot is applied; ``False`` on timeout."""
        if timeout <= 0:
            return False
        waiter = asyncio.Event()
        self._snapshot_waiters.append(waiter)
        try:
            await asyncio.wait_for(waiter.wait(), timeout)
            return True
        except TimeoutError:
            return False
        finally:
            if waiter in self._snapshot_waiters:
                self._snapshot_waiters.remove(waiter)

    def _release(self, key: str) -> None:
        entry = self._interest.get(key)
        if entry is None:
            return
        entry.count -= 1
        if entry.count <= 0:
            del self._interest[key]

    def _notify(self, key: str, value: Any) -> None:
        for listener in list(self._listeners.get(key, ())):
            try:
                listener(copy.deepcopy(value))
            except Exception:
                _logger.debug("Value listener for %s failed", key, exc_info=True)
