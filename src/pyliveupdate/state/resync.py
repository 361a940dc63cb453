"""Resubscription after the connection (re)opens."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pyliveupdate.state.registry import SubscriptionRegistry

_logger = logging.getLogger(__name__)


def group_by_object_path(pairs: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    """Group ``(object_path, property_path)`` pairs as ``{object_path: [property_path, ...]}``.

    Object paths keep the order of their first appearance; repeated pairs
    are kept.
    """
    grouped: dict[str, list[str]] = {}
    for object_path, property_path in pairs:
        grouped.setdefault(object_path, []).append(property_path)
    return grouped


class ResyncCoordinator:
    """Re-issues one subscribe per outstanding interest.

    Installed as the connection's ``on_open`` hook, so it runs exactly
    once per transition into OPEN.  The new server session starts without
    subscriptions, so a key followed by two live bindings is subscribed
    twice, exactly as the original two requests did.  Keys released while
    disconnected (frozen or disposed bindings) are not resubscribed.
    """

    def __init__(self, registry: SubscriptionRegistry) -> None:
        self._registry = registry
        self._runs = 0

    @property
    def runs(self) -> int:
        return self._runs

    def __call__(self) -> None:
        self.resync()

    def resync(self) -> None:
        registry = self._registry
        grouped = group_by_object_path(registry.interest())
        registry.forget_ids()
        for object_path, property_paths in grouped.items():
            registry.send_subscribe(object_path, property_paths)
        self._runs += 1
        _logger.debug("Resync issued objects=%d keys=%d", len(grouped), sum(len(p) for p in grouped.values()))
