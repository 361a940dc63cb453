"""Caller-facing handles over live properties."""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterator, Mapping
from types import TracebackType
from typing import Any

from pyliveupdate.models import make_key
from pyliveupdate.state.registry import SubscriptionRegistry

_logger = logging.getLogger(__name__)


class Binding:
    """Interest in one ``(object, property)`` pair.

    A binding owns no subscription of its own: every binding over the same
    key shares the server-side subscription, whose reference count lives
    on the server.  Freezing stops this binding from following updates
    without affecting the others.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        object_path: str,
        property_path: str,
        *,
        ref_name: str | None = None,
    ) -> None:
        self._registry = registry
        self._object_path = object_path
        self._property_path = property_path
        self._key = make_key(object_path, property_path)
        self._ref_name = ref_name or property_path
        self._frozen = False
        self._frozen_value: Any = None
        self._frozen_resolved = False
        self._disposed = False

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "frozen" if self._frozen else "live"
        return f"<Binding {self._ref_name}={self._key!r} {state}>"

    @property
    def key(self) -> str:
        return self._key

    @property
    def object_path(self) -> str:
        return self._object_path

    @property
    def property_path(self) -> str:
        return self._property_path

    @property
    def ref_name(self) -> str:
        return self._ref_name

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def resolved(self) -> bool:
        """Whether :meth:`read` has a value to return.

        While frozen this reflects whether a value had arrived at freeze time.
        """
        if self._frozen:
            return self._frozen_resolved
        return self._registry.has_value(self._key)

    @property
    def value(self) -> Any:
        return self.read()

    @value.setter
    def value(self, new_value: Any) -> None:
        self.write(new_value)

    def read(self) -> Any:
        """Frozen snapshot when frozen, else the latest cached value (``None`` if unresolved)."""
        if self._frozen:
            return copy.deepcopy(self._frozen_value)
        return self._registry.value(self._key)

    def write(self, new_value: Any) -> None:
        """Ask the server to set the property.

        Silently ignored when the key has no id (never acknowledged,
        unsubscribed, or waiting for a resubscribe after reconnect).
        """
        subscription_id = self._registry.id_for(self._key)
        if subscription_id is None:
            _logger.debug("Write to %s ignored, no active subscription", self._key)
            return
        self._registry.request_set(subscription_id, new_value)

    def freeze(self) -> None:
        """Keep the current value and stop following updates."""
        if self._frozen or self._disposed:
            return
        self._frozen_value = self._registry.value(self._key)
        self._frozen_resolved = self._registry.has_value(self._key)
        self._frozen = True
        self._registry.request_unsubscribe([self._key])

    def thaw(self) -> None:
        """Resume following updates."""
        if not self._frozen or self._disposed:
            return
        self._frozen = False
        self._frozen_value = None
        self._frozen_resolved = False
        self._registry.request_subscribe(self._object_path, [self._property_path])

    def watch(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        """Call *listener* with each pushed value while not frozen.

        Returns a callable that removes the listener.
        """

        def _forward(new_value: Any) -> None:
            if not self._frozen and not self._disposed:
                listener(new_value)

        return self._registry.watch(self._key, _forward)

    def dispose(self) -> None:
        """Release this binding's interest (sends unsubscribe, frozen or not)."""
        if self._disposed:
            return
        self._mark_disposed()
        self._registry.request_unsubscribe([self._key])

    def _mark_disposed(self) -> None:
        self._disposed = True


class BindingGroup(Mapping[str, Binding]):
    """The bindings created by one subscribe call, keyed by ref name.

    Use it as a context manager, or call :meth:`dispose`, to release all
    of them with a single unsubscribe request::

        with client.subscribe("screen2:surface_1", {"offset": "object.offset"}) as props:
            print(props["offset"].read())
    """

    def __init__(self, registry: SubscriptionRegistry, bindings: Mapping[str, Binding]) -> None:
        self._registry = registry
        self._bindings = dict(bindings)

    def __getitem__(self, ref_name: str) -> Binding:
        return self._bindings[ref_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __repr__(self) -> str:
        return f"<BindingGroup {list(self._bindings)}>"

    def __enter__(self) -> BindingGroup:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()

    def read(self) -> dict[str, Any]:
        """Current value of every binding, keyed by ref name."""
        return {name: binding.read() for name, binding in self._bindings.items()}

    def freeze(self) -> None:
        for binding in self._bindings.values():
            binding.freeze()

    def thaw(self) -> None:
        for binding in self._bindings.values():
            binding.thaw()

    def dispose(self) -> None:
        keys: list[str] = []
        for binding in self._bindings.values():
            if binding.disposed:
                continue
            binding._mark_disposed()  # noqa: SLF001
            keys.append(binding.key)
        if keys:
            self._registry.request_unsubscribe(keys)
