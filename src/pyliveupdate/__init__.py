"""pyliveupdate - Async Python client for live update property servers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyliveupdate")
except PackageNotFoundError:
    __version__ = "0+local"
from pyliveupdate._transport import AiohttpChannel, Channel, ChannelHandler
from pyliveupdate.binding import Binding, BindingGroup
from pyliveupdate.client import DebugInfo, LiveUpdateClient, ref_name_for
from pyliveupdate.config import LiveUpdateConfig
from pyliveupdate.connection import Connection, ConnectionStatus
from pyliveupdate.exceptions import (
    LiveUpdateConfigError,
    LiveUpdateError,
    LiveUpdateProtocolError,
    LiveUpdateTransportError,
)
from pyliveupdate.models import SubscriptionEntry, ValueChange, make_key
from pyliveupdate.state.registry import SubscriptionRegistry
from pyliveupdate.state.resync import ResyncCoordinator

__all__ = [
    "__version__",
    "AiohttpChannel",
    "Binding",
    "BindingGroup",
    "Channel",
    "ChannelHandler",
    "Connection",
    "ConnectionStatus",
    "DebugInfo",
    "LiveUpdateClient",
    "LiveUpdateConfig",
    "LiveUpdateConfigError",
    "LiveUpdateError",
    "LiveUpdateProtocolError",
    "LiveUpdateTransportError",
    "ResyncCoordinator",
    "SubscriptionEntry",
    "SubscriptionRegistry",
    "ValueChange",
    "make_key",
    "ref_name_for",
]
