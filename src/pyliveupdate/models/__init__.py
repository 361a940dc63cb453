"""Wire models for the live update protocol."""

from pyliveupdate.models._base import LiveUpdateBaseModel, make_key
from pyliveupdate.models.messages import (
    InboundMessage,
    SetRequest,
    SubscribeRequest,
    SubscriptionEntry,
    UnsubscribeRequest,
    ValueChange,
    parse_inbound,
)

__all__ = [
    "InboundMessage",
    "LiveUpdateBaseModel",
    "SetRequest",
    "SubscribeRequest",
    "SubscriptionEntry",
    "UnsubscribeRequest",
    "ValueChange",
    "make_key",
    "parse_inbound",
]
