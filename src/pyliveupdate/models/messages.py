"""Live update protocol messages.

Client -> server::

    {"subscribe": {"object": <objectPath>, "properties": [<propertyPath>, ...]}}
    {"unsubscribe": {"ids": [<id>, ...]}}
    {"set": [{"id": <id>, "value": <any>}, ...]}

Server -> client (any combination of the keys may be present)::

    {"subscriptions": [{"id": <int>, "objectPath": <str>, "propertyPath": <str>}, ...]}
    {"valuesChanged": [{"id": <int>, "value": <any>}, ...]}
    {"error": <str>}

``subscriptions`` is always a full snapshot, never a delta.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import Field, ValidationError, field_validator

from pyliveupdate.exceptions import LiveUpdateProtocolError
from pyliveupdate.models._base import LiveUpdateBaseModel, make_key


class SubscriptionEntry(LiveUpdateBaseModel):
    """One server-side subscription as listed in a snapshot."""

    id: int
    object_path: str
    property_path: str

    @property
    def key(self) -> str:
        return make_key(self.object_path, self.property_path)


class ValueChange(LiveUpdateBaseModel):
    """A new value for one subscription id."""

    id: int
    value: Any = None


class InboundMessage(LiveUpdateBaseModel):
    """Decoded server frame."""

    subscriptions: list[SubscriptionEntry] | None = None
    values_changed: list[ValueChange] | None = None
    error: str | None = None

    @field_validator("error", mode="before")
    @classmethod
    def _stringify_error(cls, value: Any) -> str | None:
        # Servers are not consistent about the error payload type.
        if value is None or value == "":
            return None
        return value if isinstance(value, str) else json.dumps(value)


class SubscribeRequest(LiveUpdateBaseModel):
    object_path: str = Field(alias="object")
    properties: list[str]

    def to_wire(self) -> dict[str, Any]:
        return {"subscribe": super().to_wire()}


class UnsubscribeRequest(LiveUpdateBaseModel):
    ids: list[int]

    def to_wire(self) -> dict[str, Any]:
        return {"unsubscribe": super().to_wire()}


class SetRequest(LiveUpdateBaseModel):
    changes: list[ValueChange]

    def to_wire(self) -> dict[str, Any]:
        return {"set": [change.to_wire() for change in self.changes]}


def parse_inbound(frame: str | bytes) -> InboundMessage:
    """Decode one inbound frame.

    Raises :class:`LiveUpdateProtocolError` when the frame is not JSON,
    is not a JSON object, or does not match the message schema.
    """
    text = frame.decode("utf-8", errors="replace") if isinstance(frame, bytes) else frame
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LiveUpdateProtocolError(f"Frame is not JSON: {text[:200]}", frame=text) from exc
    if not isinstance(parsed, dict):
        raise LiveUpdateProtocolError(f"Frame is not a JSON object: {text[:200]}", frame=text)
    try:
        return InboundMessage.model_validate(parsed)
    except ValidationError as exc:
        raise LiveUpdateProtocolError(f"Frame does not match schema: {text[:200]}", frame=text) from exc
