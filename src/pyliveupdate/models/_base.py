"""Base model for live update wire messages.

Every wire model inherits from :class:`LiveUpdateBaseModel` which
provides ``alias_generator=to_camel`` so the server's camelCase keys
(``objectPath``, ``valuesChanged``) map to snake_case fields, and
ignores keys the client does not know about.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

KEY_SEPARATOR = "/"


def make_key(object_path: str, property_path: str) -> str:
    """Canonical key of an ``(object, property)`` pair."""
    return f"{object_path}{KEY_SEPARATOR}{property_path}"


class LiveUpdateBaseModel(BaseModel):
    """Base for live update wire models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump with wire (camelCase) key names."""
        return self.model_dump(by_alias=True)
