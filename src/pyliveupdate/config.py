"""Client configuration for pyliveupdate."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyliveupdate._constants import LIVEUPDATE_PATH
from pyliveupdate.exceptions import LiveUpdateConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class LiveUpdateConfig:
    """Client configuration.

    Parameters
    ----------
    director : str
        ``host:port`` address of the live update server.  Required; an
        empty value raises :class:`LiveUpdateConfigError` immediately.
    path : str
        Endpoint path on the director.  Defaults to
        ``/api/session/liveupdate``.
    secure : bool
        Use ``wss://`` instead of ``ws://``.
    auto_connect : bool
        Open the connection when entering the client's ``async with``
        block.  When ``False`` the client stays CLOSED until
        :meth:`LiveUpdateClient.open` is called.
    connect_timeout : float
        Seconds allowed for the WebSocket handshake.
    heartbeat : float or None
        WebSocket ping interval in seconds, ``None`` to disable.
    """

    director: str
    path: str = LIVEUPDATE_PATH
    secure: bool = False
    auto_connect: bool = True
    connect_timeout: float = 10.0
    heartbeat: float | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.director, str) or not self.director.strip():
            raise LiveUpdateConfigError("'director' parameter is required")
        if "://" in self.director:
            raise LiveUpdateConfigError(f"'director' must be host[:port], got {self.director!r}")
        if not self.path.startswith("/"):
            raise LiveUpdateConfigError(f"'path' must start with '/', got {self.path!r}")
        if self.connect_timeout <= 0:
            raise LiveUpdateConfigError("'connect_timeout' must be positive")

    @property
    def url(self) -> str:
        """Full WebSocket URL of the live update endpoint."""
        scheme = "wss" if self.secure else "ws"
        return f"{scheme}://{self.director.strip()}{self.path}"

    @classmethod
    def from_env(cls, **overrides: Any) -> LiveUpdateConfig:
        """Create configuration from environment variables.

        Reads ``LIVEUPDATE_DIRECTOR`` and the optional ``LIVEUPDATE_*``
        variables below.  Explicit keyword arguments override environment
        values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        LiveUpdateConfig
            Populated configuration.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        director = env.get("LIVEUPDATE_DIRECTOR")
        if director is not None:
            config_kwargs["director"] = director
        path = env.get("LIVEUPDATE_PATH")
        if path is not None:
            config_kwargs["path"] = path

        if "secure" not in overrides:
            config_kwargs["secure"] = _env_bool(env.get("LIVEUPDATE_SECURE"), False)
        if "auto_connect" not in overrides:
            config_kwargs["auto_connect"] = _env_bool(env.get("LIVEUPDATE_AUTO_CONNECT"), True)

        timeout_env = env.get("LIVEUPDATE_CONNECT_TIMEOUT")
        if timeout_env is not None and "connect_timeout" not in overrides:
            config_kwargs["connect_timeout"] = float(timeout_env)

        heartbeat_env = env.get("LIVEUPDATE_HEARTBEAT")
        if heartbeat_env is not None and "heartbeat" not in overrides:
            config_kwargs["heartbeat"] = float(heartbeat_env) if heartbeat_env.strip() else None

        config_kwargs.update(overrides)
        if "director" not in config_kwargs:
            raise LiveUpdateConfigError("'director' parameter is required (set LIVEUPDATE_DIRECTOR)")

        return cls(**config_kwargs)
