"""Custom exception hierarchy for pyliveupdate."""

from __future__ import annotations


class LiveUpdateError(Exception):
    """Base exception for all pyliveupdate errors."""


class LiveUpdateConfigError(LiveUpdateError):
    """Invalid or missing configuration."""


class LiveUpdateTransportError(LiveUpdateError):
    """Channel-level failure (could not connect, socket error)."""

    def __init__(
        self,
        message: str,
        *,
        close_code: int | None = None,
        url: str = "",
    ) -> None:
        self.close_code = close_code
        self.url = url
        super().__init__(message)


class LiveUpdateProtocolError(LiveUpdateError):
    """Inbound frame could not be decoded into a live update message.

    Raised by :func:`pyliveupdate.models.parse_inbound`.  The registry
    catches it, logs the frame and drops it; a malformed frame never
    terminates the connection.
    """

    def __init__(self, message: str, *, frame: str = "") -> None:
        self.frame = frame
        super().__init__(message)
