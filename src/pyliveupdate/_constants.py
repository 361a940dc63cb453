"""Internal constants shared across the library."""

LIVEUPDATE_PATH = "/api/session/liveupdate"

# ------------------------------------------------------------------
# WebSocket close codes  (RFC 6455 section 7.4.1)
# ------------------------------------------------------------------

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006

CLOSE_REASONS: dict[int, str] = {
    1000: "Normal closure",
    1001: "Going away",
    1002: "Protocol error",
    1003: "Unsupported data",
    1005: "No status code",
    1006: "Could not establish connection",
    1007: "Invalid data",
    1008: "Policy violation",
    1009: "Message too big",
    1010: "Extension required",
    1011: "Internal error",
    1015: "TLS handshake",
}

ERROR_INFO = "WebSocket error"


def describe_close_code(code: int | None) -> str:
    """Return the human-readable reason for a WebSocket close *code*.

    Unknown codes are returned as their raw number; a missing code is
    treated as an abnormal closure.
    """
    if code is None:
        code = ABNORMAL_CLOSURE
    return CLOSE_REASONS.get(code, str(code))
