"""
WebSocket Multiplexer Constants.

Centralized constants with documentation explaining the value of each one.
"""

from enum import Enum, IntEnum
from typing import Final

__all__ = [
    "FrameType",
    "WSCloseCode",
    "MuxConstants",
    "MULTIPLEXER_ENDPOINT",
    "INBOUND_FRAME_TYPES",
    "OUTBOUND_FRAME_TYPES",
]


# Endpoint on the dashboard backend that accepts multiplexed watches.
MULTIPLEXER_ENDPOINT: Final[str] = "wsMultiplexer"


class FrameType(str, Enum):
    """
    Values of the ``type`` field of a multiplexer frame.

    - REQUEST: client asks the backend to start watching a resource
    - CLOSE: client asks the backend to stop watching a resource
    - COMPLETE: backend reports the watch has ended (timeout or error)
    - DATA: backend forwards one message of the watch stream
    - STATUS: backend reports the state of its upstream cluster connection
    """

    REQUEST = "REQUEST"
    CLOSE = "CLOSE"
    COMPLETE = "COMPLETE"
    DATA = "DATA"
    STATUS = "STATUS"


OUTBOUND_FRAME_TYPES: frozenset[str] = frozenset({
    FrameType.REQUEST.value,
    FrameType.CLOSE.value,
})

INBOUND_FRAME_TYPES: frozenset[str] = frozenset({
    FrameType.COMPLETE.value,
    FrameType.DATA.value,
    FrameType.STATUS.value,
})


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the multiplexer client.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Client shutting down
    PROTOCOL_ERROR = 1002  # Protocol error
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error


class MuxConstants:
    """
    Multiplexer operational constants.

    These are defaults used when no value is injected. At runtime the
    multiplexer reads ``shared.config.settings`` which can override them via
    environment variables; the settings take precedence.
    """

    # ==========================================================================
    # Timeout Constants
    # ==========================================================================

    # CONNECTION_TIMEOUT: 30 seconds
    # Upper bound for the transport handshake. After it the shared attempt is
    # failed for every waiter and the slot is cleared so the next call retries.
    CONNECTION_TIMEOUT: Final[float] = 30.0

    # UNSUBSCRIBE_DEBOUNCE: 100 milliseconds
    # Delay between the last listener leaving and the CLOSE frame. Covers an
    # unmount immediately followed by a remount of the same view.
    UNSUBSCRIBE_DEBOUNCE: Final[float] = 0.1

    # CLOSE_TIMEOUT: 5 seconds
    # Time allowed for the closing handshake when the client closes.
    CLOSE_TIMEOUT: Final[float] = 5.0

    # ==========================================================================
    # Frame Limits
    # ==========================================================================

    # MAX_FRAME_SIZE: 16 MiB
    # Large LIST payloads of big clusters fit; anything beyond is treated as
    # malformed and dropped.
    MAX_FRAME_SIZE: Final[int] = 16 * 1024 * 1024

    # MAX_UNKNOWN_FRAME_TYPES: 50
    # Distinct unknown ``type`` values remembered for first-occurrence logging.
    MAX_UNKNOWN_FRAME_TYPES: Final[int] = 50

    # ==========================================================================
    # Reconnect Constants
    # ==========================================================================

    RECONNECT_INITIAL_DELAY: Final[float] = 1.0
    RECONNECT_MAX_DELAY: Final[float] = 30.0
    RECONNECT_MAX_ATTEMPTS: Final[int] = 10
