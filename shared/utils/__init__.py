"""
Utilities module: Exceptions.
"""

from shared.utils.exceptions import (
    MultiplexerError,
    ConnectionFailedError,
    ConnectionTimeoutError,
    SubscriptionConnectError,
    FrameDecodeError,
)

__all__ = [
    # exceptions
    "MultiplexerError",
    "ConnectionFailedError",
    "ConnectionTimeoutError",
    "SubscriptionConnectError",
    "FrameDecodeError",
]
