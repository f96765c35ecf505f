"""
Frame handling components.

Frame value objects, codec, and routing.
"""

from ws_multiplexer.components.events.frames import (
    RequestFrame,
    CloseFrame,
    CompleteFrame,
    DataFrame,
    StatusFrame,
    UnknownFrame,
    InboundFrame,
    OutboundFrame,
    encode_frame,
    decode_frame,
    validate_frame,
    UnknownFrameTypeTracker,
)
from ws_multiplexer.components.events.router import (
    MessageRouter,
    RoutingResult,
)

__all__ = [
    # Frames
    "RequestFrame",
    "CloseFrame",
    "CompleteFrame",
    "DataFrame",
    "StatusFrame",
    "UnknownFrame",
    "InboundFrame",
    "OutboundFrame",
    "encode_frame",
    "decode_frame",
    "validate_frame",
    "UnknownFrameTypeTracker",
    # Router
    "MessageRouter",
    "RoutingResult",
]
