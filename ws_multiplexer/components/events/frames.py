"""
Multiplexer Frame Value Objects.

Every message on the shared transport is a JSON object addressed by
``clusterId``/``path``/``query``. Frames are decoded into a closed set of
immutable value objects so the router never handles raw dicts:

- RequestFrame / CloseFrame: outbound control frames
- CompleteFrame: the backend ended a watch
- DataFrame: one message of a watch stream
- StatusFrame: state of the backend's upstream cluster connection
- UnknownFrame: addressed frame with a type this client does not handle

Decode failures raise FrameDecodeError inside this module; callers use
``validate_frame`` which maps them to an error string.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Union

from shared.config.logging import get_logger
from shared.utils.exceptions import FrameDecodeError
from ws_multiplexer.components.core.constants import FrameType, MuxConstants
from ws_multiplexer.components.subscriptions.keys import SubscriptionKey

logger = get_logger(__name__)


class _AddressedFrame:
    """Mixin giving every frame its subscription key."""

    __slots__ = ()

    cluster_id: str
    path: str
    query: str

    @property
    def key(self) -> SubscriptionKey:
        return SubscriptionKey(self.cluster_id, self.path, self.query)


# =============================================================================
# Outbound Frames
# =============================================================================


@dataclass(frozen=True, slots=True)
class RequestFrame(_AddressedFrame):
    """Start watching a resource."""

    cluster_id: str
    path: str
    query: str = ""
    user_id: str = ""

    frame_type: ClassVar[FrameType] = FrameType.REQUEST

    def to_dict(self) -> dict[str, str]:
        return _control_dict(self, self.frame_type)


@dataclass(frozen=True, slots=True)
class CloseFrame(_AddressedFrame):
    """Stop watching a resource."""

    cluster_id: str
    path: str
    query: str = ""
    user_id: str = ""

    frame_type: ClassVar[FrameType] = FrameType.CLOSE

    def to_dict(self) -> dict[str, str]:
        return _control_dict(self, self.frame_type)


def _control_dict(frame: RequestFrame | CloseFrame, frame_type: FrameType) -> dict[str, str]:
    return {
        "clusterId": frame.cluster_id,
        "path": frame.path,
        "query": frame.query,
        "userId": frame.user_id,
        "type": frame_type.value,
    }


# =============================================================================
# Inbound Frames
# =============================================================================


@dataclass(frozen=True, slots=True)
class CompleteFrame(_AddressedFrame):
    """The backend finished the watch; carries no payload."""

    cluster_id: str
    path: str
    query: str = ""

    frame_type: ClassVar[FrameType] = FrameType.COMPLETE


@dataclass(frozen=True, slots=True)
class DataFrame(_AddressedFrame):
    """
    One message of a watch stream.

    Attributes:
        data: Serialized payload, or None when the frame itself is the payload.
        binary: ``data`` is base64 encoded.
        raw: Immutable view of the decoded envelope.
    """

    cluster_id: str
    path: str
    query: str = ""
    data: str | None = None
    binary: bool = False
    raw: MappingProxyType = field(
        default_factory=lambda: MappingProxyType({}), repr=False, compare=False
    )

    frame_type: ClassVar[FrameType] = FrameType.DATA

    def parse_payload(self) -> Any:
        """
        Decode the payload carried by this frame.

        Returns:
            The decoded JSON value, or a copy of the envelope when the frame
            carries no ``data`` field.

        Raises:
            FrameDecodeError: If the payload is not valid JSON (or base64).
        """
        if not self.data:
            return dict(self.raw)

        text: str | bytes = self.data
        if self.binary:
            try:
                text = base64.b64decode(self.data, validate=True)
            except (binascii.Error, ValueError) as e:
                raise FrameDecodeError(
                    "Binary payload is not valid base64",
                    key=str(self.key),
                    error=str(e),
                ) from e

        try:
            return json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FrameDecodeError(
                "Failed to parse update data",
                key=str(self.key),
                error=str(e),
            ) from e


@dataclass(frozen=True, slots=True)
class StatusFrame(DataFrame):
    """Upstream connection status for a watch; payload is ``{state, error}``."""

    frame_type: ClassVar[FrameType] = FrameType.STATUS


@dataclass(frozen=True, slots=True)
class UnknownFrame(_AddressedFrame):
    """Addressed frame whose type this client does not handle."""

    cluster_id: str
    path: str
    query: str = ""
    type_name: str = ""


InboundFrame = Union[CompleteFrame, DataFrame, StatusFrame, UnknownFrame]
OutboundFrame = Union[RequestFrame, CloseFrame]


# =============================================================================
# Codec
# =============================================================================


def encode_frame(frame: OutboundFrame) -> str:
    """Serialize an outbound control frame to its wire form."""
    return json.dumps(frame.to_dict(), separators=(",", ":"))


def decode_frame(raw: str | bytes) -> InboundFrame | None:
    """
    Decode one inbound frame.

    Args:
        raw: Text (or UTF-8 bytes) received from the transport.

    Returns:
        The decoded frame, or None if it lacks ``clusterId`` or ``path``
        (such frames are not addressed to any subscription).

    Raises:
        FrameDecodeError: If the envelope is not a JSON object or its
            addressing fields have the wrong type.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameDecodeError("Frame is not valid UTF-8", error=str(e)) from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FrameDecodeError("Frame is not valid JSON", error=str(e)) from e

    if not isinstance(data, dict):
        raise FrameDecodeError(
            "Frame must be a JSON object",
            got=type(data).__name__,
        )

    cluster_id = data.get("clusterId")
    path = data.get("path")
    if not cluster_id or not path:
        return None

    if not isinstance(cluster_id, str) or not isinstance(path, str):
        raise FrameDecodeError(
            "Frame addressing fields must be strings",
            cluster_id_type=type(cluster_id).__name__,
            path_type=type(path).__name__,
        )

    query = data.get("query") or ""
    if not isinstance(query, str):
        raise FrameDecodeError(
            "Frame query must be a string",
            query_type=type(query).__name__,
        )

    # Frames without a type are plain data frames
    frame_type = data.get("type") or FrameType.DATA.value

    if frame_type == FrameType.COMPLETE.value:
        return CompleteFrame(cluster_id, path, query)

    if frame_type in (FrameType.DATA.value, FrameType.STATUS.value):
        payload = data.get("data")
        if payload is not None and not isinstance(payload, str):
            raise FrameDecodeError(
                "Frame data must be a string",
                data_type=type(payload).__name__,
            )
        frame_cls = StatusFrame if frame_type == FrameType.STATUS.value else DataFrame
        return frame_cls(
            cluster_id=cluster_id,
            path=path,
            query=query,
            data=payload,
            binary=bool(data.get("binary", False)),
            raw=MappingProxyType(data),
        )

    return UnknownFrame(cluster_id, path, query, type_name=str(frame_type))


def validate_frame(raw: str | bytes) -> tuple[bool, str | None, InboundFrame | None]:
    """
    Decode a frame without raising.

    Returns:
        Tuple of (is_valid, error_message, frame).
        - is_valid: False only when the frame is malformed
        - error_message: Error string if malformed, None otherwise
        - frame: Decoded frame, or None if malformed or unaddressed
    """
    try:
        return True, None, decode_frame(raw)
    except FrameDecodeError as e:
        return False, e.detail, None


# =============================================================================
# Unknown Type Tracking
# =============================================================================


class UnknownFrameTypeTracker:
    """
    Tracks unknown frame types for monitoring.

    Bounded: once ``max_types`` distinct types are tracked the oldest one is
    evicted. Dict insertion order gives FIFO eviction.
    """

    def __init__(self, max_types: int = MuxConstants.MAX_UNKNOWN_FRAME_TYPES):
        self._max_types = max_types
        self._seen: dict[str, int] = {}
        self._count = 0

    @property
    def count(self) -> int:
        """Total number of unknown frames received."""
        return self._count

    @property
    def types_seen(self) -> list[str]:
        """Unique unknown frame types seen (oldest first)."""
        return list(self._seen.keys())

    def record(self, frame_type: str) -> bool:
        """
        Record an unknown frame type.

        Args:
            frame_type: The unknown type value.

        Returns:
            True if this is the first time the type is seen.
        """
        self._count += 1
        if frame_type in self._seen:
            self._seen[frame_type] += 1
            return False

        if len(self._seen) >= self._max_types:
            oldest = next(iter(self._seen))
            del self._seen[oldest]
            logger.debug(
                "Unknown frame types tracker at capacity, evicting oldest",
                evicted=oldest,
                max_types=self._max_types,
            )
        self._seen[frame_type] = 1
        return True

    def get_metrics(self) -> dict[str, Any]:
        """Get tracker metrics."""
        return {
            "unknown_frame_types_count": self._count,
            "unknown_frame_types_seen": list(self._seen.keys()),
            "type_counts": dict(self._seen),
        }
