"""
Message Router - Routes inbound multiplexer frames to subscription listeners.

Usage:
    router = MessageRouter(registry, metrics)
    result = router.route(raw_frame)

Routing rules:
- malformed envelope or oversize frame: logged and discarded
- frame without clusterId/path: silently discarded
- COMPLETE: key marked completed, nothing dispatched
- STATUS: status remembered for the key, then dispatched like DATA
- DATA (or no type): payload decoded and dispatched to every listener
- REQUEST/CLOSE echoed back, or unknown types: logged and ignored

A listener that raises never prevents delivery to the other listeners and
never reaches the reader loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from shared.config.logging import get_logger
from shared.utils.exceptions import FrameDecodeError
from ws_multiplexer.components.core.constants import FrameType, MuxConstants
from ws_multiplexer.components.events.frames import (
    CompleteFrame,
    DataFrame,
    StatusFrame,
    UnknownFrame,
    UnknownFrameTypeTracker,
    validate_frame,
)
from ws_multiplexer.components.metrics.collector import MetricsCollector
from ws_multiplexer.components.subscriptions.keys import SubscriptionKey
from ws_multiplexer.components.subscriptions.registry import SubscriptionRegistry

logger = get_logger(__name__)


@dataclass
class RoutingResult:
    """Result of routing one inbound frame."""

    key: SubscriptionKey | None = None
    frame_type: FrameType | None = None
    delivered: int = 0
    failed: int = 0
    discarded_reason: str | None = None

    @property
    def discarded(self) -> bool:
        """Whether the frame was dropped before reaching any listener."""
        return self.discarded_reason is not None


class MessageRouter:
    """Decodes inbound frames and fans them out by subscription key."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        metrics: MetricsCollector | None = None,
        max_frame_size: int = MuxConstants.MAX_FRAME_SIZE,
        unknown_types: UnknownFrameTypeTracker | None = None,
    ) -> None:
        """
        Args:
            registry: Registry holding listeners and per-key state.
            metrics: Metrics collector (a private one if None).
            max_frame_size: Largest accepted frame in characters, 0 for no limit.
            unknown_types: Tracker for first-occurrence logging of unknown types.
        """
        self._registry = registry
        self._metrics = metrics or MetricsCollector()
        self._max_frame_size = max_frame_size
        self._unknown_types = unknown_types or UnknownFrameTypeTracker()

    @property
    def unknown_types(self) -> UnknownFrameTypeTracker:
        return self._unknown_types

    def route(self, raw: str | bytes) -> RoutingResult:
        """
        Route one inbound frame.

        Args:
            raw: Frame exactly as received from the transport.

        Returns:
            RoutingResult describing what happened to the frame.
        """
        if self._max_frame_size and len(raw) > self._max_frame_size:
            logger.warning(
                "Inbound frame too large, discarded",
                size=len(raw),
                max_size=self._max_frame_size,
            )
            return self._discard(RoutingResult(), "oversize")

        is_valid, error, frame = validate_frame(raw)
        if not is_valid:
            logger.warning("Malformed inbound frame discarded", error=error)
            return self._discard(RoutingResult(), "malformed")

        if frame is None:
            return self._discard(RoutingResult(), "unaddressed")

        key = frame.key

        if isinstance(frame, UnknownFrame):
            self._metrics.record_frame_received()
            result = RoutingResult(key=key)
            if self._unknown_types.record(frame.type_name):
                logger.warning(
                    "Unknown frame type received",
                    frame_type=frame.type_name,
                    key=str(key),
                )
            else:
                logger.debug("Unknown frame type ignored", frame_type=frame.type_name)
            return self._discard(result, "unknown_type")

        result = RoutingResult(key=key, frame_type=frame.frame_type)
        self._metrics.record_frame_received(frame.frame_type)

        if isinstance(frame, CompleteFrame):
            if self._registry.mark_completed(key):
                logger.debug("Watch completed", key=str(key))
            return result

        try:
            payload = frame.parse_payload()
        except FrameDecodeError as e:
            logger.warning("Failed to parse update data", key=str(key), error=e.detail)
            return self._discard(result, "payload_errors")

        if not isinstance(payload, dict):
            logger.debug(
                "Non-object payload discarded",
                key=str(key),
                payload_type=type(payload).__name__,
            )
            return self._discard(result, "payload_errors")

        if isinstance(frame, StatusFrame):
            self._record_status(key, payload)

        return self._dispatch(result, key, payload)

    def _record_status(self, key: SubscriptionKey, payload: dict[str, Any]) -> None:
        status = {"state": payload.get("state"), "error": payload.get("error")}
        self._registry.set_status(key, status)
        if status["error"]:
            logger.warning(
                "Upstream watch error",
                key=str(key),
                state=status["state"],
                error=status["error"],
            )
        else:
            logger.debug("Upstream watch status", key=str(key), state=status["state"])

    def _dispatch(
        self,
        result: RoutingResult,
        key: SubscriptionKey,
        payload: dict[str, Any],
    ) -> RoutingResult:
        listeners = self._registry.get_listeners(key)
        if not listeners:
            return self._discard(result, "no_listeners")

        for listener in listeners:
            try:
                listener(payload)
                result.delivered += 1
            except Exception as e:
                result.failed += 1
                self._metrics.record_listener_error()
                logger.error(
                    "Failed to process multiplexer message",
                    key=str(key),
                    error=str(e),
                    exc_info=True,
                )

        if result.delivered:
            self._metrics.record_delivered(result.delivered)
        return result

    def _discard(self, result: RoutingResult, reason: str) -> RoutingResult:
        result.discarded_reason = reason
        self._metrics.record_discarded(reason)
        return result
