"""
Metrics Collector for the Multiplexer.

Counters for frames, dispatch and connection lifecycle. Increments happen on
the event loop; the lock only protects readers on other threads (e.g. an
exporter) from seeing a half-updated snapshot.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from ws_multiplexer.components.core.constants import FrameType


@dataclass
class FrameMetrics:
    """Metrics for frames crossing the transport."""
    requests_sent: int = 0
    closes_sent: int = 0
    send_skipped: int = 0
    received: int = 0
    completes_received: int = 0
    status_received: int = 0


@dataclass
class DispatchMetrics:
    """Metrics for routing inbound frames to listeners."""
    delivered: int = 0
    listener_errors: int = 0
    malformed: int = 0
    payload_errors: int = 0
    oversize: int = 0
    unknown_type: int = 0
    unaddressed: int = 0
    no_listeners: int = 0


@dataclass
class ConnectionMetrics:
    """Metrics for transport lifecycle."""
    attempts: int = 0
    failures: int = 0
    timeouts: int = 0
    opened: int = 0
    closed: int = 0
    reconnects: int = 0
    resubscribed_keys: int = 0


class MetricsCollector:
    """
    Metrics collector for the multiplexer.

    Usage:
        metrics = MetricsCollector()
        metrics.record_frame_sent(FrameType.REQUEST)
        stats = metrics.get_snapshot()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frames = FrameMetrics()
        self._dispatch = DispatchMetrics()
        self._connection = ConnectionMetrics()

    # ==========================================================================
    # Frame Metrics
    # ==========================================================================

    def record_frame_sent(self, frame_type: FrameType) -> None:
        with self._lock:
            if frame_type is FrameType.REQUEST:
                self._frames.requests_sent += 1
            elif frame_type is FrameType.CLOSE:
                self._frames.closes_sent += 1

    def record_send_skipped(self) -> None:
        """A frame was not sent because the connection was not open."""
        with self._lock:
            self._frames.send_skipped += 1

    def record_frame_received(self, frame_type: FrameType | None = None) -> None:
        with self._lock:
            self._frames.received += 1
            if frame_type is FrameType.COMPLETE:
                self._frames.completes_received += 1
            elif frame_type is FrameType.STATUS:
                self._frames.status_received += 1

    # ==========================================================================
    # Dispatch Metrics
    # ==========================================================================

    def record_delivered(self, count: int = 1) -> None:
        with self._lock:
            self._dispatch.delivered += count

    def record_listener_error(self) -> None:
        with self._lock:
            self._dispatch.listener_errors += 1

    def record_discarded(self, reason: str) -> None:
        """
        Record a discarded inbound frame.

        Args:
            reason: One of malformed, payload_errors, oversize, unknown_type,
                unaddressed, no_listeners.
        """
        with self._lock:
            if hasattr(self._dispatch, reason):
                setattr(self._dispatch, reason, getattr(self._dispatch, reason) + 1)

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def record_connect_attempt(self) -> None:
        with self._lock:
            self._connection.attempts += 1

    def record_connect_failure(self, timeout: bool = False) -> None:
        with self._lock:
            self._connection.failures += 1
            if timeout:
                self._connection.timeouts += 1

    def record_connection_opened(self) -> None:
        with self._lock:
            self._connection.opened += 1

    def record_connection_closed(self) -> None:
        with self._lock:
            self._connection.closed += 1

    def record_reconnect(self, resubscribed: int) -> None:
        with self._lock:
            self._connection.reconnects += 1
            self._connection.resubscribed_keys += resubscribed

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """Get a consistent copy of every counter."""
        with self._lock:
            return {
                "frames_requests_sent": self._frames.requests_sent,
                "frames_closes_sent": self._frames.closes_sent,
                "frames_send_skipped": self._frames.send_skipped,
                "frames_received": self._frames.received,
                "frames_completes_received": self._frames.completes_received,
                "frames_status_received": self._frames.status_received,
                "dispatch_delivered": self._dispatch.delivered,
                "dispatch_listener_errors": self._dispatch.listener_errors,
                "dispatch_malformed": self._dispatch.malformed,
                "dispatch_payload_errors": self._dispatch.payload_errors,
                "dispatch_oversize": self._dispatch.oversize,
                "dispatch_unknown_type": self._dispatch.unknown_type,
                "dispatch_unaddressed": self._dispatch.unaddressed,
                "dispatch_no_listeners": self._dispatch.no_listeners,
                "connection_attempts": self._connection.attempts,
                "connection_failures": self._connection.failures,
                "connection_timeouts": self._connection.timeouts,
                "connection_opened": self._connection.opened,
                "connection_closed": self._connection.closed,
                "connection_reconnects": self._connection.reconnects,
                "connection_resubscribed_keys": self._connection.resubscribed_keys,
            }

    def reset(self) -> None:
        """Reset all counters (for testing)."""
        with self._lock:
            self._frames = FrameMetrics()
            self._dispatch = DispatchMetrics()
            self._connection = ConnectionMetrics()
