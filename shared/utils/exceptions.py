"""
Centralized exceptions for consistent error handling.

Usage:
    from shared.utils.exceptions import ConnectionFailedError, ConnectionTimeoutError

    raise ConnectionTimeoutError(url, timeout=30.0)
    raise ConnectionFailedError(url, reason="connection refused")
"""

from __future__ import annotations

from typing import Any, Callable, TYPE_CHECKING

from shared.config.logging import get_logger

if TYPE_CHECKING:
    from ws_multiplexer.components.subscriptions.keys import SubscriptionKey

logger = get_logger(__name__)


class MultiplexerError(Exception):
    """
    Base exception with automatic logging.

    All multiplexer exceptions inherit from this class
    to ensure consistent logging of their context.
    """

    def __init__(
        self,
        detail: str,
        log_level: str = "warning",
        **log_context: Any,
    ):
        self.detail = detail
        self.context = log_context

        # Log the error with context
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, error_type=type(self).__name__, **log_context)

        super().__init__(detail)


# =============================================================================
# Connection Errors
# =============================================================================


class ConnectionFailedError(MultiplexerError):
    """
    The transport could not be opened.

    Usage:
        raise ConnectionFailedError(url, reason=str(exc))
    """

    def __init__(self, url: str, reason: str | None = None, **log_context: Any):
        self.url = url
        if reason:
            detail = f"WebSocket connection failed: {reason}"
        else:
            detail = "WebSocket connection failed"

        super().__init__(detail, log_level="warning", url=url, reason=reason, **log_context)


class ConnectionTimeoutError(ConnectionFailedError):
    """Transport did not open within the connection timeout."""

    def __init__(self, url: str, timeout: float, **log_context: Any):
        self.timeout = timeout
        super().__init__(
            url,
            reason=f"timed out after {timeout:g}s",
            timeout=timeout,
            **log_context,
        )


# =============================================================================
# Subscription Errors
# =============================================================================


class SubscriptionConnectError(MultiplexerError):
    """
    A subscription was registered but the transport could not be reached.

    The registration is kept and will be requested again after the next
    successful connection. ``disposer`` releases it like the disposer a
    successful ``subscribe`` returns.

    Usage:
        try:
            dispose = await mux.subscribe(cluster, path, query, on_message)
        except SubscriptionConnectError as e:
            dispose = e.disposer
    """

    def __init__(
        self,
        key: "SubscriptionKey",
        disposer: Callable[[], None],
        reason: str | None = None,
        **log_context: Any,
    ):
        self.key = key
        self.disposer = disposer
        detail = f"Subscription {key} is waiting for a connection"
        if reason:
            detail = f"{detail}: {reason}"

        super().__init__(detail, log_level="warning", key=str(key), **log_context)


# =============================================================================
# Frame Errors
# =============================================================================


class FrameDecodeError(MultiplexerError):
    """
    An inbound frame or its payload could not be decoded.

    Raised inside the frame codec only; the router turns it into a
    discard-and-log action so it never reaches subscribers.
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="debug", **log_context)
