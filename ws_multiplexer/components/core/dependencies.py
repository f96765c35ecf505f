"""
Dependencies for the Multiplexer.

Centralizes construction of the multiplexer's collaborators for better
testability and configuration. Shared instances are created as thread-safe
singletons; everything can be replaced through MultiplexerDependencies.
"""

from __future__ import annotations

import threading
from functools import lru_cache
from typing import TYPE_CHECKING

from shared.config.logging import get_logger
from shared.config.settings import Settings, get_settings
from ws_multiplexer.components.connection.transport import (
    TransportFactory,
    create_websocket_factory,
)
from ws_multiplexer.components.core.identity import IdentityProvider, settings_identity
from ws_multiplexer.components.metrics.collector import MetricsCollector

if TYPE_CHECKING:
    from ws_multiplexer.multiplexer import WebSocketMultiplexer

logger = get_logger(__name__)


# =============================================================================
# Singleton Instances
# =============================================================================

_metrics_collector: MetricsCollector | None = None
_multiplexer: WebSocketMultiplexer | None = None
_singleton_lock = threading.Lock()


# =============================================================================
# Component Factories (Thread-safe singletons)
# =============================================================================


def get_metrics_collector() -> MetricsCollector:
    """
    Get singleton MetricsCollector instance.

    Thread-safe with double-check locking.
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _singleton_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


@lru_cache(maxsize=1)
def get_transport_factory() -> TransportFactory:
    """Get cached websocket transport factory configured from settings."""
    config = get_settings()
    return create_websocket_factory(
        close_timeout=config.mux_close_timeout,
        max_frame_size=config.mux_max_frame_size,
    )


def check_settings(config: Settings) -> list[str]:
    """
    Log configuration problems before the default multiplexer is built.

    Returns:
        The problems found (empty when the settings are valid).

    Raises:
        RuntimeError: In production, when any problem is found.
    """
    errors = config.validate_settings()
    for error in errors:
        logger.error("Configuration error: %s", error)
    if errors and config.environment == "production":
        raise RuntimeError(f"Multiplexer configuration errors: {'; '.join(errors)}")
    return errors


def get_multiplexer() -> WebSocketMultiplexer:
    """
    Get the process-wide default multiplexer.

    Thread-safe with double-check locking. Views that do not pass their own
    instance share this one, and with it a single transport connection.
    """
    global _multiplexer
    if _multiplexer is None:
        with _singleton_lock:
            if _multiplexer is None:
                from ws_multiplexer.multiplexer import WebSocketMultiplexer

                check_settings(get_settings())
                _multiplexer = WebSocketMultiplexer()
    return _multiplexer


# =============================================================================
# Multiplexer Dependencies
# =============================================================================


class MultiplexerDependencies:
    """
    Container for WebSocketMultiplexer dependencies.

    Usage:
        mux = WebSocketMultiplexer()

        # For testing:
        deps = MultiplexerDependencies(
            transport_factory=fake_factory,
            metrics=MetricsCollector(),
        )
        mux = WebSocketMultiplexer(deps=deps)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport_factory: TransportFactory | None = None,
        identity: IdentityProvider | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize dependencies.

        If None, uses settings and singleton instances.

        Args:
            settings: Optional custom Settings.
            transport_factory: Optional transport factory (default: websockets).
            identity: Optional identity provider (default: MUX_USER_ID).
            metrics: Optional custom MetricsCollector.
        """
        self.settings = settings or get_settings()
        self.transport_factory = transport_factory or get_transport_factory()
        self.identity = identity or settings_identity
        self.metrics = metrics or get_metrics_collector()


# =============================================================================
# Cleanup Functions (for testing)
# =============================================================================


def reset_singletons() -> None:
    """
    Reset all singleton instances.

    Useful for testing to ensure clean state between tests. The default
    multiplexer is dropped, not closed; use ``shutdown_multiplexer`` to close
    its connection first.
    """
    global _metrics_collector, _multiplexer

    with _singleton_lock:
        _metrics_collector = None
        _multiplexer = None

    get_transport_factory.cache_clear()


async def shutdown_multiplexer() -> None:
    """Close the default multiplexer (if one was created) and reset singletons."""
    multiplexer = _multiplexer
    if multiplexer is not None:
        await multiplexer.close()
    reset_singletons()
