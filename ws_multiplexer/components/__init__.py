"""
Multiplexer Components.

Organized into domain-specific modules:
- core/          - Foundational components (constants, identity, DI)
- subscriptions/ - Subscription state (keys, registry, debounced teardown)
- events/        - Frame handling (frames, codec, router)
- connection/    - Shared transport (manager, transport adapter, resubscription)
- resilience/    - Reconnect backoff with jitter
- metrics/       - Observability (collector, prometheus)

All public symbols are re-exported here. New code should import from
specific submodules for clarity.
"""

# =============================================================================
# Core Components
# =============================================================================
from ws_multiplexer.components.core.constants import (
    FrameType,
    WSCloseCode,
    MuxConstants,
    MULTIPLEXER_ENDPOINT,
)
from ws_multiplexer.components.core.identity import IdentityProvider, resolve_user_id
from ws_multiplexer.components.core.dependencies import (
    MultiplexerDependencies,
    get_metrics_collector,
    get_multiplexer,
    reset_singletons,
)

# =============================================================================
# Subscriptions
# =============================================================================
from ws_multiplexer.components.subscriptions.keys import (
    SubscriptionKey,
    SubscriptionRecord,
    create_key,
)
from ws_multiplexer.components.subscriptions.registry import SubscriptionRegistry
from ws_multiplexer.components.subscriptions.debounce import DebouncedUnsubscribeScheduler

# =============================================================================
# Events
# =============================================================================
from ws_multiplexer.components.events.frames import (
    RequestFrame,
    CloseFrame,
    CompleteFrame,
    DataFrame,
    StatusFrame,
    UnknownFrame,
    encode_frame,
    decode_frame,
    validate_frame,
)
from ws_multiplexer.components.events.router import MessageRouter, RoutingResult

# =============================================================================
# Connection
# =============================================================================
from ws_multiplexer.components.connection.transport import (
    Transport,
    TransportFactory,
    create_websocket_factory,
)
from ws_multiplexer.components.connection.manager import ConnectionManager, ConnectionState
from ws_multiplexer.components.connection.resubscribe import ResubscriptionCoordinator

# =============================================================================
# Resilience
# =============================================================================
from ws_multiplexer.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_reconnect_retry_config,
)

# =============================================================================
# Metrics
# =============================================================================
from ws_multiplexer.components.metrics.collector import MetricsCollector
from ws_multiplexer.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    # Core
    "FrameType",
    "WSCloseCode",
    "MuxConstants",
    "MULTIPLEXER_ENDPOINT",
    "IdentityProvider",
    "resolve_user_id",
    "MultiplexerDependencies",
    "get_metrics_collector",
    "get_multiplexer",
    "reset_singletons",
    # Subscriptions
    "SubscriptionKey",
    "SubscriptionRecord",
    "create_key",
    "SubscriptionRegistry",
    "DebouncedUnsubscribeScheduler",
    # Events
    "RequestFrame",
    "CloseFrame",
    "CompleteFrame",
    "DataFrame",
    "StatusFrame",
    "UnknownFrame",
    "encode_frame",
    "decode_frame",
    "validate_frame",
    "MessageRouter",
    "RoutingResult",
    # Connection
    "Transport",
    "TransportFactory",
    "create_websocket_factory",
    "ConnectionManager",
    "ConnectionState",
    "ResubscriptionCoordinator",
    # Resilience
    "RetryConfig",
    "calculate_delay_with_jitter",
    "create_reconnect_retry_config",
    # Metrics
    "MetricsCollector",
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
