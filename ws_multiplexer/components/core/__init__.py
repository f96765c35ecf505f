"""
Core multiplexer components.

Foundational components: constants, caller identity, and dependency injection.
"""

from ws_multiplexer.components.core.constants import (
    FrameType,
    WSCloseCode,
    MuxConstants,
    MULTIPLEXER_ENDPOINT,
)
from ws_multiplexer.components.core.identity import (
    IdentityProvider,
    settings_identity,
    resolve_user_id,
)
from ws_multiplexer.components.core.dependencies import (
    MultiplexerDependencies,
    check_settings,
    get_metrics_collector,
    get_transport_factory,
    get_multiplexer,
    reset_singletons,
    shutdown_multiplexer,
)

__all__ = [
    # Constants
    "FrameType",
    "WSCloseCode",
    "MuxConstants",
    "MULTIPLEXER_ENDPOINT",
    # Identity
    "IdentityProvider",
    "settings_identity",
    "resolve_user_id",
    # Dependencies
    "MultiplexerDependencies",
    "check_settings",
    "get_metrics_collector",
    "get_transport_factory",
    "get_multiplexer",
    "reset_singletons",
    "shutdown_multiplexer",
]
