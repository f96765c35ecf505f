"""
Resilience components.

Reconnect backoff with jitter.
"""

from ws_multiplexer.components.resilience.retry import (
    ReconnectBackoff,
    RetryConfig,
    calculate_delay_with_jitter,
    should_retry,
    create_reconnect_retry_config,
)

__all__ = [
    "ReconnectBackoff",
    "RetryConfig",
    "calculate_delay_with_jitter",
    "should_retry",
    "create_reconnect_retry_config",
]
