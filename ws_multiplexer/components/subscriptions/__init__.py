"""
Subscription state components.

Keys, the listener registry, and debounced teardown.
"""

from ws_multiplexer.components.subscriptions.keys import (
    SubscriptionKey,
    SubscriptionRecord,
    create_key,
)
from ws_multiplexer.components.subscriptions.registry import Listener, SubscriptionRegistry
from ws_multiplexer.components.subscriptions.debounce import DebouncedUnsubscribeScheduler

__all__ = [
    "SubscriptionKey",
    "SubscriptionRecord",
    "create_key",
    "Listener",
    "SubscriptionRegistry",
    "DebouncedUnsubscribeScheduler",
]
