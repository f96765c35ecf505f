"""
Kubernetes watch multiplexer.

Many watch subscriptions share one WebSocket connection to the dashboard
backend. Views subscribe with ``use_websocket`` (or directly through
``WebSocketMultiplexer.subscribe``) and release with the returned handle.

STRUCTURE:
- multiplexer.py: WebSocketMultiplexer orchestrator
- hooks.py: use_websocket / WebSocketWatch for views
- urls.py: watch URL helpers
- components/: subscriptions, frames, connection, resilience, metrics
"""

from ws_multiplexer.multiplexer import WebSocketMultiplexer
from ws_multiplexer.hooks import WebSocketWatch, use_websocket
from ws_multiplexer.urls import make_url, split_watch_url
from ws_multiplexer.components.core.dependencies import (
    MultiplexerDependencies,
    get_multiplexer,
    reset_singletons,
    shutdown_multiplexer,
)

__all__ = [
    "WebSocketMultiplexer",
    "WebSocketWatch",
    "use_websocket",
    "make_url",
    "split_watch_url",
    "MultiplexerDependencies",
    "get_multiplexer",
    "reset_singletons",
    "shutdown_multiplexer",
]
