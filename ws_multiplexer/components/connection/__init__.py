"""
Connection management components.

Handles the shared transport: lifecycle, transport adapter, resubscription.
"""

from ws_multiplexer.components.connection.transport import (
    Transport,
    TransportFactory,
    create_websocket_factory,
)
from ws_multiplexer.components.connection.manager import ConnectionManager, ConnectionState
from ws_multiplexer.components.connection.resubscribe import ResubscriptionCoordinator

__all__ = [
    "Transport",
    "TransportFactory",
    "create_websocket_factory",
    "ConnectionManager",
    "ConnectionState",
    "ResubscriptionCoordinator",
]
