"""
WebSocket Multiplexer.

Thin orchestrator that composes the subscription, connection and routing
components into one object:
- SubscriptionRegistry: listeners and per-key subscription state
- DebouncedUnsubscribeScheduler: delayed teardown of abandoned keys
- ConnectionManager: the single shared transport
- ResubscriptionCoordinator: replays subscriptions after a reconnect
- MessageRouter: fans inbound frames out to listeners

Usage:
    mux = WebSocketMultiplexer()
    dispose = await mux.subscribe("minikube", "/api/v1/pods", "watch=1", on_update)
    ...
    dispose()
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable

from shared.config.logging import get_logger
from shared.utils.exceptions import ConnectionFailedError, SubscriptionConnectError
from ws_multiplexer.components.connection.manager import ConnectionManager, ConnectionState
from ws_multiplexer.components.connection.resubscribe import ResubscriptionCoordinator
from ws_multiplexer.components.connection.transport import Transport
from ws_multiplexer.components.core.dependencies import MultiplexerDependencies
from ws_multiplexer.components.core.identity import resolve_user_id
from ws_multiplexer.components.events.frames import CloseFrame, OutboundFrame, RequestFrame
from ws_multiplexer.components.events.router import MessageRouter
from ws_multiplexer.components.resilience.retry import create_reconnect_retry_config
from ws_multiplexer.components.subscriptions.debounce import DebouncedUnsubscribeScheduler
from ws_multiplexer.components.subscriptions.keys import SubscriptionKey, create_key
from ws_multiplexer.components.subscriptions.registry import Listener, SubscriptionRegistry

logger = get_logger(__name__)

Disposer = Callable[[], None]


class WebSocketMultiplexer:
    """
    Many independent watches over one shared transport connection.

    Configuration from settings (overridable per instance):
    - mux_base_ws_url / mux_endpoint: where the transport connects
    - mux_connection_timeout: connect attempt bound (default: 30s)
    - mux_unsubscribe_debounce: teardown delay (default: 100ms)
    - mux_auto_reconnect: background reconnect after a drop (default: off)
    """

    def __init__(
        self,
        url: str | None = None,
        deps: MultiplexerDependencies | None = None,
        connection_timeout: float | None = None,
        unsubscribe_debounce: float | None = None,
        auto_reconnect: bool | None = None,
    ) -> None:
        """
        Args:
            url: Multiplexer endpoint (default: from settings).
            deps: Injected collaborators (default: settings and singletons).
            connection_timeout: Override of mux_connection_timeout.
            unsubscribe_debounce: Override of mux_unsubscribe_debounce.
            auto_reconnect: Override of mux_auto_reconnect.
        """
        deps = deps or MultiplexerDependencies()
        config = deps.settings

        self._identity = deps.identity
        self._metrics = deps.metrics

        self._registry = SubscriptionRegistry()
        self._router = MessageRouter(
            self._registry,
            metrics=self._metrics,
            max_frame_size=config.mux_max_frame_size,
        )
        self._scheduler = DebouncedUnsubscribeScheduler(
            delay=(
                config.mux_unsubscribe_debounce
                if unsubscribe_debounce is None
                else unsubscribe_debounce
            ),
            on_expire=self._teardown,
        )
        self._resubscriber = ResubscriptionCoordinator(
            self._registry,
            send=self._send,
            user_id=self._user_id,
        )
        self._connection = ConnectionManager(
            url or config.multiplexer_url,
            deps.transport_factory,
            on_message=self._router.route,
            on_reconnect=self._resubscriber.resubscribe,
            on_connection_lost=self._registry.reset_connection_state,
            subscription_count=lambda: self._registry.active_count,
            connection_timeout=(
                config.mux_connection_timeout
                if connection_timeout is None
                else connection_timeout
            ),
            auto_reconnect=config.mux_auto_reconnect if auto_reconnect is None else auto_reconnect,
            retry_config=create_reconnect_retry_config(
                initial_delay=config.mux_reconnect_initial_delay,
                max_delay=config.mux_reconnect_max_delay,
                max_attempts=config.mux_reconnect_max_attempts,
            ),
            metrics=self._metrics,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def url(self) -> str:
        return self._connection.url

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_open

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def connection(self) -> ConnectionManager:
        return self._connection

    @property
    def active_subscriptions(self) -> int:
        """Number of subscription records, including ones pending teardown."""
        return self._registry.active_count

    # =========================================================================
    # Connection
    # =========================================================================

    async def connect(self) -> Transport:
        """
        Ensure the shared transport is open.

        Raises:
            ConnectionFailedError: The transport could not be opened
                (ConnectionTimeoutError when the attempt timed out).
        """
        return await self._connection.connect()

    async def close(self) -> None:
        """
        Close the shared transport.

        Keys pending teardown are dropped. Keys that still have listeners
        are kept and requested again by the next ``connect()``.
        """
        for key in list(self._registry.records):
            if not self._registry.has_listeners(key):
                self._scheduler.cancel(key)
                self._registry.remove_record(key)
                self._registry.forget_requested(key)
        await self._connection.close()

    # =========================================================================
    # Subscribe / Unsubscribe
    # =========================================================================

    async def subscribe(
        self,
        cluster_id: str,
        path: str,
        query: str | None,
        on_message: Listener,
    ) -> Disposer:
        """
        Subscribe to a watch, sharing the transport with every other watch.

        Args:
            cluster_id: Cluster identifier.
            path: API resource path.
            query: Serialized query parameters.
            on_message: Called with each decoded update for the watch.

        Returns:
            Idempotent disposer that releases this subscription.

        Raises:
            SubscriptionConnectError: The transport could not be opened. The
                registration is kept and restored after the next successful
                connection; the error carries its disposer.
        """
        key = create_key(cluster_id, path, query)

        if self._scheduler.cancel(key):
            logger.debug("Pending teardown cancelled", key=str(key))

        if self._registry.add_listener(key, on_message):
            logger.debug("Subscription created", key=str(key))

        disposer = self._make_disposer(key, on_message)

        try:
            await self._connection.connect()
        except ConnectionFailedError as e:
            raise SubscriptionConnectError(key, disposer, reason=e.detail) from e
        except asyncio.CancelledError:
            disposer()
            raise

        # Listeners may all have left while the connection was opening
        if self._registry.has_listeners(key) and not self._registry.is_requested(key):
            self._request(key)

        return disposer

    def unsubscribe(
        self,
        cluster_id: str,
        path: str,
        query: str | None,
        on_message: Listener,
    ) -> None:
        """
        Remove a listener; the watch is closed once no listener reclaims it
        within the debounce delay.

        Unknown listeners are ignored, so calling this twice is harmless.
        """
        self._release(create_key(cluster_id, path, query), on_message)

    def _make_disposer(self, key: SubscriptionKey, listener: Listener) -> Disposer:
        disposed = False

        def dispose() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            self._release(key, listener)

        return dispose

    def _release(self, key: SubscriptionKey, listener: Listener) -> None:
        if not self._registry.has_listener(key, listener):
            return

        self._scheduler.cancel(key)
        self._registry.remove_listener(key, listener)
        if self._registry.has_listeners(key):
            return

        try:
            self._scheduler.schedule(key)
        except RuntimeError:
            # No running loop to debounce on
            logger.debug("No event loop, tearing down immediately", key=str(key))
            self._teardown(key)

    def _teardown(self, key: SubscriptionKey) -> None:
        """Close a key nobody reclaimed during the debounce delay."""
        if self._registry.has_listeners(key):
            return

        record = self._registry.remove_record(key)
        was_requested = self._registry.forget_requested(key)
        if record is None:
            return

        if was_requested and self._connection.is_open:
            self._send(CloseFrame(record.cluster_id, record.path, record.query, self._user_id()))
        logger.debug("Subscription closed", key=str(key), close_sent=was_requested)

    # =========================================================================
    # Frames
    # =========================================================================

    def _request(self, key: SubscriptionKey) -> None:
        frame = RequestFrame(key.cluster_id, key.path, key.query, self._user_id())
        if self._send(frame):
            self._registry.mark_requested(key)

    def _send(self, frame: OutboundFrame) -> bool:
        return self._connection.send(frame)

    def _user_id(self) -> str:
        return resolve_user_id(self._identity)

    # =========================================================================
    # Queries
    # =========================================================================

    def is_completed(self, cluster_id: str, path: str, query: str | None = "") -> bool:
        """Whether the backend ended this watch on the current connection."""
        return self._registry.is_completed(create_key(cluster_id, path, query))

    def get_status(
        self,
        cluster_id: str,
        path: str,
        query: str | None = "",
    ) -> dict[str, Any] | None:
        """Last upstream status reported for a watch, as ``{state, error}``."""
        return self._registry.get_status(create_key(cluster_id, path, query))

    def get_stats(self) -> dict[str, Any]:
        """Get multiplexer statistics (input of the Prometheus formatter)."""
        return {
            "connection": self._connection.get_stats(),
            "subscriptions": self._registry.get_stats(),
            "debounce": {
                "pending": self._scheduler.pending_count,
                "delay_seconds": self._scheduler.delay,
            },
            "metrics": self._metrics.get_snapshot(),
            "unknown_frame_types": self._router.unknown_types.get_metrics(),
        }
