"""
Watch handles for views.

``use_websocket`` is what a view calls to follow a resource: it subscribes in
the background and hands back a ``WebSocketWatch`` whose ``close()`` releases
the subscription. The watch never lets a callback error reach the shared
connection; errors go to the log and to ``on_error``.

Usage:
    watch = use_websocket(
        lambda: make_url(["/api/v1/pods"], {"watch": 1}),
        on_message=handle_update,
        cluster="minikube",
    )
    ...
    watch.close()

    # or scoped:
    async with use_websocket(url, on_message=handle_update) as watch:
        ...
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Union

from shared.config.logging import get_logger
from shared.config.settings import get_settings
from shared.utils.exceptions import SubscriptionConnectError
from ws_multiplexer.components.core.dependencies import get_multiplexer
from ws_multiplexer.multiplexer import Disposer, WebSocketMultiplexer
from ws_multiplexer.urls import split_watch_url

logger = get_logger(__name__)

UrlSource = Union[str, Callable[[], str]]
ErrorCallback = Callable[[Exception], None]


class WebSocketWatch:
    """
    Handle of one view's watch.

    The subscription starts in the background; ``close()`` may be called at
    any time, including before the subscription has landed, in which case it
    is released as soon as it does.
    """

    def __init__(
        self,
        multiplexer: WebSocketMultiplexer,
        cluster: str,
        path: str,
        query: str,
        on_message: Callable[[Any], None],
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._multiplexer = multiplexer
        self.cluster = cluster
        self.path = path
        self.query = query
        self._on_message = on_message
        self._on_error = on_error
        self._task: asyncio.Task[None] | None = None
        self._dispose: Disposer | None = None
        self._closed = False

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def active(self) -> bool:
        """Whether the subscription is registered and not yet closed."""
        return self._dispose is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start subscribing in the background (requires a running loop)."""
        if self._task is not None or self._closed:
            return
        self._task = asyncio.get_running_loop().create_task(self._subscribe())

    async def wait_started(self) -> None:
        """Wait until the subscription attempt finished, successfully or not."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _subscribe(self) -> None:
        try:
            dispose = await self._multiplexer.subscribe(
                self.cluster, self.path, self.query, self._deliver
            )
        except SubscriptionConnectError as e:
            logger.error("WebSocket connection failed", key=str(e.key), error=e.detail)
            dispose = e.disposer
            self._report(e)

        if self._closed:
            dispose()
        else:
            self._dispose = dispose

    def _deliver(self, raw: Any) -> None:
        """Listener registered with the multiplexer; one per watch."""
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
        except json.JSONDecodeError as e:
            logger.error("Failed to parse WebSocket message", path=self.path, error=str(e))
            self._report(e)
            return

        try:
            self._on_message(data)
        except Exception as e:
            logger.error(
                "Failed to process WebSocket message",
                path=self.path,
                error=str(e),
                exc_info=True,
            )
            self._report(e)

    def _report(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error("Error callback failed", path=self.path, error=str(e), exc_info=True)

    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._dispose is not None:
            self._dispose()
            self._dispose = None

    async def __aenter__(self) -> WebSocketWatch:
        await self.wait_started()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


def use_websocket(
    url: UrlSource,
    on_message: Callable[[Any], None],
    cluster: str = "",
    enabled: bool = True,
    on_error: ErrorCallback | None = None,
    multiplexer: WebSocketMultiplexer | None = None,
) -> WebSocketWatch:
    """
    Follow a resource over the shared multiplexer connection.

    Must be called from a running event loop when ``enabled``.

    Args:
        url: Watch URL, or a zero-argument callable producing it. Resolved
            against the configured base WS URL.
        on_message: Called with each update; string messages are JSON-decoded
            first.
        cluster: Cluster identifier to watch.
        enabled: When False nothing is subscribed.
        on_error: Called with connect, decode and callback errors.
        multiplexer: Multiplexer to use (default: the process-wide one).

    Returns:
        The watch handle; inactive when disabled or the URL is empty.
    """
    resolved = (url() if callable(url) else url) if enabled else ""
    mux = multiplexer or get_multiplexer()

    if not resolved:
        watch = WebSocketWatch(mux, cluster, "", "", on_message, on_error)
        watch.close()
        return watch

    path, query = split_watch_url(resolved, get_settings().mux_base_ws_url)
    watch = WebSocketWatch(mux, cluster, path, query, on_message, on_error)
    watch.start()
    return watch
