"""
Connection Manager.

Owns the single shared transport of a multiplexer. Concurrent callers of
``connect()`` share one in-flight attempt; the attempt is bounded by the
connection timeout and, when it follows a drop that left subscriptions
active, replays those subscriptions before any caller is resumed.

State machine:
    ABSENT -> CONNECTING -> OPEN -> CLOSED_PENDING_RECONNECT -> CONNECTING ...

Usage:
    manager = ConnectionManager(url, factory, on_message=router.route)
    await manager.connect()
    manager.send(RequestFrame(cluster_id, path, query, user_id))
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable

from shared.config.logging import audit_connection_event, get_logger
from shared.utils.exceptions import ConnectionFailedError, ConnectionTimeoutError
from ws_multiplexer.components.connection.transport import Transport, TransportFactory
from ws_multiplexer.components.core.constants import MuxConstants, WSCloseCode
from ws_multiplexer.components.events.frames import OutboundFrame, encode_frame
from ws_multiplexer.components.metrics.collector import MetricsCollector
from ws_multiplexer.components.resilience.retry import (
    ReconnectBackoff,
    RetryConfig,
    create_reconnect_retry_config,
)

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle state of the shared transport."""

    ABSENT = "absent"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_PENDING_RECONNECT = "closed_pending_reconnect"


class ConnectionManager:
    """
    Single shared transport with de-duplicated connection attempts.

    Callbacks (all synchronous, called on the event loop):
    - on_message: every inbound frame, in arrival order
    - on_reconnect: replay subscriptions on a new connection; returns the
      number of keys replayed
    - on_connection_lost: forget per-connection subscription state
    - subscription_count: number of subscription records still active
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory,
        on_message: Callable[[str | bytes], Any] | None = None,
        on_reconnect: Callable[[], int] | None = None,
        on_connection_lost: Callable[[], None] | None = None,
        subscription_count: Callable[[], int] | None = None,
        connection_timeout: float = MuxConstants.CONNECTION_TIMEOUT,
        auto_reconnect: bool = False,
        retry_config: RetryConfig | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        if connection_timeout <= 0:
            raise ValueError("connection_timeout must be positive")

        self._url = url
        self._factory = transport_factory
        self._on_message = on_message
        self._on_reconnect = on_reconnect
        self._on_connection_lost = on_connection_lost
        self._subscription_count = subscription_count or (lambda: 0)
        self._timeout = connection_timeout
        self._auto_reconnect = auto_reconnect
        self._retry_config = retry_config or create_reconnect_retry_config()
        self._metrics = metrics or MetricsCollector()

        self._state = ConnectionState.ABSENT
        self._transport: Transport | None = None
        self._attempt: asyncio.Task[Transport] | None = None
        self._attempt_count = 0
        self._reconnect_pending = False

        self._outbound: asyncio.Queue[str] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN and self._transport is not None

    @property
    def is_connecting(self) -> bool:
        return self._attempt is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_pending

    # =========================================================================
    # Connect
    # =========================================================================

    async def connect(self) -> Transport:
        """
        Return the open transport, opening it if needed.

        Callers arriving while an attempt is in flight await that same
        attempt. Cancelling one caller does not cancel the attempt for the
        others.

        Raises:
            ConnectionTimeoutError: The attempt exceeded the connection timeout.
            ConnectionFailedError: The transport could not be opened, or
                ``close()`` abandoned the attempt.
        """
        if self.is_open:
            return self._transport  # type: ignore[return-value]

        if self._attempt is None:
            self._state = ConnectionState.CONNECTING
            self._attempt = asyncio.get_running_loop().create_task(self._open())
            self._attempt.add_done_callback(_retrieve_exception)

        attempt = self._attempt
        try:
            return await asyncio.shield(attempt)
        except asyncio.CancelledError:
            caller = asyncio.current_task()
            if attempt.cancelled() and (caller is None or caller.cancelling() == 0):
                # Only close() cancels the attempt itself
                raise ConnectionFailedError(self._url, reason="closed by client") from None
            raise

    async def _open(self) -> Transport:
        self._attempt_count += 1
        attempt = self._attempt_count
        self._metrics.record_connect_attempt()
        logger.debug("Opening multiplexer connection", url=self._url, attempt=attempt)

        try:
            try:
                transport = await asyncio.wait_for(self._factory(self._url), timeout=self._timeout)
            except asyncio.TimeoutError:
                self._connect_failed(attempt, f"timeout after {self._timeout:g}s", timeout=True)
                raise ConnectionTimeoutError(self._url, timeout=self._timeout) from None
            except asyncio.CancelledError:
                logger.debug("Connection attempt cancelled", url=self._url, attempt=attempt)
                raise
            except Exception as e:
                self._connect_failed(attempt, str(e))
                raise ConnectionFailedError(self._url, reason=str(e), attempt=attempt) from e

            reconnecting = self._reconnect_pending
            self._install(transport)
            audit_connection_event(
                "CONNECT",
                self._url,
                attempt=attempt,
                active_subscriptions=self._subscription_count(),
                reconnect=reconnecting,
            )

            # Replay runs before the attempt resolves so that every caller
            # resumes against a connection whose subscriptions are restored
            if reconnecting:
                self._reconnect_pending = False
                replayed = self._on_reconnect() if self._on_reconnect else 0
                self._metrics.record_reconnect(replayed)
                logger.info(
                    "Multiplexer reconnected",
                    url=self._url,
                    attempt=attempt,
                    resubscribed=replayed,
                )
            return transport
        finally:
            if self._attempt is asyncio.current_task():
                self._attempt = None

    def _connect_failed(self, attempt: int, reason: str, timeout: bool = False) -> None:
        self._metrics.record_connect_failure(timeout=timeout)
        if self._subscription_count() > 0:
            self._reconnect_pending = True
            self._state = ConnectionState.CLOSED_PENDING_RECONNECT
        else:
            self._state = ConnectionState.ABSENT
        audit_connection_event(
            "CONNECT_FAILED",
            self._url,
            attempt=attempt,
            reason=reason,
        )

    def _install(self, transport: Transport) -> None:
        loop = asyncio.get_running_loop()
        self._transport = transport
        self._state = ConnectionState.OPEN
        self._outbound = asyncio.Queue()
        self._reader_task = loop.create_task(self._read_loop(transport))
        self._writer_task = loop.create_task(self._write_loop(transport, self._outbound))
        self._metrics.record_connection_opened()

    # =========================================================================
    # Send
    # =========================================================================

    def send(self, frame: OutboundFrame) -> bool:
        """
        Queue a control frame on the open connection.

        Frames are written in the order they were queued.

        Returns:
            True if queued, False if no connection is open (nothing is sent).
        """
        if not self.is_open or self._outbound is None:
            self._metrics.record_send_skipped()
            logger.debug(
                "Connection not open, frame not sent",
                frame_type=frame.frame_type.value,
                key=str(frame.key),
            )
            return False

        self._outbound.put_nowait(encode_frame(frame))
        self._metrics.record_frame_sent(frame.frame_type)
        return True

    # =========================================================================
    # Reader / Writer
    # =========================================================================

    async def _read_loop(self, transport: Transport) -> None:
        reason = "closed by peer"
        try:
            async for message in transport:
                if self._on_message is None:
                    continue
                try:
                    self._on_message(message)
                except Exception as e:
                    logger.error(
                        "Error handling inbound frame",
                        url=self._url,
                        error=str(e),
                        exc_info=True,
                    )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning("Multiplexer connection error", url=self._url, error=reason)

        self._connection_lost(transport, reason)

    async def _write_loop(self, transport: Transport, queue: asyncio.Queue[str]) -> None:
        while True:
            message = await queue.get()
            try:
                await transport.send(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Failed to send frame", url=self._url, error=str(e))
                self._connection_lost(transport, f"send failed: {e}")
                return

    # =========================================================================
    # Close / Loss
    # =========================================================================

    def _connection_lost(self, transport: Transport, reason: str) -> None:
        """Handle the end of a transport this manager did not close itself."""
        if self._transport is not transport:
            return

        self._release_transport()
        self._spawn(self._close_transport(transport, WSCloseCode.GOING_AWAY))

        active = self._subscription_count()
        if active:
            self._reconnect_pending = True
            self._state = ConnectionState.CLOSED_PENDING_RECONNECT
        else:
            self._state = ConnectionState.ABSENT

        self._metrics.record_connection_closed()
        audit_connection_event(
            "DISCONNECT",
            self._url,
            reason=reason,
            active_subscriptions=active,
        )

        if active and self._auto_reconnect and self._reconnect_task is None:
            self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())

    def _release_transport(self) -> None:
        """Drop the transport reference and stop its reader and writer."""
        current = asyncio.current_task()
        for task in (self._reader_task, self._writer_task):
            if task is not None and task is not current:
                task.cancel()
        self._reader_task = None
        self._writer_task = None
        self._outbound = None
        self._transport = None
        if self._on_connection_lost:
            self._on_connection_lost()

    async def close(self) -> None:
        """
        Close the transport and cancel any in-flight attempt.

        Subscription records are owned by the caller and survive, so the
        next ``connect()`` replays them.
        """
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            self._reconnect_task = None

        attempt = self._attempt
        if attempt is not None:
            self._attempt = None
            attempt.cancel()

        transport = self._transport
        if transport is not None:
            self._release_transport()
            self._metrics.record_connection_closed()
            audit_connection_event("CLOSE", self._url, reason="closed by client")
            await self._close_transport(transport, WSCloseCode.NORMAL)

        self._reconnect_pending = self._subscription_count() > 0
        self._state = ConnectionState.ABSENT

        for task in list(self._background):
            task.cancel()

    async def _close_transport(self, transport: Transport, code: int) -> None:
        try:
            await transport.close(code=code)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug("Error closing transport", url=self._url, error=str(e))

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # =========================================================================
    # Automatic Reconnect
    # =========================================================================

    async def _reconnect_loop(self) -> None:
        """Retry with backoff while subscriptions remain and the transport is down."""
        backoff = ReconnectBackoff(self._retry_config)
        try:
            while self._subscription_count() > 0 and not self.is_open:
                if backoff.exhausted:
                    audit_connection_event(
                        "RECONNECT_FAILED",
                        self._url,
                        attempt=backoff.attempt,
                        reason="max attempts reached",
                    )
                    return

                delay = backoff.next_delay()
                logger.info(
                    "Reconnecting multiplexer",
                    url=self._url,
                    attempt=backoff.attempt,
                    delay=round(delay, 2),
                )
                await asyncio.sleep(delay)

                if self._subscription_count() == 0:
                    return
                try:
                    await self.connect()
                except ConnectionFailedError:
                    continue
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "url": self._url,
            "connect_attempts": self._attempt_count,
            "reconnect_pending": self._reconnect_pending,
            "outbound_queued": self._outbound.qsize() if self._outbound is not None else 0,
        }


def _retrieve_exception(task: asyncio.Task[Any]) -> None:
    """Mark an attempt's failure as retrieved when no caller is left to await it."""
    if not task.cancelled():
        task.exception()
