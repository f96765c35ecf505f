"""
Tests for the connection manager.

Tests verify:
- Concurrent connects share one attempt
- Timeouts and failures reach every waiter and later calls retry
- Frames are written in order and skipped when not connected
- Drops reset per-connection state and the next connect replays
- Optional background reconnect with backoff
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from shared.utils.exceptions import ConnectionFailedError, ConnectionTimeoutError
from ws_multiplexer.components.connection.manager import ConnectionManager, ConnectionState
from ws_multiplexer.components.core.constants import WSCloseCode
from ws_multiplexer.components.events.frames import CloseFrame, RequestFrame
from ws_multiplexer.components.metrics.collector import MetricsCollector
from ws_multiplexer.components.resilience.retry import RetryConfig


URL = "ws://dashboard.test/wsMultiplexer"


def make_manager(factory, **kwargs):
    kwargs.setdefault("metrics", MetricsCollector())
    return ConnectionManager(URL, factory, **kwargs)


class TestConnect:
    """Connection establishment."""

    @pytest.mark.asyncio
    async def test_concurrent_connects_share_one_attempt(self, factory):
        factory.delay = 0.02
        manager = make_manager(factory)

        transports = await asyncio.gather(*(manager.connect() for _ in range(10)))

        assert factory.attempts == 1
        assert all(t is transports[0] for t in transports)
        assert manager.state is ConnectionState.OPEN
        assert manager.get_stats()["connect_attempts"] == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_open_connection_is_reused(self, factory):
        manager = make_manager(factory)
        first = await manager.connect()
        second = await manager.connect()
        assert first is second
        assert factory.attempts == 1
        assert factory.urls == [URL]
        await manager.close()

    @pytest.mark.asyncio
    async def test_timeout_fails_every_waiter_and_clears_slot(self, factory):
        factory.hang = True
        manager = make_manager(factory, connection_timeout=0.05)

        results = await asyncio.gather(
            *(manager.connect() for _ in range(3)),
            return_exceptions=True,
        )

        assert factory.attempts == 1
        assert all(isinstance(r, ConnectionTimeoutError) for r in results)
        assert results[0].timeout == 0.05
        assert not manager.is_connecting
        assert manager.state is ConnectionState.ABSENT

        factory.hang = False
        await manager.connect()
        assert factory.attempts == 2
        assert manager.is_open
        await manager.close()

    @pytest.mark.asyncio
    async def test_failure_raises_and_later_call_retries(self, factory, metrics):
        factory.failures = 1
        manager = make_manager(factory, metrics=metrics)

        with pytest.raises(ConnectionFailedError) as exc_info:
            await manager.connect()
        assert "connection refused" in exc_info.value.detail
        assert not isinstance(exc_info.value, ConnectionTimeoutError)

        await manager.connect()
        assert manager.is_open
        snapshot = metrics.get_snapshot()
        assert snapshot["connection_attempts"] == 2
        assert snapshot["connection_failures"] == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_attempt(self, factory):
        factory.delay = 0.03
        manager = make_manager(factory)

        first = asyncio.create_task(manager.connect())
        second = asyncio.create_task(manager.connect())
        await asyncio.sleep(0.01)
        first.cancel()

        transport = await second
        assert transport is factory.latest
        assert first.cancelled()
        assert factory.attempts == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_failure_with_subscriptions_marks_reconnect_pending(self, factory):
        factory.failures = 1
        manager = make_manager(factory, subscription_count=lambda: 2)

        with pytest.raises(ConnectionFailedError):
            await manager.connect()

        assert manager.state is ConnectionState.CLOSED_PENDING_RECONNECT
        assert manager.reconnect_pending

    def test_non_positive_timeout_rejected(self, factory):
        with pytest.raises(ValueError):
            make_manager(factory, connection_timeout=0)


class TestSend:
    """Outbound frames."""

    @pytest.mark.asyncio
    async def test_send_when_not_connected_returns_false(self, factory, metrics):
        manager = make_manager(factory, metrics=metrics)
        assert manager.send(RequestFrame("c1", "/p")) is False
        assert metrics.get_snapshot()["frames_send_skipped"] == 1

    @pytest.mark.asyncio
    async def test_frames_are_written_in_order(self, factory, drain):
        manager = make_manager(factory)
        await manager.connect()

        assert manager.send(RequestFrame("c1", "/p", "q", "u"))
        assert manager.send(CloseFrame("c1", "/p", "q", "u"))
        assert manager.send(RequestFrame("c1", "/p", "q", "u"))
        await drain()

        assert [f["type"] for f in factory.latest.frames] == ["REQUEST", "CLOSE", "REQUEST"]
        await manager.close()

    @pytest.mark.asyncio
    async def test_send_failure_drops_connection(self, factory, drain):
        lost = MagicMock()
        manager = make_manager(factory, on_connection_lost=lost)
        await manager.connect()
        factory.latest.fail_sends = True

        manager.send(RequestFrame("c1", "/p"))
        await drain()

        lost.assert_called_once()
        assert not manager.is_open


class TestConnectionLoss:
    """Drops and reconnection."""

    @pytest.mark.asyncio
    async def test_inbound_frames_reach_handler(self, factory, drain):
        received = []
        manager = make_manager(factory, on_message=received.append)
        await manager.connect()

        factory.latest.feed("one")
        factory.latest.feed("two")
        await drain()

        assert received == ["one", "two"]
        await manager.close()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_reader(self, factory, drain):
        received = []

        def on_message(message):
            if message == "bad":
                raise RuntimeError("handler bug")
            received.append(message)

        manager = make_manager(factory, on_message=on_message)
        await manager.connect()
        factory.latest.feed("bad")
        factory.latest.feed("good")
        await drain()

        assert received == ["good"]
        assert manager.is_open
        await manager.close()

    @pytest.mark.asyncio
    async def test_drop_without_subscriptions(self, factory, drain):
        on_reconnect = MagicMock(return_value=0)
        manager = make_manager(factory, on_reconnect=on_reconnect)
        await manager.connect()

        factory.latest.drop()
        await drain()

        assert manager.state is ConnectionState.ABSENT
        assert factory.latest.close_code == WSCloseCode.GOING_AWAY

        await manager.connect()
        on_reconnect.assert_not_called()
        await manager.close()

    @pytest.mark.asyncio
    async def test_drop_with_subscriptions_replays_before_connect_returns(self, factory, drain, metrics):
        lost = MagicMock()
        seen_open = []

        def on_reconnect():
            seen_open.append(manager.is_open)
            return 3

        manager = make_manager(
            factory,
            metrics=metrics,
            on_reconnect=on_reconnect,
            on_connection_lost=lost,
            subscription_count=lambda: 3,
        )
        await manager.connect()

        factory.latest.drop(ConnectionResetError("reset by peer"))
        await drain()

        lost.assert_called_once()
        assert manager.state is ConnectionState.CLOSED_PENDING_RECONNECT

        await manager.connect()
        assert seen_open == [True]
        assert not manager.reconnect_pending
        snapshot = metrics.get_snapshot()
        assert snapshot["connection_reconnects"] == 1
        assert snapshot["connection_resubscribed_keys"] == 3
        await manager.close()

    @pytest.mark.asyncio
    async def test_close(self, factory):
        lost = MagicMock()
        manager = make_manager(factory, on_connection_lost=lost)
        transport = await manager.connect()

        await manager.close()

        assert transport.closed
        assert transport.close_code == WSCloseCode.NORMAL
        assert manager.state is ConnectionState.ABSENT
        lost.assert_called_once()
        assert manager.send(RequestFrame("c1", "/p")) is False

    @pytest.mark.asyncio
    async def test_close_fails_waiters_of_abandoned_attempt(self, factory):
        factory.hang = True
        manager = make_manager(factory)
        waiters = [asyncio.create_task(manager.connect()) for _ in range(2)]
        await asyncio.sleep(0.01)

        await manager.close()

        for waiter in waiters:
            with pytest.raises(ConnectionFailedError) as exc_info:
                await waiter
            assert "closed by client" in exc_info.value.detail
            assert not waiter.cancelled()
        assert manager.state is ConnectionState.ABSENT
        assert not manager.is_connecting

    @pytest.mark.asyncio
    async def test_cancelled_caller_still_sees_cancellation(self, factory):
        factory.hang = True
        manager = make_manager(factory)
        waiter = asyncio.create_task(manager.connect())
        await asyncio.sleep(0.01)

        waiter.cancel()
        await manager.close()

        with pytest.raises(asyncio.CancelledError):
            await waiter


class TestAutoReconnect:
    """Background reconnect with backoff."""

    @pytest.mark.asyncio
    async def test_reconnects_after_drop(self, factory, drain):
        on_reconnect = MagicMock(return_value=1)
        manager = make_manager(
            factory,
            on_reconnect=on_reconnect,
            subscription_count=lambda: 1,
            auto_reconnect=True,
            retry_config=RetryConfig(initial_delay=0.01, max_delay=0.02, max_attempts=5),
        )
        await manager.connect()

        factory.latest.drop()
        await asyncio.sleep(0.1)

        assert factory.attempts == 2
        assert manager.is_open
        on_reconnect.assert_called_once()
        await manager.close()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, factory):
        manager = make_manager(
            factory,
            subscription_count=lambda: 1,
            auto_reconnect=True,
            retry_config=RetryConfig(initial_delay=0.01, max_delay=0.02, max_attempts=2),
        )
        await manager.connect()
        factory.failures = 100

        factory.latest.drop()
        await asyncio.sleep(0.2)

        # One initial connection plus two retries
        assert factory.attempts == 3
        assert not manager.is_open
        assert manager.state is ConnectionState.CLOSED_PENDING_RECONNECT
        await manager.close()

    @pytest.mark.asyncio
    async def test_no_reconnect_without_subscriptions(self, factory):
        manager = make_manager(
            factory,
            auto_reconnect=True,
            retry_config=RetryConfig(initial_delay=0.01, max_delay=0.02),
        )
        await manager.connect()

        factory.latest.drop()
        await asyncio.sleep(0.05)

        assert factory.attempts == 1
        assert manager.state is ConnectionState.ABSENT
