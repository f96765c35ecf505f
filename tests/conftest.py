"""
Pytest configuration and fixtures for multiplexer tests.

Provides an in-memory transport so no test opens a real socket.
"""

import asyncio
import json

import pytest
import pytest_asyncio

from shared.config.settings import Settings
from ws_multiplexer.components.core.dependencies import (
    MultiplexerDependencies,
    reset_singletons,
)
from ws_multiplexer.components.metrics.collector import MetricsCollector
from ws_multiplexer.multiplexer import WebSocketMultiplexer


_END = object()


class FakeTransport:
    """
    In-memory transport.

    Outbound messages are recorded in ``sent``; inbound messages are queued
    with ``feed`` and the peer closes the connection with ``drop``.
    """

    def __init__(self):
        self.sent: list[str] = []
        self.closed = False
        self.close_code = None
        self.fail_sends = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def send(self, message):
        if self.closed or self.fail_sends:
            raise ConnectionError("transport closed")
        self.sent.append(message)

    async def close(self, code=1000, reason=""):
        if not self.closed:
            self.closed = True
            self.close_code = code
            self._inbound.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbound.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    def feed(self, message):
        """Queue an inbound message (dicts are JSON-encoded)."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self._inbound.put_nowait(message)

    def drop(self, error=None):
        """Simulate the peer ending the connection, optionally with an error."""
        self._inbound.put_nowait(error if error is not None else _END)

    @property
    def frames(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]

    def frames_of(self, frame_type: str) -> list[dict]:
        return [f for f in self.frames if f["type"] == frame_type]


class FakeTransportFactory:
    """
    Transport factory counting connection attempts.

    Attributes:
        failures: Number of upcoming attempts that raise OSError.
        delay: Seconds each attempt takes before it resolves.
        hang: Attempts never resolve (until cancelled).
    """

    def __init__(self):
        self.attempts = 0
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []
        self.failures = 0
        self.delay = 0.0
        self.hang = False

    async def __call__(self, url):
        self.attempts += 1
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.hang:
            await asyncio.Event().wait()
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


async def _drain(rounds: int = 10) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def clean_singletons():
    """Each test starts without a default multiplexer."""
    reset_singletons()
    yield
    reset_singletons()


@pytest.fixture
def drain():
    """Let reader/writer tasks process everything already queued."""
    return _drain


@pytest.fixture
def factory():
    return FakeTransportFactory()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def test_settings():
    return Settings(
        environment="test",
        debug=False,
        mux_base_ws_url="ws://dashboard.test/",
        mux_user_id="tester",
        mux_auto_reconnect=False,
    )


@pytest.fixture
def deps(test_settings, factory, metrics):
    return MultiplexerDependencies(
        settings=test_settings,
        transport_factory=factory,
        metrics=metrics,
        identity=lambda: "tester",
    )


@pytest_asyncio.fixture
async def mux(deps):
    """Multiplexer over the fake transport; closed after the test."""
    multiplexer = WebSocketMultiplexer(deps=deps)
    yield multiplexer
    await multiplexer.close()
