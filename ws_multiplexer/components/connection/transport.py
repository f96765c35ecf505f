"""
Transport abstraction for the multiplexer connection.

The connection manager only needs three things from a transport: send a text
frame, close, and iterate inbound frames until the connection ends. Any
object with that shape works; the default factory opens a client connection
with the ``websockets`` library.
"""

from __future__ import annotations

from typing import AsyncIterator, Awaitable, Callable, Protocol, runtime_checkable

from websockets.asyncio.client import connect

from ws_multiplexer.components.core.constants import MuxConstants, WSCloseCode


@runtime_checkable
class Transport(Protocol):
    """
    Bidirectional frame transport.

    Iteration yields inbound frames; it ends when the connection closes
    normally and raises when it closes with an error.
    """

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


TransportFactory = Callable[[str], Awaitable[Transport]]


def create_websocket_factory(
    close_timeout: float = MuxConstants.CLOSE_TIMEOUT,
    max_frame_size: int = MuxConstants.MAX_FRAME_SIZE,
    additional_headers: dict[str, str] | None = None,
) -> TransportFactory:
    """
    Build a transport factory backed by ``websockets``.

    The handshake timeout is left to the connection manager, which applies
    its own bound around the whole attempt.

    Args:
        close_timeout: Seconds to wait for the closing handshake.
        max_frame_size: Largest inbound frame accepted (0 for no limit).
        additional_headers: Extra HTTP headers for the handshake.

    Returns:
        Async callable opening a connection to a URL.
    """

    async def open_websocket(url: str) -> Transport:
        return await connect(
            url,
            open_timeout=None,
            close_timeout=close_timeout,
            max_size=max_frame_size or None,
            additional_headers=additional_headers,
        )

    return open_websocket
