# src/outstream/broadcast/connections.py
"""Byte-stream wrappers around accepted downstream connections.

Each wrapper implements ConnectionProtocol: ``send()`` writes a whole
payload and ``close()`` makes any blocked ``send()`` return promptly. The
transport server that accepted the connection still owns the final release
of the socket once its handler returns; ``close()`` only shuts the stream
down so that handler can return.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import socket
import threading
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING

from websockets.exceptions import ConnectionClosed

if TYPE_CHECKING:
    from websockets.sync.server import ServerConnection


class SocketConnection:
    """A connected stream socket (TCP or Unix)."""

    def __init__(self, sock: socket.socket, peer: str) -> None:
        self._sock = sock
        self._peer = peer
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def peer(self) -> str:
        return self._peer

    def send(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError(f"connection to {self._peer} is closed")
        self._sock.sendall(data)

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        # shutdown() wakes a sendall() blocked on a full send buffer; the fd
        # itself is closed by the server once the handler returns.
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)


class WebSocketConnection:
    """An accepted WebSocket; each payload is sent as one binary message."""

    def __init__(self, websocket: ServerConnection, peer: str) -> None:
        self._websocket = websocket
        self._peer = peer
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def peer(self) -> str:
        return self._peer

    def send(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionError(f"connection to {self._peer} is closed")
        try:
            self._websocket.send(data)
        except ConnectionClosed as e:
            raise ConnectionError(f"websocket to {self._peer} closed: {e}") from e

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        # ServerConnection.close() waits for the send lock, which a send
        # stuck on a stalled peer holds; shutting the socket down does not.
        with contextlib.suppress(OSError):
            self._websocket.socket.shutdown(socket.SHUT_RDWR)


class HttpStreamConnection:
    """The body of one streaming HTTP response.

    send() runs on the subscriber's thread and hands each payload to the
    event loop serving the response. It returns once the body iterator has
    taken the payload, so a client that stops reading eventually blocks
    send() the way a full socket buffer would.

    Thread Safety:
        send() and close() are called from subscriber threads; body() and
        response_done() run on the event loop. State shared between them
        is guarded by _lock, and loop-side state is only touched on the loop.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, peer: str) -> None:
        self._loop = loop
        self._peer = peer
        # One payload in hand-over; the response holds at most one more
        self._chunks: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=1)
        self._eof = False
        self._closed = False
        self._lock = threading.Lock()
        self._pending: concurrent.futures.Future[None] | None = None

    @property
    def peer(self) -> str:
        return self._peer

    def send(self, data: bytes) -> None:
        with self._lock:
            if self._closed or self._loop.is_closed():
                raise ConnectionError(f"connection to {self._peer} is closed")
            future = asyncio.run_coroutine_threadsafe(self._chunks.put(data), self._loop)
            self._pending = future
        try:
            future.result()
        except concurrent.futures.CancelledError:
            raise ConnectionAbortedError(f"response stream to {self._peer} ended") from None
        finally:
            with self._lock:
                self._pending = None

    def close(self) -> None:
        """End the response body after what has already been handed over."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = self._pending
        if pending is not None:
            pending.cancel()
        self._call_soon(self._end_body)

    async def body(self) -> AsyncIterator[bytes]:
        """Response body: payloads in order until the stream is closed."""
        while True:
            chunk = await self._chunks.get()
            if chunk is None:
                return
            yield chunk
            if self._eof and self._chunks.empty():
                return

    def response_done(self) -> None:
        """Called on the loop once the response has finished, however it ended."""
        with self._lock:
            self._closed = True
            pending = self._pending
        if pending is not None:
            pending.cancel()

    def _end_body(self) -> None:
        # The end marker only fits when nothing is waiting to be sent;
        # otherwise body() stops after taking the last payload.
        self._eof = True
        if self._chunks.empty():
            self._chunks.put_nowait(None)

    def _call_soon(self, callback: Callable[[], None]) -> None:
        # A loop that has already stopped has no response left to end
        with contextlib.suppress(RuntimeError):
            self._loop.call_soon_threadsafe(callback)
