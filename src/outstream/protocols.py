# src/outstream/protocols.py
"""Protocol definitions for sinks, connections and transport listeners.

Three contracts meet in this package:

- SinkProtocol: what callers get back from ``SchemeRegistry.resolve()``.
- ConnectionProtocol: one accepted downstream byte stream inside a
  listening sink.
- TransportListener: the accept side of a listening sink; one
  implementation per scheme family (tcp, unix, websocket, http).
"""

from collections.abc import Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class SinkProtocol(Protocol):
    """Protocol every output destination implements.

    Lifecycle:
        1. Construction: resource opened, bound or dialled (errors raise)
        2. Operation: write() called any number of times
        3. Shutdown: close() called by the producer

    Error handling:
        - write() raises SinkClosedError once the sink is closed
        - close() MUST be idempotent - safe to call multiple times
    """

    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes accepted.

        Raises:
            SinkClosedError: If the sink has been closed
            DialError: For dial sinks whose connection has failed
        """
        ...

    def close(self) -> None:
        """Release the underlying resource. Idempotent."""
        ...


@runtime_checkable
class ConnectionProtocol(Protocol):
    """One downstream connection of a listening sink.

    Thread Safety:
        send() is only ever called from the subscriber's sender loop.
        close() may be called from any thread, including while send() is
        blocked, and must make that send() return promptly with an error.
    """

    @property
    def peer(self) -> str:
        """Printable remote address, for logging."""
        ...

    def send(self, data: bytes) -> None:
        """Write all of ``data`` to the connection.

        Raises:
            OSError: If the connection is broken or was closed
        """
        ...

    def close(self) -> None:
        """Abort the connection promptly, discarding anything unsent. Idempotent.

        Only used to drop a subscriber. An orderly end is signalled by the
        connection handler returning; the transport then finishes the
        stream (FIN, WebSocket close frame, end of the HTTP body).
        """
        ...


ConnectionHandler = Callable[[ConnectionProtocol], None]


@runtime_checkable
class TransportListener(Protocol):
    """Accept side of a listening sink.

    The listener is bound when constructed. ``serve_forever`` runs the
    accept loop on the caller's thread and calls ``handler`` on a fresh
    per-connection thread for every accepted connection. The handler blocks
    for the lifetime of the connection.
    """

    scheme: str

    @property
    def address(self) -> str:
        """Bound address (host:port or socket path)."""
        ...

    def serve_forever(self, handler: ConnectionHandler) -> None:
        """Accept connections until shutdown() is called.

        Raises:
            OSError: If the listener itself becomes unusable
        """
        ...

    def shutdown(self) -> None:
        """Stop the accept loop and release the listener (unbind, unlink).

        Idempotent. Handler threads are not joined; the Broadcaster waits
        for its subscribers itself before calling this.
        """
        ...
