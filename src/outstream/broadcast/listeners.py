# src/outstream/broadcast/listeners.py
"""Transport listeners: the accept side of each listening scheme.

Every listener binds in its constructor (raising BindError), then runs an
accept loop in ``serve_forever`` that hands each accepted connection to a
handler on a fresh per-connection thread. The four variants differ only in
how a connection is accepted:

- TcpListener: stream socket on host:port
- UnixListener: stream socket on a filesystem path
- WebSocketListener: WebSocket upgrade, one binary message per payload
- HttpListener: any HTTP request, answered with 200 and a streaming body
  that carries every payload for the rest of the response's life

Transient per-connection failures (failed handshake, malformed request) are
logged and the accept loop continues. A listening socket that is closed
underneath the loop makes ``serve_forever`` raise OSError.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import os
import selectors
import socket
import socketserver
import threading
import time
from collections.abc import Callable
from typing import Any

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response, StreamingResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send
from websockets.sync.server import Server, ServerConnection, serve

from outstream import defaults
from outstream.broadcast.connections import HttpStreamConnection, SocketConnection, WebSocketConnection
from outstream.core.addresses import format_host_port, split_host_port
from outstream.errors import BindError
from outstream.protocols import ConnectionHandler, ConnectionProtocol

logger = structlog.get_logger(__name__)

# accept() errors that leave the listening socket usable.
_TRANSIENT_ACCEPT_ERRNOS = frozenset({errno.EMFILE, errno.ENFILE, errno.ENOBUFS, errno.ENOMEM})


def _listening_socket_closed() -> OSError:
    return OSError(errno.EBADF, "listening socket closed")


# =============================================================================
# socketserver-based listeners (tcp, unix)
# =============================================================================


class _ListenerServerMixin:
    """Server behaviour shared by the socketserver-based listeners.

    Connection threads are daemonic and not joined by server_close(): the
    Broadcaster waits for its subscribers itself.
    """

    daemon_threads = True
    block_on_close = False
    allow_reuse_address = True

    # Set by _SocketServerListener before the accept loop starts.
    dispatch: Any = None
    accept_backoff: float = defaults.POLL_INTERVAL

    def get_request(self) -> tuple[socket.socket, Any]:
        try:
            return super().get_request()  # type: ignore[misc,no-any-return]
        except OSError as e:
            # socketserver retries at once; back off while out of descriptors
            if e.errno in _TRANSIENT_ACCEPT_ERRNOS:
                logger.warning("Accept failed", error=str(e))
                time.sleep(self.accept_backoff)
            raise

    def service_actions(self) -> None:
        # socketserver swallows accept() errors, so a closed listening
        # socket would otherwise be polled as ready forever.
        if self.socket.fileno() == -1:  # type: ignore[attr-defined]
            raise _listening_socket_closed()
        super().service_actions()  # type: ignore[misc]

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.warning(
            "Connection handler failed",
            peer=str(client_address),
            exc_info=True,
        )


class _TCPServer(_ListenerServerMixin, socketserver.ThreadingTCPServer):
    pass


class _TCP6Server(_ListenerServerMixin, socketserver.ThreadingTCPServer):
    address_family = socket.AF_INET6


class _UnixServer(_ListenerServerMixin, socketserver.ThreadingUnixStreamServer):
    allow_reuse_address = False


class _StreamHandler(socketserver.BaseRequestHandler):
    """Hands a freshly accepted stream socket to the dispatcher.

    When handle() returns the server shuts the socket down for writing and
    closes it, which ends the stream after everything sent so far.
    """

    server: _TCPServer | _UnixServer

    def handle(self) -> None:
        peer = _peer_name(self.client_address, self.server.server_address)
        self.server.dispatch(SocketConnection(self.request, peer))


class _SocketServerListener:
    """Adapts a socketserver server to the TransportListener protocol.

    socketserver's shutdown() blocks until serve_forever() has run and
    exited, so it must only be called once the loop has started. The
    _state_lock makes "start serving" and "stop" mutually exclusive.
    """

    scheme: str

    def __init__(
        self,
        server: socketserver.BaseServer,
        *,
        poll_interval: float = defaults.POLL_INTERVAL,
    ) -> None:
        self._server = server
        self._poll_interval = poll_interval
        self._state_lock = threading.Lock()
        self._serving = False
        self._stopped = False

    @property
    def address(self) -> str:
        host, port = self._server.server_address[:2]
        return format_host_port(host, port)

    def serve_forever(self, handler: ConnectionHandler) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._serving = True
        self._server.dispatch = handler  # type: ignore[attr-defined]
        self._server.accept_backoff = self._poll_interval  # type: ignore[attr-defined]
        self._server.serve_forever(poll_interval=self._poll_interval)

    def shutdown(self) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
            serving = self._serving
        if serving:
            self._server.shutdown()
        self._server.server_close()
        self._release()

    def _release(self) -> None:
        """Hook for subclasses that own more than the socket."""


class TcpListener(_SocketServerListener):
    """Listens on ``host:port``; an empty host means all interfaces."""

    scheme = "tcp-listen"

    def __init__(self, address: str, *, poll_interval: float = defaults.POLL_INTERVAL) -> None:
        server_class = _TCP6Server if ":" in address.rpartition(":")[0] else _TCPServer
        try:
            host, port = split_host_port(address)
        except ValueError as e:
            raise BindError(self.scheme, address, str(e)) from e
        try:
            server = server_class((host, port), _StreamHandler)
        except OSError as e:
            raise BindError(self.scheme, address, e.strerror or str(e)) from e
        super().__init__(server, poll_interval=poll_interval)


class UnixListener(_SocketServerListener):
    """Listens on a Unix domain socket path; the path is removed on shutdown.

    Binding fails if the path already exists.
    """

    scheme = "unix-listen"

    def __init__(self, path: str, *, poll_interval: float = defaults.POLL_INTERVAL) -> None:
        self._path = path
        try:
            server = _UnixServer(path, _StreamHandler)
        except OSError as e:
            raise BindError(self.scheme, path, e.strerror or str(e)) from e
        super().__init__(server, poll_interval=poll_interval)

    @property
    def address(self) -> str:
        return self._path

    def _release(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(self._path)


def _peer_name(client_address: Any, server_address: Any) -> str:
    if isinstance(client_address, tuple):
        return format_host_port(str(client_address[0]), int(client_address[1]))
    # Unix stream clients are usually unnamed
    return client_address or f"{server_address}#client"


def _bind_socket(scheme: str, address: str) -> socket.socket:
    """Bind and listen on ``address``, translating failures to BindError."""
    try:
        host, port = split_host_port(address)
    except ValueError as e:
        raise BindError(scheme, address, str(e)) from e
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        return socket.create_server((host, port), family=family)
    except OSError as e:
        raise BindError(scheme, address, e.strerror or str(e)) from e


# =============================================================================
# WebSocket listener
# =============================================================================


class WebSocketListener:
    """Accepts WebSocket upgrades on ``host:port`` (any path).

    The websockets server does the handshake and framing; the accept loop
    is run here so that shutdown is polled and a closed listening socket is
    reported instead of blocking the loop forever.
    """

    scheme = "ws-listen"

    def __init__(
        self,
        address: str,
        *,
        poll_interval: float = defaults.POLL_INTERVAL,
        handshake_timeout: float = defaults.HANDSHAKE_TIMEOUT,
    ) -> None:
        sock = _bind_socket(self.scheme, address)
        self._poll_interval = poll_interval
        self._handler: ConnectionHandler | None = None
        self._state_lock = threading.Lock()
        self._stopped = False
        self._server: Server = serve(
            self._handle,
            sock=sock,
            open_timeout=handshake_timeout,
            compression=None,
        )

    @property
    def address(self) -> str:
        host, port = self._server.socket.getsockname()[:2]
        return format_host_port(host, port)

    def serve_forever(self, handler: ConnectionHandler) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._handler = handler

        listening = self._server.socket
        with selectors.DefaultSelector() as poller:
            try:
                poller.register(listening, selectors.EVENT_READ)
            except ValueError as e:
                if self._stopped:
                    return
                raise _listening_socket_closed() from e

            while not self._stopped:
                ready = poller.select(self._poll_interval)
                if self._stopped:
                    return
                if listening.fileno() == -1:
                    raise _listening_socket_closed()
                if not ready:
                    continue
                try:
                    sock, addr = listening.accept()
                except (BlockingIOError, InterruptedError, ConnectionAbortedError):
                    continue
                except OSError as e:
                    if self._stopped:
                        return
                    if e.errno not in _TRANSIENT_ACCEPT_ERRNOS:
                        raise
                    logger.warning("ws-listen accept failed", error=str(e))
                    time.sleep(self._poll_interval)
                    continue
                threading.Thread(
                    target=self._server.handler,
                    args=(sock, addr),
                    name="ws-listen-connection",
                    daemon=True,
                ).start()

    def shutdown(self) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
        self._server.shutdown()

    def _handle(self, websocket: ServerConnection) -> None:
        """Per-connection thread; the server closes the WebSocket on return."""
        remote = websocket.remote_address
        peer = format_host_port(str(remote[0]), int(remote[1])) if remote else "unknown"
        connection: ConnectionProtocol = WebSocketConnection(websocket, peer)
        handler = self._handler
        if handler is None or self._stopped:
            connection.close()
            return
        handler(connection)


# =============================================================================
# HTTP listener
# =============================================================================


class _SubscriberStream(StreamingResponse):
    """Streaming response whose body is one subscriber's payloads."""

    def __init__(self, connection: HttpStreamConnection, headers: dict[str, str]) -> None:
        super().__init__(connection.body(), headers=headers)
        self._connection = connection

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (ClientDisconnect, OSError) as e:
            logger.debug("http-listen client went away", peer=self._connection.peer, error=str(e))
        finally:
            self._connection.response_done()


class _StreamServer(uvicorn.Server):
    """uvicorn server that watches its listening socket.

    uvicorn keeps running when the socket is closed underneath it, so the
    check happens on every tick. Existing responses keep streaming.
    """

    def __init__(self, config: uvicorn.Config, sock: socket.socket, on_failure: Callable[[OSError], None]) -> None:
        super().__init__(config)
        self._sock = sock
        self._on_failure = on_failure
        self._failed = False

    async def on_tick(self, counter: int) -> bool:
        if not self._failed and self._sock.fileno() == -1:
            self._failed = True
            self._on_failure(_listening_socket_closed())
        return await super().on_tick(counter)


class HttpListener:
    """Serves every HTTP request as a long-lived streaming response.

    A Starlette app answers GET, POST and PUT on any path with 200 and the
    configured Content-Type, then streams every payload in the body (chunked
    for HTTP/1.1 clients). HEAD gets the headers only. uvicorn runs the app
    on its own event loop thread; each response's subscriber runs on a
    per-connection thread like the other listeners.
    """

    scheme = "http-listen"

    def __init__(
        self,
        address: str,
        *,
        content_type: str = defaults.HTTP_CONTENT_TYPE,
        shutdown_timeout: float = defaults.SHUTDOWN_TIMEOUT,
    ) -> None:
        self._sock = _bind_socket(self.scheme, address)
        self._headers = {"content-type": content_type, "cache-control": "no-cache"}
        self._shutdown_timeout = shutdown_timeout
        self._handler: ConnectionHandler | None = None
        self._state_lock = threading.Lock()
        self._stopped = False
        self._failure: OSError | None = None
        self._done = threading.Event()
        self._loop_thread: threading.Thread | None = None

        app = Starlette(
            routes=[
                Route("/{path:path}", self._stream_endpoint, methods=["GET", "POST", "PUT"]),
            ]
        )
        config = uvicorn.Config(
            app,
            loop="asyncio",
            lifespan="off",
            log_config=None,
            access_log=False,
            server_header=False,
            timeout_graceful_shutdown=max(1, int(shutdown_timeout)),
        )
        self._server = _StreamServer(config, self._sock, self._record_failure)

    @property
    def address(self) -> str:
        host, port = self._sock.getsockname()[:2]
        return format_host_port(host, port)

    def serve_forever(self, handler: ConnectionHandler) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._handler = handler
            self._loop_thread = threading.Thread(
                target=self._run_loop,
                name="http-listen-loop",
                daemon=True,
            )
            self._loop_thread.start()

        self._done.wait()
        if self._failure is not None and not self._stopped:
            raise self._failure

    def shutdown(self) -> None:
        with self._state_lock:
            if self._stopped:
                return
            self._stopped = True
            loop_thread = self._loop_thread

        self._server.should_exit = True
        if loop_thread is not None:
            loop_thread.join(timeout=self._shutdown_timeout + 1.0)
            if loop_thread.is_alive():
                logger.error("http-listen event loop did not stop within timeout", address=self.address)
        self._sock.close()
        self._done.set()

    def _run_loop(self) -> None:
        """Event loop thread: serve the app until shutdown."""
        try:
            self._server.run(sockets=[self._sock])
        except (OSError, ValueError) as e:
            # Shutting down a server whose socket was closed underneath it
            # fails inside asyncio; the failure was already reported.
            if self._failure is None and not self._stopped:
                self._record_failure(OSError(errno.EBADF, f"http-listen event loop failed: {e}"))
        finally:
            self._done.set()

    def _record_failure(self, error: OSError) -> None:
        self._failure = error
        self._done.set()

    async def _stream_endpoint(self, request: Request) -> Response:
        if request.method == "HEAD":
            return Response(headers=self._headers)

        client = request.client
        peer = format_host_port(client.host, client.port) if client else "unknown"
        connection = HttpStreamConnection(asyncio.get_running_loop(), peer)
        threading.Thread(
            target=self._serve_connection,
            args=(connection,),
            name="http-listen-connection",
            daemon=True,
        ).start()
        return _SubscriberStream(connection, self._headers)

    def _serve_connection(self, connection: HttpStreamConnection) -> None:
        """Per-connection thread; ending it ends the response body."""
        try:
            handler = self._handler
            if handler is not None and not self._stopped:
                handler(connection)
        finally:
            connection.close()
