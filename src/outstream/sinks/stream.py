# src/outstream/sinks/stream.py
"""Outbound stream socket sinks: ``tcp://host:port`` and ``unix:///path``.

One connection, opened at construction; every write is a blocking sendall().
"""

from __future__ import annotations

import contextlib
import socket
import threading

import structlog

from outstream.core.addresses import split_host_port
from outstream.core.config import SinkSettings
from outstream.errors import DialError, SinkClosedError

logger = structlog.get_logger(__name__)


class StreamSocketSink:
    """Writes to one connected stream socket.

    A failed send raises DialError; the sink stays usable only for close().
    """

    def __init__(self, scheme: str, address: str, sock: socket.socket) -> None:
        self._scheme = scheme
        self._address = address
        self._sock = sock
        self._lock = threading.Lock()
        self._closed = False

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def address(self) -> str:
        return self._address

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._closed:
                raise SinkClosedError(f"{self._scheme}://{self._address}")
            try:
                self._sock.sendall(data)
            except OSError as e:
                raise DialError(self._scheme, self._address, e.strerror or str(e)) from e
        return len(data)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        self._sock.close()
        logger.debug("Connection closed", scheme=self._scheme, address=self._address)


def dial_tcp(argument: str, settings: SinkSettings) -> StreamSocketSink:
    """Connect to ``host:port``."""
    try:
        host, port = split_host_port(argument)
    except ValueError as e:
        raise DialError("tcp", argument, str(e)) from e
    try:
        sock = socket.create_connection((host or "localhost", port), timeout=settings.dial_timeout)
    except OSError as e:
        raise DialError("tcp", argument, e.strerror or str(e)) from e
    sock.settimeout(None)
    logger.debug("Connected", scheme="tcp", address=argument)
    return StreamSocketSink("tcp", argument, sock)


def dial_unix(argument: str, settings: SinkSettings) -> StreamSocketSink:
    """Connect to the Unix domain socket at ``argument``."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(settings.dial_timeout)
    try:
        sock.connect(argument)
    except OSError as e:
        sock.close()
        raise DialError("unix", argument, e.strerror or str(e)) from e
    sock.settimeout(None)
    logger.debug("Connected", scheme="unix", address=argument)
    return StreamSocketSink("unix", argument, sock)
