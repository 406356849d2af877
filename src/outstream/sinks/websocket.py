# src/outstream/sinks/websocket.py
"""Outbound WebSocket sink: every write is sent as one binary message."""

from __future__ import annotations

import threading

import structlog
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect

from outstream.core.config import SinkSettings
from outstream.errors import DialError, SinkClosedError

logger = structlog.get_logger(__name__)


class WebSocketSink:
    """Writes to one WebSocket client connection."""

    def __init__(self, scheme: str, url: str, *, settings: SinkSettings | None = None) -> None:
        self._scheme = scheme
        self._url = url
        settings = settings if settings is not None else SinkSettings()
        try:
            self._websocket: ClientConnection = connect(
                url,
                open_timeout=settings.dial_timeout,
                compression=None,
            )
        except (OSError, InvalidHandshake, InvalidURI, TimeoutError) as e:
            raise DialError(scheme, url, str(e)) from e
        self._lock = threading.Lock()
        self._closed = False
        logger.debug("Connected", scheme=scheme, url=url)

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def url(self) -> str:
        return self._url

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._closed:
                raise SinkClosedError(self._url)
            try:
                self._websocket.send(bytes(data))
            except ConnectionClosed as e:
                raise DialError(self._scheme, self._url, f"connection closed: {e}") from e
        return len(data)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._websocket.close()


def dial_ws(argument: str, settings: SinkSettings) -> WebSocketSink:
    return WebSocketSink("ws", "ws://" + argument, settings=settings)


def dial_wss(argument: str, settings: SinkSettings) -> WebSocketSink:
    return WebSocketSink("wss", "wss://" + argument, settings=settings)
