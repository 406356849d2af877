# src/outstream/sinks/listening.py
"""Constructors for the listening schemes.

Each binds the matching TransportListener and wraps it in a Broadcaster,
which starts accepting immediately.
"""

from __future__ import annotations

from outstream.broadcast.broadcaster import Broadcaster
from outstream.broadcast.listeners import HttpListener, TcpListener, UnixListener, WebSocketListener
from outstream.core.config import SinkSettings


def listen_tcp(argument: str, settings: SinkSettings) -> Broadcaster:
    listener = TcpListener(argument, poll_interval=settings.poll_interval)
    return Broadcaster(listener, settings=settings)


def listen_unix(argument: str, settings: SinkSettings) -> Broadcaster:
    listener = UnixListener(argument, poll_interval=settings.poll_interval)
    return Broadcaster(listener, settings=settings)


def listen_ws(argument: str, settings: SinkSettings) -> Broadcaster:
    listener = WebSocketListener(argument, poll_interval=settings.poll_interval)
    return Broadcaster(listener, settings=settings)


def listen_http(argument: str, settings: SinkSettings) -> Broadcaster:
    listener = HttpListener(
        argument,
        content_type=settings.http_content_type,
        shutdown_timeout=settings.shutdown_timeout,
    )
    return Broadcaster(listener, settings=settings)
