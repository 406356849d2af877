"""Broadcast core for the listening schemes.

A Broadcaster owns one TransportListener and fans every write out to the
Subscribers accepted through it.

Components:
- Broadcaster: the sink returned for tcp-listen, unix-listen, ws-listen and
  http-listen
- Subscriber: one downstream connection with a bounded outgoing queue
- listeners: the accept side, one class per scheme family
- connections: byte-stream wrappers around accepted connections
"""

from outstream.broadcast.broadcaster import Broadcaster
from outstream.broadcast.connections import HttpStreamConnection, SocketConnection, WebSocketConnection
from outstream.broadcast.listeners import HttpListener, TcpListener, UnixListener, WebSocketListener
from outstream.broadcast.subscriber import Subscriber

__all__ = [
    "Broadcaster",
    "HttpListener",
    "HttpStreamConnection",
    "SocketConnection",
    "Subscriber",
    "TcpListener",
    "UnixListener",
    "WebSocketConnection",
    "WebSocketListener",
]
