# src/outstream/sinks/__init__.py
"""Built-in output schemes.

Available schemes:
- stdout, stderr: the process streams
- file: append to a file
- tcp, unix: one outbound stream socket
- http, https: one streaming POST
- ws, wss: one WebSocket client connection
- tcp-listen, unix-listen, ws-listen, http-listen (and their -server
  aliases): broadcast to every connected consumer

Plugin registration:
    Schemes are registered via the outstream_get_schemes hook.
    The BuiltinSchemesPlugin in this module registers all built-in schemes.
"""

from outstream.hookspecs import hookimpl
from outstream.schemes import SchemeEntry
from outstream.sinks.file import FileSink, open_file
from outstream.sinks.http import HttpPostSink, dial_http, dial_https
from outstream.sinks.listening import listen_http, listen_tcp, listen_unix, listen_ws
from outstream.sinks.stdio import StdioSink, open_stderr, open_stdout
from outstream.sinks.stream import StreamSocketSink, dial_tcp, dial_unix
from outstream.sinks.websocket import WebSocketSink, dial_ws, dial_wss

BUILTIN_SCHEMES: tuple[SchemeEntry, ...] = (
    SchemeEntry("stdout", open_stdout, requires_argument=False, description="process standard output"),
    SchemeEntry("stderr", open_stderr, requires_argument=False, description="process standard error"),
    SchemeEntry("file", open_file, missing_hint="path", description="append to a file"),
    SchemeEntry("http", dial_http, description="streaming HTTP POST"),
    SchemeEntry("https", dial_https, description="streaming HTTPS POST"),
    SchemeEntry(
        "http-listen",
        listen_http,
        aliases=("http-server",),
        description="broadcast as long-lived HTTP responses",
    ),
    SchemeEntry("tcp", dial_tcp, description="TCP client connection"),
    SchemeEntry("tcp-listen", listen_tcp, aliases=("tcp-server",), description="broadcast to TCP clients"),
    SchemeEntry("unix", dial_unix, description="Unix domain socket client connection"),
    SchemeEntry(
        "unix-listen",
        listen_unix,
        aliases=("unix-server",),
        description="broadcast to Unix domain socket clients",
    ),
    SchemeEntry("ws", dial_ws, description="WebSocket client connection"),
    SchemeEntry("wss", dial_wss, description="secure WebSocket client connection"),
    SchemeEntry("ws-listen", listen_ws, aliases=("ws-server",), description="broadcast to WebSocket clients"),
)


class BuiltinSchemesPlugin:
    """Plugin that registers the built-in schemes."""

    @hookimpl
    def outstream_get_schemes(self) -> list[SchemeEntry]:
        """Return built-in scheme entries."""
        return list(BUILTIN_SCHEMES)


__all__ = [
    "BUILTIN_SCHEMES",
    "BuiltinSchemesPlugin",
    "FileSink",
    "HttpPostSink",
    "StdioSink",
    "StreamSocketSink",
    "WebSocketSink",
]
