# src/outstream/sinks/stdio.py
"""stdout and stderr sinks.

Writes go to the binary buffer of the process stream and are flushed
immediately. Closing the sink never closes the process stream.
"""

from __future__ import annotations

import sys
import threading
from typing import BinaryIO

from outstream.core.config import SinkSettings
from outstream.errors import SinkClosedError


class StdioSink:
    """Writes to the process's standard output or standard error."""

    def __init__(self, stream_name: str) -> None:
        if stream_name not in ("stdout", "stderr"):
            raise ValueError(f"stream_name must be 'stdout' or 'stderr', got {stream_name!r}")
        self._stream_name = stream_name
        self._closed = False
        self._lock = threading.Lock()

    @property
    def scheme(self) -> str:
        return self._stream_name

    def _stream(self) -> BinaryIO:
        # Looked up per write so redirected streams (tests, CLI runners) are honoured
        stream = getattr(sys, self._stream_name)
        return stream.buffer  # type: ignore[no-any-return]

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._closed:
                raise SinkClosedError(self._stream_name)
            stream = self._stream()
            stream.write(data)
            stream.flush()
        return len(data)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stream().flush()


def open_stdout(argument: str, settings: SinkSettings) -> StdioSink:
    return StdioSink("stdout")


def open_stderr(argument: str, settings: SinkSettings) -> StdioSink:
    return StdioSink("stderr")
