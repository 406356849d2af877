# src/outstream/sinks/file.py
"""File sink: appends every write to a file, creating it if needed."""

from __future__ import annotations

import threading
from pathlib import Path

import structlog

from outstream.core.config import SinkSettings
from outstream.errors import DialError, SinkClosedError

logger = structlog.get_logger(__name__)


class FileSink:
    """Append-only file destination.

    The file is opened at construction so that a bad path fails resolution
    rather than the first write. Writes are flushed before returning.
    """

    scheme = "file"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        try:
            self._file = self._path.open("ab")
        except OSError as e:
            raise DialError(self.scheme, str(self._path), e.strerror or str(e)) from e
        self._lock = threading.Lock()
        self._closed = False
        logger.debug("File sink opened", path=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._closed:
                raise SinkClosedError(f"file://{self._path}")
            written = self._file.write(data)
            self._file.flush()
        return written

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._file.close()


def open_file(argument: str, settings: SinkSettings) -> FileSink:
    return FileSink(argument)
