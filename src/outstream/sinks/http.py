# src/outstream/sinks/http.py
"""Outbound HTTP sink: one streaming POST per sink.

The request is started at construction on a background thread. Its body is
an iterator fed by write() through a one-slot queue, so a write returns once
the previous chunk has been taken by the transport (pipe semantics). The
body ends when the sink is closed.

Errors from the request (connect failure, non-2xx status) are reported as
DialError by the next write() or by close().
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator

import httpx
import structlog

from outstream.core.config import SinkSettings
from outstream.errors import DialError, SinkClosedError

logger = structlog.get_logger(__name__)

# Body iterator sentinel: end of request body.
_EOF = None


class HttpPostSink:
    """Streams every write into the body of a single HTTP POST."""

    def __init__(
        self,
        scheme: str,
        url: str,
        *,
        settings: SinkSettings | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        """Start the request.

        Args:
            scheme: "http" or "https", for error messages
            url: Full request URL
            settings: dial_timeout bounds connect; defaults if None
            client: Client to send with; one is created (and owned) if None

        Raises:
            DialError: If the URL is invalid
        """
        self._scheme = scheme
        self._url = url
        self._settings = settings if settings is not None else SinkSettings()
        try:
            httpx.URL(url)
        except httpx.InvalidURL as e:
            raise DialError(scheme, url, str(e)) from e

        self._owns_client = client is None
        self._client = (
            client
            if client is not None
            else httpx.Client(
                timeout=httpx.Timeout(None, connect=self._settings.dial_timeout),
            )
        )
        self._chunks: queue.Queue[bytes | None] = queue.Queue(maxsize=1)
        self._lock = threading.Lock()
        self._closed = False
        self._error: DialError | None = None
        self._status_code: int | None = None
        self._finished = threading.Event()

        self._thread = threading.Thread(target=self._run, name=f"{scheme}-post", daemon=True)
        self._thread.start()

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def url(self) -> str:
        return self._url

    @property
    def status_code(self) -> int | None:
        """Response status once the server has answered, else None."""
        return self._status_code

    def write(self, data: bytes) -> int:
        with self._lock:
            if self._closed:
                raise SinkClosedError(self._url)
            self._raise_if_failed()
            self._hand_over(bytes(data))
            self._raise_if_failed()
        return len(data)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._hand_over(_EOF)
                if not self._finished.wait(self._settings.shutdown_timeout):
                    logger.warning("HTTP request did not finish within timeout", url=self._url)
            finally:
                if self._owns_client:
                    self._client.close()
            self._raise_if_failed()

    def _hand_over(self, chunk: bytes | None) -> None:
        """Put a chunk in the slot, giving up if the request has ended."""
        while not self._finished.is_set():
            try:
                self._chunks.put(chunk, timeout=self._settings.poll_interval)
                return
            except queue.Full:
                continue

    def _raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error
        if self._finished.is_set() and not self._closed:
            raise DialError(self._scheme, self._url, "request ended before the sink was closed")

    def _body(self) -> Iterator[bytes]:
        while True:
            chunk = self._chunks.get()
            if chunk is _EOF:
                return
            yield chunk

    def _run(self) -> None:
        try:
            with self._client.stream(
                "POST",
                self._url,
                content=self._body(),
                headers={"Content-Type": self._settings.http_content_type},
            ) as response:
                self._status_code = response.status_code
                if response.is_error:
                    self._error = DialError(self._scheme, self._url, f"server answered {response.status_code}")
                response.read()
        except httpx.HTTPError as e:
            self._error = DialError(self._scheme, self._url, str(e))
            self._error.__cause__ = e
        finally:
            self._finished.set()
        if self._error is not None:
            logger.warning("HTTP request failed", url=self._url, error=str(self._error))
        else:
            logger.debug("HTTP request finished", url=self._url, status_code=self._status_code)


def dial_http(argument: str, settings: SinkSettings) -> HttpPostSink:
    return HttpPostSink("http", "http://" + argument, settings=settings)


def dial_https(argument: str, settings: SinkSettings) -> HttpPostSink:
    return HttpPostSink("https", "https://" + argument, settings=settings)
