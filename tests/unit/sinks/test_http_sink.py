"""Tests for the streaming HTTP POST sink."""

from __future__ import annotations

import httpx
import pytest

from outstream.core.config import SinkSettings
from outstream.errors import DialError, SinkClosedError
from outstream.sinks.http import HttpPostSink, dial_http

SETTINGS = SinkSettings(dial_timeout=2.0, shutdown_timeout=3.0, poll_interval=0.05)


def _client(status_code: int = 200) -> tuple[httpx.Client, list[httpx.Request], list[bytes]]:
    requests: list[httpx.Request] = []
    bodies: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        bodies.append(request.read())
        return httpx.Response(status_code)

    return httpx.Client(transport=httpx.MockTransport(handler)), requests, bodies


class TestHttpPostSink:
    def test_body_is_concatenation_of_writes(self):
        client, requests, bodies = _client()
        sink = HttpPostSink("http", "http://collector.test/ingest", settings=SETTINGS, client=client)
        assert sink.write(b"a") == 1
        sink.write(b"bb")
        sink.write(b"ccc")
        sink.close()

        assert bodies == [b"abbccc"]
        assert requests[0].method == "POST"
        assert requests[0].url == "http://collector.test/ingest"
        assert requests[0].headers["Content-Type"] == "application/octet-stream"
        assert sink.status_code == 200

    def test_error_status_surfaces_on_close(self):
        client, _, _ = _client(status_code=503)
        sink = HttpPostSink("http", "http://collector.test/", settings=SETTINGS, client=client)
        sink.write(b"payload")
        with pytest.raises(DialError, match="503"):
            sink.close()
        # Second close is a no-op
        sink.close()

    def test_write_after_close_raises(self):
        client, _, _ = _client()
        sink = HttpPostSink("http", "http://collector.test/", settings=SETTINGS, client=client)
        sink.close()
        with pytest.raises(SinkClosedError):
            sink.write(b"late")

    def test_connect_failure_surfaces_on_write(self, free_port: int):
        sink = dial_http(f"127.0.0.1:{free_port}/", SETTINGS)
        with pytest.raises(DialError) as exc_info:
            for _ in range(100):
                sink.write(b"x")
        assert exc_info.value.scheme == "http"
        with pytest.raises(DialError):
            sink.close()

    def test_invalid_url_raises_immediately(self):
        with pytest.raises(DialError):
            HttpPostSink("http", "http://exa\x00mple.test/", settings=SETTINGS)
