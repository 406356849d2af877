"""Tests for the file and stdio sinks."""

from __future__ import annotations

from pathlib import Path

import pytest

from outstream.core.config import SinkSettings
from outstream.errors import DialError, SinkClosedError
from outstream.protocols import SinkProtocol
from outstream.sinks.file import FileSink, open_file
from outstream.sinks.stdio import StdioSink, open_stderr, open_stdout


class TestFileSink:
    def test_creates_file_and_appends(self, tmp_path: Path):
        target = tmp_path / "out.log"
        sink = FileSink(target)
        assert isinstance(sink, SinkProtocol)
        assert sink.write(b"one\n") == 4
        sink.write(b"two\n")
        # Flushed on every write
        assert target.read_bytes() == b"one\ntwo\n"
        sink.close()

    def test_appends_to_existing_file(self, tmp_path: Path):
        target = tmp_path / "out.log"
        target.write_bytes(b"existing\n")
        sink = open_file(str(target), SinkSettings())
        sink.write(b"new\n")
        sink.close()
        assert target.read_bytes() == b"existing\nnew\n"

    def test_unopenable_path_raises_dial_error(self, tmp_path: Path):
        with pytest.raises(DialError) as exc_info:
            FileSink(tmp_path / "missing-dir" / "out.log")
        assert exc_info.value.scheme == "file"

    def test_write_after_close_raises(self, tmp_path: Path):
        sink = FileSink(tmp_path / "out.log")
        sink.close()
        sink.close()
        with pytest.raises(SinkClosedError):
            sink.write(b"late")


class TestStdioSink:
    def test_stdout(self, capsysbinary):
        sink = open_stdout("", SinkSettings())
        assert sink.write(b"hello") == 5
        sink.close()
        assert capsysbinary.readouterr().out == b"hello"

    def test_stderr(self, capsysbinary):
        sink = open_stderr("", SinkSettings())
        sink.write(b"oops")
        sink.close()
        assert capsysbinary.readouterr().err == b"oops"

    def test_close_does_not_close_process_stream(self, capsysbinary):
        import sys

        sink = StdioSink("stdout")
        sink.close()
        assert not sys.stdout.closed
        with pytest.raises(SinkClosedError, match="stdout"):
            sink.write(b"late")

    def test_rejects_other_streams(self):
        with pytest.raises(ValueError, match="stdout"):
            StdioSink("stdin")
