# src/outstream/cli.py
"""outstream Command Line Interface.

Entry point for the outstream CLI tool.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import BinaryIO

import structlog
import typer
from pydantic import ValidationError

from outstream import __version__
from outstream.core.config import SinkSettings
from outstream.errors import OutputError
from outstream.registry import SchemeRegistry

__all__ = ["app"]

logger = structlog.get_logger(__name__)

# Read size in chunks mode.
CHUNK_SIZE = 64 * 1024


class ForwardMode(str, Enum):
    """How input is cut into payloads."""

    LINES = "lines"
    CHUNKS = "chunks"


app = typer.Typer(
    name="outstream",
    help="outstream: forward a byte stream to any output destination.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"outstream version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """outstream: forward a byte stream to any output destination."""
    # Logs always go to stderr; stdout may be the data sink.
    from outstream.core.logging import configure_logging

    log_level = "DEBUG" if verbose else "INFO"
    configure_logging(json_output=json_logs, level=log_level)


def _read_payloads(stream: BinaryIO, mode: ForwardMode) -> Iterator[bytes]:
    """Yield one payload per line (newline kept) or per read chunk."""
    if mode is ForwardMode.LINES:
        yield from iter(stream.readline, b"")
    else:
        yield from iter(lambda: stream.read(CHUNK_SIZE), b"")


@app.command()
def forward(
    output: str = typer.Argument(
        ...,
        help="Destination, e.g. stdout, file:///tmp/out.log, tcp-listen://:9000.",
    ),
    input_path: Path | None = typer.Option(
        None,
        "--input",
        "-i",
        exists=True,
        dir_okay=False,
        readable=True,
        help="Read from this file instead of standard input.",
    ),
    mode: ForwardMode = typer.Option(
        ForwardMode.LINES,
        "--mode",
        "-m",
        help="Write each input line, or each read chunk, as one payload.",
    ),
    queue_size: int | None = typer.Option(
        None,
        "--queue-size",
        help="Payloads buffered per downstream consumer of a listening sink.",
    ),
) -> None:
    """Forward standard input (or a file) to OUTPUT."""
    try:
        settings = SinkSettings() if queue_size is None else SinkSettings(queue_size=queue_size)
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None

    registry = SchemeRegistry(settings=settings)
    try:
        sink = registry.resolve(output)
    except OutputError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    payloads = 0
    try:
        if input_path is not None:
            with input_path.open("rb") as stream:
                for payload in _read_payloads(stream, mode):
                    sink.write(payload)
                    payloads += 1
        else:
            for payload in _read_payloads(sys.stdin.buffer, mode):
                sink.write(payload)
                payloads += 1
    except OutputError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        logger.info("Interrupted", output=output)
    finally:
        try:
            sink.close()
        except OutputError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None

    logger.debug("Forwarding finished", output=output, payloads=payloads)


@app.command()
def schemes() -> None:
    """List the output schemes that can be resolved."""
    registry = SchemeRegistry()
    for entry in registry.entries():
        names = ", ".join(entry.names)
        suffix = "" if entry.requires_argument else " (no argument)"
        typer.echo(f"{names}: {entry.description}{suffix}")


if __name__ == "__main__":
    app()
