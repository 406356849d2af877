# tests/conftest.py
"""Shared test fixtures and helpers.

Fixtures:
- registry: a SchemeRegistry with fast polling and short timeouts
- free_port: a local TCP port nobody listens on
- unix_path: a short Unix socket path (sun_path is limited to ~100 bytes)

Thread Leak Prevention:
    Every Broadcaster starts a non-daemon accept thread. The autouse
    _auto_close_broadcasters fixture closes any Broadcaster a test forgot to
    close so pytest can exit.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import os
import shutil
import socket
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

from outstream.broadcast.broadcaster import Broadcaster
from outstream.core.config import SinkSettings
from outstream.registry import SchemeRegistry

# Settings for tests: quick shutdown polling, short dial timeouts.
FAST_SETTINGS = SinkSettings(dial_timeout=2.0, shutdown_timeout=3.0, poll_interval=0.05)


@pytest.fixture(autouse=True)
def _auto_close_broadcasters() -> Iterator[None]:
    """Automatically close all Broadcasters created during a test.

    A Broadcaster's accept thread is non-daemonic; an unclosed one keeps
    pytest from exiting.
    """
    created: list[Broadcaster] = []
    original_init = Broadcaster.__init__

    def tracking_init(self: Broadcaster, *args, **kwargs) -> None:
        original_init(self, *args, **kwargs)
        created.append(self)

    Broadcaster.__init__ = tracking_init  # type: ignore[method-assign]
    try:
        yield
    finally:
        Broadcaster.__init__ = original_init  # type: ignore[method-assign]
        for broadcaster in created:
            broadcaster.close()


@pytest.fixture
def registry() -> SchemeRegistry:
    return SchemeRegistry(settings=FAST_SETTINGS)


@pytest.fixture
def free_port() -> int:
    """A local TCP port that nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


@pytest.fixture
def unix_path() -> Iterator[str]:
    """Path for a Unix domain socket that does not exist yet."""
    if not hasattr(socket, "AF_UNIX"):
        pytest.skip("Unix domain sockets not available")
    directory = tempfile.mkdtemp(prefix="os-", dir="/tmp" if os.path.isdir("/tmp") else None)
    try:
        yield str(Path(directory) / "s.sock")
    finally:
        shutil.rmtree(directory, ignore_errors=True)


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
