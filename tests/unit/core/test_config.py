"""Tests for SinkSettings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from outstream import defaults
from outstream.core.config import SinkSettings


class TestSinkSettings:
    def test_defaults_match_module_constants(self):
        settings = SinkSettings()
        assert settings.queue_size == defaults.QUEUE_SIZE == 10
        assert settings.dial_timeout == defaults.DIAL_TIMEOUT
        assert settings.shutdown_timeout == defaults.SHUTDOWN_TIMEOUT
        assert settings.poll_interval == defaults.POLL_INTERVAL
        assert settings.http_content_type == "application/octet-stream"

    def test_frozen(self):
        settings = SinkSettings()
        with pytest.raises(ValidationError):
            settings.queue_size = 20  # type: ignore[misc]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"queue_size": 0},
            {"dial_timeout": 0},
            {"shutdown_timeout": -1.0},
            {"poll_interval": 10.0},
            {"http_content_type": ""},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            SinkSettings(**overrides)
