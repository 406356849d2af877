# src/outstream/defaults.py
"""Internal defaults shared by the broadcast core and the settings model.

These values are the documented fallbacks used when no ``SinkSettings`` is
supplied. ``SinkSettings`` exposes each of them; this module is the single
source of truth for the numbers.
"""

from typing import Final

# Payloads buffered per downstream connection before it is dropped.
QUEUE_SIZE: Final[int] = 10

# Connect timeout for outbound (dial) sinks, in seconds.
DIAL_TIMEOUT: Final[float] = 10.0

# Upper bound for joining accept and connection threads on close.
SHUTDOWN_TIMEOUT: Final[float] = 5.0

# How often accept loops check for a shutdown request.
POLL_INTERVAL: Final[float] = 0.2

# Content type announced by http-listen responses.
HTTP_CONTENT_TYPE: Final[str] = "application/octet-stream"

# How long an accepted HTTP or WebSocket client may take to finish its
# handshake before the connection is abandoned.
HANDSHAKE_TIMEOUT: Final[float] = 10.0

# How long write() waits for a full subscriber queue to make room before
# that subscriber is dropped as stalled.
OVERFLOW_TIMEOUT: Final[float] = 0.25
