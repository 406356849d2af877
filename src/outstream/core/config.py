# src/outstream/core/config.py
"""Settings for sink construction.

Settings are frozen (immutable) after construction. A ``SchemeRegistry``
holds one instance and hands it to every built-in sink it builds.
"""

from pydantic import BaseModel, Field

from outstream import defaults


class SinkSettings(BaseModel):
    """Tunables shared by dial and listening sinks.

    Example:
        settings = SinkSettings(queue_size=64, dial_timeout=2.5)
        registry = SchemeRegistry(settings=settings)
    """

    model_config = {"frozen": True}

    queue_size: int = Field(
        default=defaults.QUEUE_SIZE,
        gt=0,
        description="Payloads buffered per downstream connection before it is dropped",
    )
    dial_timeout: float = Field(
        default=defaults.DIAL_TIMEOUT,
        gt=0,
        description="Connect timeout for outbound sinks, in seconds",
    )
    shutdown_timeout: float = Field(
        default=defaults.SHUTDOWN_TIMEOUT,
        gt=0,
        description="Upper bound for joining background threads on close, in seconds",
    )
    poll_interval: float = Field(
        default=defaults.POLL_INTERVAL,
        gt=0,
        le=5.0,
        description="How often accept loops check for a shutdown request, in seconds",
    )
    overflow_timeout: float = Field(
        default=defaults.OVERFLOW_TIMEOUT,
        ge=0,
        le=5.0,
        description="How long a write waits on a full queue before dropping that subscriber, in seconds",
    )
    http_content_type: str = Field(
        default=defaults.HTTP_CONTENT_TYPE,
        min_length=1,
        description="Content-Type header sent by http-listen responses",
    )
