"""Settings, logging and address helpers shared by all sinks."""

from outstream.core.addresses import format_host_port, split_host_port
from outstream.core.config import SinkSettings

__all__ = ["SinkSettings", "format_host_port", "split_host_port"]
