# src/outstream/core/addresses.py
"""Parsing of ``host:port`` arguments for tcp and websocket schemes."""

from __future__ import annotations


def split_host_port(address: str) -> tuple[str, int]:
    """Split ``host:port`` into its parts.

    An empty host (``":9000"``) means all interfaces and is returned as
    ``""``. IPv6 hosts must be bracketed (``"[::1]:9000"``).

    Raises:
        ValueError: If the port is missing or not a number in 0-65535
    """
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 host must be bracketed in address {address!r}")
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"invalid port {port_text!r} in address {address!r}") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"port {port} out of range in address {address!r}")
    return host, port


def format_host_port(host: str, port: int) -> str:
    """Inverse of split_host_port(); brackets IPv6 hosts."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
