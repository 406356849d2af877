# src/outstream/hookspecs.py
"""pluggy hook specifications for output schemes.

Scheme plugins implement these hooks to make their schemes resolvable. A
SchemeRegistry calls them once, when it is constructed.

Usage (implementing a scheme plugin):
    from outstream.hookspecs import hookimpl
    from outstream.schemes import SchemeEntry

    class SyslogPlugin:
        @hookimpl
        def outstream_get_schemes(self):
            return [SchemeEntry("syslog", open_syslog)]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from outstream.schemes import SchemeEntry

PROJECT_NAME = "outstream"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker (for scheme plugins to use)
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class OutstreamSchemeSpec:
    """Hook specifications for scheme plugins."""

    @hookspec
    def outstream_get_schemes(self) -> list["SchemeEntry"]:  # type: ignore[empty-body]
        """Return scheme entries.

        Called while a SchemeRegistry is being constructed. Every entry's
        name and aliases must be unique across all registered plugins.

        Returns:
            List of SchemeEntry instances
        """
