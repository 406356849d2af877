# src/outstream/schemes.py
"""Description of a resolvable scheme, as returned by scheme plugins."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from outstream.core.config import SinkSettings
from outstream.protocols import SinkProtocol

# Built-in constructors receive the registry's settings.
SchemeConstructor = Callable[[str, SinkSettings], SinkProtocol]

# Constructors added with SchemeRegistry.register() receive only the argument.
SinkConstructor = Callable[[str], SinkProtocol]


@dataclass(frozen=True, slots=True)
class SchemeEntry:
    """One scheme and how to build a sink for it.

    Attributes:
        name: Canonical scheme name; used in error messages
        constructor: Builds the sink from (argument, settings)
        aliases: Other names resolving to the same entry ("tcp-server")
        requires_argument: Reject an empty argument with MissingArgumentError
        missing_hint: Noun used in the missing argument message
        description: One line shown by ``outstream schemes``
    """

    name: str
    constructor: SchemeConstructor
    aliases: tuple[str, ...] = field(default=())
    requires_argument: bool = True
    missing_hint: str = "address"
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name or "://" in self.name:
            raise ValueError(f"invalid scheme name: {self.name!r}")
        for alias in self.aliases:
            if not alias or "://" in alias:
                raise ValueError(f"invalid alias {alias!r} for scheme {self.name!r}")

    @property
    def names(self) -> tuple[str, ...]:
        """Canonical name followed by aliases."""
        return (self.name, *self.aliases)
