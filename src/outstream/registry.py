# src/outstream/registry.py
"""Scheme registry: turns ``scheme://argument`` strings into sinks.

Built-in schemes are discovered through pluggy hooks when the registry is
constructed. Callers may pass extra scheme plugins, or add single schemes
later with ``register()``; a registered scheme takes precedence over a
built-in of the same name.

Usage:
    from outstream.registry import SchemeRegistry

    registry = SchemeRegistry()
    sink = registry.resolve("tcp-listen://:9000")
    try:
        sink.write(b"hello\\n")
    finally:
        sink.close()

There is no process-wide registry: whoever builds sinks owns one.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

import pluggy
import structlog

from outstream.core.config import SinkSettings
from outstream.errors import MissingArgumentError, SchemeRegistrationError, UnknownSchemeError
from outstream.hookspecs import PROJECT_NAME, OutstreamSchemeSpec
from outstream.protocols import SinkProtocol
from outstream.schemes import SchemeEntry, SinkConstructor
from outstream.sinks import BuiltinSchemesPlugin

logger = structlog.get_logger(__name__)

SCHEME_SEPARATOR = "://"


def split_spec(spec: str) -> tuple[str, str]:
    """Split a resolution string on its first ``://``.

    The argument may be empty and may itself contain ``://``.

    Example:
        >>> split_spec("file:///tmp/out.log")
        ('file', '/tmp/out.log')
        >>> split_spec("stdout")
        ('stdout', '')
    """
    scheme, _, argument = spec.partition(SCHEME_SEPARATOR)
    return scheme, argument


def _discover_schemes(scheme_plugins: Iterable[Any] = ()) -> dict[str, SchemeEntry]:
    """Discover scheme entries via pluggy hooks.

    Registers the built-in plugin plus any additional plugin objects, then
    calls ``outstream_get_schemes`` hooks to build the name->entry map
    (aliases included).

    Raises:
        SchemeRegistrationError: If plugin registration fails, a hook
            returns something other than an iterable of SchemeEntry, or two
            entries claim the same name.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(OutstreamSchemeSpec)

    plugins_to_register: list[Any] = [BuiltinSchemesPlugin(), *list(scheme_plugins)]
    for plugin in plugins_to_register:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            # PluginValidationError: hook spec mismatch (wrong method names, etc.)
            # ValueError: duplicate plugin object or plugin name already registered
            if isinstance(e, pluggy.PluginValidationError):
                plugin_manager.unregister(plugin=plugin)
            raise SchemeRegistrationError(
                type(plugin).__name__,
                f"invalid scheme plugin: {e}",
            ) from e

    entries: dict[str, SchemeEntry] = {}
    for hook_impl in plugin_manager.hook.outstream_get_schemes.get_hookimpls():
        plugin_name = type(hook_impl.plugin).__name__
        try:
            result = hook_impl.plugin.outstream_get_schemes()
        except Exception as e:
            raise SchemeRegistrationError(plugin_name, f"outstream_get_schemes failed: {e}") from e

        if result is None or type(result) in (str, bytes):
            raise SchemeRegistrationError(
                plugin_name,
                f"outstream_get_schemes returned {type(result).__name__}; expected iterable of SchemeEntry",
            )
        try:
            scheme_iter = iter(result)
        except TypeError as e:
            raise SchemeRegistrationError(
                plugin_name,
                f"outstream_get_schemes returned {type(result).__name__}; expected iterable of SchemeEntry",
            ) from e

        for entry in scheme_iter:
            if not isinstance(entry, SchemeEntry):
                raise SchemeRegistrationError(
                    plugin_name,
                    f"expected SchemeEntry, got {type(entry).__name__}",
                )
            for name in entry.names:
                if name in entries:
                    raise SchemeRegistrationError(
                        plugin_name,
                        f"duplicate scheme name '{name}' (already provided for '{entries[name].name}')",
                    )
                entries[name] = entry

    return entries


class SchemeRegistry:
    """Maps scheme names to sink constructors.

    Thread Safety:
        register() and resolve() may be called concurrently. The table of
        registered constructors is guarded by a lock; constructors run
        outside it, so a slow bind or dial never blocks registration.
    """

    def __init__(
        self,
        *,
        settings: SinkSettings | None = None,
        scheme_plugins: Iterable[Any] = (),
    ) -> None:
        """Discover built-in and plugin schemes.

        Args:
            settings: Passed to every built-in constructor; defaults if None
            scheme_plugins: Extra objects implementing outstream_get_schemes

        Raises:
            SchemeRegistrationError: If a plugin is invalid
        """
        self._settings = settings if settings is not None else SinkSettings()
        self._builtins = _discover_schemes(scheme_plugins)
        self._registered: dict[str, SinkConstructor] = {}
        self._lock = threading.Lock()

    @property
    def settings(self) -> SinkSettings:
        return self._settings

    def register(self, scheme: str, constructor: SinkConstructor) -> None:
        """Bind ``scheme`` to ``constructor``; the last registration wins.

        The constructor receives the argument string and returns a sink or
        raises. Registered schemes take precedence over built-ins.

        Raises:
            ValueError: If scheme is empty or contains "://"
        """
        if not scheme or SCHEME_SEPARATOR in scheme:
            raise ValueError(f"invalid scheme name: {scheme!r}")
        with self._lock:
            replaced = scheme in self._registered
            self._registered[scheme] = constructor
        logger.debug(
            "Scheme registered",
            scheme=scheme,
            replaced=replaced,
            overrides_builtin=scheme in self._builtins,
        )

    def schemes(self) -> list[str]:
        """All resolvable scheme names, sorted."""
        with self._lock:
            names = set(self._registered)
        names.update(self._builtins)
        return sorted(names)

    def entries(self) -> list[SchemeEntry]:
        """Plugin-provided scheme entries, one per canonical name."""
        unique = {entry.name: entry for entry in self._builtins.values()}
        return [unique[name] for name in sorted(unique)]

    def resolve(self, spec: str) -> SinkProtocol:
        """Build the sink named by ``spec``.

        Raises:
            UnknownSchemeError: If no scheme matches
            MissingArgumentError: If a built-in scheme needs an argument and
                none was given
            BindError: If a listening sink cannot bind
            DialError: If a dial sink cannot connect
        """
        scheme, argument = split_spec(spec)

        with self._lock:
            constructor = self._registered.get(scheme)
        if constructor is not None:
            return constructor(argument)

        entry = self._builtins.get(scheme)
        if entry is None:
            raise UnknownSchemeError(scheme)
        if entry.requires_argument and not argument:
            raise MissingArgumentError(entry.name, entry.missing_hint)
        return entry.constructor(argument, self._settings)
