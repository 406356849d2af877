# src/outstream/errors.py
"""Exceptions raised by sink resolution, construction and use.

Construction errors (unknown scheme, missing argument, bind and dial
failures) are raised synchronously to the caller. ``SubscriberLostError`` is
internal to the broadcast core: it describes why a downstream connection was
dropped and is logged, never raised to the producer.
"""


class OutputError(Exception):
    """Base class for all outstream errors."""


class UnknownSchemeError(OutputError):
    """Raised when a resolution string names no registered scheme.

    Attributes:
        scheme: The scheme that failed to resolve
    """

    def __init__(self, scheme: str) -> None:
        self.scheme = scheme
        super().__init__(f"unknown output protocol: {scheme}")


class MissingArgumentError(OutputError):
    """Raised when a scheme that needs an argument was given none.

    Attributes:
        scheme: The scheme as written by the caller
        hint: What the argument should have been ("address", "path")
    """

    def __init__(self, scheme: str, hint: str = "address") -> None:
        self.scheme = scheme
        self.hint = hint
        super().__init__(f"{scheme}: no {hint} supplied")


class BindError(OutputError):
    """Raised when a listening transport cannot be bound.

    Attributes:
        scheme: Scheme of the listening sink
        address: Address or path that could not be bound
    """

    def __init__(self, scheme: str, address: str, message: str) -> None:
        self.scheme = scheme
        self.address = address
        super().__init__(f"{scheme}: cannot listen on {address!r}: {message}")


class DialError(OutputError):
    """Raised when an outbound connection cannot be established or breaks.

    Attributes:
        scheme: Scheme of the dial sink
        address: Address, path or URL that was dialled
    """

    def __init__(self, scheme: str, address: str, message: str) -> None:
        self.scheme = scheme
        self.address = address
        super().__init__(f"{scheme}: cannot connect to {address!r}: {message}")


class SinkClosedError(OutputError):
    """Raised when writing to a sink that has already been closed."""

    def __init__(self, sink: str) -> None:
        self.sink = sink
        super().__init__(f"{sink}: sink is closed")


class SubscriberLostError(OutputError):
    """Why a downstream connection was removed from a broadcast.

    Never raised to the producer. Instances are logged and passed to
    ``Subscriber.close()`` as the teardown reason.

    Attributes:
        subscriber_id: Identifier of the dropped subscriber
        reason: Short machine-friendly reason ("queue_full", "send_failed")
    """

    def __init__(self, subscriber_id: int, reason: str, detail: str = "") -> None:
        self.subscriber_id = subscriber_id
        self.reason = reason
        self.detail = detail
        message = f"subscriber {subscriber_id} lost: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SchemeRegistrationError(OutputError):
    """Raised when a scheme plugin is invalid or declares a duplicate scheme.

    Attributes:
        plugin_name: Name of the offending plugin or scheme
        message: Human-readable error description
    """

    def __init__(self, plugin_name: str, message: str) -> None:
        self.plugin_name = plugin_name
        self.message = message
        super().__init__(f"Scheme plugin '{plugin_name}' failed: {message}")
