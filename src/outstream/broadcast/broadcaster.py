# src/outstream/broadcast/broadcaster.py
"""Broadcaster: the sink behind every listening scheme.

The Broadcaster owns a TransportListener and the live set of Subscribers
accepted through it. ``write()`` copies a payload onto every live
Subscriber's queue; ``close()`` tears everything down.

Design principles:
- The producer never waits on network I/O: write() only enqueues, waiting
  briefly for room only on a full queue
- A Subscriber whose queue stays full is dropped, not waited for
- Per-subscriber failures are logged, never raised to the producer
- Listener failure stops new accepts; it is reported as the cause of the
  SinkClosedError raised by writes after close()

Thread Safety:
    Three kinds of threads touch a Broadcaster:
    - the producer thread(s), calling write() and close()
    - the accept thread, running the listener's accept loop
    - one connection thread per Subscriber, running serve()
    The Subscriber set, the closed flag and the counters are guarded by
    _lock. Enqueueing to all Subscribers happens under _lock, so every
    Subscriber sees concurrent writes in the same order. Subscribers are
    closed outside _lock (their on_close callback takes it).
"""

from __future__ import annotations

import errno
import itertools
import threading
import time
from types import TracebackType
from typing import Any

import structlog

from outstream.core.config import SinkSettings
from outstream.errors import SinkClosedError, SubscriberLostError
from outstream.protocols import ConnectionProtocol, TransportListener
from outstream.broadcast.subscriber import Subscriber

logger = structlog.get_logger(__name__)


class Broadcaster:
    """Fan every write out to all connected downstream consumers.

    The accept loop starts as soon as the Broadcaster is constructed.

    Example:
        listener = TcpListener(":9000")
        with Broadcaster(listener) as sink:
            sink.write(b"hello\\n")
    """

    def __init__(
        self,
        listener: TransportListener,
        *,
        settings: SinkSettings | None = None,
    ) -> None:
        """Start broadcasting on an already-bound listener.

        Args:
            listener: Bound transport listener; owned from now on
            settings: Queue size and shutdown timeout; defaults if None
        """
        self._listener = listener
        self._settings = settings if settings is not None else SinkSettings()
        self._name = f"{listener.scheme}://{listener.address}"

        self._lock = threading.Lock()
        self._subscribers: dict[int, Subscriber] = {}
        self._ids = itertools.count(1)
        self._closed = False
        self._listener_error: OSError | None = None

        # Health counters (guarded by _lock)
        self._writes = 0
        self._accepted = 0
        self._dropped = 0
        self._lost = 0

        # Non-daemon so an unclosed sink is noticed rather than silently
        # killed at interpreter exit.
        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            name=f"{listener.scheme}-accept",
            daemon=False,
        )
        self._accept_thread.start()
        logger.info("Listening sink started", sink=self._name)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def scheme(self) -> str:
        return self._listener.scheme

    @property
    def address(self) -> str:
        """Bound address; resolves port 0 to the port actually bound."""
        return self._listener.address

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def listener_error(self) -> OSError | None:
        """Error that ended the accept loop, if the listener failed."""
        return self._listener_error

    @property
    def stats(self) -> dict[str, Any]:
        """Snapshot of broadcast health.

        - writes: write() calls accepted
        - subscribers: currently connected
        - subscribers_accepted: connections accepted since start
        - subscribers_dropped: removed because their queue overflowed
        - subscribers_lost: removed because their connection failed
        """
        with self._lock:
            return {
                "writes": self._writes,
                "subscribers": len(self._subscribers),
                "subscribers_accepted": self._accepted,
                "subscribers_dropped": self._dropped,
                "subscribers_lost": self._lost,
            }

    # ------------------------------------------------------------------
    # Sink contract
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> int:
        """Queue ``data`` for every live subscriber.

        Never blocks on network I/O. A subscriber whose queue is full gets
        up to ``overflow_timeout`` (shared by all full subscribers of this
        write) to make room; one that does not is dropped. That never makes
        write() fail.

        Returns:
            len(data)

        Raises:
            SinkClosedError: If close() has been called. Chained to the
                listener error when the accept loop had failed.
        """
        payload = bytes(data)
        overflowed: list[Subscriber] = []
        with self._lock:
            if self._closed:
                raise SinkClosedError(self._name) from self._listener_error
            self._writes += 1
            full = [s for s in self._subscribers.values() if not s.offer(payload)]
            if full:
                # Waiting releases the GIL, so senders that are keeping up
                # get to run and free a slot.
                deadline = time.monotonic() + self._settings.overflow_timeout
                for subscriber in full:
                    remaining = max(0.0, deadline - time.monotonic())
                    if not subscriber.offer(payload, timeout=remaining):
                        overflowed.append(subscriber)

        for subscriber in overflowed:
            subscriber.close(
                SubscriberLostError(
                    subscriber.id,
                    "queue_full",
                    f"{subscriber.pending} payloads pending",
                )
            )
        return len(payload)

    def close(self) -> None:
        """Deliver what is queued, disconnect every subscriber, release the listener.

        Shutdown sequence:
        1. Mark closed - new writes fail, new connections are refused
        2. Close every subscriber; each sender loop delivers its queued
           payloads and returns
        3. Wait for the sender loops, bounded by shutdown_timeout; any that
           are still running are aborted (connection shut down)
        4. Shut the listener down (stops the accept loop, unbinds) and join
           the accept thread, bounded by shutdown_timeout

        Idempotent.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = list(self._subscribers.values())

        for subscriber in subscribers:
            subscriber.close()

        deadline = time.monotonic() + self._settings.shutdown_timeout
        for subscriber in subscribers:
            if subscriber.wait(timeout=max(0.0, deadline - time.monotonic())):
                continue
            logger.warning(
                "Subscriber did not drain within timeout - disconnecting",
                sink=self._name,
                subscriber_id=subscriber.id,
                peer=subscriber.peer,
                pending=subscriber.pending,
            )
            subscriber.abort()
            if not subscriber.wait(timeout=self._settings.poll_interval):
                logger.error(
                    "Sender loop did not exit after disconnect",
                    sink=self._name,
                    subscriber_id=subscriber.id,
                )

        try:
            self._listener.shutdown()
        except OSError as e:
            logger.warning("Listener shutdown failed", sink=self._name, error=str(e))

        self._accept_thread.join(timeout=self._settings.shutdown_timeout)
        if self._accept_thread.is_alive():
            logger.error("Accept thread did not exit within timeout", sink=self._name)

        logger.info("Listening sink closed", sink=self._name, **self.stats)

    def __enter__(self) -> Broadcaster:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Connection side
    # ------------------------------------------------------------------

    def serve(self, connection: ConnectionProtocol) -> None:
        """Register a new downstream connection and run its sender loop.

        Called by the listener on the connection's own thread; returns when
        the subscriber is closed. A connection arriving after close() is
        closed immediately.
        """
        with self._lock:
            if self._closed:
                subscriber = None
            else:
                subscriber = Subscriber(
                    next(self._ids),
                    connection,
                    queue_size=self._settings.queue_size,
                    on_close=self._discard,
                )
                self._subscribers[subscriber.id] = subscriber
                self._accepted += 1

        if subscriber is None:
            logger.debug("Refusing connection on closed sink", sink=self._name, peer=connection.peer)
            connection.close()
            return

        logger.info(
            "Subscriber connected",
            sink=self._name,
            subscriber_id=subscriber.id,
            peer=subscriber.peer,
        )
        subscriber.run()

    def _discard(self, subscriber: Subscriber) -> None:
        """on_close callback: remove a subscriber from the broadcast set."""
        reason = subscriber.close_reason
        with self._lock:
            self._subscribers.pop(subscriber.id, None)
            if reason is not None:
                if reason.reason == "queue_full":
                    self._dropped += 1
                else:
                    self._lost += 1

        if reason is None:
            logger.debug(
                "Subscriber closed",
                sink=self._name,
                subscriber_id=subscriber.id,
                peer=subscriber.peer,
            )
        elif reason.reason == "queue_full":
            logger.warning(
                "Dropping slow subscriber",
                sink=self._name,
                subscriber_id=subscriber.id,
                peer=subscriber.peer,
                queue_size=self._settings.queue_size,
            )
        else:
            logger.info(
                "Subscriber disconnected",
                sink=self._name,
                subscriber_id=subscriber.id,
                peer=subscriber.peer,
                error=str(reason),
            )

    def _accept_loop(self) -> None:
        """Accept thread: run the listener until shutdown or failure.

        A listener that returns without being shut down has stopped
        accepting; that is recorded like a raised error.
        """
        try:
            self._listener.serve_forever(self.serve)
        except OSError as e:
            error = e
        else:
            error = OSError(errno.EBADF, f"{self._name} stopped accepting connections")
        if self._closed:
            return
        self._listener_error = error
        logger.error(
            "Listener failed - no new subscribers will be accepted",
            sink=self._name,
            error=str(error),
            subscribers=self.subscriber_count,
        )
